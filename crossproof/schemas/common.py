"""
Common schema types used across the API.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel

from crossproof.errors import InputIssue


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
    code: Optional[str] = None
    issues: List[InputIssue] = []


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"  # "degraded" when a registered backend is unavailable
    version: str
    backends: Dict[str, bool] = {}  # backend -> available
