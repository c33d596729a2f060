"""
Exception hierarchy for the validation engine.

Backend failures never raise: they are recorded inside SingleProofResult
objects. Only malformed input and unrecoverable engine conditions surface
as exceptions.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class CrossProofError(Exception):
    """Base exception for all engine errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


class InputIssue(BaseModel):
    """One structured problem found in an inbound request."""

    code: str
    message: str
    ref: Optional[str] = None


class InputValidationError(CrossProofError):
    """
    Raised when a request is malformed.

    Always raised before any backend call is made.
    """

    def __init__(self, issues: List[InputIssue]):
        summary = "; ".join(issue.message for issue in issues[:3])
        if len(issues) > 3:
            summary += f" (+{len(issues) - 3} more)"
        super().__init__(
            f"Invalid validation request: {summary}",
            {"issue_count": len(issues)},
        )
        self.issues = issues


class FatalValidationError(CrossProofError):
    """Unrecoverable failure of the whole request, distinct from a negative verdict."""

    pass


class CacheCorruptionError(FatalValidationError):
    """Raised when the result cache holds data that cannot be trusted."""

    def __init__(self, reason: str, key: Optional[str] = None):
        super().__init__(f"Result cache corrupted: {reason}", {"key": key} if key else None)
        self.key = key
