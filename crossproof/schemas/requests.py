"""
Request/response schemas for the validation API.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel

from crossproof.schemas.proof_config import ProofAssistantConfig
from crossproof.schemas.statements import (
    FormalStatement,
    MathClaim,
    ProofSketch,
    ValidationContext,
)


class ValidationRequest(BaseModel):
    """Statement set submitted for validation."""

    statements: List[FormalStatement] = []
    claims: List[MathClaim] = []
    sketches: List[ProofSketch] = []
    config: Optional[ProofAssistantConfig] = None
    context: Optional[ValidationContext] = None


class BackendPerformance(BaseModel):
    """Running statistics for one backend."""

    available: bool = True
    validations: int = 0
    success_rate: float = 0.0
    average_time: float = 0.0


class OrchestratorStatusResponse(BaseModel):
    """Orchestrator health and metrics."""

    status: str
    total_validations: int
    successful_validations: int
    failed_validations: int
    rejected_inputs: int
    average_validation_time: float
    active_validations: int
    backends: Dict[str, BackendPerformance] = {}
    cache: Dict[str, float] = {}
