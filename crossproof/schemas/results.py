"""
Result schemas: per-backend verdicts and the aggregated validation result.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from crossproof.schemas.proof_config import ProofAssistantConfig
from crossproof.schemas.statements import BackendKind, ComplexityClass, FormalStatement


class ErrorType(str, Enum):
    """Every backend failure falls in exactly one of these."""
    SYNTAX = "syntax"
    TYPE = "type"
    LOGIC = "logic"
    INCOMPLETE = "incomplete"
    TIMEOUT = "timeout"


class WarningType(str, Enum):
    """Non-fatal findings reported by a backend."""
    STYLE = "style"
    PERFORMANCE = "performance"
    REDUNDANCY = "redundancy"
    CLARITY = "clarity"


class Severity(str, Enum):
    """Severity of a detected contradiction."""
    MINOR = "minor"
    MAJOR = "major"
    CRITICAL = "critical"


class SourceLocation(BaseModel):
    """Line/column position inside a submitted source."""

    model_config = ConfigDict(frozen=True)

    line: int
    column: int = 0


class ValidationIssue(BaseModel):
    """A classified backend error."""

    model_config = ConfigDict(frozen=True)

    error_type: ErrorType
    message: str
    location: Optional[SourceLocation] = None
    suggested_fix: Optional[str] = None


class ValidationWarning(BaseModel):
    """A backend warning."""

    model_config = ConfigDict(frozen=True)

    warning_type: WarningType
    message: str
    location: Optional[SourceLocation] = None
    suggestion: Optional[str] = None


class ResourceUsage(BaseModel):
    """Resources consumed by one backend run."""

    model_config = ConfigDict(frozen=True)

    memory_mb: float = 0.0
    cpu_seconds: float = 0.0
    timeout: bool = False


class SingleProofResult(BaseModel):
    """
    One backend's verdict on one statement.

    A cache hit has exactly this schema; only `verification_time` (reported
    as zero) tells it apart from a live run.
    """

    model_config = ConfigDict(frozen=True)

    backend: BackendKind
    valid: bool
    confidence: float = Field(ge=0.0, le=1.0)
    formal_proof: Optional[str] = None
    errors: List[ValidationIssue] = []
    warnings: List[ValidationWarning] = []
    verification_time: float = 0.0  # seconds
    resource_usage: ResourceUsage = Field(default_factory=ResourceUsage)
    axioms_used: List[str] = []
    reported_complexity: Optional[ComplexityClass] = None
    # Crash or launch failure of the backend itself; never cached
    transient: bool = Field(default=False, exclude=True)

    @property
    def timed_out(self) -> bool:
        return self.resource_usage.timeout

    def error_types(self) -> List[ErrorType]:
        return [e.error_type for e in self.errors]


def timeout_result(backend: BackendKind, elapsed: float, message: str) -> SingleProofResult:
    """Terminal result for a backend call that ran out of budget."""
    return SingleProofResult(
        backend=backend,
        valid=False,
        confidence=0.0,
        errors=[ValidationIssue(error_type=ErrorType.TIMEOUT, message=message)],
        verification_time=elapsed,
        resource_usage=ResourceUsage(timeout=True),
    )


def backend_failure_result(backend: BackendKind, elapsed: float, message: str) -> SingleProofResult:
    """Incomplete result for a backend that crashed or could not be started."""
    return SingleProofResult(
        backend=backend,
        valid=False,
        confidence=0.0,
        errors=[ValidationIssue(error_type=ErrorType.INCOMPLETE, message=message)],
        verification_time=elapsed,
        transient=True,
    )


class LogicalContradiction(BaseModel):
    """A set of mutually inconsistent statements."""

    model_config = ConfigDict(frozen=True)

    id: str
    statements: List[FormalStatement] = Field(min_length=2)
    description: str
    severity: Severity
    resolution: Optional[str] = None

    @property
    def statement_ids(self) -> List[str]:
        return sorted(s.id for s in self.statements)


class ConsistencyReport(BaseModel):
    """Cross-backend and cross-statement consistency."""

    model_config = ConfigDict(frozen=True)

    internal_consistent: bool
    external_consistent: bool
    contradictions: List[LogicalContradiction] = []
    consistency_score: float = Field(ge=0.0, le=1.0)


class ComplexityReport(BaseModel):
    """Proof size and difficulty metrics."""

    model_config = ConfigDict(frozen=True)

    proof_length: int = 0
    dependency_depth: int = 0
    axiom_dependencies: List[str] = []
    computational_complexity: ComplexityClass = ComplexityClass.UNKNOWN
    estimated_difficulty: float = Field(0.0, ge=0.0, le=1.0)


class ValidationMetadata(BaseModel):
    """Bookkeeping for one validation request."""

    model_config = ConfigDict(frozen=True)

    validation_id: str
    timestamp: datetime
    total_validation_time: float  # seconds
    assistants_used: List[BackendKind]
    configuration_used: ProofAssistantConfig
    cache_hits: int = 0


class ProofValidationResult(BaseModel):
    """
    The engine's output for one request.

    `statement_results` keeps every (statement, backend) verdict;
    `primary_validation` and `cross_validation` are per-backend merges of it.
    """

    model_config = ConfigDict(frozen=True)

    primary_validation: SingleProofResult
    cross_validation: Dict[BackendKind, SingleProofResult] = {}
    statement_results: Dict[str, Dict[BackendKind, SingleProofResult]] = {}
    consistency: ConsistencyReport
    complexity: ComplexityReport
    metadata: ValidationMetadata
    accepted: bool
    rejection_reasons: List[str] = []
