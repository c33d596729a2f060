"""
Pydantic schemas for statements, configuration and results.
"""

from crossproof.schemas.statements import (
    AcademicDomain,
    BackendKind,
    ComplexityClass,
    DocumentContext,
    ExpertiseLevel,
    FormalStatement,
    MathClaim,
    ProofSketch,
    ProofStep,
    ProofStrategy,
    StatementKind,
    TextLocation,
    UserContext,
    ValidationContext,
    ValidationRequirements,
    Variable,
)
from crossproof.schemas.proof_config import (
    AcceptanceThresholds,
    PerformanceSettings,
    ProofAssistantConfig,
    TimeoutBudget,
    default_proof_config,
)
from crossproof.schemas.results import (
    ComplexityReport,
    ConsistencyReport,
    ErrorType,
    LogicalContradiction,
    ProofValidationResult,
    ResourceUsage,
    Severity,
    SingleProofResult,
    SourceLocation,
    ValidationIssue,
    ValidationMetadata,
    ValidationWarning,
    WarningType,
    timeout_result,
)
from crossproof.schemas.requests import (
    BackendPerformance,
    OrchestratorStatusResponse,
    ValidationRequest,
)
from crossproof.schemas.common import ErrorResponse, HealthResponse

__all__ = [
    # Statements
    "AcademicDomain",
    "BackendKind",
    "ComplexityClass",
    "DocumentContext",
    "ExpertiseLevel",
    "FormalStatement",
    "MathClaim",
    "ProofSketch",
    "ProofStep",
    "ProofStrategy",
    "StatementKind",
    "TextLocation",
    "UserContext",
    "ValidationContext",
    "ValidationRequirements",
    "Variable",
    # Configuration
    "AcceptanceThresholds",
    "PerformanceSettings",
    "ProofAssistantConfig",
    "TimeoutBudget",
    "default_proof_config",
    # Results
    "ComplexityReport",
    "ConsistencyReport",
    "ErrorType",
    "LogicalContradiction",
    "ProofValidationResult",
    "ResourceUsage",
    "Severity",
    "SingleProofResult",
    "SourceLocation",
    "ValidationIssue",
    "ValidationMetadata",
    "ValidationWarning",
    "WarningType",
    "timeout_result",
    # API
    "BackendPerformance",
    "OrchestratorStatusResponse",
    "ValidationRequest",
    "ErrorResponse",
    "HealthResponse",
]
