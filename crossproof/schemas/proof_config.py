"""
Per-request configuration of the verification engine.

The options recognised here are the only configuration channel of the
engine; process-level settings live in crossproof.config.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from crossproof.schemas.statements import AcademicDomain, BackendKind


class TimeoutBudget(BaseModel):
    """Four-level timeout budget, in seconds."""

    model_config = ConfigDict(frozen=True)

    quick_check: float = Field(5.0, gt=0)
    full_verification: float = Field(30.0, gt=0)
    cross_validation: float = Field(60.0, gt=0)
    max_total_time: float = Field(120.0, gt=0)

    @model_validator(mode="after")
    def _within_total(self) -> "TimeoutBudget":
        for name in ("quick_check", "full_verification", "cross_validation"):
            if getattr(self, name) > self.max_total_time:
                raise ValueError(f"{name} exceeds max_total_time")
        return self


class PerformanceSettings(BaseModel):
    """Caching and concurrency knobs."""

    model_config = ConfigDict(frozen=True)

    enable_caching: bool = True
    enable_parallel: bool = True
    max_concurrent: int = Field(3, ge=1)
    memory_limit_mb: Optional[int] = Field(None, gt=0)


class AcceptanceThresholds(BaseModel):
    """Thresholds a result must meet to be accepted."""

    model_config = ConfigDict(frozen=True)

    minimum_confidence: float = Field(0.7, ge=0.0, le=1.0)
    require_cross_validation: bool = False
    max_errors_allowed: int = Field(0, ge=0)
    consistency_threshold: float = Field(0.7, ge=0.0, le=1.0)


class ProofAssistantConfig(BaseModel):
    """
    Backend choice, timeouts, performance and acceptance thresholds.

    `fallbacks` is ordered by priority. `domain_specializations` overrides
    the primary backend for statements of a given domain.
    """

    model_config = ConfigDict(frozen=True)

    primary: BackendKind = BackendKind.LEAN
    fallbacks: List[BackendKind] = []
    domain_specializations: Dict[AcademicDomain, BackendKind] = {}
    timeouts: TimeoutBudget = Field(default_factory=TimeoutBudget)
    performance: PerformanceSettings = Field(default_factory=PerformanceSettings)
    thresholds: AcceptanceThresholds = Field(default_factory=AcceptanceThresholds)

    def primary_for(self, domain: Optional[AcademicDomain]) -> BackendKind:
        """Primary backend for a statement of the given domain."""
        if domain is not None and domain in self.domain_specializations:
            return self.domain_specializations[domain]
        return self.primary

    def fallbacks_for(self, primary: BackendKind) -> List[BackendKind]:
        """Fallbacks in priority order, without the primary or duplicates."""
        ordered: List[BackendKind] = []
        for backend in self.fallbacks:
            if backend != primary and backend not in ordered:
                ordered.append(backend)
        return ordered


def default_proof_config() -> ProofAssistantConfig:
    """Lean as primary with Coq cross-validation."""
    return ProofAssistantConfig(
        primary=BackendKind.LEAN,
        fallbacks=[BackendKind.COQ],
    )
