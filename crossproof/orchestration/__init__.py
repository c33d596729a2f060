"""Orchestration layer - request-level validation pipeline."""

from crossproof.orchestration.orchestrator import (
    OrchestratorMetrics,
    ValidationOrchestrator,
    merge_results,
)

__all__ = [
    "OrchestratorMetrics",
    "ValidationOrchestrator",
    "merge_results",
]
