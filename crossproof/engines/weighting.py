"""
Domain weighting of backend votes in the consistency score.
"""

import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Dict, Optional, Tuple

from crossproof.config import Settings
from crossproof.schemas.results import SingleProofResult
from crossproof.schemas.statements import AcademicDomain, BackendKind

_Key = Tuple[BackendKind, Optional[AcademicDomain]]


class DomainWeightPolicy(ABC):
    """How much a backend's verdict counts for statements of a domain."""

    @abstractmethod
    def weight(self, backend: BackendKind, domain: Optional[AcademicDomain]) -> float:
        pass


class UniformWeights(DomainWeightPolicy):
    """Every backend counts the same."""

    def weight(self, backend: BackendKind, domain: Optional[AcademicDomain]) -> float:
        return 1.0


class StaticDomainWeights(DomainWeightPolicy):
    """
    Fixed per-domain weights, e.g. {AcademicDomain.LOGIC: {BackendKind.ISABELLE: 2.0}}.

    Missing entries weigh 1.0.
    """

    def __init__(self, mapping: Dict[AcademicDomain, Dict[BackendKind, float]]):
        for per_backend in mapping.values():
            for backend, value in per_backend.items():
                if value < 0:
                    raise ValueError(f"Negative weight for {backend.value}")
        self.mapping = mapping

    def weight(self, backend: BackendKind, domain: Optional[AcademicDomain]) -> float:
        if domain is None:
            return 1.0
        return self.mapping.get(domain, {}).get(backend, 1.0)


class BackendPerformanceTracker:
    """Running mean confidence of decisive results per (backend, domain)."""

    def __init__(self):
        self._lock = threading.Lock()
        self._totals: Dict[_Key, float] = defaultdict(float)
        self._counts: Dict[_Key, int] = defaultdict(int)

    def record(self, domain: Optional[AcademicDomain], result: SingleProofResult) -> None:
        if result.timed_out:
            return
        key = (result.backend, domain)
        with self._lock:
            self._totals[key] += result.confidence
            self._counts[key] += 1

    def samples(self, backend: BackendKind, domain: Optional[AcademicDomain]) -> int:
        with self._lock:
            return self._counts.get((backend, domain), 0)

    def mean_confidence(self, backend: BackendKind, domain: Optional[AcademicDomain]) -> Optional[float]:
        with self._lock:
            count = self._counts.get((backend, domain), 0)
            if not count:
                return None
            return self._totals[(backend, domain)] / count


class HistoricalDomainWeights(DomainWeightPolicy):
    """
    Weights learned from observed confidence.

    Falls back to uniform until a (backend, domain) pair has `min_samples`
    observations; learned weights never drop below `floor`.
    """

    def __init__(self, tracker: BackendPerformanceTracker, min_samples: int = 5, floor: float = 0.1):
        self.tracker = tracker
        self.min_samples = min_samples
        self.floor = floor

    def weight(self, backend: BackendKind, domain: Optional[AcademicDomain]) -> float:
        if self.tracker.samples(backend, domain) < self.min_samples:
            return 1.0
        mean = self.tracker.mean_confidence(backend, domain)
        return max(self.floor, mean if mean is not None else 1.0)


def weights_from_settings(settings: Settings, tracker: BackendPerformanceTracker) -> DomainWeightPolicy:
    """Weight policy named by `consistency_weighting`."""
    if settings.consistency_weighting == "historical":
        return HistoricalDomainWeights(tracker, min_samples=settings.historical_weight_min_samples)
    return UniformWeights()
