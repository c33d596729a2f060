"""
Verification Engine - cross-backend proof validation.

Stages:
1. Input Validation - structural checks before any backend call
2. Dispatch - quick check, full verification and cross-validation under one budget
3. Consistency - weighted agreement, internal and external consistency
4. Complexity - proof length, depth, axioms and difficulty
"""

from crossproof.engines.cache import ResultCache, fingerprint
from crossproof.engines.complexity import ComplexityEstimator
from crossproof.engines.consistency import ConsistencyAnalyzer
from crossproof.engines.dispatcher import DispatchReport, SessionDispatcher, StatementDispatch, primary_acceptable
from crossproof.engines.input_validator import InputValidator
from crossproof.engines.negation import NegationRecognizer
from crossproof.engines.weighting import (
    BackendPerformanceTracker,
    DomainWeightPolicy,
    HistoricalDomainWeights,
    StaticDomainWeights,
    UniformWeights,
    weights_from_settings,
)

__all__ = [
    "BackendPerformanceTracker",
    "ComplexityEstimator",
    "ConsistencyAnalyzer",
    "DispatchReport",
    "DomainWeightPolicy",
    "HistoricalDomainWeights",
    "InputValidator",
    "NegationRecognizer",
    "ResultCache",
    "SessionDispatcher",
    "StatementDispatch",
    "StaticDomainWeights",
    "UniformWeights",
    "fingerprint",
    "primary_acceptable",
    "weights_from_settings",
]
