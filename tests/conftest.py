"""
Pytest fixtures for crossproof tests.

Backends are replaced by ScriptedAdapter, an in-memory adapter whose
verdict, delay and failure mode are scripted per statement id.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from crossproof.engines.backends.base import (
    BackendAdapter,
    BackendRegistry,
    DialectConfig,
    SubmissionMode,
)
from crossproof.engines.cache import ResultCache
from crossproof.schemas.proof_config import (
    AcceptanceThresholds,
    PerformanceSettings,
    ProofAssistantConfig,
    TimeoutBudget,
)
from crossproof.schemas.results import (
    ErrorType,
    SingleProofResult,
    ValidationIssue,
    timeout_result,
)
from crossproof.schemas.statements import (
    BackendKind,
    ComplexityClass,
    FormalStatement,
    StatementKind,
)


@dataclass
class Script:
    """What a scripted backend answers for one statement."""
    valid: bool = True
    confidence: float = 0.95
    delay: float = 0.0
    quick_delay: float = 0.0
    error_type: Optional[ErrorType] = None
    quick_error_type: Optional[ErrorType] = None
    exception: Optional[Exception] = None
    axioms: List[str] = field(default_factory=list)
    complexity: Optional[ComplexityClass] = None
    formal_proof: Optional[str] = None


class ScriptedAdapter(BackendAdapter):
    """In-memory backend that honours its timeout like a real adapter."""

    def __init__(
        self,
        kind: BackendKind,
        scripts: Optional[Dict[str, Script]] = None,
        default: Optional[Script] = None,
        version: str = "1",
        available: bool = True,
        journal: Optional[List[Tuple[BackendKind, str, SubmissionMode]]] = None,
    ):
        self._kind = kind
        self.available = available
        # Shared across adapters to observe the order of calls between backends
        self.journal = journal if journal is not None else []
        self._dialect = DialectConfig(backend=kind, version=version)
        self.scripts = scripts or {}
        self.default = default or Script()
        self.calls: List[Tuple[str, SubmissionMode]] = []
        self.active = 0
        self.max_active = 0
        self.closed = False

    @property
    def kind(self) -> BackendKind:
        return self._kind

    @property
    def dialect(self) -> DialectConfig:
        return self._dialect

    def health_check(self) -> bool:
        return self.available

    def full_calls(self) -> List[str]:
        return [sid for sid, mode in self.calls if mode == SubmissionMode.FULL]

    async def submit(
        self,
        statement: FormalStatement,
        dialect: DialectConfig,
        timeout: float,
        *,
        mode: SubmissionMode = SubmissionMode.FULL,
        memory_limit_mb: Optional[int] = None,
    ) -> SingleProofResult:
        self.calls.append((statement.id, mode))
        self.journal.append((self.kind, statement.id, mode))
        script = self.scripts.get(statement.id, self.default)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            delay = script.quick_delay if mode == SubmissionMode.QUICK else script.delay
            if delay > timeout:
                await asyncio.sleep(timeout)
                return timeout_result(self.kind, timeout, "scripted timeout")
            if delay:
                await asyncio.sleep(delay)
            if script.exception is not None:
                raise script.exception

            if mode == SubmissionMode.QUICK:
                if script.quick_error_type is not None:
                    return self._failure(script.quick_error_type, delay)
                return SingleProofResult(backend=self.kind, valid=True, confidence=0.5, verification_time=delay)

            if script.error_type is not None or not script.valid:
                return self._failure(script.error_type or ErrorType.LOGIC, delay)
            return SingleProofResult(
                backend=self.kind,
                valid=True,
                confidence=script.confidence,
                formal_proof=script.formal_proof,
                verification_time=delay,
                axioms_used=script.axioms,
                reported_complexity=script.complexity,
            )
        finally:
            self.active -= 1

    def _failure(self, error_type: ErrorType, delay: float) -> SingleProofResult:
        return SingleProofResult(
            backend=self.kind,
            valid=False,
            confidence=0.0,
            errors=[ValidationIssue(error_type=error_type, message=f"scripted {error_type.value} error")],
            verification_time=delay,
        )

    async def close(self) -> None:
        self.closed = True


def make_statement(
    sid: str,
    conclusion: str = "P",
    *,
    dependencies: Sequence[str] = (),
    kind: StatementKind = StatementKind.THEOREM,
    backends: Sequence[BackendKind] = tuple(BackendKind),
    **kwargs,
) -> FormalStatement:
    """Statement with a formal text for every requested backend."""
    return FormalStatement(
        id=sid,
        natural_language=f"Statement {sid}",
        formal_representations={b: f"theorem {sid} : {conclusion} := by trivial" for b in backends},
        kind=kind,
        dependencies=list(dependencies),
        conclusion=conclusion,
        **kwargs,
    )


def make_config(
    primary: BackendKind = BackendKind.LEAN,
    fallbacks: Sequence[BackendKind] = (BackendKind.COQ,),
    *,
    quick_check: float = 1.0,
    full_verification: float = 2.0,
    cross_validation: float = 2.0,
    max_total_time: float = 5.0,
    enable_parallel: bool = True,
    enable_caching: bool = True,
    max_concurrent: int = 3,
    **thresholds,
) -> ProofAssistantConfig:
    return ProofAssistantConfig(
        primary=primary,
        fallbacks=list(fallbacks),
        timeouts=TimeoutBudget(
            quick_check=quick_check,
            full_verification=full_verification,
            cross_validation=cross_validation,
            max_total_time=max_total_time,
        ),
        performance=PerformanceSettings(
            enable_caching=enable_caching,
            enable_parallel=enable_parallel,
            max_concurrent=max_concurrent,
        ),
        thresholds=AcceptanceThresholds(**thresholds),
    )


@pytest.fixture
def lean() -> ScriptedAdapter:
    return ScriptedAdapter(BackendKind.LEAN)


@pytest.fixture
def coq() -> ScriptedAdapter:
    return ScriptedAdapter(BackendKind.COQ, default=Script(confidence=0.9))


@pytest.fixture
def registry(lean: ScriptedAdapter, coq: ScriptedAdapter) -> BackendRegistry:
    return BackendRegistry([lean, coq])


@pytest.fixture
def cache() -> ResultCache:
    return ResultCache(ttl_seconds=3600, max_entries=100)
