"""
Session Dispatcher - fans statements out to backends under one time budget.

For every statement:
  1. Pick the primary backend (domain specialization, else the configured
     primary) and the registered fallbacks in priority order
  2. Look the (statement, backend) pair up in the result cache
  3. Run a QUICK pass on the primary; syntax errors or a timeout reject
     the statement before full verification
  4. Only once the statement passed, run the primary's FULL check and,
     concurrently, the fallbacks

Every backend call draws a slot from one per-request semaphore and is
bounded by the request deadline; a call still running (or still queued)
at the deadline is cancelled and recorded as a timeout result.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

from crossproof.engines.backends.base import BackendAdapter, BackendRegistry, SubmissionMode
from crossproof.engines.cache import ResultCache, fingerprint
from crossproof.errors import FatalValidationError, InputIssue, InputValidationError
from crossproof.logging_config import get_logger
from crossproof.schemas.proof_config import AcceptanceThresholds, ProofAssistantConfig
from crossproof.schemas.results import (
    ErrorType,
    SingleProofResult,
    backend_failure_result,
    timeout_result,
)
from crossproof.schemas.statements import AcademicDomain, BackendKind, FormalStatement

logger = get_logger(__name__)

# Extra time an adapter gets past its own budget to kill and reap its process
ADAPTER_GRACE_SECONDS = 2.0

T = TypeVar("T")

DomainLookup = Callable[[FormalStatement], Optional[AcademicDomain]]


def primary_acceptable(result: SingleProofResult, thresholds: AcceptanceThresholds) -> bool:
    """Valid, confident enough and within the allowed error count."""
    return (
        result.valid
        and result.confidence >= thresholds.minimum_confidence
        and len(result.errors) <= thresholds.max_errors_allowed
    )


def ordered_backends(backends) -> List[BackendKind]:
    """Backends in declaration order of BackendKind, without duplicates."""
    present = set(backends)
    return [kind for kind in BackendKind if kind in present]


@dataclass
class StatementDispatch:
    """Everything the backends said about one statement."""
    statement_id: str
    primary: BackendKind
    results: Dict[BackendKind, SingleProofResult] = field(default_factory=dict)
    rejected_at_quick_check: bool = False

    @property
    def primary_result(self) -> Optional[SingleProofResult]:
        return self.results.get(self.primary)

    def secondary_results(self) -> Dict[BackendKind, SingleProofResult]:
        return {k: v for k, v in self.results.items() if k != self.primary}


@dataclass
class DispatchReport:
    """Per-statement dispatch outcome for one request."""
    statements: Dict[str, StatementDispatch] = field(default_factory=dict)
    cache_hits: int = 0
    calls_started: int = 0

    def backends_used(self) -> List[BackendKind]:
        return ordered_backends(
            kind for record in self.statements.values() for kind in record.results
        )

    def statement_results(self) -> Dict[str, Dict[BackendKind, SingleProofResult]]:
        return {sid: dict(record.results) for sid, record in self.statements.items()}


@dataclass
class _Session:
    config: ProofAssistantConfig
    deadline: float
    slots: asyncio.Semaphore
    caching: bool
    cache_hits: int = 0
    calls_started: int = 0


async def _ready(value: T) -> T:
    return value


async def _gather_all(coros: Sequence[Awaitable[T]]) -> List[T]:
    """Gather results; on failure cancel the siblings and wait for them before re-raising."""
    tasks = [asyncio.ensure_future(c) for c in coros]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class SessionDispatcher:
    """
    Issues backend calls for a statement set.

    Usage:
        dispatcher = SessionDispatcher(registry, cache)
        report = await dispatcher.dispatch(statements, config)
    """

    def __init__(self, registry: BackendRegistry, cache: Optional[ResultCache] = None):
        self.registry = registry
        self.cache = cache

    def plan(
        self,
        statement: FormalStatement,
        config: ProofAssistantConfig,
        domain_of: Optional[DomainLookup] = None,
    ) -> Tuple[BackendKind, List[BackendKind]]:
        """Primary backend and registered fallbacks for one statement."""
        domain = domain_of(statement) if domain_of else statement.domain
        primary = config.primary_for(domain)
        fallbacks = []
        for backend in config.fallbacks_for(primary):
            if self.registry.is_registered(backend):
                fallbacks.append(backend)
            else:
                logger.warning(
                    "Skipping unregistered fallback backend %s", backend.value,
                    extra={"statement_id": statement.id},
                )
        return primary, fallbacks

    async def dispatch(
        self,
        statements: Sequence[FormalStatement],
        config: ProofAssistantConfig,
        *,
        domain_of: Optional[DomainLookup] = None,
    ) -> DispatchReport:
        plans = [(s, *self.plan(s, config, domain_of)) for s in statements]

        missing = sorted({p.value for _, p, _ in plans if not self.registry.is_registered(p)})
        if missing:
            raise InputValidationError([
                InputIssue(
                    code="unregistered_backend",
                    message=f"No adapter registered for primary backend {name}",
                    ref=name,
                )
                for name in missing
            ])

        loop = asyncio.get_running_loop()
        session = _Session(
            config=config,
            deadline=loop.time() + config.timeouts.max_total_time,
            slots=asyncio.Semaphore(config.performance.max_concurrent),
            caching=self.cache is not None and config.performance.enable_caching,
        )

        report = DispatchReport()
        if config.performance.enable_parallel:
            records = await _gather_all([self._parallel(s, p, f, session) for s, p, f in plans])
        else:
            records = [await self._sequential(s, p, f, session) for s, p, f in plans]

        for record in records:
            report.statements[record.statement_id] = record
        report.cache_hits = session.cache_hits
        report.calls_started = session.calls_started

        logger.info(
            "Dispatched %d statements", len(records),
            extra={
                "backends": [b.value for b in report.backends_used()],
                "cache_hits": report.cache_hits,
                "calls": report.calls_started,
            },
        )
        return report

    # ── Scheduling modes ─────────────────────────────────────────────────

    async def _parallel(
        self,
        statement: FormalStatement,
        primary: BackendKind,
        fallbacks: List[BackendKind],
        session: _Session,
    ) -> StatementDispatch:
        record = StatementDispatch(statement_id=statement.id, primary=primary)
        timeouts = session.config.timeouts

        # Fallbacks start only once the primary's QUICK pass let the statement through
        cached = self._lookup(statement, self.registry.get(primary), session)
        if cached is None:
            quick = await self._quick_check(statement, primary, session, record)
            if record.rejected_at_quick_check:
                record.results[primary] = quick
                return record
            primary_call = self._call(
                statement, primary, SubmissionMode.FULL, timeouts.full_verification, session, lookup=False
            )
        else:
            primary_call = _ready(cached)

        results = await _gather_all([
            primary_call,
            *(self._call(statement, fb, SubmissionMode.FULL, timeouts.cross_validation, session)
              for fb in fallbacks),
        ])
        for backend, result in zip([primary, *fallbacks], results):
            record.results[backend] = result
        return record

    async def _sequential(
        self,
        statement: FormalStatement,
        primary: BackendKind,
        fallbacks: List[BackendKind],
        session: _Session,
    ) -> StatementDispatch:
        record = StatementDispatch(statement_id=statement.id, primary=primary)
        thresholds = session.config.thresholds

        record.results[primary] = await self._verify_primary(statement, primary, session, record)
        if record.rejected_at_quick_check:
            return record

        def settled(result: SingleProofResult) -> bool:
            return (
                not thresholds.require_cross_validation
                and result.valid
                and result.confidence >= thresholds.minimum_confidence
            )

        if settled(record.results[primary]):
            return record
        for backend in fallbacks:
            result = await self._call(
                statement, backend, SubmissionMode.FULL, session.config.timeouts.cross_validation, session
            )
            record.results[backend] = result
            if settled(result):
                break
        return record

    # ── Backend calls ────────────────────────────────────────────────────

    async def _verify_primary(
        self,
        statement: FormalStatement,
        backend: BackendKind,
        session: _Session,
        record: StatementDispatch,
    ) -> SingleProofResult:
        cached = self._lookup(statement, self.registry.get(backend), session)
        if cached is not None:
            return cached

        quick = await self._quick_check(statement, backend, session, record)
        if record.rejected_at_quick_check:
            return quick
        return await self._call(
            statement, backend, SubmissionMode.FULL, session.config.timeouts.full_verification, session,
            lookup=False,
        )

    async def _quick_check(
        self,
        statement: FormalStatement,
        backend: BackendKind,
        session: _Session,
        record: StatementDispatch,
    ) -> SingleProofResult:
        """QUICK pass; a syntax error or timeout marks the statement rejected."""
        quick = await self._call(
            statement, backend, SubmissionMode.QUICK, session.config.timeouts.quick_check, session
        )
        if quick.timed_out or ErrorType.SYNTAX in quick.error_types():
            record.rejected_at_quick_check = True
            logger.info(
                "Statement rejected at quick check",
                extra={"statement_id": statement.id, "backend": backend.value, "timed_out": quick.timed_out},
            )
        return quick

    def _cache_key(self, statement: FormalStatement, adapter: BackendAdapter) -> Optional[str]:
        text = statement.formal_text(adapter.kind)
        if text is None:
            return None
        return fingerprint(text, adapter.kind, adapter.dialect.version)

    def _lookup(
        self,
        statement: FormalStatement,
        adapter: BackendAdapter,
        session: _Session,
    ) -> Optional[SingleProofResult]:
        if not session.caching:
            return None
        key = self._cache_key(statement, adapter)
        if key is None:
            return None
        hit = self.cache.get(key)
        if hit is not None:
            session.cache_hits += 1
            logger.debug("Cache hit", extra={"statement_id": statement.id, "backend": adapter.kind.value})
        return hit

    async def _call(
        self,
        statement: FormalStatement,
        backend: BackendKind,
        mode: SubmissionMode,
        budget: float,
        session: _Session,
        *,
        lookup: bool = True,
    ) -> SingleProofResult:
        adapter = self.registry.get(backend)
        if mode == SubmissionMode.FULL and lookup:
            cached = self._lookup(statement, adapter, session)
            if cached is not None:
                return cached

        loop = asyncio.get_running_loop()
        remaining = session.deadline - loop.time()
        if remaining <= 0:
            return timeout_result(backend, 0.0, "Request time budget exhausted before the call started")

        session.calls_started += 1
        start = loop.time()
        try:
            result = await asyncio.wait_for(
                self._run(adapter, statement, mode, budget, session), timeout=remaining
            )
        except asyncio.TimeoutError:
            logger.info(
                "Request deadline reached", extra={"statement_id": statement.id, "backend": backend.value}
            )
            return timeout_result(backend, loop.time() - start, "Request time budget exhausted")

        if session.caching and mode == SubmissionMode.FULL:
            key = self._cache_key(statement, adapter)
            if key is not None:
                self.cache.put(key, result)
        return result

    async def _run(
        self,
        adapter: BackendAdapter,
        statement: FormalStatement,
        mode: SubmissionMode,
        budget: float,
        session: _Session,
    ) -> SingleProofResult:
        async with session.slots:
            start = asyncio.get_running_loop().time()
            try:
                return await asyncio.wait_for(
                    adapter.submit(
                        statement,
                        adapter.dialect,
                        budget,
                        mode=mode,
                        memory_limit_mb=session.config.performance.memory_limit_mb,
                    ),
                    timeout=budget + ADAPTER_GRACE_SECONDS,
                )
            except asyncio.TimeoutError:
                elapsed = asyncio.get_running_loop().time() - start
                return timeout_result(adapter.kind, elapsed, f"{adapter.kind.value} exceeded {budget:.1f}s budget")
            except FatalValidationError:
                raise
            except Exception as exc:
                logger.warning(
                    "%s adapter failed: %s", adapter.kind.value, exc,
                    extra={"statement_id": statement.id, "mode": mode.value},
                )
                return backend_failure_result(
                    adapter.kind,
                    asyncio.get_running_loop().time() - start,
                    f"{adapter.kind.value} adapter failed: {exc}",
                )
