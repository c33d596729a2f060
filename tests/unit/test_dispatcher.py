"""Unit tests for the session dispatcher."""

import asyncio

import pytest

from conftest import Script, ScriptedAdapter, make_config, make_statement
from crossproof.engines.backends.base import BackendRegistry, SubmissionMode
from crossproof.engines.dispatcher import SessionDispatcher, primary_acceptable
from crossproof.errors import FatalValidationError, InputValidationError
from crossproof.schemas.proof_config import AcceptanceThresholds, ProofAssistantConfig
from crossproof.schemas.results import ErrorType, SingleProofResult
from crossproof.schemas.statements import AcademicDomain, BackendKind

LEAN = BackendKind.LEAN
COQ = BackendKind.COQ
ISABELLE = BackendKind.ISABELLE


class TestPrimaryAcceptable:
    """Tests for primary_acceptable()."""

    def test_thresholds(self):
        thresholds = AcceptanceThresholds(minimum_confidence=0.8)
        assert primary_acceptable(SingleProofResult(backend=LEAN, valid=True, confidence=0.9), thresholds)
        assert not primary_acceptable(SingleProofResult(backend=LEAN, valid=True, confidence=0.7), thresholds)
        assert not primary_acceptable(SingleProofResult(backend=LEAN, valid=False, confidence=0.9), thresholds)


class TestPlan:
    """Tests for SessionDispatcher.plan()."""

    def test_unregistered_fallback_is_skipped(self, registry):
        dispatcher = SessionDispatcher(registry)
        primary, fallbacks = dispatcher.plan(make_statement("s1"), make_config(fallbacks=(ISABELLE, COQ)))
        assert primary == LEAN
        assert fallbacks == [COQ]

    def test_domain_specialization(self, registry):
        config = ProofAssistantConfig(
            primary=LEAN,
            fallbacks=[LEAN, COQ],
            domain_specializations={AcademicDomain.LOGIC: COQ},
        )
        dispatcher = SessionDispatcher(registry)
        assert dispatcher.plan(make_statement("s1", domain=AcademicDomain.LOGIC), config) == (COQ, [LEAN])
        assert dispatcher.plan(make_statement("s2"), config) == (LEAN, [COQ])


class TestDispatch:
    """Tests for SessionDispatcher.dispatch()."""

    @pytest.mark.asyncio
    async def test_parallel_runs_primary_and_fallback(self, registry, lean, coq):
        dispatcher = SessionDispatcher(registry)
        report = await dispatcher.dispatch([make_statement("s1"), make_statement("s2")], make_config())

        assert sorted(lean.calls) == [
            ("s1", SubmissionMode.FULL), ("s1", SubmissionMode.QUICK),
            ("s2", SubmissionMode.FULL), ("s2", SubmissionMode.QUICK),
        ]
        assert sorted(coq.full_calls()) == ["s1", "s2"]
        assert report.backends_used() == [LEAN, COQ]
        record = report.statements["s1"]
        assert record.primary_result.confidence == 0.95
        assert set(record.secondary_results()) == {COQ}

    @pytest.mark.asyncio
    async def test_sequential_short_circuits(self, registry, lean, coq):
        """An accepted primary means no fallback is consulted."""
        dispatcher = SessionDispatcher(registry)
        report = await dispatcher.dispatch([make_statement("s1")], make_config(enable_parallel=False))

        assert coq.calls == []
        assert report.backends_used() == [LEAN]

    @pytest.mark.asyncio
    async def test_sequential_falls_back_on_failure(self, coq):
        lean = ScriptedAdapter(LEAN, default=Script(valid=False))
        dispatcher = SessionDispatcher(BackendRegistry([lean, coq]))
        report = await dispatcher.dispatch([make_statement("s1")], make_config(enable_parallel=False))

        assert coq.full_calls() == ["s1"]
        assert report.statements["s1"].results[COQ].valid

    @pytest.mark.asyncio
    async def test_sequential_with_required_cross_validation(self, registry, coq):
        dispatcher = SessionDispatcher(registry)
        config = make_config(enable_parallel=False, require_cross_validation=True)
        await dispatcher.dispatch([make_statement("s1")], config)
        assert coq.full_calls() == ["s1"]

    @pytest.mark.asyncio
    async def test_quick_check_syntax_error_skips_full_check(self, coq):
        lean = ScriptedAdapter(LEAN, scripts={"s1": Script(quick_error_type=ErrorType.SYNTAX)})
        dispatcher = SessionDispatcher(BackendRegistry([lean, coq]))
        report = await dispatcher.dispatch([make_statement("s1"), make_statement("s2")], make_config())

        assert report.statements["s1"].rejected_at_quick_check
        assert ErrorType.SYNTAX in report.statements["s1"].primary_result.error_types()
        assert lean.full_calls() == ["s2"]
        assert coq.full_calls() == ["s2"]
        assert set(report.statements["s1"].results) == {LEAN}

    @pytest.mark.asyncio
    async def test_fallbacks_wait_for_quick_check(self):
        """Fallbacks start only after the primary's quick pass accepted the statement."""
        journal = []
        lean = ScriptedAdapter(LEAN, default=Script(quick_delay=0.2), journal=journal)
        coq = ScriptedAdapter(COQ, journal=journal)
        dispatcher = SessionDispatcher(BackendRegistry([lean, coq]))
        await dispatcher.dispatch([make_statement("s1")], make_config())

        assert journal[0] == (LEAN, "s1", SubmissionMode.QUICK)
        assert sorted(journal[1:]) == [(LEAN, "s1", SubmissionMode.FULL), (COQ, "s1", SubmissionMode.FULL)]

    @pytest.mark.asyncio
    async def test_quick_check_timeout_rejects(self, coq):
        lean = ScriptedAdapter(LEAN, default=Script(quick_delay=1.0))
        dispatcher = SessionDispatcher(BackendRegistry([lean, coq]))
        report = await dispatcher.dispatch([make_statement("s1")], make_config(quick_check=0.1))

        record = report.statements["s1"]
        assert record.rejected_at_quick_check
        assert record.primary_result.timed_out
        assert lean.full_calls() == []

    @pytest.mark.asyncio
    async def test_deadline_turns_queued_calls_into_timeouts(self):
        """With one slot, calls still queued at the deadline time out instead of hanging."""
        lean = ScriptedAdapter(LEAN, default=Script(delay=0.3))
        dispatcher = SessionDispatcher(BackendRegistry([lean]))
        config = make_config(
            fallbacks=(),
            quick_check=0.5,
            full_verification=0.5,
            cross_validation=0.5,
            max_total_time=0.5,
            max_concurrent=1,
        )
        statements = [make_statement(sid) for sid in ("s1", "s2", "s3")]

        loop = asyncio.get_running_loop()
        start = loop.time()
        report = await dispatcher.dispatch(statements, config)
        elapsed = loop.time() - start

        assert elapsed < 1.0
        assert report.statements["s1"].primary_result.valid
        assert report.statements["s2"].primary_result.timed_out
        assert report.statements["s3"].primary_result.timed_out

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        lean = ScriptedAdapter(LEAN, default=Script(delay=0.05, quick_delay=0.01))
        dispatcher = SessionDispatcher(BackendRegistry([lean]))
        statements = [make_statement(f"s{i}") for i in range(6)]
        await dispatcher.dispatch(statements, make_config(fallbacks=(), max_concurrent=2))
        assert 1 <= lean.max_active <= 2

    @pytest.mark.asyncio
    async def test_adapter_exception_becomes_incomplete(self, coq):
        lean = ScriptedAdapter(LEAN, default=Script(exception=RuntimeError("boom")))
        dispatcher = SessionDispatcher(BackendRegistry([lean, coq]))
        report = await dispatcher.dispatch([make_statement("s1")], make_config())

        result = report.statements["s1"].primary_result
        assert not result.valid
        assert result.error_types() == [ErrorType.INCOMPLETE]
        assert report.statements["s1"].results[COQ].valid

    @pytest.mark.asyncio
    async def test_adapter_crash_is_not_cached(self, coq, cache):
        """A backend that crashed once is asked again on the next request."""
        lean = ScriptedAdapter(LEAN, default=Script(exception=RuntimeError("transient")))
        dispatcher = SessionDispatcher(BackendRegistry([lean, coq]), cache)
        first = await dispatcher.dispatch([make_statement("s1")], make_config())
        assert not first.statements["s1"].primary_result.valid

        lean.default = Script()
        second = await dispatcher.dispatch([make_statement("s1")], make_config())

        assert second.statements["s1"].primary_result.valid
        assert second.cache_hits == 1
        assert lean.full_calls() == ["s1", "s1"]

    @pytest.mark.asyncio
    async def test_fatal_error_aborts_dispatch(self, coq):
        lean = ScriptedAdapter(LEAN, default=Script(exception=FatalValidationError("backend state lost")))
        dispatcher = SessionDispatcher(BackendRegistry([lean, coq]))
        with pytest.raises(FatalValidationError):
            await dispatcher.dispatch([make_statement("s1")], make_config())

    @pytest.mark.asyncio
    async def test_unregistered_primary_is_input_error(self, lean):
        dispatcher = SessionDispatcher(BackendRegistry([lean]))
        with pytest.raises(InputValidationError) as exc_info:
            await dispatcher.dispatch([make_statement("s1")], make_config(primary=COQ))
        assert exc_info.value.issues[0].code == "unregistered_backend"
        assert lean.calls == []

    @pytest.mark.asyncio
    async def test_cache_hits_skip_backends(self, registry, lean, coq, cache):
        dispatcher = SessionDispatcher(registry, cache)
        statements = [make_statement("s1")]
        await dispatcher.dispatch(statements, make_config())
        lean_calls, coq_calls = len(lean.calls), len(coq.calls)

        report = await dispatcher.dispatch(statements, make_config())

        assert len(lean.calls) == lean_calls
        assert len(coq.calls) == coq_calls
        assert report.cache_hits == 2
        assert report.calls_started == 0
        assert report.statements["s1"].primary_result.verification_time == 0.0

    @pytest.mark.asyncio
    async def test_caching_disabled_per_request(self, registry, lean, cache):
        dispatcher = SessionDispatcher(registry, cache)
        statements = [make_statement("s1")]
        await dispatcher.dispatch(statements, make_config(enable_caching=False))
        report = await dispatcher.dispatch(statements, make_config(enable_caching=False))

        assert report.cache_hits == 0
        assert len(cache) == 0
        assert lean.full_calls() == ["s1", "s1"]

    @pytest.mark.asyncio
    async def test_dialect_version_change_misses_cache(self, coq, cache):
        statements = [make_statement("s1")]
        old = ScriptedAdapter(LEAN, version="4.0")
        await SessionDispatcher(BackendRegistry([old, coq]), cache).dispatch(statements, make_config())

        new = ScriptedAdapter(LEAN, version="4.1")
        await SessionDispatcher(BackendRegistry([new, coq]), cache).dispatch(statements, make_config())
        assert new.full_calls() == ["s1"]
