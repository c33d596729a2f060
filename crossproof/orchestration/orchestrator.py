"""
Validation Orchestrator - one request from statement set to verdict.

Pipeline:
  1. Input validation (no backend is contacted for malformed input)
  2. Dispatch to primary and fallback backends
  3. Consistency analysis and complexity estimation
  4. Aggregation into primary / cross-validation summaries
  5. Acceptance decision with human-readable rejection reasons
"""

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from crossproof.engines.backends.base import BackendRegistry
from crossproof.engines.cache import ResultCache
from crossproof.engines.complexity import ComplexityEstimator, combine_classes
from crossproof.engines.consistency import ConsistencyAnalyzer
from crossproof.engines.dispatcher import DispatchReport, SessionDispatcher, ordered_backends, primary_acceptable
from crossproof.engines.input_validator import InputValidator
from crossproof.engines.weighting import BackendPerformanceTracker, DomainWeightPolicy
from crossproof.errors import FatalValidationError, InputValidationError
from crossproof.logging_config import bind_validation_id, get_logger
from crossproof.schemas.proof_config import ProofAssistantConfig, default_proof_config
from crossproof.schemas.requests import BackendPerformance, OrchestratorStatusResponse
from crossproof.schemas.results import (
    ConsistencyReport,
    ProofValidationResult,
    ResourceUsage,
    SingleProofResult,
    ValidationMetadata,
)
from crossproof.schemas.statements import (
    AcademicDomain,
    BackendKind,
    FormalStatement,
    MathClaim,
    ProofSketch,
    ValidationContext,
)

logger = get_logger(__name__)


def merge_results(backend: BackendKind, results: Sequence[SingleProofResult]) -> SingleProofResult:
    """
    Collapse several verdicts into one summary.

    Valid only if every result is valid; confidence is the mean, times add
    up, resources take the maximum and any timeout marks the summary.
    """
    if not results:
        return SingleProofResult(backend=backend, valid=False, confidence=0.0)
    proofs = [r.formal_proof for r in results if r.formal_proof]
    reported = [r.reported_complexity for r in results if r.reported_complexity]
    return SingleProofResult(
        backend=backend,
        valid=all(r.valid for r in results),
        confidence=sum(r.confidence for r in results) / len(results),
        formal_proof="\n\n".join(proofs) if proofs else None,
        errors=[e for r in results for e in r.errors],
        warnings=[w for r in results for w in r.warnings],
        verification_time=sum(r.verification_time for r in results),
        resource_usage=ResourceUsage(
            memory_mb=max(r.resource_usage.memory_mb for r in results),
            cpu_seconds=max(r.resource_usage.cpu_seconds for r in results),
            timeout=any(r.timed_out for r in results),
        ),
        axioms_used=sorted({a for r in results for a in r.axioms_used}),
        reported_complexity=combine_classes(reported) if reported else None,
    )


@dataclass
class _BackendStats:
    validations: int = 0
    successes: int = 0
    total_time: float = 0.0


@dataclass
class OrchestratorMetrics:
    """Running counters since the orchestrator started."""
    total_validations: int = 0
    successful_validations: int = 0
    failed_validations: int = 0
    rejected_inputs: int = 0
    total_time: float = 0.0
    backends: Dict[BackendKind, _BackendStats] = field(default_factory=dict)

    @property
    def average_validation_time(self) -> float:
        return self.total_time / self.total_validations if self.total_validations else 0.0

    def record(self, result: ProofValidationResult) -> None:
        self.total_validations += 1
        if result.accepted:
            self.successful_validations += 1
        else:
            self.failed_validations += 1
        self.total_time += result.metadata.total_validation_time
        for per_backend in result.statement_results.values():
            for backend, single in per_backend.items():
                stats = self.backends.setdefault(backend, _BackendStats())
                stats.validations += 1
                stats.successes += int(single.valid)
                stats.total_time += single.verification_time


class ValidationOrchestrator:
    """
    Entry point of the verification engine.

    Usage:
        orchestrator = ValidationOrchestrator(BackendRegistry.from_settings(), ResultCache())
        result = await orchestrator.validate(statements, default_proof_config())
    """

    def __init__(
        self,
        registry: BackendRegistry,
        cache: Optional[ResultCache] = None,
        weights: Optional[DomainWeightPolicy] = None,
        tracker: Optional[BackendPerformanceTracker] = None,
    ):
        self.registry = registry
        self.cache = cache
        self.tracker = tracker or BackendPerformanceTracker()
        self.dispatcher = SessionDispatcher(registry, cache)
        self.analyzer = ConsistencyAnalyzer(weights=weights)
        self.estimator = ComplexityEstimator()
        self.metrics = OrchestratorMetrics()
        self._active = 0
        self._shut_down = False

    async def validate(
        self,
        statements: Sequence[FormalStatement],
        config: Optional[ProofAssistantConfig] = None,
        *,
        claims: Sequence[MathClaim] = (),
        sketches: Sequence[ProofSketch] = (),
        context: Optional[ValidationContext] = None,
    ) -> ProofValidationResult:
        """
        Validate a statement set across the configured backends.

        Raises InputValidationError for malformed input (before any backend
        call) and FatalValidationError for unrecoverable engine failures.
        A negative verdict is returned as a result, never raised.
        """
        if self._shut_down:
            raise FatalValidationError("Orchestrator has been shut down")
        config = self._effective_config(config or default_proof_config(), context)
        check_consistency = context is None or context.requirements.consistency_check
        validation_id = str(uuid.uuid4())

        default_domain = AcademicDomain.MATHEMATICS
        if context is not None and context.document_context.domain is not None:
            default_domain = context.document_context.domain

        def domain_of(statement: FormalStatement) -> AcademicDomain:
            return statement.domain or default_domain

        with bind_validation_id(validation_id):
            try:
                InputValidator.validate(
                    statements,
                    config=config,
                    registry=self.registry,
                    claims=claims,
                    sketches=sketches,
                    domain_of=domain_of,
                )
            except InputValidationError:
                self.metrics.rejected_inputs += 1
                raise

            logger.info(
                "Validating %d statements", len(statements),
                extra={"primary": config.primary.value, "fallbacks": [b.value for b in config.fallbacks]},
            )
            start = time.monotonic()
            self._active += 1
            try:
                report = await self.dispatcher.dispatch(statements, config, domain_of=domain_of)
            finally:
                self._active -= 1

            statement_results = report.statement_results()
            consistency = self.analyzer.analyze(
                statements,
                statement_results,
                config.thresholds.consistency_threshold,
                sketches=sketches,
                domain_of=domain_of,
            )
            complexity = self.estimator.estimate(statements, statement_results, sketches)

            primary_validation, cross_validation = self._aggregate(report, config)
            reasons = self._rejection_reasons(
                report, consistency, config, check_consistency=check_consistency
            )
            elapsed = time.monotonic() - start

            result = ProofValidationResult(
                primary_validation=primary_validation,
                cross_validation=cross_validation,
                statement_results=statement_results,
                consistency=consistency,
                complexity=complexity,
                metadata=ValidationMetadata(
                    validation_id=validation_id,
                    timestamp=datetime.now(timezone.utc),
                    total_validation_time=elapsed,
                    assistants_used=report.backends_used(),
                    configuration_used=config,
                    cache_hits=report.cache_hits,
                ),
                accepted=not reasons,
                rejection_reasons=reasons,
            )

            by_id = {s.id: s for s in statements}
            for sid, per_backend in statement_results.items():
                for single in per_backend.values():
                    self.tracker.record(domain_of(by_id[sid]), single)
            self.metrics.record(result)

            logger.info(
                "Validation %s", "accepted" if result.accepted else "rejected",
                extra={
                    "elapsed_s": round(elapsed, 3),
                    "score": round(consistency.consistency_score, 3),
                    "reasons": reasons,
                },
            )
            return result

    async def validate_claims(
        self,
        claims: Sequence[MathClaim],
        config: Optional[ProofAssistantConfig] = None,
        *,
        sketches: Sequence[ProofSketch] = (),
        context: Optional[ValidationContext] = None,
    ) -> ProofValidationResult:
        """Validate the formal statements behind a set of claims."""
        statements: Dict[str, FormalStatement] = {}
        for claim in claims:
            for statement in claim.formal_statements:
                statements.setdefault(statement.id, statement)
        return await self.validate(
            list(statements.values()), config, claims=claims, sketches=sketches, context=context
        )

    def get_status(self) -> OrchestratorStatusResponse:
        health = self.registry.health()
        backends = {}
        for backend in ordered_backends([*health, *self.metrics.backends]):
            stats = self.metrics.backends.get(backend, _BackendStats())
            backends[backend.value] = BackendPerformance(
                available=health.get(backend, False),
                validations=stats.validations,
                success_rate=stats.successes / stats.validations if stats.validations else 0.0,
                average_time=stats.total_time / stats.validations if stats.validations else 0.0,
            )
        if self._shut_down:
            state = "shutdown"
        elif not all(health.values()):
            state = "degraded"
        else:
            state = "ready"
        return OrchestratorStatusResponse(
            status=state,
            total_validations=self.metrics.total_validations,
            successful_validations=self.metrics.successful_validations,
            failed_validations=self.metrics.failed_validations,
            rejected_inputs=self.metrics.rejected_inputs,
            average_validation_time=self.metrics.average_validation_time,
            active_validations=self._active,
            backends=backends,
            cache=self.cache.stats_dict() if self.cache is not None else {},
        )

    async def shutdown(self) -> None:
        """Close every adapter; later validate() calls fail."""
        self._shut_down = True
        await self.registry.close_all()
        logger.info("Orchestrator shut down")

    def _effective_config(
        self,
        config: ProofAssistantConfig,
        context: Optional[ValidationContext],
    ) -> ProofAssistantConfig:
        """Apply the backend preference and required checks of a ValidationContext."""
        if context is None:
            return config
        update = {}
        preferred = context.user_context.preferred_backend
        if preferred is not None and preferred != config.primary:
            if self.registry.is_registered(preferred):
                # The displaced primary becomes the first fallback
                update["primary"] = preferred
                update["fallbacks"] = [config.primary, *config.fallbacks]
            else:
                logger.warning("Ignoring unregistered preferred backend %s", preferred.value)
        if context.requirements.cross_validation and not config.thresholds.require_cross_validation:
            update["thresholds"] = config.thresholds.model_copy(update={"require_cross_validation": True})
        return config.model_copy(update=update) if update else config

    # ── Aggregation ──────────────────────────────────────────────────────

    @staticmethod
    def _aggregate(report: DispatchReport, config: ProofAssistantConfig):
        primaries = [r.primary_result for r in report.statements.values() if r.primary_result is not None]
        primary_kinds = {r.primary for r in report.statements.values()}
        primary_backend = primary_kinds.pop() if len(primary_kinds) == 1 else config.primary
        primary_validation = merge_results(primary_backend, primaries)

        secondary: Dict[BackendKind, List[SingleProofResult]] = {}
        for record in report.statements.values():
            for backend, single in record.secondary_results().items():
                secondary.setdefault(backend, []).append(single)
        cross_validation = {
            backend: merge_results(backend, secondary[backend]) for backend in ordered_backends(secondary)
        }
        return primary_validation, cross_validation

    @staticmethod
    def _rejection_reasons(
        report: DispatchReport,
        consistency: ConsistencyReport,
        config: ProofAssistantConfig,
        *,
        check_consistency: bool = True,
    ) -> List[str]:
        thresholds = config.thresholds
        reasons: List[str] = []
        for sid, record in report.statements.items():
            result = record.primary_result
            if record.rejected_at_quick_check:
                reasons.append(f"{sid}: rejected by {record.primary.value} quick check")
            elif result is None or not primary_acceptable(result, thresholds):
                if result is None:
                    detail = "no result"
                elif result.timed_out:
                    detail = "timed out"
                else:
                    detail = f"valid={result.valid}, confidence={result.confidence:.2f}, errors={len(result.errors)}"
                reasons.append(f"{sid}: {record.primary.value} result not acceptable ({detail})")
            if thresholds.require_cross_validation and not any(
                r.valid for r in record.secondary_results().values()
            ):
                reasons.append(f"{sid}: no fallback backend confirmed the proof")

        if not check_consistency:
            return reasons
        if not consistency.internal_consistent:
            reasons.append("Backends disagree on at least one statement")
        if not consistency.external_consistent:
            for contradiction in consistency.contradictions:
                reasons.append(
                    f"{contradiction.severity.value} contradiction between {', '.join(contradiction.statement_ids)}"
                )
        if consistency.consistency_score < thresholds.consistency_threshold:
            reasons.append(
                f"Consistency score {consistency.consistency_score:.2f} is below "
                f"{thresholds.consistency_threshold:.2f}"
            )
        return reasons
