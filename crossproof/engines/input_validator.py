"""
Input Validator - structural checks on a validation request.

Runs before any backend is contacted; every problem found is reported at
once as an InputIssue inside a single InputValidationError.
"""

import re
from typing import Callable, Dict, List, Optional, Sequence, Set

from crossproof.engines.backends.base import BackendRegistry
from crossproof.errors import InputIssue, InputValidationError
from crossproof.logging_config import get_logger
from crossproof.schemas.proof_config import ProofAssistantConfig
from crossproof.schemas.statements import (
    AcademicDomain,
    FormalStatement,
    MathClaim,
    ProofSketch,
)

logger = get_logger(__name__)

# Single-letter variables with optional digits and primes: x, n1, f'
VARIABLE_PATTERN = re.compile(r"(?<![\w'\\])([a-z][0-9]*'*)(?![\w'])")
BINDER_PATTERN = re.compile(r"(?:∀|∃|λ|\bfun\b|\bforall\b|\bexists\b)\s*([^,:.⟶→=]+)")


class InputValidator:
    """
    Usage:
        InputValidator.validate(statements, config=config, registry=registry)
    """

    @classmethod
    def validate(
        cls,
        statements: Sequence[FormalStatement],
        *,
        config: ProofAssistantConfig,
        registry: Optional[BackendRegistry] = None,
        claims: Sequence[MathClaim] = (),
        sketches: Sequence[ProofSketch] = (),
        domain_of: Optional[Callable[[FormalStatement], Optional[AcademicDomain]]] = None,
    ) -> None:
        """Raise InputValidationError listing every issue, or return None."""
        issues = cls.collect_issues(
            statements,
            config=config,
            registry=registry,
            claims=claims,
            sketches=sketches,
            domain_of=domain_of,
        )
        if issues:
            logger.info("Rejected malformed request", extra={"issue_codes": sorted({i.code for i in issues})})
            raise InputValidationError(issues)

    @classmethod
    def collect_issues(
        cls,
        statements: Sequence[FormalStatement],
        *,
        config: ProofAssistantConfig,
        registry: Optional[BackendRegistry] = None,
        claims: Sequence[MathClaim] = (),
        sketches: Sequence[ProofSketch] = (),
        domain_of: Optional[Callable[[FormalStatement], Optional[AcademicDomain]]] = None,
    ) -> List[InputIssue]:
        issues: List[InputIssue] = []
        if not statements:
            issues.append(InputIssue(code="empty_statement_set", message="No statements to validate"))

        by_id: Dict[str, FormalStatement] = {}
        for statement in statements:
            if statement.id in by_id:
                issues.append(InputIssue(
                    code="duplicate_statement",
                    message=f"Statement id {statement.id} appears more than once",
                    ref=statement.id,
                ))
                continue
            by_id[statement.id] = statement
            issues.extend(cls.check_statement(statement))

        issues.extend(cls.check_claims(claims, by_id))
        claim_ids = {c.id for c in claims}
        for sketch in sketches:
            issues.extend(cls.check_sketch(sketch, set(by_id) | claim_ids))

        if registry is not None:
            domain_of = domain_of or (lambda s: s.domain)
            missing = sorted({
                config.primary_for(domain_of(s)).value
                for s in by_id.values()
                if not registry.is_registered(config.primary_for(domain_of(s)))
            })
            for name in missing:
                issues.append(InputIssue(
                    code="unregistered_backend",
                    message=f"No adapter registered for primary backend {name}",
                    ref=name,
                ))
        return issues

    @staticmethod
    def check_statement(statement: FormalStatement) -> List[InputIssue]:
        issues = []
        sid = statement.id
        if sid in statement.dependencies:
            issues.append(InputIssue(code="self_dependency", message=f"Statement {sid} depends on itself", ref=sid))
        if not 0.0 <= statement.extraction_confidence <= 1.0:
            issues.append(InputIssue(
                code="confidence_out_of_range",
                message=f"Statement {sid} has extraction confidence {statement.extraction_confidence} outside [0, 1]",
                ref=sid,
            ))

        if statement.variables:
            declared = {v.name for v in statement.variables}
            texts = [*statement.hypotheses, statement.conclusion]
            texts.extend(c for v in statement.variables for c in v.constraints)
            bound: Set[str] = set()
            for text in texts:
                for binder in BINDER_PATTERN.findall(text):
                    bound.update(VARIABLE_PATTERN.findall(binder))
            used = {name for text in texts for name in VARIABLE_PATTERN.findall(text)}
            for name in sorted(used - declared - bound):
                issues.append(InputIssue(
                    code="undeclared_variable",
                    message=f"Statement {sid} uses undeclared variable {name}",
                    ref=sid,
                ))
        return issues

    @staticmethod
    def check_claims(claims: Sequence[MathClaim], statements: Dict[str, FormalStatement]) -> List[InputIssue]:
        issues = []
        by_id: Dict[str, MathClaim] = {}
        for claim in claims:
            if claim.id in by_id:
                issues.append(InputIssue(
                    code="duplicate_claim", message=f"Claim id {claim.id} appears more than once", ref=claim.id
                ))
                continue
            by_id[claim.id] = claim
            if not 0.0 <= claim.evidence_strength <= 1.0:
                issues.append(InputIssue(
                    code="evidence_out_of_range",
                    message=f"Claim {claim.id} has evidence strength {claim.evidence_strength} outside [0, 1]",
                    ref=claim.id,
                ))
            for statement in claim.formal_statements:
                known = statements.get(statement.id)
                if known is None:
                    issues.append(InputIssue(
                        code="unknown_statement",
                        message=f"Claim {claim.id} references statement {statement.id} which is not in the request",
                        ref=claim.id,
                    ))
                elif known != statement:
                    issues.append(InputIssue(
                        code="conflicting_statement",
                        message=f"Claim {claim.id} carries a different statement under id {statement.id}",
                        ref=claim.id,
                    ))

        for claim in by_id.values():
            for dep in claim.dependencies:
                if dep not in by_id:
                    issues.append(InputIssue(
                        code="unknown_claim_dependency",
                        message=f"Claim {claim.id} depends on unknown claim {dep}",
                        ref=claim.id,
                    ))

        # Iterative DFS with colours over claim dependencies
        state: Dict[str, int] = {}
        reported: Set[str] = set()
        for root in sorted(by_id):
            if root in state:
                continue
            path: List[str] = []
            stack = [(root, iter(sorted(set(by_id[root].dependencies))))]
            state[root] = 1
            path.append(root)
            while stack:
                node, deps = stack[-1]
                advanced = False
                for dep in deps:
                    if dep not in by_id:
                        continue
                    if state.get(dep) == 1:
                        cycle = path[path.index(dep):]
                        if not reported & set(cycle):
                            reported.update(cycle)
                            issues.append(InputIssue(
                                code="claim_cycle",
                                message=f"Claims form a dependency cycle: {' -> '.join(cycle + [dep])}",
                                ref=dep,
                            ))
                    elif dep not in state:
                        state[dep] = 1
                        path.append(dep)
                        stack.append((dep, iter(sorted(set(by_id[dep].dependencies)))))
                        advanced = True
                        break
                if not advanced:
                    state[node] = 2
                    path.pop()
                    stack.pop()
        return issues

    @staticmethod
    def check_sketch(sketch: ProofSketch, targets: Set[str]) -> List[InputIssue]:
        """Steps must be unique and may only depend on strictly earlier steps."""
        issues = []
        if sketch.main_claim not in targets:
            issues.append(InputIssue(
                code="unknown_sketch_target",
                message=f"Sketch {sketch.id} proves {sketch.main_claim}, which is neither a statement nor a claim",
                ref=sketch.id,
            ))

        numbers: Set[int] = set()
        for step in sketch.steps:
            if step.step_number in numbers:
                issues.append(InputIssue(
                    code="duplicate_step",
                    message=f"Sketch {sketch.id} has more than one step {step.step_number}",
                    ref=sketch.id,
                ))
            numbers.add(step.step_number)

        for step in sketch.steps:
            for dep in step.dependencies:
                if dep not in numbers:
                    issues.append(InputIssue(
                        code="unknown_step",
                        message=f"Sketch {sketch.id} step {step.step_number} depends on missing step {dep}",
                        ref=sketch.id,
                    ))
                elif dep >= step.step_number:
                    issues.append(InputIssue(
                        code="step_order",
                        message=(
                            f"Sketch {sketch.id} step {step.step_number} depends on "
                            f"{'itself' if dep == step.step_number else f'later step {dep}'}"
                        ),
                        ref=sketch.id,
                    ))
        return issues
