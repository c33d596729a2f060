"""
Complexity Estimator - proof size, depth, axioms and difficulty.
"""

import math
from typing import Dict, Iterable, List, Optional, Sequence, Set

from crossproof.engines.consistency import dependency_closure
from crossproof.schemas.results import ComplexityReport, SingleProofResult
from crossproof.schemas.statements import (
    BackendKind,
    ComplexityClass,
    FormalStatement,
    ProofSketch,
    StatementKind,
)

COMMENT_PREFIXES = ("--", "/-", "-/", "(*", "*)", "//")

# Most specific first
DECIDABLE_CLASSES = (ComplexityClass.TRIVIAL, ComplexityClass.POLYNOMIAL, ComplexityClass.EXPONENTIAL)

DEPTH_SCALE = 5.0
AXIOM_SCALE = 3.0


def proof_lines(text: Optional[str]) -> int:
    """Non-blank, non-comment lines of a generated proof."""
    if not text:
        return 0
    return sum(
        1 for line in text.splitlines()
        if line.strip() and not line.strip().startswith(COMMENT_PREFIXES)
    )


def sketch_depth(sketch: ProofSketch) -> int:
    """Longest chain of steps, counted in steps."""
    depth: Dict[int, int] = {}
    for step in sorted(sketch.steps, key=lambda s: s.step_number):
        earlier = [depth[d] for d in step.dependencies if d in depth]
        depth[step.step_number] = 1 + max(earlier, default=0)
    return max(depth.values(), default=0)


def statement_depth(statements: Dict[str, FormalStatement]) -> int:
    """Longest dependency chain in statements; edges closing a cycle are ignored."""
    memo: Dict[str, int] = {}
    visiting: Set[str] = set()

    def visit(sid: str) -> int:
        if sid in memo:
            return memo[sid]
        visiting.add(sid)
        best = 0
        for dep in sorted(set(statements[sid].dependencies)):
            if dep in statements and dep not in visiting:
                best = max(best, visit(dep))
        visiting.discard(sid)
        memo[sid] = best + 1
        return memo[sid]

    return max((visit(sid) for sid in sorted(statements)), default=0)


def combine_classes(reported: Iterable[ComplexityClass]) -> ComplexityClass:
    """
    Most specific decidable class among the reports.

    Undecidable alongside a decidable class has no dominance rule and gives unknown.
    """
    classes = {c for c in reported if c != ComplexityClass.UNKNOWN}
    if not classes:
        return ComplexityClass.UNKNOWN
    decidable = [c for c in DECIDABLE_CLASSES if c in classes]
    if ComplexityClass.UNDECIDABLE in classes:
        return ComplexityClass.UNKNOWN if decidable else ComplexityClass.UNDECIDABLE
    return decidable[0]


class ComplexityEstimator:
    """Derives a ComplexityReport from the statement graph, sketches and backend results."""

    def estimate(
        self,
        statements: Sequence[FormalStatement],
        statement_results: Dict[str, Dict[BackendKind, SingleProofResult]],
        sketches: Sequence[ProofSketch] = (),
    ) -> ComplexityReport:
        by_id = {s.id: s for s in statements}
        all_results: List[SingleProofResult] = [
            r for sid in sorted(statement_results) for r in statement_results[sid].values()
        ]

        length = sum(len(s.steps) for s in sketches)
        for sid in sorted(by_id):
            length += max(
                (proof_lines(r.formal_proof) for r in statement_results.get(sid, {}).values()),
                default=0,
            )

        depth = max([statement_depth(by_id), *(sketch_depth(s) for s in sketches)], default=0)

        axioms = self._axioms(by_id, all_results)
        computational = self._classify(all_results, sketches)

        min_confidence = min((r.confidence for r in all_results), default=0.0)
        difficulty = (
            0.5 * (1 - math.exp(-depth / DEPTH_SCALE))
            + 0.25 * (1 - math.exp(-len(axioms) / AXIOM_SCALE))
            + 0.25 * (1 - min_confidence)
        )

        return ComplexityReport(
            proof_length=length,
            dependency_depth=depth,
            axiom_dependencies=axioms,
            computational_complexity=computational,
            estimated_difficulty=min(1.0, max(0.0, difficulty)),
        )

    @staticmethod
    def _axioms(by_id: Dict[str, FormalStatement], results: List[SingleProofResult]) -> List[str]:
        # Declared axioms count only when a non-axiom statement depends on them
        closure = dependency_closure(by_id)
        relied = {
            dep
            for sid, deps in closure.items()
            if by_id[sid].kind != StatementKind.AXIOM
            for dep in deps
            if by_id[dep].kind == StatementKind.AXIOM
        }
        reported = {name for r in results for name in r.axioms_used}
        return sorted(relied | reported)

    @staticmethod
    def _classify(results: List[SingleProofResult], sketches: Sequence[ProofSketch]) -> ComplexityClass:
        # Only backends that accepted the proof report meaningful complexity
        reported = [r.reported_complexity for r in results if r.valid and r.reported_complexity]
        if reported:
            return combine_classes(reported)
        agreed = {s.complexity for s in sketches if s.complexity != ComplexityClass.UNKNOWN}
        if len(agreed) == 1:
            return agreed.pop()
        return ComplexityClass.UNKNOWN
