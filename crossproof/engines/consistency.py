"""
Consistency Analyzer - agreement across backends and across statements.

Produces:
  1. A weighted agreement score over every backend verdict
  2. Internal consistency: backends agree on each statement
  3. External consistency: no validated statements contradict each other
     (direct negation, negation of a transitive dependency, dependency cycles)

Statements are always processed in id order, so the report does not depend
on the order statements were submitted in.
"""

import hashlib
from collections import defaultdict
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set

from crossproof.engines.dispatcher import ordered_backends
from crossproof.engines.negation import NegationRecognizer
from crossproof.engines.weighting import DomainWeightPolicy, UniformWeights
from crossproof.logging_config import get_logger
from crossproof.schemas.results import (
    ConsistencyReport,
    LogicalContradiction,
    Severity,
    SingleProofResult,
)
from crossproof.schemas.statements import (
    AcademicDomain,
    BackendKind,
    FormalStatement,
    ProofSketch,
    StatementKind,
)

logger = get_logger(__name__)

StatementResults = Dict[str, Dict[BackendKind, SingleProofResult]]

_SEVERITY_RANK = {Severity.CRITICAL: 0, Severity.MAJOR: 1, Severity.MINOR: 2}


def contradiction_id(statement_ids: Iterable[str]) -> str:
    """Deterministic id for a set of statements."""
    joined = "\x1f".join(sorted(set(statement_ids)))
    return "contradiction-" + hashlib.sha256(joined.encode("utf-8")).hexdigest()[:16]


def dependency_closure(statements: Dict[str, FormalStatement]) -> Dict[str, Set[str]]:
    """Transitive dependencies of every statement, restricted to the set."""
    closure: Dict[str, Set[str]] = {}
    for root in sorted(statements):
        seen: Set[str] = set()
        stack = [d for d in statements[root].dependencies if d in statements]
        while stack:
            dep = stack.pop()
            if dep in seen:
                continue
            seen.add(dep)
            stack.extend(d for d in statements[dep].dependencies if d in statements)
        seen.discard(root)
        closure[root] = seen
    return closure


def dependency_cycles(statements: Dict[str, FormalStatement]) -> List[List[str]]:
    """Strongly connected components with more than one statement (Tarjan)."""
    index: Dict[str, int] = {}
    low: Dict[str, int] = {}
    on_stack: Set[str] = set()
    stack: List[str] = []
    components: List[List[str]] = []
    counter = [0]

    def visit(node: str) -> None:
        index[node] = low[node] = counter[0]
        counter[0] += 1
        stack.append(node)
        on_stack.add(node)
        for dep in sorted(set(statements[node].dependencies)):
            if dep not in statements:
                continue
            if dep not in index:
                visit(dep)
                low[node] = min(low[node], low[dep])
            elif dep in on_stack:
                low[node] = min(low[node], index[dep])
        if low[node] == index[node]:
            component = []
            while True:
                member = stack.pop()
                on_stack.discard(member)
                component.append(member)
                if member == node:
                    break
            if len(component) > 1:
                components.append(sorted(component))

    for node in sorted(statements):
        if node not in index:
            visit(node)
    return sorted(components)


class ConsistencyAnalyzer:
    """
    Usage:
        analyzer = ConsistencyAnalyzer()
        report = analyzer.analyze(statements, statement_results, threshold=0.7)
    """

    def __init__(
        self,
        weights: Optional[DomainWeightPolicy] = None,
        timeout_weight: float = 0.25,
        recognizer: Optional[NegationRecognizer] = None,
    ):
        self.weights = weights or UniformWeights()
        self.timeout_weight = timeout_weight
        self.recognizer = recognizer or NegationRecognizer()

    def analyze(
        self,
        statements: Sequence[FormalStatement],
        statement_results: StatementResults,
        threshold: float,
        *,
        sketches: Sequence[ProofSketch] = (),
        domain_of: Optional[Callable[[FormalStatement], Optional[AcademicDomain]]] = None,
    ) -> ConsistencyReport:
        by_id = {s.id: s for s in statements}
        domain_of = domain_of or (lambda s: s.domain)

        score = self.score(by_id, statement_results, domain_of)
        disagreeing = self.disagreeing_statements(by_id, statement_results, threshold, domain_of)
        contradictions = self.find_contradictions(by_id, statement_results, sketches)

        if disagreeing:
            logger.info("Backends disagree on %d statements", len(disagreeing), extra={"statements": disagreeing})
        if contradictions:
            logger.info(
                "Found %d contradictions", len(contradictions),
                extra={"contradictions": [c.statement_ids for c in contradictions]},
            )

        return ConsistencyReport(
            internal_consistent=not disagreeing,
            external_consistent=not contradictions,
            contradictions=contradictions,
            consistency_score=score,
        )

    # ── Agreement ────────────────────────────────────────────────────────

    def score(
        self,
        by_id: Dict[str, FormalStatement],
        statement_results: StatementResults,
        domain_of: Callable[[FormalStatement], Optional[AcademicDomain]],
    ) -> float:
        """Weighted mean confidence of valid verdicts; timeouts count as partial abstentions."""
        numerator = 0.0
        denominator = 0.0
        for sid in sorted(by_id):
            results = statement_results.get(sid, {})
            domain = domain_of(by_id[sid])
            for backend in ordered_backends(results):
                result = results[backend]
                w = self.weights.weight(backend, domain)
                if result.timed_out:
                    denominator += self.timeout_weight * w
                    continue
                denominator += w
                if result.valid:
                    numerator += w * result.confidence
        if denominator <= 0:
            return 0.0
        return min(1.0, max(0.0, numerator / denominator))

    def disagreeing_statements(
        self,
        by_id: Dict[str, FormalStatement],
        statement_results: StatementResults,
        threshold: float,
        domain_of: Callable[[FormalStatement], Optional[AcademicDomain]],
    ) -> List[str]:
        """Statements whose weighted majority verdict falls below `threshold`."""
        flagged = []
        for sid in sorted(by_id):
            decisive = [r for r in statement_results.get(sid, {}).values() if not r.timed_out]
            if len(decisive) < 2:
                continue
            domain = domain_of(by_id[sid])
            votes = {True: 0.0, False: 0.0}
            for result in decisive:
                votes[result.valid] += self.weights.weight(result.backend, domain)
            total = votes[True] + votes[False]
            if total > 0 and max(votes.values()) / total < threshold:
                flagged.append(sid)
        return flagged

    # ── Contradictions ───────────────────────────────────────────────────

    def find_contradictions(
        self,
        by_id: Dict[str, FormalStatement],
        statement_results: StatementResults,
        sketches: Sequence[ProofSketch] = (),
    ) -> List[LogicalContradiction]:
        sketched = {s.main_claim for s in sketches}
        axioms = {sid for sid, s in by_id.items() if s.kind == StatementKind.AXIOM}
        ids = sorted(by_id)

        validated: Dict[BackendKind, Set[str]] = defaultdict(set)
        for sid in ids:
            for backend, result in statement_results.get(sid, {}).items():
                if result.valid:
                    validated[backend].add(sid)
        # Axioms stand without proof, so every backend in play accepts them
        for backend in ordered_backends(b for results in statement_results.values() for b in results):
            validated[backend] |= axioms
        closure = dependency_closure(by_id)

        found: Dict[frozenset, LogicalContradiction] = {}

        def add(members: Iterable[str], pivots: Iterable[str], description: str, resolution: str,
                severity: Optional[Severity] = None) -> None:
            key = frozenset(members)
            if len(key) < 2 or key in found:
                return
            found[key] = LogicalContradiction(
                id=contradiction_id(key),
                statements=[by_id[sid] for sid in sorted(key)],
                description=description,
                severity=severity or self._severity(key, set(pivots), by_id, axioms, sketched),
                resolution=resolution,
            )

        for cycle in dependency_cycles(by_id):
            add(
                cycle, cycle,
                f"Circular dependency between {', '.join(cycle)}",
                "Break the cycle by proving one statement without the others",
                severity=Severity.CRITICAL,
            )

        for backend in ordered_backends(validated):
            accepted = sorted(validated[backend])

            for i, a_id in enumerate(accepted):
                a = by_id[a_id]
                for b_id in accepted[i + 1:]:
                    b = by_id[b_id]
                    shared = set(a.dependencies) & set(b.dependencies)
                    if (shared or (not a.dependencies and not b.dependencies)) and self.recognizer.negates(
                        a.conclusion, b.conclusion, backend
                    ):
                        add(
                            (a_id, b_id), shared,
                            f"{a_id} and {b_id} are both validated by {backend.value} "
                            f"but their conclusions negate each other",
                            "Check the shared assumptions; at most one of the statements can hold",
                        )

            for x_id in accepted:
                for d_id in sorted(closure[x_id]):
                    d = by_id[d_id]
                    for y_id in accepted:
                        if y_id in (x_id, d_id):
                            continue
                        if self.recognizer.negates(d.conclusion, by_id[y_id].conclusion, backend):
                            add(
                                (x_id, d_id, y_id), (d_id,),
                                f"{x_id} depends on {d_id}, whose conclusion is negated by {y_id} "
                                f"under {backend.value}",
                                f"Re-examine {d_id}; {x_id} inherits the conflict",
                            )

        return sorted(found.values(), key=lambda c: (_SEVERITY_RANK[c.severity], c.statement_ids))

    @staticmethod
    def _severity(
        members: frozenset,
        pivots: Set[str],
        by_id: Dict[str, FormalStatement],
        axioms: Set[str],
        sketched: Set[str],
    ) -> Severity:
        if members & axioms or pivots & axioms:
            return Severity.CRITICAL
        if any(p not in sketched for p in pivots):
            return Severity.CRITICAL
        for sid in members:
            if by_id[sid].kind in (StatementKind.THEOREM, StatementKind.LEMMA) and sid in sketched:
                return Severity.MAJOR
        return Severity.MINOR
