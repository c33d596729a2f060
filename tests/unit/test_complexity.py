"""Unit tests for the complexity estimator."""

import math

import pytest

from conftest import make_statement
from crossproof.engines.complexity import (
    ComplexityEstimator,
    combine_classes,
    proof_lines,
    sketch_depth,
    statement_depth,
)
from crossproof.schemas.results import SingleProofResult
from crossproof.schemas.statements import (
    BackendKind,
    ComplexityClass,
    ProofSketch,
    ProofStep,
    StatementKind,
)

LEAN = BackendKind.LEAN
COQ = BackendKind.COQ


def _result(backend=LEAN, valid=True, confidence=0.9, **kwargs):
    return SingleProofResult(backend=backend, valid=valid, confidence=confidence, **kwargs)


def _sketch(sid="sk", steps=(), complexity=ComplexityClass.UNKNOWN):
    return ProofSketch(
        id=sid,
        main_claim="s1",
        steps=[ProofStep(step_number=n, description=f"step {n}", dependencies=list(deps)) for n, deps in steps],
        complexity=complexity,
    )


class TestHelpers:
    """Tests for the counting helpers."""

    def test_proof_lines_skips_blank_and_comments(self):
        text = "-- header\n\ntheorem t : P := by\n  exact h\n(* coq comment *)\n"
        assert proof_lines(text) == 2
        assert proof_lines(None) == 0

    def test_sketch_depth(self):
        sketch = _sketch(steps=[(1, ()), (2, (1,)), (3, (2,)), (4, (1,))])
        assert sketch_depth(sketch) == 3
        assert sketch_depth(_sketch()) == 0

    def test_statement_depth_chain(self):
        statements = {
            s.id: s for s in [
                make_statement("a"),
                make_statement("b", dependencies=["a"]),
                make_statement("c", dependencies=["b", "external"]),
            ]
        }
        assert statement_depth(statements) == 3

    def test_statement_depth_terminates_on_cycle(self):
        statements = {
            s.id: s for s in [make_statement("a", dependencies=["b"]), make_statement("b", dependencies=["a"])]
        }
        assert statement_depth(statements) == 2

    @pytest.mark.parametrize("reported,expected", [
        ([], ComplexityClass.UNKNOWN),
        ([ComplexityClass.UNKNOWN], ComplexityClass.UNKNOWN),
        ([ComplexityClass.EXPONENTIAL, ComplexityClass.POLYNOMIAL], ComplexityClass.POLYNOMIAL),
        ([ComplexityClass.POLYNOMIAL, ComplexityClass.TRIVIAL], ComplexityClass.TRIVIAL),
        ([ComplexityClass.UNDECIDABLE], ComplexityClass.UNDECIDABLE),
        ([ComplexityClass.UNDECIDABLE, ComplexityClass.POLYNOMIAL], ComplexityClass.UNKNOWN),
    ])
    def test_combine_classes(self, reported, expected):
        assert combine_classes(reported) == expected


class TestComplexityEstimator:
    """Tests for ComplexityEstimator.estimate()."""

    def test_empty_input(self):
        report = ComplexityEstimator().estimate([], {})
        assert report.proof_length == 0
        assert report.dependency_depth == 0
        assert report.axiom_dependencies == []
        assert report.computational_complexity == ComplexityClass.UNKNOWN
        assert report.estimated_difficulty == pytest.approx(0.25)

    def test_length_counts_sketch_steps_and_longest_proof(self):
        statements = [make_statement("s1")]
        results = {"s1": {
            LEAN: _result(formal_proof="line one\nline two"),
            COQ: _result(COQ, formal_proof="only line"),
        }}
        sketches = [_sketch(steps=[(1, ()), (2, (1,))])]
        report = ComplexityEstimator().estimate(statements, results, sketches)
        assert report.proof_length == 4
        assert report.dependency_depth == 2

    def test_axioms_from_statements_and_backends(self):
        statements = [
            make_statement("ax", kind=StatementKind.AXIOM),
            make_statement("x", dependencies=["ax"]),
        ]
        results = {"x": {LEAN: _result(axioms_used=["propext", "Classical.choice"])}}
        report = ComplexityEstimator().estimate(statements, results)
        assert report.axiom_dependencies == ["Classical.choice", "ax", "propext"]

    def test_unused_axioms_are_not_listed(self):
        statements = [
            make_statement("base", kind=StatementKind.AXIOM),
            make_statement("unused", kind=StatementKind.AXIOM),
            make_statement("lemma", dependencies=["base"]),
            make_statement("thm", dependencies=["lemma"]),
        ]
        report = ComplexityEstimator().estimate(statements, {"thm": {LEAN: _result()}})
        assert report.axiom_dependencies == ["base"]

    def test_invalid_results_do_not_classify(self):
        """A rejected proof's complexity report is ignored in favour of the sketches."""
        statements = [make_statement("s1")]
        results = {"s1": {LEAN: _result(valid=False, confidence=0.0,
                                        reported_complexity=ComplexityClass.TRIVIAL)}}
        sketches = [_sketch(complexity=ComplexityClass.EXPONENTIAL)]
        report = ComplexityEstimator().estimate(statements, results, sketches)
        assert report.computational_complexity == ComplexityClass.EXPONENTIAL

    def test_disagreeing_sketches_are_unknown(self):
        sketches = [
            _sketch("a", complexity=ComplexityClass.POLYNOMIAL),
            _sketch("b", complexity=ComplexityClass.EXPONENTIAL),
        ]
        report = ComplexityEstimator().estimate([make_statement("s1")], {}, sketches)
        assert report.computational_complexity == ComplexityClass.UNKNOWN

    def test_reported_complexity_wins(self):
        results = {"s1": {
            LEAN: _result(reported_complexity=ComplexityClass.EXPONENTIAL),
            COQ: _result(COQ, reported_complexity=ComplexityClass.POLYNOMIAL),
        }}
        report = ComplexityEstimator().estimate([make_statement("s1")], results)
        assert report.computational_complexity == ComplexityClass.POLYNOMIAL

    def test_difficulty_formula(self):
        statements = [make_statement("s1")]
        results = {"s1": {LEAN: _result(confidence=0.9), COQ: _result(COQ, confidence=0.6)}}
        report = ComplexityEstimator().estimate(statements, results)
        expected = 0.5 * (1 - math.exp(-1 / 5.0)) + 0.25 * (1 - 0.6)
        assert report.estimated_difficulty == pytest.approx(expected)

    def test_difficulty_grows_with_axioms(self):
        statements = [make_statement("s1")]
        plain = ComplexityEstimator().estimate(statements, {"s1": {LEAN: _result()}})
        heavy = ComplexityEstimator().estimate(
            statements, {"s1": {LEAN: _result(axioms_used=["a", "b", "c"])}}
        )
        assert heavy.estimated_difficulty > plain.estimated_difficulty
