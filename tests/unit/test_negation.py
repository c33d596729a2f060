"""Unit tests for the negation recognizer."""

import pytest

from crossproof.engines.negation import NegationRecognizer, normalize
from crossproof.schemas.statements import BackendKind


@pytest.fixture
def recognizer() -> NegationRecognizer:
    return NegationRecognizer()


class TestNegationRecognizer:
    """Tests for NegationRecognizer."""

    @pytest.mark.parametrize("a,b", [
        ("Even n", "Odd n"),
        ("n is even", "n is odd"),
        ("¬ (x = 0)", "x = 0"),
        ("x = 0", "x ≠ 0"),
        ("a < b", "a ≥ b"),
        ("a < b", "b <= a"),
        ("a ≤ b", "a > b"),
        ("True", "False"),
        ("P -> False", "P"),
    ])
    def test_recognises_negation(self, recognizer, a, b):
        """Common negation forms are recognised."""
        assert recognizer.negates(a, b)

    @pytest.mark.parametrize("a,b", [
        ("Even n", "Even n"),
        ("Even n", "Odd m"),
        ("a < b", "a ≤ b"),
        ("P", "Q"),
        ("Even n ∧ Odd m", "Odd n ∧ Even m"),
    ])
    def test_rejects_non_negation(self, recognizer, a, b):
        """Unrelated or identical conclusions do not negate each other."""
        assert not recognizer.negates(a, b)

    def test_symmetric(self, recognizer):
        """negates(a, b) equals negates(b, a)."""
        pairs = [("Even n", "Odd n"), ("~ P", "P"), ("x = y", "y ≠ x"), ("P", "Q")]
        for a, b in pairs:
            assert recognizer.negates(a, b) == recognizer.negates(b, a)

    def test_dialect_prefixes(self, recognizer):
        """`~` is Coq negation; Lean only knows ¬ and Not."""
        assert recognizer.negates("~ P", "P", BackendKind.COQ)
        assert not recognizer.negates("~ P", "P", BackendKind.LEAN)
        assert recognizer.negates("Not P", "P", BackendKind.LEAN)
        assert recognizer.negates("¬ P", "P", BackendKind.AGDA)

    def test_normalize_strips_outer_parentheses(self):
        assert normalize("((x  =  0))") == "x = 0"
        assert normalize("(a) ∧ (b)") == "(a) ∧ (b)"
