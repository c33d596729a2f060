"""
Negation Recognizer - decides whether one conclusion is the negation of another.

Recognised forms:
  - Dialect negation prefixes (¬ P, Not P, ~ P, not P, \\<not> P)
  - Implication of falsity (P → False, P -> False, P → ⊥)
  - Complementary relations (= / ≠, < / ≥, ≤ / >)
  - Complementary predicates (even / odd, True / False)

The check is symmetric: negates(a, b) == negates(b, a).
"""

import re
from typing import Dict, Optional, Tuple

from crossproof.schemas.statements import BackendKind

_COMMON_PREFIXES = ("¬",)

DIALECT_PREFIXES: Dict[BackendKind, Tuple[str, ...]] = {
    BackendKind.LEAN: ("¬", "Not "),
    BackendKind.COQ: ("~", "not "),
    BackendKind.ISABELLE: ("¬", "\\<not>", "~"),
    BackendKind.AGDA: ("¬",),
}

_ALL_PREFIXES = tuple(sorted({p for ps in DIALECT_PREFIXES.values() for p in ps}, key=len, reverse=True))

_FALSITY_SUFFIX = re.compile(r"^(?P<body>.+?)\s*(?:→|->|⟶|\\<longrightarrow>)\s*(?:False|⊥)$")

_RELATION = re.compile(r"^(?P<lhs>[^<>=≠≤≥!]+?)\s*(?P<op>≠|!=|<>|≥|>=|≤|<=|=|<|>)\s*(?P<rhs>[^<>=≠≤≥!]+)$")

_OP_ALIASES = {"!=": "≠", "<>": "≠", ">=": "≥", "<=": "≤"}

_COMPLEMENTARY_WORDS = {
    "even": "odd",
    "odd": "even",
    "true": "false",
    "false": "true",
}
_WORD = re.compile(r"\b(even|odd|true|false)\b", re.I)


def normalize(text: str) -> str:
    """Collapse whitespace and drop redundant outer parentheses."""
    text = " ".join(text.split())
    while text.startswith("(") and text.endswith(")") and _wraps(text):
        text = text[1:-1].strip()
    return text


def _wraps(text: str) -> bool:
    """True when the first '(' closes at the last character."""
    depth = 0
    for i, ch in enumerate(text):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0 and i != len(text) - 1:
                return False
    return depth == 0


def _canonical_relation(text: str) -> Optional[Tuple[str, str, str]]:
    """(lhs, op, rhs) with > and ≥ rewritten as < and ≤ by swapping sides."""
    if any(arrow in text for arrow in ("→", "->", "↔", "<->", ":")):
        return None
    match = _RELATION.match(text)
    if not match:
        return None
    lhs, op, rhs = normalize(match.group("lhs")), match.group("op"), normalize(match.group("rhs"))
    op = _OP_ALIASES.get(op, op)
    if op == ">":
        return rhs, "<", lhs
    if op == "≥":
        return rhs, "≤", lhs
    if op in ("=", "≠"):
        lhs, rhs = sorted((lhs, rhs))
    return lhs, op, rhs


class NegationRecognizer:
    """
    Syntactic negation check between two conclusions.

    When a backend is given, only that dialect's negation prefixes (plus ¬)
    are recognised.
    """

    def negates(self, a: str, b: str, backend: Optional[BackendKind] = None) -> bool:
        a, b = normalize(a), normalize(b)
        if not a or not b or a == b:
            return False
        return self._one_way(a, b, backend) or self._one_way(b, a, backend)

    def strip_negation(self, text: str, backend: Optional[BackendKind] = None) -> Optional[str]:
        """Inner proposition when `text` is an explicit negation, else None."""
        text = normalize(text)
        prefixes = _ALL_PREFIXES if backend is None else tuple(
            sorted(set(DIALECT_PREFIXES.get(backend, ())) | set(_COMMON_PREFIXES), key=len, reverse=True)
        )
        for prefix in prefixes:
            if text.startswith(prefix):
                inner = normalize(text[len(prefix):])
                if inner:
                    return inner
        match = _FALSITY_SUFFIX.match(text)
        if match:
            return normalize(match.group("body"))
        return None

    def _one_way(self, a: str, b: str, backend: Optional[BackendKind]) -> bool:
        inner = self.strip_negation(a, backend)
        if inner is not None and inner == b:
            return True

        rel_a, rel_b = _canonical_relation(a), _canonical_relation(b)
        if rel_a and rel_b:
            lhs, op, rhs = rel_a
            complement = {
                "=": (lhs, "≠", rhs),
                "≠": (lhs, "=", rhs),
                "<": (rhs, "≤", lhs),
                "≤": (rhs, "<", lhs),
            }[op]
            if complement == rel_b:
                return True

        # Only a single complementary word may differ, "even n ∧ odd m" stays ambiguous
        if len(_WORD.findall(a)) == 1:
            swapped = _WORD.sub(lambda m: _COMPLEMENTARY_WORDS[m.group(1).lower()], a)
            if swapped.lower() == b.lower():
                return True
        return False
