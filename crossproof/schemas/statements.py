"""
Inbound schemas: formal statements, claims, proof sketches and context.

These objects are produced by the claim-extraction collaborator and are
consumed read-only. They are frozen so a statement cannot change while
backends are verifying it.
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class BackendKind(str, Enum):
    """Supported proof assistants."""
    LEAN = "lean"
    COQ = "coq"
    ISABELLE = "isabelle"
    AGDA = "agda"


class StatementKind(str, Enum):
    """Kinds of mathematical statement."""
    THEOREM = "theorem"
    LEMMA = "lemma"
    DEFINITION = "definition"
    AXIOM = "axiom"
    COROLLARY = "corollary"
    PROPOSITION = "proposition"
    CONJECTURE = "conjecture"


class ProofStrategy(str, Enum):
    """Top-level strategy of a proof sketch."""
    DIRECT = "direct"
    CONTRADICTION = "contradiction"
    INDUCTION = "induction"
    CONSTRUCTION = "construction"
    CASE_ANALYSIS = "case_analysis"
    REDUCTION = "reduction"
    EQUIVALENCE = "equivalence"


class ComplexityClass(str, Enum):
    """Computational complexity classification."""
    POLYNOMIAL = "polynomial"
    EXPONENTIAL = "exponential"
    UNDECIDABLE = "undecidable"
    UNKNOWN = "unknown"
    TRIVIAL = "trivial"


class AcademicDomain(str, Enum):
    """Domains used for backend routing and agreement weighting."""
    MATHEMATICS = "mathematics"
    COMPUTER_SCIENCE = "computer-science"
    LOGIC = "logic"
    PHYSICS = "physics"
    ENGINEERING = "engineering"
    ECONOMICS = "economics"
    PHILOSOPHY = "philosophy"
    NATURAL_SCIENCES = "natural-sciences"
    INTERDISCIPLINARY = "interdisciplinary"


class ExpertiseLevel(str, Enum):
    """Reader expertise, as reported by the extraction layer."""
    NOVICE = "novice"
    INTERMEDIATE = "intermediate"
    EXPERT = "expert"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class Variable(_Frozen):
    """A declared variable with its type and constraints."""

    name: str
    type: str
    domain: Optional[str] = None
    constraints: List[str] = []


class FormalStatement(_Frozen):
    """
    An identified formal claim.

    `formal_representations` holds one text per backend dialect; the same
    statement carries all of its representations at once.
    """

    id: str
    natural_language: str
    formal_representations: Dict[BackendKind, str] = {}
    kind: StatementKind = StatementKind.THEOREM
    domain: Optional[AcademicDomain] = None
    dependencies: List[str] = []
    variables: List[Variable] = []
    hypotheses: List[str] = []
    conclusion: str
    latex: Optional[str] = None
    # Range is checked by the input validator so bad values become structured errors
    extraction_confidence: float = 1.0

    def formal_text(self, backend: BackendKind) -> Optional[str]:
        """Dialect text for a backend, or None when it was never translated."""
        text = self.formal_representations.get(backend)
        if text is None or not text.strip():
            return None
        return text


class TextLocation(_Frozen):
    """Character offsets into the source document."""

    start: int
    end: int


class MathClaim(_Frozen):
    """A natural-language claim backed by one or more formal statements."""

    id: str
    claim: str
    formal_statements: List[FormalStatement] = []
    location: TextLocation
    kind: StatementKind = StatementKind.THEOREM
    evidence_strength: float = 1.0
    dependencies: List[str] = []


class ProofStep(_Frozen):
    """One step of a proof sketch."""

    step_number: int
    description: str
    formal_step: Optional[str] = None
    justification: str = ""
    dependencies: List[int] = []


class ProofSketch(_Frozen):
    """
    Ordered proof steps for a statement or claim.

    A step may only depend on strictly earlier steps.
    """

    id: str
    main_claim: str
    steps: List[ProofStep] = []
    strategy: ProofStrategy = ProofStrategy.DIRECT
    complexity: ComplexityClass = ComplexityClass.UNKNOWN
    required_lemmas: List[str] = []


class DocumentContext(_Frozen):
    """Metadata of the document the claims came from."""

    title: str = ""
    authors: List[str] = []
    domain: Optional[AcademicDomain] = None
    abstract_content: str = ""


class UserContext(_Frozen):
    """The reader the validation is performed for."""

    expertise_level: ExpertiseLevel = ExpertiseLevel.INTERMEDIATE
    preferred_backend: Optional[BackendKind] = None
    math_background: List[AcademicDomain] = []


class ValidationRequirements(_Frozen):
    """Checks the extraction layer asked for on top of formal verification."""

    cross_validation: bool = False  # at least one fallback must confirm
    consistency_check: bool = True  # consistency findings reject the set


class ValidationContext(_Frozen):
    """Context accompanying a statement set."""

    related_citations: List[str] = []
    document_context: DocumentContext = Field(default_factory=DocumentContext)
    user_context: UserContext = Field(default_factory=UserContext)
    requirements: ValidationRequirements = Field(default_factory=ValidationRequirements)
