"""
Concrete proof-assistant adapters: Lean 4, Coq, Isabelle/HOL and Agda.

Each adapter only knows how to render a source file, how to invoke its
verifier and how to read its diagnostics; process handling, timeouts and
classification live in ProcessBackendAdapter.
"""

import re
from pathlib import Path
from typing import Iterator, List, Optional

from crossproof.config import Settings
from crossproof.engines.backends.base import BackendRegistry, DialectConfig, SubmissionMode
from crossproof.engines.backends.process import Diagnostic, ProcessBackendAdapter, unique
from crossproof.schemas.statements import BackendKind


class LeanAdapter(ProcessBackendAdapter):
    """Lean 4 via `lean <file>`."""

    file_suffix = ".lean"
    placeholder_pattern = re.compile(r"\bsorry\b")
    diagnostic_header = re.compile(
        r"^(?P<file>[^\s:][^:]*\.lean):(?P<line>\d+):(?P<col>\d+):\s*"
        r"(?P<level>error|warning|info|information):\s*(?P<msg>.*)$"
    )

    _DECL = re.compile(r"^\s*(?:theorem|lemma)\s+([^\s:(\[{]+)", re.M)
    _AXIOMS = re.compile(r"depends on axioms:\s*\[([^\]]*)\]")

    @property
    def kind(self) -> BackendKind:
        return BackendKind.LEAN

    def build_command(self, source_path: Path, mode: SubmissionMode) -> List[str]:
        return [self.executable, str(source_path)]

    def render_source(self, text: str, dialect: DialectConfig, mode: SubmissionMode) -> str:
        source = super().render_source(text, dialect, mode)
        match = self._DECL.search(text)
        if mode == SubmissionMode.FULL and match:
            source += f"#print axioms {match.group(1)}\n"
        return source

    def strip_proof(self, text: str) -> str:
        idx = text.find(":=")
        if idx < 0:
            return text
        return text[:idx] + ":= sorry"

    def parse_axioms(self, output: str) -> List[str]:
        names: List[str] = []
        for match in self._AXIOMS.finditer(output):
            names.extend(n.strip() for n in match.group(1).split(",") if n.strip())
        return unique(names)


class CoqAdapter(ProcessBackendAdapter):
    """Coq via `coqc -q <file>`."""

    file_suffix = ".v"
    placeholder_pattern = re.compile(r"\b(?:Admitted|admit)\b")
    diagnostic_header = re.compile(
        r'^File "(?P<file>[^"]+)", line (?P<line>\d+), characters (?P<col>\d+)-\d+:\s*(?P<msg>.*)$'
    )

    _DECL = re.compile(
        r"^\s*(?:Theorem|Lemma|Corollary|Proposition|Fact|Remark)\s+([A-Za-z_][\w']*)", re.M
    )
    _AXIOM_LINE = re.compile(r"^([A-Za-z_][\w'.]*)\s*:")

    @property
    def kind(self) -> BackendKind:
        return BackendKind.COQ

    def build_command(self, source_path: Path, mode: SubmissionMode) -> List[str]:
        return [self.executable, "-q", str(source_path)]

    def render_source(self, text: str, dialect: DialectConfig, mode: SubmissionMode) -> str:
        source = super().render_source(text, dialect, mode)
        match = self._DECL.search(text)
        if mode == SubmissionMode.FULL and match:
            source += f"Print Assumptions {match.group(1)}.\n"
        return source

    def strip_proof(self, text: str) -> str:
        idx = text.find("Proof.")
        if idx < 0:
            return text
        return text[:idx] + "Admitted."

    def parse_axioms(self, output: str) -> List[str]:
        names: List[str] = []
        in_block = False
        for line in output.splitlines():
            if line.strip() == "Axioms:":
                in_block = True
                continue
            if not in_block or line[:1].isspace():
                continue
            match = self._AXIOM_LINE.match(line)
            if match:
                names.append(match.group(1))
            else:
                in_block = False
        return unique(names)


class IsabelleAdapter(ProcessBackendAdapter):
    """Isabelle/HOL via `isabelle process -T <theory>`."""

    file_suffix = ".thy"
    placeholder_pattern = re.compile(r"\b(?:sorry|oops)\b")

    _THEORY = re.compile(r"^\s*theory\s+(\S+)", re.M)
    _PROOF_START = re.compile(r"\b(?:proof|by|apply|using)\b")
    _AT_LINE = re.compile(r"\(line (\d+) of")

    @property
    def kind(self) -> BackendKind:
        return BackendKind.ISABELLE

    def source_name(self, text: str) -> str:
        match = self._THEORY.search(text)
        return match.group(1) if match else "Statement"

    def build_command(self, source_path: Path, mode: SubmissionMode) -> List[str]:
        command = [self.executable, "process"]
        if mode == SubmissionMode.QUICK:
            command += ["-o", "quick_and_dirty"]
        return command + ["-d", str(source_path.parent), "-T", source_path.stem]

    def render_source(self, text: str, dialect: DialectConfig, mode: SubmissionMode) -> str:
        if self._THEORY.search(text):
            return super().render_source(text, dialect, mode)
        body = self.strip_proof(text) if mode == SubmissionMode.QUICK else text
        return "\n".join(["theory Statement", "  imports Main", "begin", *dialect.preamble, body, "end", ""])

    def strip_proof(self, text: str) -> str:
        match = self._PROOF_START.search(text)
        if not match:
            return text
        stripped = text[:match.start()] + "sorry"
        if self._THEORY.search(text):
            stripped += "\nend"
        return stripped

    def iter_diagnostics(self, output: str, returncode: int) -> Iterator[Diagnostic]:
        current: Optional[Diagnostic] = None
        for line in output.splitlines():
            if line.startswith("*** ") or line.startswith("### "):
                is_error = line.startswith("***")
                body = line[4:].strip()
                at_line = self._AT_LINE.search(body)
                if current is not None and current.is_error == is_error:
                    if at_line and current.line is None:
                        current.line = int(at_line.group(1))
                        continue
                    if body.startswith("At command"):
                        continue
                    current.message += "\n" + body
                    continue
                if current is not None:
                    yield current
                current = Diagnostic(is_error=is_error, message=body)
            elif current is not None:
                yield current
                current = None
        if current is not None:
            yield current


class AgdaAdapter(ProcessBackendAdapter):
    """Agda via `agda <file>`."""

    file_suffix = ".agda"
    placeholder_pattern = re.compile(r"\bpostulate\b|\{!.*?!\}|(?<![\w'])\?(?![\w'])")
    diagnostic_header = re.compile(
        r"^(?P<file>\S+\.agda):(?P<line>\d+),(?P<col>\d+)(?:-[\d,]+)?\s*(?P<msg>.*)$"
    )

    _MODULE = re.compile(r"^\s*module\s+([\w.]+)\s+where", re.M)
    _SIGNATURE = re.compile(r"^(\S+)\s+:\s+.+$")

    @property
    def kind(self) -> BackendKind:
        return BackendKind.AGDA

    def source_name(self, text: str) -> str:
        match = self._MODULE.search(text)
        return match.group(1).split(".")[-1] if match else "Statement"

    def build_command(self, source_path: Path, mode: SubmissionMode) -> List[str]:
        return [self.executable, str(source_path)]

    def render_source(self, text: str, dialect: DialectConfig, mode: SubmissionMode) -> str:
        body = self.strip_proof(text) if mode == SubmissionMode.QUICK else text
        header = [] if self._MODULE.search(text) else ["module Statement where", ""]
        return "\n".join([*header, *dialect.preamble, body, ""])

    def strip_proof(self, text: str) -> str:
        # Keep top-level signatures as postulates and drop their definitions
        kept: List[str] = []
        signatures: List[str] = []
        for line in text.splitlines():
            if self._MODULE.match(line) or line.startswith("open ") or line.startswith("import "):
                kept.append(line)
            elif self._SIGNATURE.match(line):
                signatures.append("  " + line)
        if not signatures:
            return text
        return "\n".join([*kept, "postulate", *signatures])


def build_registry(settings: Settings) -> BackendRegistry:
    """One process adapter per supported proof assistant, configured from settings."""
    common = {
        "workspace_dir": settings.workspace_dir,
        "default_memory_limit_mb": settings.default_memory_limit_mb,
    }
    return BackendRegistry([
        LeanAdapter(settings.lean_executable, **common),
        CoqAdapter(settings.coq_executable, **common),
        IsabelleAdapter(settings.isabelle_executable, **common),
        AgdaAdapter(settings.agda_executable, **common),
    ])
