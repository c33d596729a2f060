"""
Process Backend Adapter - runs a proof assistant as a bounded subprocess.

Each submission renders the statement into a fresh temporary source file,
launches the verifier with asyncio.create_subprocess_exec and waits with
asyncio.wait_for. On timeout or cancellation the process is killed and
reaped before control returns.

Failure classification:
  1. Missing dialect text, unlaunchable executable, placeholder proofs and
     unsolved goals -> incomplete
  2. Parse errors -> syntax
  3. Unification / elaboration errors -> type
  4. Any other reported error -> logic
"""

import asyncio
import re
import resource
import shutil
import signal
import tempfile
import time
from abc import abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, Pattern, Tuple

from crossproof.engines.backends.base import BackendAdapter, DialectConfig, SubmissionMode
from crossproof.logging_config import get_logger
from crossproof.schemas.results import (
    ErrorType,
    ResourceUsage,
    SingleProofResult,
    SourceLocation,
    ValidationIssue,
    ValidationWarning,
    WarningType,
    backend_failure_result,
    timeout_result,
)
from crossproof.schemas.statements import BackendKind, ComplexityClass, FormalStatement

logger = get_logger(__name__)


# ── Diagnostic classification ────────────────────────────────────────────

INCOMPLETE_PATTERNS = [
    re.compile(r"\bunsolved\s+(?:goals?|metas|constraints)\b", re.I),
    re.compile(r"declaration uses 'sorry'", re.I),
    re.compile(r"\b(?:sorry|admitted|oops|postulate)\b", re.I),
    re.compile(r"\b(?:incomplete|unfinished)\s+proof\b", re.I),
    re.compile(r"\bremaining\s+(?:goals?|subgoals?)\b", re.I),
]

SYNTAX_PATTERNS = [
    re.compile(r"\bunexpected\s+token\b", re.I),
    re.compile(r"\bsyntax\s+error\b", re.I),
    re.compile(r"\bparse\s+error\b", re.I),
    re.compile(r"^\s*expected\b", re.I | re.M),
    re.compile(r"\bouter\s+syntax\s+error\b", re.I),
    re.compile(r"\blexical\s+error\b", re.I),
]

TYPE_PATTERNS = [
    re.compile(r"\btype\s+mismatch\b", re.I),
    re.compile(r"\bhas\s+type\b", re.I),
    re.compile(r"\bunable\s+to\s+unify\b", re.I),
    re.compile(r"\bcannot\s+unify\b", re.I),
    re.compile(r"\btype\s+unification\s+failed\b", re.I),
    re.compile(r"\bfailed\s+to\s+synthesize\b", re.I),
    re.compile(r"\bis\s+not\s+a\s+(?:type|function)\b", re.I),
]

WARNING_TYPE_PATTERNS = [
    (WarningType.REDUNDANCY, re.compile(r"\b(?:unused|redundant|never\s+used)\b", re.I)),
    (WarningType.PERFORMANCE, re.compile(r"\b(?:heartbeats?|slow|performance|timeout)\b", re.I)),
    (WarningType.STYLE, re.compile(r"\b(?:deprecated|linter|style|naming)\b", re.I)),
]

COMPLEXITY_MARKER = re.compile(
    r"\bcomplexity:\s*(trivial|polynomial|exponential|undecidable|unknown)\b", re.I
)

# Soft limit of RLIMIT_CPU is the timeout rounded up plus this grace period
CPU_LIMIT_GRACE_SECONDS = 1

# Interval between samples of a running verifier's resident memory
MEMORY_SAMPLE_SECONDS = 0.05

PEAK_RSS_LINE = re.compile(r"^VmHWM:\s+(\d+)\s+kB", re.M)


def classify_error(message: str) -> ErrorType:
    """Map a backend error message to exactly one error category."""
    if any(p.search(message) for p in INCOMPLETE_PATTERNS):
        return ErrorType.INCOMPLETE
    if any(p.search(message) for p in SYNTAX_PATTERNS):
        return ErrorType.SYNTAX
    if any(p.search(message) for p in TYPE_PATTERNS):
        return ErrorType.TYPE
    return ErrorType.LOGIC


def classify_warning(message: str) -> WarningType:
    for warning_type, pattern in WARNING_TYPE_PATTERNS:
        if pattern.search(message):
            return warning_type
    return WarningType.CLARITY


def parse_reported_complexity(output: str) -> Optional[ComplexityClass]:
    """Read an optional `complexity: <class>` marker from verifier output."""
    match = COMPLEXITY_MARKER.search(output)
    if not match:
        return None
    return ComplexityClass(match.group(1).lower())


def parse_peak_rss_mb(status_text: str) -> Optional[float]:
    """Peak resident set size in MB from the text of /proc/<pid>/status."""
    match = PEAK_RSS_LINE.search(status_text)
    if not match:
        return None
    return int(match.group(1)) / 1024.0


@dataclass
class PeakMemory:
    """Highest resident memory seen for one verifier process."""
    mb: float = 0.0


async def _sample_peak_memory(pid: int, peak: PeakMemory) -> None:
    """Track the process's resident high-water mark until it exits or the task is cancelled."""
    status_path = Path(f"/proc/{pid}/status")
    while True:
        try:
            text = status_path.read_text(encoding="utf-8")
        except OSError:
            # Reaped, or no procfs on this platform
            return
        value = parse_peak_rss_mb(text)
        if value is not None:
            peak.mb = max(peak.mb, value)
        await asyncio.sleep(MEMORY_SAMPLE_SECONDS)


@dataclass
class Diagnostic:
    """One message printed by a verifier."""
    is_error: bool
    message: str
    line: Optional[int] = None
    column: Optional[int] = None
    informational: bool = False

    @property
    def location(self) -> Optional[SourceLocation]:
        if self.line is None:
            return None
        return SourceLocation(line=self.line, column=self.column or 0)


def _resource_limiter(memory_limit_mb: Optional[int], timeout: float) -> Callable[[], None]:
    """Build a preexec hook that bounds address space and CPU time of the child."""
    cpu_seconds = int(timeout) + 1 + CPU_LIMIT_GRACE_SECONDS

    def _bounded(limit: int, kind: int) -> Tuple[int, int]:
        _, hard = resource.getrlimit(kind)
        if hard != resource.RLIM_INFINITY:
            limit = min(limit, hard)
        return limit, hard

    def apply() -> None:
        resource.setrlimit(resource.RLIMIT_CPU, _bounded(cpu_seconds, resource.RLIMIT_CPU))
        if memory_limit_mb:
            limit = memory_limit_mb * 1024 * 1024
            resource.setrlimit(resource.RLIMIT_AS, _bounded(limit, resource.RLIMIT_AS))

    return apply


class ProcessBackendAdapter(BackendAdapter):
    """
    Generic subprocess implementation of a backend adapter.

    Subclasses supply the command line, the source rendering and the
    diagnostic format of their verifier.
    """

    file_suffix: str = ".txt"
    # Markers in the submitted source that leave a proof unfinished
    placeholder_pattern: Optional[Pattern[str]] = None
    # Header line of a located diagnostic, with `line`, `col` and optional `level` groups
    diagnostic_header: Optional[Pattern[str]] = None

    def __init__(
        self,
        executable: str,
        *,
        workspace_dir: Optional[str] = None,
        dialect: Optional[DialectConfig] = None,
        default_memory_limit_mb: Optional[int] = None,
    ):
        self.executable = executable
        self.workspace_dir = workspace_dir
        self._dialect = dialect or DialectConfig(backend=self.kind)
        self.default_memory_limit_mb = default_memory_limit_mb

    @property
    def dialect(self) -> DialectConfig:
        return self._dialect

    def health_check(self) -> bool:
        """True when the verifier executable can be found."""
        return shutil.which(self.executable) is not None

    # ── Hooks ────────────────────────────────────────────────────────────

    @abstractmethod
    def build_command(self, source_path: Path, mode: SubmissionMode) -> List[str]:
        """Command line verifying the file at `source_path`."""
        pass

    def source_name(self, text: str) -> str:
        """Base file name (without suffix) for the rendered source."""
        return "Statement"

    def render_source(self, text: str, dialect: DialectConfig, mode: SubmissionMode) -> str:
        body = self.strip_proof(text) if mode == SubmissionMode.QUICK else text
        return "\n".join([*dialect.preamble, body, ""])

    def strip_proof(self, text: str) -> str:
        """Replace the proof body by a placeholder so only the statement is elaborated."""
        return text

    def iter_diagnostics(self, output: str, returncode: int) -> Iterator[Diagnostic]:
        """Split verifier output into diagnostics using `diagnostic_header`."""
        if self.diagnostic_header is None:
            return
        current: Optional[Diagnostic] = None
        for line in output.splitlines():
            match = self.diagnostic_header.match(line)
            if match:
                if current is not None:
                    yield current
                groups = match.groupdict()
                level = (groups.get("level") or "").lower()
                rest = groups.get("msg") or ""
                current = Diagnostic(
                    is_error=level == "error" if level else returncode != 0,
                    message=rest.strip(),
                    line=int(groups["line"]) if groups.get("line") else None,
                    column=int(groups["col"]) if groups.get("col") else None,
                    informational=level in ("info", "information"),
                )
                continue
            if current is not None and line.strip():
                if not current.message:
                    stripped = line.strip()
                    lowered = stripped.lower()
                    if lowered.startswith("warning"):
                        current.is_error = False
                    elif lowered.startswith("error"):
                        current.is_error = True
                    current.message = stripped
                else:
                    current.message += "\n" + line.rstrip()
        if current is not None:
            yield current

    def parse_axioms(self, output: str) -> List[str]:
        return []

    # ── Submission ───────────────────────────────────────────────────────

    async def submit(
        self,
        statement: FormalStatement,
        dialect: DialectConfig,
        timeout: float,
        *,
        mode: SubmissionMode = SubmissionMode.FULL,
        memory_limit_mb: Optional[int] = None,
    ) -> SingleProofResult:
        text = statement.formal_text(self.kind)
        if text is None:
            return self._incomplete(f"No {self.kind.value} representation for statement {statement.id}", 0.0)

        memory_limit_mb = memory_limit_mb or self.default_memory_limit_mb
        with tempfile.TemporaryDirectory(prefix="crossproof-", dir=self.workspace_dir) as workdir:
            source_path = Path(workdir) / f"{self.source_name(text)}{self.file_suffix}"
            source_path.write_text(self.render_source(text, dialect, mode), encoding="utf-8")
            command = self.build_command(source_path, mode)

            usage_before = resource.getrusage(resource.RUSAGE_CHILDREN)
            start = time.monotonic()
            try:
                proc = await asyncio.create_subprocess_exec(
                    *command,
                    cwd=workdir,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.STDOUT,
                    preexec_fn=_resource_limiter(memory_limit_mb, timeout),
                )
            except OSError as e:
                logger.warning(
                    "Could not launch %s verifier: %s", self.kind.value, e,
                    extra={"statement_id": statement.id, "executable": self.executable},
                )
                return backend_failure_result(
                    self.kind, time.monotonic() - start, f"Could not launch {self.executable}: {e}"
                )

            peak = PeakMemory()
            sampler = asyncio.ensure_future(_sample_peak_memory(proc.pid, peak))
            try:
                stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
            except asyncio.TimeoutError:
                await self._reap(proc)
                elapsed = time.monotonic() - start
                logger.info(
                    "%s verification timed out after %.1fs", self.kind.value, elapsed,
                    extra={"statement_id": statement.id, "mode": mode.value},
                )
                return timeout_result(self.kind, elapsed, f"{self.kind.value} exceeded {timeout:.1f}s budget")
            except asyncio.CancelledError:
                await self._reap(proc)
                raise
            finally:
                sampler.cancel()
                await asyncio.gather(sampler, return_exceptions=True)

            elapsed = time.monotonic() - start
            usage = self._usage_since(usage_before, peak)

        output = stdout.decode("utf-8", errors="replace")
        if proc.returncode in (-signal.SIGXCPU, -signal.SIGKILL):
            return timeout_result(self.kind, elapsed, f"{self.kind.value} exceeded its CPU limit")

        return self._build_result(text, output, proc.returncode, mode, elapsed, usage)

    async def _reap(self, proc: asyncio.subprocess.Process) -> None:
        """Kill a running verifier and wait for it so no zombie is left."""
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
        await proc.wait()

    @staticmethod
    def _usage_since(before: "resource.struct_rusage", peak: PeakMemory) -> ResourceUsage:
        # RUSAGE_CHILDREN is process-wide, so concurrent runs blur into each other's CPU time
        after = resource.getrusage(resource.RUSAGE_CHILDREN)
        cpu = (after.ru_utime - before.ru_utime) + (after.ru_stime - before.ru_stime)
        return ResourceUsage(memory_mb=peak.mb, cpu_seconds=max(cpu, 0.0))

    def _build_result(
        self,
        text: str,
        output: str,
        returncode: int,
        mode: SubmissionMode,
        elapsed: float,
        usage: ResourceUsage,
    ) -> SingleProofResult:
        errors: List[ValidationIssue] = []
        warnings: List[ValidationWarning] = []
        for diag in self.iter_diagnostics(output, returncode):
            if diag.informational:
                continue
            if diag.is_error:
                errors.append(ValidationIssue(
                    error_type=classify_error(diag.message),
                    message=diag.message,
                    location=diag.location,
                ))
            elif any(p.search(diag.message) for p in INCOMPLETE_PATTERNS):
                # Placeholder proofs are only warnings for most verifiers
                errors.append(ValidationIssue(
                    error_type=ErrorType.INCOMPLETE,
                    message=diag.message,
                    location=diag.location,
                ))
            else:
                warnings.append(ValidationWarning(
                    warning_type=classify_warning(diag.message),
                    message=diag.message,
                    location=diag.location,
                ))

        if returncode != 0 and not errors:
            tail = "\n".join(output.strip().splitlines()[-5:]) or f"exit status {returncode}"
            errors.append(ValidationIssue(error_type=classify_error(tail), message=tail))

        if mode == SubmissionMode.QUICK:
            # Proof was stripped, only statement-level problems count
            errors = [e for e in errors if e.error_type in (ErrorType.SYNTAX, ErrorType.TYPE)]
            valid = not errors
            confidence = 0.5 if valid else 0.0
        else:
            if (
                self.placeholder_pattern is not None
                and self.placeholder_pattern.search(text)
                and not any(e.error_type == ErrorType.INCOMPLETE for e in errors)
            ):
                errors.append(ValidationIssue(
                    error_type=ErrorType.INCOMPLETE,
                    message="Proof contains a placeholder and is not complete",
                    suggested_fix="Replace the placeholder with a complete proof",
                ))
            valid = not errors
            confidence = max(0.5, 1.0 - 0.1 * len(warnings)) if valid else 0.0

        return SingleProofResult(
            backend=self.kind,
            valid=valid,
            confidence=confidence,
            formal_proof=text if valid and mode == SubmissionMode.FULL else None,
            errors=errors,
            warnings=warnings,
            verification_time=elapsed,
            resource_usage=usage,
            axioms_used=self.parse_axioms(output),
            reported_complexity=parse_reported_complexity(output),
        )

    def _incomplete(self, message: str, elapsed: float) -> SingleProofResult:
        return SingleProofResult(
            backend=self.kind,
            valid=False,
            confidence=0.0,
            errors=[ValidationIssue(error_type=ErrorType.INCOMPLETE, message=message)],
            verification_time=elapsed,
        )


def unique(items: Iterable[str]) -> List[str]:
    """Deduplicate while keeping first-seen order."""
    seen: List[str] = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return seen
