"""
Base Backend Adapter - uniform contract to one proof-assistant process.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, Iterator, List, Optional

from pydantic import BaseModel, ConfigDict

from crossproof.config import Settings, get_settings
from crossproof.logging_config import get_logger
from crossproof.schemas.results import SingleProofResult
from crossproof.schemas.statements import BackendKind, FormalStatement

logger = get_logger(__name__)


class SubmissionMode(str, Enum):
    """How much work a submission asks the backend to do."""
    QUICK = "quick"  # parse/elaborate the statement only
    FULL = "full"    # check the complete proof


class DialectConfig(BaseModel):
    """
    Backend-specific rendering options.

    `version` is part of the cache fingerprint: bump it whenever the
    preamble or options change what the backend will accept.
    """

    model_config = ConfigDict(frozen=True)

    backend: BackendKind
    version: str = "1"
    preamble: List[str] = []
    options: Dict[str, str] = {}


class BackendAdapter(ABC):
    """
    Abstract base class for proof-assistant adapters.

    Implementations must:
    - enforce the given timeout themselves and reclaim the process on expiry
    - classify every failure as syntax/type/logic/incomplete/timeout
    - report resource usage even on success
    - never raise for a backend failure; return a SingleProofResult instead
    """

    @property
    @abstractmethod
    def kind(self) -> BackendKind:
        """Backend this adapter talks to."""
        pass

    @property
    @abstractmethod
    def dialect(self) -> DialectConfig:
        """Default dialect configuration."""
        pass

    @abstractmethod
    async def submit(
        self,
        statement: FormalStatement,
        dialect: DialectConfig,
        timeout: float,
        *,
        mode: SubmissionMode = SubmissionMode.FULL,
        memory_limit_mb: Optional[int] = None,
    ) -> SingleProofResult:
        """Verify one statement within `timeout` seconds."""
        pass

    def health_check(self) -> bool:
        """Whether the backend can take submissions right now."""
        return True

    async def close(self) -> None:
        """Release any long-lived resources."""
        return None


class BackendRegistry:
    """
    Maps backend kinds to adapter instances.

    Built explicitly and injected, so tests can register scripted adapters.
    """

    def __init__(self, adapters: Optional[List[BackendAdapter]] = None):
        self._adapters: Dict[BackendKind, BackendAdapter] = {}
        for adapter in adapters or []:
            self.register(adapter)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "BackendRegistry":
        """Registry of process adapters for every supported backend."""
        from crossproof.engines.backends.assistants import build_registry

        return build_registry(settings or get_settings())

    def register(self, adapter: BackendAdapter) -> None:
        """Register (or replace) the adapter for its backend kind."""
        if adapter.kind in self._adapters:
            logger.info("Replacing adapter for %s", adapter.kind.value)
        self._adapters[adapter.kind] = adapter

    def get(self, kind: BackendKind) -> Optional[BackendAdapter]:
        return self._adapters.get(kind)

    def is_registered(self, kind: BackendKind) -> bool:
        return kind in self._adapters

    def kinds(self) -> List[BackendKind]:
        return list(self._adapters)

    def health(self) -> Dict[BackendKind, bool]:
        """Availability of every registered backend."""
        return {kind: adapter.health_check() for kind, adapter in self._adapters.items()}

    def __iter__(self) -> Iterator[BackendAdapter]:
        return iter(list(self._adapters.values()))

    async def close_all(self) -> None:
        """Close every adapter; one failing close does not stop the others."""
        for adapter in self:
            try:
                await adapter.close()
            except OSError as e:
                logger.warning("Failed to close %s adapter: %s", adapter.kind.value, e)
