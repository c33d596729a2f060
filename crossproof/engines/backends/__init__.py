"""
Proof-assistant backends.
"""

from crossproof.engines.backends.assistants import (
    AgdaAdapter,
    CoqAdapter,
    IsabelleAdapter,
    LeanAdapter,
    build_registry,
)
from crossproof.engines.backends.base import (
    BackendAdapter,
    BackendRegistry,
    DialectConfig,
    SubmissionMode,
)
from crossproof.engines.backends.process import ProcessBackendAdapter, classify_error

__all__ = [
    "AgdaAdapter",
    "BackendAdapter",
    "BackendRegistry",
    "CoqAdapter",
    "DialectConfig",
    "IsabelleAdapter",
    "LeanAdapter",
    "ProcessBackendAdapter",
    "SubmissionMode",
    "build_registry",
    "classify_error",
]
