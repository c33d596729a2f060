"""
Result Cache - content-addressed store of backend verdicts.

Keys are SHA-256 fingerprints of (statement text, backend, dialect version),
so a result is reused only when the exact same source would be verified by
the same backend under the same dialect.

A hit is returned as a copy with verification_time reported as zero; it
is otherwise indistinguishable from a live result. Timed-out results and
transient backend failures (crashes, unlaunchable executables) are never
stored.
"""

import hashlib
import json
import threading
import time
from collections import OrderedDict
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from pydantic import ValidationError

from crossproof.errors import CacheCorruptionError
from crossproof.logging_config import get_logger
from crossproof.schemas.results import SingleProofResult
from crossproof.schemas.statements import BackendKind

logger = get_logger(__name__)

SNAPSHOT_FORMAT_VERSION = 1


def fingerprint(text: str, backend: BackendKind, dialect_version: str) -> str:
    """Stable cache key for one (source, backend, dialect) triple."""
    digest = hashlib.sha256()
    for part in (backend.value, dialect_version, text):
        digest.update(part.encode("utf-8"))
        digest.update(b"\x00")
    return digest.hexdigest()


def _checksum(key: str, payload: Dict[str, Any]) -> str:
    body = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(f"{key}:{body}".encode("utf-8")).hexdigest()


@dataclass
class CacheStats:
    """Point-in-time cache statistics."""
    size: int
    max_entries: int
    ttl_seconds: float
    hits: int
    misses: int
    hit_rate: float


class ResultCache:
    """
    Thread-safe TTL + LRU cache of SingleProofResult objects.

    The lock only guards dictionary access; no backend call runs under it.
    Concurrent writers for the same key are last-writer-wins, which is safe
    because equal keys verify byte-identical sources.
    """

    def __init__(
        self,
        ttl_seconds: float = 86400.0,
        max_entries: int = 10000,
        enabled: bool = True,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.enabled = enabled
        self._entries: "OrderedDict[str, Tuple[float, SingleProofResult]]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[SingleProofResult]:
        if not self.enabled:
            return None
        now = time.time()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            stored_at, result = entry
            if now - stored_at > self.ttl_seconds:
                del self._entries[key]
                self._misses += 1
                return None
            self._entries.move_to_end(key)
            self._hits += 1
        return result.model_copy(update={"verification_time": 0.0})

    def put(self, key: str, result: SingleProofResult) -> bool:
        """Store a result. Returns False when the result is not cacheable."""
        if not self.enabled or result.timed_out or result.transient:
            return False
        with self._lock:
            self._entries[key] = (time.time(), result)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
        return True

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> CacheStats:
        with self._lock:
            total = self._hits + self._misses
            return CacheStats(
                size=len(self._entries),
                max_entries=self.max_entries,
                ttl_seconds=self.ttl_seconds,
                hits=self._hits,
                misses=self._misses,
                hit_rate=self._hits / total if total else 0.0,
            )

    def stats_dict(self) -> Dict[str, float]:
        return {k: float(v) for k, v in asdict(self.stats()).items()}

    # ── Snapshots ────────────────────────────────────────────────────────

    def save(self, path: Union[str, Path]) -> int:
        """Write all live entries to a JSON snapshot. Returns the entry count."""
        with self._lock:
            items = list(self._entries.items())
        entries = []
        for key, (stored_at, result) in items:
            payload = result.model_dump(mode="json")
            entries.append({
                "key": key,
                "stored_at": stored_at,
                "checksum": _checksum(key, payload),
                "result": payload,
            })
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_suffix(target.suffix + ".tmp")
        tmp.write_text(
            json.dumps({"version": SNAPSHOT_FORMAT_VERSION, "entries": entries}),
            encoding="utf-8",
        )
        tmp.replace(target)
        logger.info("Saved result cache snapshot", extra={"path": str(target), "entries": len(entries)})
        return len(entries)

    def load(self, path: Union[str, Path]) -> int:
        """
        Merge a JSON snapshot into the cache. Returns the number of entries loaded.

        Raises CacheCorruptionError when the snapshot cannot be parsed or an
        entry does not match its checksum. Expired entries are skipped.
        """
        source = Path(path)
        try:
            data = json.loads(source.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise CacheCorruptionError(f"snapshot {source} is not valid JSON: {e}") from e

        if not isinstance(data, dict) or data.get("version") != SNAPSHOT_FORMAT_VERSION:
            raise CacheCorruptionError(f"snapshot {source} has an unsupported format")
        entries = data.get("entries", [])
        if not isinstance(entries, list):
            raise CacheCorruptionError(f"snapshot {source} has no entry list")

        now = time.time()
        loaded: Dict[str, Tuple[float, SingleProofResult]] = {}
        for raw in entries:
            if not isinstance(raw, dict):
                raise CacheCorruptionError("malformed snapshot entry: not an object")
            try:
                key = raw["key"]
                stored_at = float(raw["stored_at"])
                payload = raw["result"]
                checksum = raw["checksum"]
            except (KeyError, TypeError, ValueError) as e:
                raise CacheCorruptionError(f"malformed snapshot entry: {e}") from e
            if _checksum(key, payload) != checksum:
                raise CacheCorruptionError("entry does not match its checksum", key=key)
            if now - stored_at > self.ttl_seconds:
                continue
            try:
                loaded[key] = (stored_at, SingleProofResult.model_validate(payload))
            except ValidationError as e:
                raise CacheCorruptionError(f"entry is not a valid result: {e}", key=key) from e

        with self._lock:
            for key, entry in sorted(loaded.items(), key=lambda item: item[1][0]):
                self._entries[key] = entry
                self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
        logger.info("Loaded result cache snapshot", extra={"path": str(source), "entries": len(loaded)})
        return len(loaded)
