"""Content-fingerprint keyed result cache with TTL invalidation.

Each entry is a JSON file ``<key>.json`` holding ``{key, written_at,
payload}``. The cache is best-effort: read problems are misses and write
problems are logged, never raised.
"""

from __future__ import annotations

import contextlib
import hashlib
import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from collections.abc import Iterable

    from smart_ast.entities.analysis import FileRef

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600.0
DEFAULT_CACHE_DIR = ".smart-ast-cache"


@dataclass(frozen=True)
class CacheHit:
    payload: dict[str, Any]
    written_at: float


@dataclass(frozen=True)
class CacheMiss:
    reason: str = "absent"  # absent, stale, disabled


@dataclass(frozen=True)
class CacheError:
    """Entry existed but could not be read; treated as a miss by callers."""

    error: str


CacheResult = CacheHit | CacheMiss | CacheError


class ResultCache:
    """Local key -> JSON-blob store keyed by task type and file contents."""

    def __init__(
        self,
        directory: Path | str = DEFAULT_CACHE_DIR,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        enabled: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the cache.

        Args:
            directory: Directory holding one JSON file per entry.
            ttl_seconds: Entries older than this are stale.
            enabled: When False every operation is a no-op.
            clock: Wall clock in seconds, injectable for tests.
        """
        self.directory = Path(directory)
        self.ttl_seconds = ttl_seconds
        self.enabled = enabled
        self._clock = clock

        if self.enabled:
            try:
                self.directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.warning("Failed to create cache directory %s: %s", self.directory, e)
                self.enabled = False

    @staticmethod
    def fingerprint(task_type: str, files: Iterable[FileRef]) -> str:
        """SHA256 over the task type and the sorted (path, content hash) pairs."""
        digest = hashlib.sha256()
        digest.update(str(task_type).encode("utf-8"))
        for rel_path, content_hash in sorted((f.relative_path, f.content_hash) for f in files):
            digest.update(b"\0")
            digest.update(rel_path.encode("utf-8"))
            digest.update(b"\0")
            digest.update(content_hash.encode("utf-8"))
        return digest.hexdigest()

    def generate_key(self, task_type: str, files: Iterable[FileRef]) -> str | None:
        """Key for a task over a file set, or None when caching is disabled."""
        if not self.enabled:
            return None
        return f"{task_type}-{self.fingerprint(task_type, files)}"

    def _entry_path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def lookup(self, key: str | None) -> CacheResult:
        """Look up ``key`` returning an explicit hit/miss/error variant."""
        if not self.enabled or not key:
            return CacheMiss("disabled")

        path = self._entry_path(key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return CacheMiss()
        except OSError as e:
            return CacheError(str(e))

        try:
            entry = json.loads(raw)
            written_at = float(entry["written_at"])
            payload = entry["payload"]
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.debug("Corrupt cache entry %s: %s", key, e)
            return CacheError(f"corrupt entry: {e}")

        if self._clock() - written_at > self.ttl_seconds:
            try:
                path.unlink()
            except OSError:
                logger.debug("Could not delete stale cache entry %s", key)
            return CacheMiss("stale")

        return CacheHit(payload=payload, written_at=written_at)

    def get(self, key: str | None) -> dict[str, Any] | None:
        result = self.lookup(key)
        if isinstance(result, CacheHit):
            return result.payload
        return None

    def set(self, key: str | None, payload: dict[str, Any]) -> bool:
        """Atomically write ``payload`` under ``key``. Returns False on failure."""
        if not self.enabled or not key:
            return False

        entry = {"key": key, "written_at": self._clock(), "payload": payload}
        tmp_name: str | None = None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(entry, f, indent=2)
            os.replace(tmp_name, self._entry_path(key))
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Failed to write cache entry %s: %s", key, e)
            if tmp_name is not None:
                with contextlib.suppress(OSError):
                    Path(tmp_name).unlink(missing_ok=True)
            return False

    def clear(self) -> None:
        """Remove every entry; missing directory and delete failures are ignored."""
        if not self.enabled:
            return
        try:
            entries = list(self.directory.glob("*.json"))
        except OSError as e:
            logger.warning("Failed to clear cache: %s", e)
            return
        for entry in entries:
            try:
                entry.unlink()
            except OSError:
                logger.debug("Could not delete cache entry %s", entry)
