# =============================================================================
# lib/local_store.py - Durable Local Collection Store
# =============================================================================
# Key-value persistence for the named domain collections (dispatch storage,
# employee locations, inspection archive, property templates, inspection
# employees). One JSON document per key inside a directory.
#
# Contract:
# - load(key) never raises. A missing or unparsable document is replaced by
#   the key's default seed, which is written back.
# - save(key, value) never raises. It returns False when the value cannot be
#   serialized, exceeds the per-document quota, or the write fails, and the
#   caller decides whether that is fatal.
#
# Every read-modify-write is whole-document and unlocked: two callers racing
# on the same key can lose one update (last writer wins).
#
# Usage:
#   store = LocalStore(directory=".sparkery_store", defaults=DEFAULT_SEEDS)
#   storage = await store.load(DISPATCH_STORAGE_KEY)
#   ok = await store.save(DISPATCH_STORAGE_KEY, storage)
# =============================================================================

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Callable

logger = logging.getLogger(__name__)

SeedFactory = Callable[[], Any]

_SAFE_KEY = re.compile(r"[^A-Za-z0-9._-]+")


class LocalStore:
    """
    File-backed JSON document store with default seeds.

    Example:
        store = LocalStore("/tmp/store", defaults={"jobs": list})
        await store.load("jobs")          # [] (seed written back)
        await store.save("jobs", [{"id": "job-1"}])
    """

    def __init__(
        self,
        directory: str | os.PathLike[str],
        defaults: dict[str, SeedFactory] | None = None,
        max_bytes: int | None = None,
    ):
        self.directory = Path(directory)
        self.defaults: dict[str, SeedFactory] = dict(defaults or {})
        self.max_bytes = max_bytes

    # -------------------------------------------------------------------------
    # Paths and seeds
    # -------------------------------------------------------------------------

    def path_for(self, key: str) -> Path:
        """Document path for a key. Keys are sanitized into file names."""
        safe = _SAFE_KEY.sub("_", key).strip("._") or "collection"
        return self.directory / f"{safe}.json"

    def seed(self, key: str) -> Any:
        """Fresh default value for a key (None for unregistered keys)."""
        factory = self.defaults.get(key)
        return copy.deepcopy(factory()) if factory else None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def load(self, key: str) -> Any:
        """
        Load the document stored under key.

        Returns:
            The decoded JSON value, or the default seed when the document is
            absent or corrupt.
        """
        path = self.path_for(key)
        try:
            raw = await asyncio.to_thread(self._read, path)
        except OSError as e:
            # The document may still be intact; serve the seed without overwriting it
            logger.warning(f"Local store read failed for {key}: {e}")
            return self.seed(key)

        if raw is None:
            initial = self.seed(key)
            await self.save(key, initial)
            return initial

        try:
            return json.loads(raw)
        except ValueError:
            # Includes UnicodeDecodeError for documents that are not UTF-8
            logger.warning(f"Local store document for {key} is corrupt, resetting to seed")
            initial = self.seed(key)
            await self.save(key, initial)
            return initial

    async def save(self, key: str, value: Any) -> bool:
        """
        Persist value under key.

        Returns:
            True when the document was written, False when local persistence
            is unavailable (serialization error, quota, I/O error).
        """
        try:
            payload = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logger.error(f"Local store cannot serialize {key}: {e}")
            return False

        data = payload.encode("utf-8")
        if self.max_bytes is not None and len(data) > self.max_bytes:
            logger.error(
                f"Local store quota exceeded for {key}: {len(data)} bytes > {self.max_bytes}"
            )
            return False

        try:
            await asyncio.to_thread(self._write_atomic, self.path_for(key), data)
        except OSError as e:
            logger.error(f"Local store write failed for {key}: {e}")
            return False

        logger.debug(f"Saved local collection {key} ({len(data)} bytes)")
        return True

    async def remove(self, key: str) -> bool:
        """Delete the document for key. Missing documents count as removed."""
        try:
            await asyncio.to_thread(self.path_for(key).unlink, True)
        except OSError as e:
            logger.error(f"Local store delete failed for {key}: {e}")
            return False
        return True

    # -------------------------------------------------------------------------
    # Blocking helpers (run in a worker thread)
    # -------------------------------------------------------------------------

    @staticmethod
    def _read(path: Path) -> bytes | None:
        if not path.exists():
            return None
        return path.read_bytes()

    @staticmethod
    def _write_atomic(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise
