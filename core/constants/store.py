"""
Constant Store

Process-wide, versioned store of ProtocolConstants.

- One JSON file per script version in the cache directory; each write
  goes to a temporary file in the same directory and is renamed over
  the old file, so a reader never sees a torn entry.
- In-memory snapshots are frozen models shared by all sessions.
- Concurrent callers that miss on the same version share one in-flight
  extraction task (single-flight). Cancelling one caller never cancels
  the shared task.
"""
from __future__ import annotations

import asyncio
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from core.schemas.constants import ConstantsCacheEntry, ProtocolConstants, ScriptVersion
from core.schemas.errors import CacheError, DeobfuscationFailed, InvalidResponse, NetworkError
from core.schemas.versioning import is_compatible_cache_format

from .extractor import ConstantExtractor


logger = logging.getLogger(__name__)

# Extraction attempts per version before DeobfuscationFailed surfaces.
EXTRACTION_ATTEMPTS = 2

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def entry_filename(version: str) -> str:
    return f"{_UNSAFE_CHARS.sub('_', version)}.json"


class ConstantStore:
    """
    Usage:
        store = ConstantStore(extractor, cache_dir="~/.cache/geeked")
        constants = await store.get_current()
        ...
        store.invalidate(constants.version)
    """

    def __init__(
        self,
        extractor: ConstantExtractor,
        cache_dir: str | Path,
        *,
        use_stale_on_probe_failure: bool = False,
    ) -> None:
        self.extractor = extractor
        self.cache_dir = Path(cache_dir).expanduser()
        self.use_stale_on_probe_failure = use_stale_on_probe_failure
        self._memory: dict[str, ProtocolConstants] = {}
        self._inflight: dict[str, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_current(self, extractor: Optional[ConstantExtractor] = None) -> ProtocolConstants:
        """
        Constants for the live script release.

        Probes the live version, serves a valid cached entry for it, and
        otherwise runs (or joins) the extraction for that version.

        ``extractor`` overrides the store's own for this call, so callers
        with their own HTTP clients can share one store.

        Raises:
            NetworkError: Probe or script fetch failed.
            DeobfuscationFailed: The script could not be decoded.
        """
        extractor = extractor or self.extractor
        try:
            probe = await extractor.probe_version()
        except (NetworkError, InvalidResponse) as e:
            if self.use_stale_on_probe_failure:
                stale = self.peek()
                if stale is not None:
                    logger.warning(
                        f"Version probe failed, using cached constants {stale.version}: {e}"
                    )
                    return stale
            raise

        cached = self._lookup(probe.version)
        if cached is not None:
            logger.debug(f"Using cached constants (version: {probe.version})")
            return cached

        return await self._extract(probe, extractor)

    def invalidate(self, version: str) -> None:
        """
        Mark a version unusable; the next get_current() re-extracts it.

        The entry is rewritten with ``invalidated`` set rather than deleted.
        """
        self._memory.pop(version, None)
        entry = self._read_entry(version)
        if entry is None or entry.invalidated:
            return
        self._write_entry(entry.model_copy(update={"invalidated": True}))
        logger.info(f"Invalidated constants for version {version}")

    async def refresh(self, extractor: Optional[ConstantExtractor] = None) -> ProtocolConstants:
        """Force re-extraction of the live release."""
        extractor = extractor or self.extractor
        probe = await extractor.probe_version()
        self.invalidate(probe.version)
        return await self._extract(probe, extractor)

    def peek(self) -> Optional[ProtocolConstants]:
        """Newest valid cached constants, without touching the network."""
        valid = [e for e in self.entries() if e.is_valid]
        if not valid:
            return None
        newest = max(valid, key=lambda e: e.extracted_at)
        return self._memory.setdefault(newest.version, newest.constants)

    def entries(self) -> list[ConstantsCacheEntry]:
        """All readable cache entries, oldest first."""
        if not self.cache_dir.is_dir():
            return []
        result = []
        for path in sorted(self.cache_dir.glob("*.json")):
            entry = self._load_path(path)
            if entry is not None:
                result.append(entry)
        result.sort(key=lambda e: e.extracted_at)
        return result

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def _lookup(self, version: str) -> Optional[ProtocolConstants]:
        constants = self._memory.get(version)
        if constants is not None:
            return constants
        entry = self._read_entry(version)
        if entry is None or not entry.is_valid:
            return None
        self._memory[version] = entry.constants
        return entry.constants

    def _path_for(self, version: str) -> Path:
        return self.cache_dir / entry_filename(version)

    def _read_entry(self, version: str) -> Optional[ConstantsCacheEntry]:
        path = self._path_for(version)
        if not path.exists():
            return None
        entry = self._load_path(path)
        if entry is not None and entry.version != version:
            logger.warning(f"Cache entry {path} holds version {entry.version}, expected {version}")
            return None
        return entry

    def _load_path(self, path: Path) -> Optional[ConstantsCacheEntry]:
        """Parse one entry file. Corrupt or unknown-format entries read as misses."""
        try:
            raw = path.read_text(encoding="utf-8")
            entry = ConstantsCacheEntry.model_validate_json(raw)
        except (OSError, ValidationError, ValueError) as e:
            logger.warning(f"Ignoring unreadable cache entry {path}: {e}")
            return None
        if not is_compatible_cache_format(entry.format_version):
            logger.warning(
                f"Ignoring cache entry {path}: format version {entry.format_version}"
            )
            return None
        return entry

    # ------------------------------------------------------------------
    # Extraction (single-flight)
    # ------------------------------------------------------------------

    async def _extract(self, probe: ScriptVersion, extractor: ConstantExtractor) -> ProtocolConstants:
        task = self._inflight.get(probe.version)
        if task is not None and task.get_loop() is not asyncio.get_running_loop():
            # Left over from a loop that has since closed.
            task = None
        if task is None:
            task = asyncio.ensure_future(self._run_extraction(probe, extractor))
            self._inflight[probe.version] = task
            task.add_done_callback(lambda t, v=probe.version: self._extraction_done(v, t))
        else:
            logger.debug(f"Joining in-flight extraction for {probe.version}")
        return await asyncio.shield(task)

    def _extraction_done(self, version: str, task: asyncio.Task) -> None:
        if self._inflight.get(version) is task:
            del self._inflight[version]
        if not task.cancelled():
            # Retrieve so an unawaited failure is not reported as never retrieved.
            task.exception()

    async def _run_extraction(self, probe: ScriptVersion, extractor: ConstantExtractor) -> ProtocolConstants:
        last_error: Optional[DeobfuscationFailed] = None
        for attempt in range(1, EXTRACTION_ATTEMPTS + 1):
            try:
                constants = await extractor.fetch_and_decode(probe=probe)
                break
            except DeobfuscationFailed as e:
                last_error = e
                logger.warning(
                    f"Extraction of {probe.version} failed "
                    f"(attempt {attempt}/{EXTRACTION_ATTEMPTS}): {e.message}"
                )
        else:
            assert last_error is not None
            raise last_error

        self._write_entry(ConstantsCacheEntry(version=probe.version, constants=constants))
        self._memory[probe.version] = constants
        logger.info(f"Extracted constants for version {probe.version}")
        return constants

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _write_entry(self, entry: ConstantsCacheEntry) -> None:
        """Atomically replace the entry file for ``entry.version``."""
        path = self._path_for(entry.version)
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.cache_dir, prefix=f".{path.stem}.", suffix=".tmp"
            )
        except OSError as e:
            raise CacheError(f"Cannot create cache directory: {e}", path=str(self.cache_dir)) from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(entry.model_dump_json(indent=2))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except OSError as e:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise CacheError(f"Cannot write cache entry: {e}", path=str(path)) from e
        logger.debug(f"Saved constants to cache: {path}")


class BoundStore:
    """
    A shared ConstantStore seen through one caller's extractor.

    Lookups, single-flight extraction and invalidation go to the shared
    store; network calls go through this caller's HTTP client.
    """

    def __init__(self, store: ConstantStore, extractor: ConstantExtractor) -> None:
        self.store = store
        self.extractor = extractor

    async def get_current(self) -> ProtocolConstants:
        return await self.store.get_current(self.extractor)

    async def refresh(self) -> ProtocolConstants:
        return await self.store.refresh(self.extractor)

    def invalidate(self, version: str) -> None:
        self.store.invalidate(version)

    def peek(self) -> Optional[ProtocolConstants]:
        return self.store.peek()
