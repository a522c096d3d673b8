"""
streakbot.database.store — JSON Documents with Serialized, Atomic Writes
=========================================================================

**Why this file exists:**
Every guild's data lives in plain JSON files, and those files are read and
written from many places at once: the ``on_message`` pipeline, admin edits,
and the scheduled batch jobs.  There is no database engine to serialize
those writers for us, so :class:`DocumentStore` does it:

    1. Saves to one path run **one at a time, in submission order** — an
       ``asyncio.Lock`` per path (its waiters are FIFO).
    2. A load that arrives while saves to the same path are queued waits on
       a per-path "idle" ``asyncio.Event`` until they finish.
    3. Every write goes to a temp file in the same directory, is fsync'd and
       then ``os.replace``'d over the target.  A reader never sees half a
       file.
    4. File I/O runs on a worker thread via :func:`asyncio.to_thread` so the
       bot's event loop is never blocked.

Loads are forgiving.  A missing file becomes an empty document (persisted
immediately); a file that does not parse is salvaged by
:func:`repair_json_structure`; every top-level entry is round-tripped
through strict JSON and dropped if it fails.  Saves are strict: write
errors propagate to the caller.

Usage::

    store = DocumentStore()
    users = await store.load(path)
    users["123"] = {...}
    await store.save(path, users)
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from streakbot.errors import CorruptData, DocumentNotFound, InvalidState

logger = logging.getLogger(__name__)

Document = dict[str, Any]


# ---------------------------------------------------------------------------
# Pure helpers (no I/O)
# ---------------------------------------------------------------------------
def sanitize_document(document: Document, *, source: str = "<memory>") -> Document:
    """Return a copy of *document* keeping only entries that are strict JSON.

    Each top-level entry is checked on its own, so one bad value (a NaN, a
    set, a circular reference) costs that entry and nothing else.
    """
    clean: Document = {}
    for key, value in document.items():
        try:
            clean[str(key)] = json.loads(json.dumps(value, allow_nan=False))
        except (TypeError, ValueError) as exc:
            logger.warning("Dropping invalid entry %r from %s: %s", key, source, exc)
    return clean


def _salvage_truncated_object(text: str, start: int) -> Document:
    """Collect the complete ``"key": value`` pairs of an object cut short.

    *start* points at the opening ``{``.  Stops at the first pair that does
    not parse.
    """
    decoder = json.JSONDecoder()
    salvaged: Document = {}
    pos = start + 1
    length = len(text)

    while pos < length:
        while pos < length and text[pos] in " \t\r\n,":
            pos += 1
        if pos >= length or text[pos] != '"':
            break
        try:
            key, pos = decoder.raw_decode(text, pos)
        except ValueError:
            break
        while pos < length and text[pos] in " \t\r\n":
            pos += 1
        if pos >= length or text[pos] != ":":
            break
        pos += 1
        while pos < length and text[pos] in " \t\r\n":
            pos += 1
        try:
            value, pos = decoder.raw_decode(text, pos)
        except ValueError:
            break
        salvaged[key] = value

    return salvaged


def repair_json_structure(raw: str) -> Document:
    """Best-effort recovery of a damaged JSON object document.

    Scans *raw* for syntactically complete top-level objects and merges
    them.  When an object is truncated, its complete entries are kept and
    the remainder of the text is discarded.  Valid JSON comes back
    unchanged.
    """
    try:
        parsed = json.loads(raw)
    except ValueError:
        pass
    else:
        return parsed if isinstance(parsed, dict) else {}

    decoder = json.JSONDecoder()
    repaired: Document = {}
    pos = 0
    length = len(raw)

    while pos < length:
        start = raw.find("{", pos)
        if start == -1:
            break
        try:
            fragment, end = decoder.raw_decode(raw, start)
        except ValueError:
            salvaged = _salvage_truncated_object(raw, start)
            if salvaged:
                repaired.update(salvaged)
            logger.warning(
                "Discarding %d unparsable characters after offset %d",
                length - start, start,
            )
            break
        if isinstance(fragment, dict):
            repaired.update(fragment)
        pos = end

    return repaired


# ---------------------------------------------------------------------------
# Blocking I/O (run on a worker thread)
# ---------------------------------------------------------------------------
def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise DocumentNotFound(str(path)) from exc


def _atomic_write_json(path: Path, document: Document) -> None:
    """Write *document* to *path* via temp file + fsync + rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".json.tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(document, fh, indent=2, ensure_ascii=False)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def _decode(raw: str, path: Path) -> Document:
    try:
        parsed = json.loads(raw)
    except ValueError as exc:
        raise CorruptData(f"{path}: {exc}") from exc
    if not isinstance(parsed, dict):
        raise CorruptData(f"{path}: top-level value is {type(parsed).__name__}, not an object")
    return parsed


# ---------------------------------------------------------------------------
# DocumentStore
# ---------------------------------------------------------------------------
class DocumentStore:
    """Async load/save of JSON object documents, serialized per path."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._idle: dict[str, asyncio.Event] = {}
        self._pending: dict[str, int] = {}

    @staticmethod
    def _key(path: str | Path) -> str:
        return os.path.abspath(path)

    def _lock_for(self, key: str) -> asyncio.Lock:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
            idle = asyncio.Event()
            idle.set()
            self._idle[key] = idle
            self._pending[key] = 0
        return self._locks[key]

    # -------------------------------------------------------------------
    # Load
    # -------------------------------------------------------------------
    async def load(self, path: str | Path) -> Document:
        """Return the document at *path*, creating or repairing as needed."""
        path = Path(path)
        key = self._key(path)
        self._lock_for(key)
        await self._idle[key].wait()

        try:
            raw = await asyncio.to_thread(_read_text, path)
        except DocumentNotFound:
            logger.warning("File not found: %s, initializing an empty document", path)
            document: Document = {}
            await self.save(path, document, allow_empty=True)
            return document

        try:
            document = _decode(raw, path)
        except CorruptData as exc:
            logger.warning("Failed to parse %s (%s); attempting repair", path, exc)
            document = repair_json_structure(raw)
            logger.warning("Recovered %d top-level entries from %s", len(document), path)

        return sanitize_document(document, source=str(path))

    # -------------------------------------------------------------------
    # Save
    # -------------------------------------------------------------------
    async def save(
        self,
        path: str | Path,
        document: Document,
        *,
        allow_empty: bool = False,
    ) -> bool:
        """Atomically replace *path* with *document*.

        Returns ``False`` (nothing written) for an empty document unless
        *allow_empty* is set.  Write errors propagate.
        """
        path = Path(path)
        clean = sanitize_document(document, source=str(path))
        if not clean and not allow_empty:
            logger.warning("%s", InvalidState(f"Empty or incomplete document, skipping save for {path}"))
            return False

        key = self._key(path)
        lock = self._lock_for(key)
        self._pending[key] += 1
        self._idle[key].clear()
        try:
            async with lock:
                await asyncio.to_thread(_atomic_write_json, path, clean)
                logger.debug("Saved %d entries to %s", len(clean), path)
        finally:
            self._pending[key] -= 1
            if self._pending[key] == 0:
                self._idle[key].set()
        return True

    # -------------------------------------------------------------------
    # Lifecycle helpers
    # -------------------------------------------------------------------
    async def exists(self, path: str | Path) -> bool:
        return await asyncio.to_thread(Path(path).exists)

    async def delete(self, path: str | Path) -> bool:
        """Remove the file at *path*.  Returns False if it was already gone."""
        path = Path(path)
        key = self._key(path)
        lock = self._lock_for(key)
        async with lock:
            try:
                await asyncio.to_thread(path.unlink)
            except FileNotFoundError:
                return False
        logger.info("Deleted %s", path)
        return True
