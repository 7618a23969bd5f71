"""Persistence helpers for Grimoire's JSON documents.

Documents are rewritten with an atomic rename while an advisory ``flock`` is
held on a sibling lock file, so concurrent invocations on one machine are
serialized instead of clobbering each other.

Example:
    >>> from grimoire.config import utc_now
    >>> utc_now().endswith("Z")
    True
"""

from __future__ import annotations

import datetime as dt
import fcntl
import json
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Iterator, TextIO

from pydantic import BaseModel

from . import paths

_LOCAL_LOCK_GUARD = threading.Lock()
_LOCAL_LOCKS: dict[str, threading.RLock] = {}
_LOCK_DEPTH: dict[tuple[int, str], int] = {}
_LOCK_HANDLES: dict[tuple[int, str], TextIO] = {}


def utc_now() -> str:
    """Return the current UTC timestamp in ISO-8601 format.

    Returns:
        UTC timestamp like ``2026-01-18T12:34:56Z``.

    Example:
        >>> timestamp = utc_now()
        >>> timestamp.endswith("Z")
        True
    """
    now = dt.datetime.now(tz=dt.timezone.utc).replace(microsecond=0)
    return now.isoformat().replace("+00:00", "Z")


def parse_timestamp(value: str) -> dt.datetime:
    """Parse a timestamp written by ``utc_now``.

    Example:
        >>> parse_timestamp("2026-01-18T12:34:56Z").year
        2026
    """
    return dt.datetime.fromisoformat(value.replace("Z", "+00:00"))


def load_json(path: Path) -> dict | None:
    """Load a JSON file if it exists.

    Args:
        path: Path to the JSON file.

    Returns:
        Parsed payload as a dict, or ``None`` if the file does not exist.

    Raises:
        json.JSONDecodeError: The file exists but is not valid JSON.

    Example:
        >>> load_json(Path("missing.json")) is None
        True
    """
    if not path.exists():
        return None
    return json.loads(path.read_text(encoding="utf-8"))


def write_text_atomic(path: Path, content: str, *, encoding: str = "utf-8") -> None:
    """Atomically replace a text file with new content."""
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path: Path | None = None
    try:
        with NamedTemporaryFile(
            "w",
            encoding=encoding,
            delete=False,
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
        ) as handle:
            handle.write(content)
            temp_path = Path(handle.name)
        os.replace(temp_path, path)
    finally:
        if temp_path is not None and temp_path.exists():
            temp_path.unlink(missing_ok=True)


def write_json(path: Path, payload: dict | BaseModel) -> None:
    """Atomically write a JSON payload to disk.

    Args:
        path: Path to the JSON file to write.
        payload: Dict or Pydantic model to serialize. Models are dumped with
            their on-disk aliases and without unset optional fields.
    """
    if isinstance(payload, BaseModel):
        data = payload.model_dump(mode="json", by_alias=True, exclude_none=True)
    else:
        data = payload
    write_text_atomic(path, json.dumps(data, indent=2) + "\n")


def _local_lock(key: str) -> threading.RLock:
    with _LOCAL_LOCK_GUARD:
        lock = _LOCAL_LOCKS.get(key)
        if lock is None:
            lock = threading.RLock()
            _LOCAL_LOCKS[key] = lock
        return lock


@contextmanager
def document_lock(document: Path) -> Iterator[None]:
    """Hold the exclusive advisory lock for a JSON document.

    Re-entrant within a thread; other threads and processes block until the
    outermost holder exits.
    """
    lock_path = paths.state_lock_path(document)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    key = str(lock_path.resolve())
    local_lock = _local_lock(key)
    state_key = (threading.get_ident(), key)

    local_lock.acquire()
    handle = None
    try:
        with _LOCAL_LOCK_GUARD:
            depth = _LOCK_DEPTH.get(state_key, 0)
            _LOCK_DEPTH[state_key] = depth + 1
            if depth == 0:
                handle = lock_path.open("a+", encoding="utf-8")
        if handle is not None:
            try:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            except OSError:
                handle.close()
                with _LOCAL_LOCK_GUARD:
                    _LOCK_DEPTH.pop(state_key, None)
                raise
            with _LOCAL_LOCK_GUARD:
                _LOCK_HANDLES[state_key] = handle
        yield
    finally:
        release_handle = None
        with _LOCAL_LOCK_GUARD:
            depth = _LOCK_DEPTH.get(state_key, 0)
            if depth <= 1:
                _LOCK_DEPTH.pop(state_key, None)
                release_handle = _LOCK_HANDLES.pop(state_key, None)
            else:
                _LOCK_DEPTH[state_key] = depth - 1
        if release_handle is not None:
            try:
                fcntl.flock(release_handle.fileno(), fcntl.LOCK_UN)
            except OSError:
                pass
            release_handle.close()
        local_lock.release()
