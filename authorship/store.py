"""
Claim stores — persistence for registry snapshots.

Storage layout (JsonClaimStore):
    ~/.authorship/registry.json   — claims, claim count, and event log
    ~/.authorship/registry.lock   — exclusive flock held by the current writer

A snapshot is written as a whole with an atomic write (temp file +
os.replace), so a claim and its event land together or not at all.
MemoryClaimStore keeps the snapshot in memory for tests and embedding.

Writers hold lock() across reload, check, and save, so registries in
different threads or processes sharing one store never overwrite each
other's claims.
"""

from __future__ import annotations

import copy
import fcntl
import json
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from authorship import DEFAULT_HOME

SNAPSHOT_VERSION = 1


class ClaimStoreError(Exception):
    """Persisted registry state is unreadable, inconsistent, or cannot be written."""


def empty_snapshot() -> dict[str, Any]:
    return {
        "version": SNAPSHOT_VERSION,
        "claim_count": 0,
        "claims": {},
        "events": [],
    }


def _check_snapshot(data: Any) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ClaimStoreError("Registry snapshot must be a JSON object")
    if data.get("version") != SNAPSHOT_VERSION:
        raise ClaimStoreError(
            f"Unsupported registry snapshot version: {data.get('version')!r}"
        )
    if not isinstance(data.get("claims"), dict) or not isinstance(data.get("events"), list):
        raise ClaimStoreError("Registry snapshot is missing 'claims' or 'events'")
    if not isinstance(data.get("claim_count"), int):
        raise ClaimStoreError("Registry snapshot is missing 'claim_count'")
    return data


class MemoryClaimStore:
    """Keeps the last saved snapshot in memory."""

    def __init__(self) -> None:
        self._snapshot = empty_snapshot()
        self._write_lock = threading.Lock()

    def lock(self) -> threading.Lock:
        """Exclusive writer lock, shared by every registry on this store."""
        return self._write_lock

    def load(self) -> dict[str, Any]:
        return copy.deepcopy(self._snapshot)

    def save(self, snapshot: dict[str, Any]) -> None:
        self._snapshot = copy.deepcopy(_check_snapshot(snapshot))


class JsonClaimStore:
    """File-backed registry snapshot.

    Usage:
        store = JsonClaimStore()           # ~/.authorship/registry.json
        registry = ClaimRegistry(store)
    """

    def __init__(self, root: str | Path | None = None) -> None:
        self.root = Path(root) if root else DEFAULT_HOME
        self.path = self.root / "registry.json"
        self.lock_path = self.root / "registry.lock"

    @contextmanager
    def lock(self) -> Iterator[None]:
        """Hold an exclusive flock on registry.lock for the duration.

        Blocks until any other writer, in this process or another, is done.
        """
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd = os.open(str(self.lock_path), os.O_RDWR | os.O_CREAT, 0o644)
        except OSError as e:
            raise ClaimStoreError(f"Cannot lock registry at {self.lock_path}: {e}") from e
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
            yield
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)

    def load(self) -> dict[str, Any]:
        """Read the snapshot. A missing file is an empty registry.

        Raises ClaimStoreError if the file exists but cannot be used; an
        unreadable registry is never treated as empty.
        """
        if not self.path.is_file():
            return empty_snapshot()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            raise ClaimStoreError(f"Cannot read registry at {self.path}: {e}") from e
        return _check_snapshot(data)

    def save(self, snapshot: dict[str, Any]) -> None:
        """Atomically replace the snapshot on disk."""
        _check_snapshot(snapshot)
        content = json.dumps(snapshot, indent=2, sort_keys=True)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self.root), suffix=".tmp", prefix=".registry_"
            )
        except OSError as e:
            raise ClaimStoreError(f"Cannot write registry at {self.path}: {e}") from e
        try:
            os.write(fd, content.encode("utf-8"))
            os.fsync(fd)
            os.close(fd)
            os.replace(tmp_path, str(self.path))
        except OSError as e:
            try:
                os.close(fd)
            except OSError:
                pass
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise ClaimStoreError(f"Cannot write registry at {self.path}: {e}") from e
