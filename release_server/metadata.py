"""JSON records layered on the storage backend.

All structured state lives in JSON blobs at fixed keys; there is no database.
Read-modify-write helpers hold a per-key lock, which serialises writers in
this process only. Separate processes sharing a bucket can still lose updates
(last write wins).
"""
from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable
from typing import Any, TypeVar

from release_server.models import Release, ServerMeta
from release_server.storage import StorageBackend

logger = logging.getLogger(__name__)

RELEASES_KEY = "meta/releases.json"
STATS_KEY = "meta/stats.json"
AUDIT_KEY = "meta/audit.json"
SERVER_KEY = "meta/server.json"

T = TypeVar("T")

_KEY_LOCKS: dict[str, threading.Lock] = {}
_KEY_LOCKS_GUARD = threading.Lock()


def artifact_key(version: str, platform: str) -> str:
    return f"releases/{version}/{platform}.tar.gz"


def manifest_key(version: str) -> str:
    return f"releases/{version}/manifest.json"


def put_json(storage: StorageBackend, key: str, value: Any) -> None:
    storage.put(key, json.dumps(value, indent=2).encode("utf-8"), {"content-type": "application/json"})


def get_json(storage: StorageBackend, key: str) -> Any | None:
    raw = storage.get(key)
    if raw is None:
        return None
    return json.loads(raw.decode("utf-8"))


def _lock_for(key: str) -> threading.Lock:
    with _KEY_LOCKS_GUARD:
        lock = _KEY_LOCKS.get(key)
        if lock is None:
            lock = _KEY_LOCKS[key] = threading.Lock()
        return lock


def update_json(storage: StorageBackend, key: str, mutate: Callable[[Any], T], default: Callable[[], Any]) -> T:
    """Load ``key`` (or ``default()``), apply ``mutate`` and write the result back.

    ``mutate`` changes the decoded value in place or returns a replacement;
    a return value of None keeps the mutated original.
    """
    with _lock_for(key):
        current = get_json(storage, key)
        if current is None:
            current = default()
        result = mutate(current)
        put_json(storage, key, current if result is None else result)
        return result


# ---------------------------------------------------------------------------
# Release index
# ---------------------------------------------------------------------------


def load_index(storage: StorageBackend) -> dict[str, Release] | None:
    """Return the release index, or None when it has never been written."""
    raw = get_json(storage, RELEASES_KEY)
    if raw is None:
        return None
    return {version: Release.from_dict(entry) for version, entry in raw.items()}


def update_index(storage: StorageBackend, mutate: Callable[[dict[str, Release]], None]) -> dict[str, Release]:
    """Read-modify-write the index; ``mutate`` edits the release map in place."""

    def _apply(raw: dict[str, Any]) -> dict[str, Any]:
        index = {version: Release.from_dict(entry) for version, entry in raw.items()}
        mutate(index)
        return {release.version: release.to_dict() for release in index.values()}

    with _lock_for(RELEASES_KEY):
        raw = get_json(storage, RELEASES_KEY) or {}
        updated = _apply(raw)
        put_json(storage, RELEASES_KEY, updated)
    return {version: Release.from_dict(entry) for version, entry in updated.items()}


# ---------------------------------------------------------------------------
# Server metadata
# ---------------------------------------------------------------------------


def load_server_meta(storage: StorageBackend) -> ServerMeta | None:
    raw = get_json(storage, SERVER_KEY)
    if raw is None:
        return None
    return ServerMeta.from_dict(raw)


def update_server_meta(storage: StorageBackend, mutate: Callable[[ServerMeta], None]) -> ServerMeta:
    with _lock_for(SERVER_KEY):
        meta = load_server_meta(storage) or ServerMeta()
        mutate(meta)
        put_json(storage, SERVER_KEY, meta.to_dict())
    return meta
