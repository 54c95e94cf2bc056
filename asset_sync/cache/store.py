from __future__ import annotations

import hashlib
import json
import logging
import os
import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from ..models.config_models import TableRole
from ..models.snapshot import SyncSnapshot

"""Durable key/value persistence for the last committed snapshot.

The cache holds four JSON entries (products, repairsData, maintenanceData,
specsData) plus a manifest holding a digest of each. They are written only
after a fully successful sync and read at cold start or when a refresh fails.
A snapshot is restored only when all four entries match the manifest.

Reads are forgiving: a missing or unreadable entry is simply absent. Writes
raise CacheStoreError and the caller decides whether that matters (the
coordinator logs and ignores it).
"""

__all__ = [
    "CacheMiss",
    "CacheStore",
    "CacheStoreError",
    "FileCacheStore",
    "MANIFEST_KEY",
    "MemoryCacheStore",
    "build_manifest",
    "load_snapshot",
    "save_snapshot",
]

logger = logging.getLogger(__name__)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")
MANIFEST_KEY = "snapshot_manifest"


class CacheStoreError(Exception):
    """Raised when a cache write fails."""


class CacheMiss(Exception):
    """Raised when a snapshot is requested but none (or only part of one) is persisted."""


def _check_key(key: str) -> str:
    if not _KEY_PATTERN.match(key):
        raise ValueError(f"invalid cache key: {key!r} (alphanumeric and underscores only)")
    return key


class CacheStore(ABC):
    @abstractmethod
    def save(self, key: str, value: Any) -> None:
        """Persist a JSON-serializable value under key."""

    @abstractmethod
    def load(self, key: str) -> Any | None:
        """Return the value stored under key, or None when absent."""

    def save_many(self, entries: Mapping[str, Any]) -> None:
        for key, value in entries.items():
            self.save(key, value)


class MemoryCacheStore(CacheStore):
    """Process-local store. Values are kept as JSON text so loads never alias saved objects."""

    def __init__(self) -> None:
        self._entries: dict[str, str] = {}

    def save(self, key: str, value: Any) -> None:
        _check_key(key)
        try:
            self._entries[key] = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise CacheStoreError(f"cannot serialize '{key}': {e}") from e

    def save_many(self, entries: Mapping[str, Any]) -> None:
        staged: dict[str, str] = {}
        for key, value in entries.items():
            _check_key(key)
            try:
                staged[key] = json.dumps(value, ensure_ascii=False)
            except (TypeError, ValueError) as e:
                raise CacheStoreError(f"cannot serialize '{key}': {e}") from e
        # nothing is stored unless every entry serialized
        self._entries.update(staged)

    def load(self, key: str) -> Any | None:
        raw = self._entries.get(key)
        return None if raw is None else json.loads(raw)

    def __contains__(self, key: object) -> bool:
        return key in self._entries


class FileCacheStore(CacheStore):
    """One `<key>.json` file per entry under a directory."""

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        return self.directory / f"{_check_key(key)}.json"

    def save(self, key: str, value: Any) -> None:
        path = self.path_for(key)
        tmp = path.with_name(path.name + ".tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(value, ensure_ascii=False), encoding="utf-8")
            # atomic on the same filesystem: readers see old or new, never partial
            os.replace(tmp, path)
        except (OSError, TypeError, ValueError) as e:
            raise CacheStoreError(f"failed writing {path}: {e}") from e

    def load(self, key: str) -> Any | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"cache entry '{key}' unreadable, treating as absent: {e}")
            return None


def _digest(value: Any) -> str:
    text = json.dumps(value, ensure_ascii=False, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def build_manifest(payloads: Mapping[str, Any]) -> dict[str, Any]:
    """Manifest entry tying the payloads of one snapshot together (key -> sha256)."""
    return {"entries": {key: _digest(value) for key, value in payloads.items()}}


def _check_manifest_key(keys: Mapping[TableRole, str]) -> None:
    if MANIFEST_KEY in keys.values():
        raise ValueError(f"cache key '{MANIFEST_KEY}' is reserved")


def save_snapshot(store: CacheStore, snapshot: SyncSnapshot, keys: Mapping[TableRole, str]) -> None:
    """Persist the four collections of a snapshot, then its manifest.

    The manifest goes last: if any earlier write fails, the stored manifest no
    longer matches the entries and load_snapshot reports a miss instead of a
    snapshot mixing two generations.

    Raises:
        CacheStoreError: if the backend write fails
    """
    _check_manifest_key(keys)
    payloads = snapshot.to_payloads(keys)
    entries = dict(payloads)
    entries[MANIFEST_KEY] = build_manifest(payloads)
    store.save_many(entries)


def load_snapshot(store: CacheStore, keys: Mapping[TableRole, str]) -> SyncSnapshot:
    """Restore a snapshot persisted by save_snapshot.

    Raises:
        CacheMiss: if any of the four entries or the manifest is absent, if the
            entries do not belong to the same save, or if an entry is malformed
    """
    _check_manifest_key(keys)
    payloads: dict[str, Any] = {}
    missing: list[str] = []
    for role in TableRole:
        key = keys[role]
        value = store.load(key)
        if value is None:
            missing.append(key)
        else:
            payloads[key] = value
    if missing:
        raise CacheMiss(f"no cached entries for: {', '.join(missing)}")

    manifest = store.load(MANIFEST_KEY)
    if not isinstance(manifest, Mapping) or not isinstance(manifest.get("entries"), Mapping):
        raise CacheMiss("no snapshot manifest")
    expected = manifest["entries"]
    stale = [key for key, value in payloads.items() if expected.get(key) != _digest(value)]
    if stale:
        raise CacheMiss(f"cached entries out of step with manifest: {', '.join(stale)}")

    try:
        return SyncSnapshot.from_payloads(payloads, keys)
    except (KeyError, TypeError, ValueError) as e:
        raise CacheMiss(f"cached snapshot malformed: {e}") from e
