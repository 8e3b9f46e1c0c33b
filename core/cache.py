"""Result cache keyed by file identity.

Processed results are stored as a JSON envelope ``{"timestamp", "results"}``
in an injected key-value store. Entries expire after a fixed age, checked
lazily on lookup. Storage trouble never reaches the caller: a failed read is
a miss and a failed write is dropped.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import BinaryIO, Callable, Dict, Optional, Protocol

from core.models import AnalysisResult

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "csv_analysis_"
HASH_BLOCK_SIZE = 1024 * 1024


def content_digest(stream: BinaryIO, *, block_size: int = HASH_BLOCK_SIZE) -> str:
    digest = hashlib.blake2b(digest_size=8)
    for block in iter(lambda: stream.read(block_size), b""):
        digest.update(block)
    return digest.hexdigest()


def file_identity(name: str, size: int, stream: BinaryIO) -> str:
    """Deterministic identity from file name, byte size and content.

    The stream is read from its current position to the end and rewound
    afterwards when it supports seeking.
    """
    start = stream.tell() if stream.seekable() else None
    digest = content_digest(stream)
    if start is not None:
        stream.seek(start)
    return f"{name}_{size}_{digest}"


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def put(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryStore:
    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __len__(self) -> int:
        return len(self._data)


class FileStore:
    """One JSON file per key under ``root``."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9._-]", "_", key)
        return self.root / f"{safe}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def put(self, key: str, value: str) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(value, encoding="utf-8")
        os.replace(tmp, path)

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResultCache:
    def __init__(
        self,
        store: KeyValueStore,
        *,
        ttl: timedelta = timedelta(days=7),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.ttl = ttl
        self.clock = clock

    @staticmethod
    def key_for(identity: str) -> str:
        return CACHE_KEY_PREFIX + identity

    def get(self, identity: str) -> Optional[AnalysisResult]:
        key = self.key_for(identity)
        try:
            raw = self.store.get(key)
            if raw is None:
                return None
            envelope = json.loads(raw)
            stamped = datetime.fromisoformat(envelope["timestamp"])
            if stamped.tzinfo is None:
                stamped = stamped.replace(tzinfo=timezone.utc)
            if stamped < self.clock() - self.ttl:
                logger.info("Cache entry for %s expired; evicting", identity)
                self.store.delete(key)
                return None
            return AnalysisResult.from_dict(envelope["results"])
        except Exception as exc:
            logger.warning("Cache read failed for %s: %s", identity, exc)
            return None

    def put(self, identity: str, result: AnalysisResult) -> None:
        try:
            envelope = {"timestamp": self.clock().isoformat(), "results": result.to_dict()}
            self.store.put(self.key_for(identity), json.dumps(envelope))
        except Exception as exc:
            logger.warning("Failed to cache results for %s: %s", identity, exc)

    def evict(self, identity: str) -> None:
        try:
            self.store.delete(self.key_for(identity))
        except Exception as exc:
            logger.warning("Cache eviction failed for %s: %s", identity, exc)
