"""Key-value result cache with time-based expiry."""

from __future__ import annotations

import base64
import hashlib
import json
import threading
from pathlib import Path
from typing import Callable, Protocol

from storeroute.common.fs import ensure_dir, write_text_atomic
from storeroute.common.time_utils import epoch_seconds


class Cache(Protocol):
    def get(self, key: str) -> bytes | None: ...

    def put(self, key: str, value: bytes, ttl: float) -> None: ...


class MemoryCache:
    def __init__(self, clock: Callable[[], float] = epoch_seconds) -> None:
        self.clock = clock
        self.entries: dict[str, tuple[float, bytes]] = {}
        self.lock = threading.Lock()

    def get(self, key: str) -> bytes | None:
        with self.lock:
            entry = self.entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= self.clock():
                del self.entries[key]
                return None
            return value

    def put(self, key: str, value: bytes, ttl: float) -> None:
        with self.lock:
            self.entries[key] = (self.clock() + ttl, value)


class FileCache:
    """One JSON envelope per key under ``cache_dir``."""

    def __init__(self, cache_dir: Path, clock: Callable[[], float] = epoch_seconds) -> None:
        self.cache_dir = cache_dir
        self.clock = clock

    def _path(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:32]
        return self.cache_dir / f"{digest}.json"

    def get(self, key: str) -> bytes | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            envelope = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(envelope, dict):
                raise ValueError("cache envelope is not an object")
            expires_at = float(envelope.get("expires_at", 0))
            payload = base64.b64decode(envelope["payload"], validate=True)
        except (OSError, ValueError, TypeError, KeyError):
            path.unlink(missing_ok=True)
            return None
        if envelope.get("key") != key or expires_at <= self.clock():
            return None
        return payload

    def put(self, key: str, value: bytes, ttl: float) -> None:
        ensure_dir(self.cache_dir)
        envelope = {
            "key": key,
            "expires_at": self.clock() + ttl,
            "payload": base64.b64encode(value).decode("ascii"),
        }
        write_text_atomic(self._path(key), json.dumps(envelope))

    def clear(self) -> int:
        if not self.cache_dir.exists():
            return 0
        removed = 0
        for path in self.cache_dir.glob("*.json"):
            path.unlink(missing_ok=True)
            removed += 1
        return removed


def encode_json(payload) -> bytes:
    return json.dumps(payload, ensure_ascii=False, sort_keys=True).encode("utf-8")


def decode_json(value: bytes):
    return json.loads(value.decode("utf-8"))
