import threading
from pathlib import Path

import pytest

from storeroute.common.cache import FileCache, MemoryCache, decode_json, encode_json


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_memory_cache_expires_entries():
    clock = FakeClock()
    cache = MemoryCache(clock=clock)
    cache.put("records:postal:3350016", b"payload", ttl=60)

    assert cache.get("records:postal:3350016") == b"payload"
    assert cache.get("records:postal:1000001") is None
    clock.now += 61
    assert cache.get("records:postal:3350016") is None


def test_file_cache_round_trip_and_expiry(tmp_path: Path):
    clock = FakeClock()
    cache = FileCache(tmp_path / "cache", clock=clock)
    cache.put("boundary:area:11224", encode_json({"rings": [[1, 2]]}), ttl=10)

    assert decode_json(cache.get("boundary:area:11224")) == {"rings": [[1, 2]]}
    assert FileCache(tmp_path / "cache", clock=clock).get("boundary:area:11224") is not None
    clock.now += 11
    assert cache.get("boundary:area:11224") is None


def test_file_cache_treats_corrupt_entries_as_miss(tmp_path: Path):
    cache = FileCache(tmp_path)
    cache.put("k", b"v", ttl=60)
    for path in tmp_path.glob("*.json"):
        path.write_text("{not json", encoding="utf-8")

    assert cache.get("k") is None
    assert cache.get("missing") is None


def test_file_cache_clear(tmp_path: Path):
    cache = FileCache(tmp_path / "cache")
    assert cache.clear() == 0
    cache.put("a", b"1", ttl=60)
    cache.put("b", b"2", ttl=60)
    assert cache.clear() == 2
    assert cache.get("a") is None


@pytest.mark.parametrize(
    "content",
    [
        "[1, 2]",
        '{"key": "k", "expires_at": 9999999999, "payload": "@@not base64@@"}',
        '{"key": "k", "expires_at": "soon", "payload": ""}',
        '{"key": "k", "expires_at": 9999999999}',
    ],
)
def test_file_cache_drops_malformed_envelopes(tmp_path: Path, content: str):
    cache = FileCache(tmp_path)
    cache.put("k", b"v", ttl=60)
    (entry,) = tmp_path.glob("*.json")
    entry.write_text(content, encoding="utf-8")

    assert cache.get("k") is None
    assert not entry.exists()


def test_file_cache_concurrent_writers_to_one_key(tmp_path: Path):
    cache = FileCache(tmp_path / "cache")
    errors: list[BaseException] = []

    def writer(worker: int) -> None:
        try:
            for attempt in range(50):
                cache.put("records:postal:3350016", encode_json({"worker": worker, "attempt": attempt}), ttl=60)
        except OSError as exc:
            errors.append(exc)

    threads = [threading.Thread(target=writer, args=(worker,)) for worker in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert decode_json(cache.get("records:postal:3350016"))["attempt"] == 49
    assert list((tmp_path / "cache").glob("*.tmp")) == []
