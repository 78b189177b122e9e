"""Tests for ruleval.remote.cache.

Covers:
- Tenant key construction (order kept)
- Exactly one partition per key under concurrent first access
- Partition getters return copies
- JSON persistence round trip through dump/load
- Missing file creates an empty cache file
- Outdated and foreign-backend caches are pruned
- Malformed cache files yield an empty cache
- Dump failures are logged, never raised
- Dumps running alongside concurrent writes and other dumps
- Timestamps with nanosecond fractions and ``Z`` suffix
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import patch

import pytest

from ruleval.remote.cache import (
    QueryStats,
    TenantCache,
    TenantPartition,
    _parse_ts,
    _write_atomic,
    tenant_key,
)

URL = "http://prometheus:9090"
T0 = datetime(2024, 1, 15, 10, 0, 0, tzinfo=UTC)


def _clock(ts: datetime) -> Callable[[], datetime]:
    return lambda: ts


class TestTenantKey:
    def test_empty(self) -> None:
        assert tenant_key([]) == ""

    def test_order_kept(self) -> None:
        assert tenant_key(["b", "a"]) == "b|a"
        assert tenant_key(["a", "b"]) != tenant_key(["b", "a"])


class TestPartition:
    def test_same_instance_for_same_key(self, tmp_path: Path) -> None:
        cache = TenantCache(tmp_path / "c.json", URL)
        assert cache.partition(["a"]) is cache.partition(["a"])
        assert cache.partition(["a"]) is not cache.partition(["b"])
        assert cache.keys() == ["a", "b"]

    def test_concurrent_first_access_creates_one_partition(self, tmp_path: Path) -> None:
        cache = TenantCache(tmp_path / "c.json", URL)
        barrier = threading.Barrier(16)
        seen: list[TenantPartition] = []
        lock = threading.Lock()

        def worker() -> None:
            barrier.wait()
            p = cache.partition(["team-a", "team-b"])
            with lock:
                seen.append(p)

        threads = [threading.Thread(target=worker) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(seen) == 16
        assert all(p is seen[0] for p in seen)
        assert cache.keys() == ["team-a|team-b"]

    def test_known_labels_are_copies(self) -> None:
        partition = TenantPartition()
        labels = ["job"]
        partition.set_known_labels(labels)
        labels.append("instance")
        returned = partition.get_known_labels()
        returned.append("pod")
        assert partition.get_known_labels() == ["job"]

    def test_concurrent_writers(self) -> None:
        partition = TenantPartition()

        def worker(n: int) -> None:
            for i in range(50):
                partition.set_selector_matching_series(f"s{n}_{i}", i)
                partition.get_selector_matching_series(f"s{n}_{i}")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(partition.to_dict()["selector_matching_series"]) == 400

    def test_missing_entries(self) -> None:
        partition = TenantPartition()
        assert partition.get_query_stats("up") is None
        assert partition.get_selector_matching_series("up") is None
        assert partition.get_known_labels() == []


class TestQueryStats:
    def test_error_only_persisted_when_set(self) -> None:
        assert QueryStats(series=2, duration_ns=5).to_dict() == {"series": 2, "duration": 5}
        assert QueryStats(error="boom").to_dict()["error"] == "boom"

    def test_structured_error_from_foreign_writer(self) -> None:
        stats = QueryStats.from_dict({"series": 0, "duration": 0, "error": {"msg": "x"}})
        assert stats.error == '{"msg": "x"}'


class TestPersistence:
    def test_dump_and_load_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / "cache.json"
        cache = TenantCache(path, URL, created=T0)
        partition = cache.partition(["team-a"])
        partition.set_query_stats("up", QueryStats(series=3, duration_ns=1_500_000))
        partition.set_query_stats("bad(", QueryStats(error="parse error"))
        partition.set_known_labels(["__name__", "job"])
        partition.set_selector_matching_series('up{job="x"}', 1)
        assert cache.dump() is True

        data = json.loads(path.read_text())
        assert data["prometheus_url"] == URL
        assert data["source_tenants"]["team-a"]["queries_stats"]["up"] == {
            "series": 3,
            "duration": 1_500_000,
        }

        loaded = TenantCache.load(path, URL, max_age_ms=3_600_000, now=_clock(T0))
        assert loaded.created == T0
        p = loaded.partition(["team-a"])
        assert p.get_query_stats("up") == QueryStats(series=3, duration_ns=1_500_000)
        assert p.get_query_stats("bad(") == QueryStats(error="parse error")
        assert p.get_known_labels() == ["__name__", "job"]
        assert p.get_selector_matching_series('up{job="x"}') == 1

    def test_missing_file_creates_empty_cache(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        path = tmp_path / "sub" / "cache.json"
        with caplog.at_level(logging.INFO, logger="ruleval.remote.cache"):
            cache = TenantCache.load(path, URL, now=_clock(T0))
        assert cache.keys() == []
        assert path.exists()
        assert json.loads(path.read_text())["source_tenants"] == {}
        assert "CACHE_NOT_FOUND" in caplog.messages

    def test_outdated_cache_pruned(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        path = tmp_path / "cache.json"
        cache = TenantCache(path, URL, created=T0)
        cache.partition(["a"]).set_known_labels(["job"])
        cache.dump()

        later = T0 + timedelta(hours=2)
        with caplog.at_level(logging.INFO, logger="ruleval.remote.cache"):
            loaded = TenantCache.load(path, URL, max_age_ms=3_600_000, now=_clock(later))
        assert loaded.keys() == []
        assert loaded.created == later
        assert "CACHE_OUTDATED" in caplog.messages
        assert "CACHE_PRUNED" in caplog.messages

    def test_zero_max_age_never_expires(self, tmp_path: Path) -> None:
        path = tmp_path / "cache.json"
        cache = TenantCache(path, URL, created=T0)
        cache.partition(["a"]).set_known_labels(["job"])
        cache.dump()

        loaded = TenantCache.load(path, URL, max_age_ms=0, now=_clock(T0 + timedelta(days=30)))
        assert loaded.keys() == ["a"]

    def test_foreign_backend_pruned(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        path = tmp_path / "cache.json"
        cache = TenantCache(path, "http://other:9090", created=T0)
        cache.partition(["a"]).set_known_labels(["job"])
        cache.dump()

        with caplog.at_level(logging.INFO, logger="ruleval.remote.cache"):
            loaded = TenantCache.load(path, URL, now=_clock(T0))
        assert loaded.keys() == []
        assert loaded.backend_url == URL
        assert "CACHE_FOREIGN_BACKEND" in caplog.messages

    @pytest.mark.parametrize(
        "content",
        [
            "not json",
            "[]",
            '{"prometheus_url": "x"}',
            '{"prometheus_url": "x", "created": "yesterday"}',
            '{"created": "2024-01-15T10:00:00Z", "source_tenants": {"a": []}}',
        ],
    )
    def test_malformed_file_yields_empty_cache(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture, content: str
    ) -> None:
        path = tmp_path / "cache.json"
        path.write_text(content)
        with caplog.at_level(logging.WARNING, logger="ruleval.remote.cache"):
            loaded = TenantCache.load(path, URL, now=_clock(T0))
        assert loaded.keys() == []
        assert "CACHE_LOAD_ERROR" in caplog.messages

    def test_dump_failure_is_logged(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("")
        cache = TenantCache(blocker / "cache.json", URL)
        with caplog.at_level(logging.WARNING, logger="ruleval.remote.cache"):
            assert cache.dump() is False
        assert "CACHE_DUMP_ERROR" in caplog.messages


class TestConcurrentDump:
    def test_dump_during_writes(self, tmp_path: Path) -> None:
        path = tmp_path / "cache.json"
        cache = TenantCache(path, URL, created=T0)
        errors: list[BaseException] = []
        results: list[bool] = []
        start = threading.Barrier(6)

        def writer(worker: int) -> None:
            try:
                start.wait()
                for i in range(200):
                    partition = cache.partition([f"w{worker}", f"t{i % 10}"])
                    partition.set_query_stats(f"q{i}", QueryStats(series=i, duration_ns=i))
                    partition.set_known_labels(["job", f"l{i}"])
                    partition.set_selector_matching_series(f"s{i}", i)
            except Exception as e:
                errors.append(e)

        def dumper() -> None:
            try:
                start.wait()
                for _ in range(25):
                    results.append(cache.dump())
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=writer, args=(w,)) for w in range(4)]
        threads += [threading.Thread(target=dumper) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert results == [True] * 50
        assert cache.dump() is True
        assert [p for p in tmp_path.iterdir() if p.suffix == ".tmp"] == []

        loaded = TenantCache.load(path, URL, now=_clock(T0))
        assert len(loaded.keys()) == 40
        partition = loaded.partition(["w3", "t9"])
        assert partition.get_query_stats("q199") == QueryStats(series=199, duration_ns=199)
        assert partition.get_known_labels() == ["job", "l199"]

    def test_overlapping_writes_use_distinct_tmp_files(self, tmp_path: Path) -> None:
        path = tmp_path / "cache.json"
        seen: list[str] = []
        real_replace = Path.replace

        def record(self: Path, target: Path) -> Path:
            seen.append(self.name)
            return real_replace(self, target)

        with patch.object(Path, "replace", record):
            _write_atomic(path, "{}")
            _write_atomic(path, "[]")
        assert len(set(seen)) == 2
        assert all(name.endswith(".tmp") for name in seen)
        assert path.read_text() == "[]"


class TestParseTimestamp:
    def test_nanosecond_fraction_and_z(self) -> None:
        ts = _parse_ts("2024-01-15T10:00:00.123456789Z")
        assert ts == datetime(2024, 1, 15, 10, 0, 0, 123456, tzinfo=UTC)

    def test_offset(self) -> None:
        ts = _parse_ts("2024-01-15T12:00:00+02:00")
        assert ts == T0

    def test_naive_treated_as_utc(self) -> None:
        assert _parse_ts("2024-01-15T10:00:00") == T0
