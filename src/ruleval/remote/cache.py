"""Tenant-partitioned query cache.

Backs every remote lookup made by validators. One process-wide instance is
loaded at startup, filled read-through during the run and dumped at the end.

Locking:
- A registry lock guards the tenant-key -> partition map. It is held only
  while looking up or creating a partition (and while taking a dump
  snapshot).
- Each partition has its own reader/writer lock guarding its three maps,
  so lookups for different tenant sets never contend.
- Lock order is registry -> partition. Partition holders never take the
  registry lock.

Not safe for several OS processes sharing one file.

Persistence format (JSON):
{
    "prometheus_url": "https://prometheus.example.com",
    "created": "2024-01-15T10:00:00.123456+00:00",
    "source_tenants": {
        "tenant-a|tenant-b": {
            "queries_stats": {"up": {"series": 3, "duration": 1500000}},
            "known_labels": ["__name__", "job"],
            "selector_matching_series": {"up{job=\\"x\\"}": 1}
        }
    }
}

``duration`` is in nanoseconds; ``error`` is present only for failed queries.
"""

from __future__ import annotations

import json
import logging
import re
import tempfile
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ruleval.errors import CacheIOError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Sequence

logger = logging.getLogger(__name__)

_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def tenant_key(source_tenants: Sequence[str]) -> str:
    """Cache key (and ``X-Scope-OrgID`` value) for a tenant set.

    Tenants are joined in the given order; differently ordered lists map
    to different partitions.
    """
    return "|".join(source_tenants)


def _format_ts(ts: datetime) -> str:
    return ts.isoformat()


def _parse_ts(text: str) -> datetime:
    """Parse an RFC 3339 timestamp; sub-microsecond digits are truncated."""
    normalized = _FRACTION_RE.sub(r"\1", text.strip())
    if normalized.endswith(("Z", "z")):
        normalized = normalized[:-1] + "+00:00"
    ts = datetime.fromisoformat(normalized)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts


def _write_atomic(path: Path, content: str) -> None:
    """Write text atomically: unique tmp file in the same directory + os.replace.

    Each call gets its own tmp file, so overlapping dumps never publish a
    half-written file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
        delete=False,
    ) as f:
        f.write(content)
        tmp = Path(f.name)
    try:
        tmp.replace(path)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise


@dataclass(frozen=True)
class QueryStats:
    """Outcome of one instant query.

    Attributes:
        series: Number of series (samples) in the result
        duration_ns: Measured evaluation wall time
        error: Error text if the query failed (None on success)
    """

    series: int = 0
    duration_ns: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dict for JSON persistence."""
        out: dict[str, Any] = {"series": self.series, "duration": self.duration_ns}
        if self.error is not None:
            out["error"] = self.error
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QueryStats:
        """Deserialize from dict."""
        error = data.get("error")
        if error is not None and not isinstance(error, str):
            # foreign writers may persist structured errors
            error = json.dumps(error)
        return cls(
            series=int(data.get("series", 0)),
            duration_ns=int(data.get("duration", 0)),
            error=error or None,
        )


class _ReadWriteLock:
    """Many concurrent readers or one writer; waiting writers block new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class TenantPartition:
    """Cached data of one tenant set.

    Thread-safety: Yes (per-partition reader/writer lock)
    """

    def __init__(
        self,
        queries_stats: dict[str, QueryStats] | None = None,
        known_labels: list[str] | None = None,
        selector_matching_series: dict[str, int] | None = None,
    ) -> None:
        self._lock = _ReadWriteLock()
        self._queries_stats: dict[str, QueryStats] = dict(queries_stats or {})
        self._known_labels: list[str] = list(known_labels or [])
        self._selector_matching_series: dict[str, int] = dict(selector_matching_series or {})

    def get_query_stats(self, query: str) -> QueryStats | None:
        with self._lock.read():
            return self._queries_stats.get(query)

    def set_query_stats(self, query: str, stats: QueryStats) -> None:
        with self._lock.write():
            self._queries_stats[query] = stats

    def get_known_labels(self) -> list[str]:
        """Return a copy; callers never see cache-owned state."""
        with self._lock.read():
            return list(self._known_labels)

    def set_known_labels(self, labels: Sequence[str]) -> None:
        with self._lock.write():
            self._known_labels = list(labels)

    def get_selector_matching_series(self, selector: str) -> int | None:
        with self._lock.read():
            return self._selector_matching_series.get(selector)

    def set_selector_matching_series(self, selector: str, count: int) -> None:
        with self._lock.write():
            self._selector_matching_series[selector] = count

    def to_dict(self) -> dict[str, Any]:
        """Consistent JSON-ready copy, taken under the read lock."""
        with self._lock.read():
            return {
                "queries_stats": {q: s.to_dict() for q, s in self._queries_stats.items()},
                "known_labels": list(self._known_labels),
                "selector_matching_series": dict(self._selector_matching_series),
            }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TenantPartition:
        if not isinstance(data, dict):
            raise ValueError(f"partition must be an object, got {type(data).__name__}")
        queries = data.get("queries_stats") or {}
        selectors = data.get("selector_matching_series") or {}
        labels = data.get("known_labels") or []
        if not isinstance(queries, dict) or not isinstance(selectors, dict):
            raise ValueError("queries_stats and selector_matching_series must be objects")
        if not isinstance(labels, list):
            raise ValueError("known_labels must be a list")
        return cls(
            queries_stats={str(q): QueryStats.from_dict(s) for q, s in queries.items()},
            known_labels=[str(label) for label in labels],
            selector_matching_series={str(s): int(c) for s, c in selectors.items()},
        )


class TenantCache:
    """Process-wide cache: backend URL, creation time and tenant partitions.

    Thread-safety: Yes

    Usage::

        cache = TenantCache.load(".ruleval_cache.json", "https://prom", max_age_ms=3_600_000)
        partition = cache.partition(["team-a"])
        partition.set_known_labels(["job"])
        cache.dump()
    """

    def __init__(
        self,
        path: str | Path,
        backend_url: str,
        created: datetime | None = None,
        partitions: dict[str, TenantPartition] | None = None,
    ) -> None:
        self.path = Path(path)
        self.backend_url = backend_url
        self.created = created or datetime.now(UTC)
        self._lock = threading.Lock()
        self._partitions: dict[str, TenantPartition] = dict(partitions or {})

    def partition(self, source_tenants: Sequence[str]) -> TenantPartition:
        """Get or create the partition of a tenant set.

        Exactly one partition is ever created per key, however many callers
        race for a new key; all of them get the same instance.
        """
        key = tenant_key(source_tenants)
        with self._lock:
            data = self._partitions.get(key)
            if data is None:
                data = TenantPartition()
                self._partitions[key] = data
            return data

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._partitions)

    def to_dict(self) -> dict[str, Any]:
        """Consistent snapshot of the whole cache."""
        with self._lock:
            return {
                "prometheus_url": self.backend_url,
                "created": _format_ts(self.created),
                "source_tenants": {k: p.to_dict() for k, p in self._partitions.items()},
            }

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str | Path) -> TenantCache:
        if not isinstance(data, dict):
            raise ValueError(f"cache root must be an object, got {type(data).__name__}")
        tenants = data.get("source_tenants") or {}
        if not isinstance(tenants, dict):
            raise ValueError("source_tenants must be an object")
        return cls(
            path=path,
            backend_url=str(data.get("prometheus_url", "")),
            created=_parse_ts(str(data["created"])),
            partitions={str(k): TenantPartition.from_dict(v) for k, v in tenants.items()},
        )

    def dump(self) -> bool:
        """Persist the cache. Failures are logged, never raised.

        Returns:
            True if the file was written.
        """
        snapshot = self.to_dict()
        try:
            _write_atomic(self.path, json.dumps(snapshot))
        except OSError as e:
            logger.warning("CACHE_DUMP_ERROR", extra={"path": str(self.path), "error": str(e)})
            return False
        logger.info(
            "CACHE_DUMPED",
            extra={"path": str(self.path), "partitions": len(snapshot["source_tenants"])},
        )
        return True

    @classmethod
    def load(
        cls,
        path: str | Path,
        backend_url: str,
        max_age_ms: int = 0,
        now: Callable[[], datetime] | None = None,
    ) -> TenantCache:
        """Load the persisted cache, never failing.

        - Missing file: an empty cache file is created, empty cache returned.
        - Unreadable or malformed file: warning, empty cache.
        - Older than ``max_age_ms`` (0 = unlimited) or written for another
          backend URL: all partitions are discarded, empty cache.

        Args:
            path: Cache file path
            backend_url: Currently configured backend URL
            max_age_ms: Maximum cache age
            now: Clock (injectable for tests)
        """
        clock = now or (lambda: datetime.now(UTC))
        empty = cls(path=path, backend_url=backend_url, created=clock())
        p = Path(path)

        if not p.exists():
            logger.info("CACHE_NOT_FOUND", extra={"path": str(p)})
            empty.dump()
            return empty

        try:
            previous = cls._read(p)
        except CacheIOError as e:
            logger.warning("CACHE_LOAD_ERROR", extra={"path": str(p), "error": str(e)})
            return empty

        prune = False
        age_s = (clock() - previous.created).total_seconds()
        if max_age_ms and age_s * 1000 > max_age_ms:
            logger.info(
                "CACHE_OUTDATED",
                extra={"path": str(p), "age_s": age_s, "max_age_ms": max_age_ms},
            )
            prune = True
        if previous.backend_url != backend_url:
            logger.info(
                "CACHE_FOREIGN_BACKEND",
                extra={"path": str(p), "cached_url": previous.backend_url, "url": backend_url},
            )
            prune = True
        if prune:
            logger.warning("CACHE_PRUNED", extra={"path": str(p)})
            return empty

        logger.info(
            "CACHE_LOADED",
            extra={"path": str(p), "partitions": len(previous.keys())},
        )
        return previous

    @classmethod
    def _read(cls, path: Path) -> TenantCache:
        try:
            data = json.loads(path.read_text())
            return cls.from_dict(data, path)
        except OSError as e:
            raise CacheIOError(str(path), f"cannot read: {e}") from e
        except (json.JSONDecodeError, KeyError, ValueError, TypeError) as e:
            raise CacheIOError(str(path), f"invalid cache file format: {e}") from e
