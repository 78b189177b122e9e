"""Prometheus HTTP API client with a read-through tenant cache.

Wraps httpx.Client with:
- Base headers (User-Agent, configured ``httpHeaders``, bearer token) fixed at
  construction and never mutated afterwards.
- Per-call ``X-Scope-OrgID`` header derived from the rule group's source
  tenants, passed per request so concurrent calls never share state.
- Bounded per-call timeout (0 = no deadline).
- Every failure surfaced as :class:`RemoteQueryError`. Backend warnings are
  logged, they do not fail the call.

Supported calls (all read-through :class:`TenantCache`):
- ``query_stats``: instant query, series count and evaluation time. Failed
  queries are cached too, so a broken expression is not re-sent in one run.
- ``labels``: all label names in the lookback window.
- ``selector_matching_series``: number of series matching a selector.
"""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any

import httpx

from ruleval.errors import ConfigError, RemoteQueryError
from ruleval.remote.cache import QueryStats, TenantCache, tenant_key

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from ruleval.config.loader import PrometheusConfig

logger = logging.getLogger(__name__)

BEARER_TOKEN_ENV_VAR = "PROMETHEUS_BEARER_TOKEN"
USER_AGENT = "ruleval"
ORG_ID_HEADER = "X-Scope-OrgID"

OP_QUERY = "query"
OP_LABELS = "labels"
OP_SERIES = "series"

_OP_MESSAGES: dict[str, str] = {
    OP_QUERY: "error querying prometheus",
    OP_LABELS: "failed to load label names",
    OP_SERIES: "failed to query series",
}


def load_bearer_token(config: PrometheusConfig) -> str:
    """Resolve the bearer token; the environment variable wins over the file.

    Raises:
        ConfigError: If the configured token file cannot be read.
    """
    token = ""
    if config.bearer_token_file:
        try:
            token = Path(config.bearer_token_file).read_text()
        except OSError as e:
            raise ConfigError(f"failed to read file {config.bearer_token_file}: {e}") from e
    from_env = os.environ.get(BEARER_TOKEN_ENV_VAR, "")
    if from_env:
        token = from_env
    return token.strip()


class PrometheusClient:
    """Backend client shared by every validator in a run.

    Thread-safety: Yes (httpx.Client is thread-safe; cache is locked)

    Usage::

        with PrometheusClient(config) as client:
            series, duration_s = client.query_stats("up", ["team-a"])
            client.dump_cache()
    """

    def __init__(
        self,
        config: PrometheusConfig,
        *,
        cache: TenantCache | None = None,
        transport: httpx.BaseTransport | None = None,
        clock: Callable[[], float] | None = None,
        wall_clock: Callable[[], float] | None = None,
    ) -> None:
        """Initialize client.

        Args:
            config: Backend settings.
            cache: Cache to use (default: loaded from ``config.cache_file``).
            transport: httpx transport (injectable for tests).
            clock: Monotonic clock used to time queries (injectable for tests).
            wall_clock: Unix-time clock used for query timestamps (injectable for tests).
        """
        self.url = config.url
        self._query_offset_s = config.query_offset_ms / 1000.0
        self._query_lookback_s = config.query_lookback_ms / 1000.0
        self._clock = clock or time.monotonic
        self._wall_clock = wall_clock or time.time

        headers = {"User-Agent": USER_AGENT, **config.http_headers}
        token = load_bearer_token(config)
        if token:
            headers["Authorization"] = f"Bearer {token}"

        timeout = httpx.Timeout(config.timeout_ms / 1000.0 if config.timeout_ms else None)
        self._http = httpx.Client(
            base_url=config.url,
            headers=headers,
            timeout=timeout,
            verify=not config.insecure_skip_tls_verify,
            transport=transport,
        )
        self._cache = cache or TenantCache.load(
            config.cache_file, config.url, max_age_ms=config.max_cache_age_ms
        )

    def __enter__(self) -> PrometheusClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    @property
    def cache(self) -> TenantCache:
        return self._cache

    # -- raw calls ------------------------------------------------------------

    @staticmethod
    def _tenant_headers(source_tenants: Sequence[str]) -> dict[str, str]:
        # No tenants: the configured default (if any) from the base headers applies.
        if not source_tenants:
            return {}
        return {ORG_ID_HEADER: tenant_key(source_tenants)}

    def _time_range(self) -> tuple[float, float]:
        end = self._wall_clock() - self._query_offset_s
        return end - self._query_lookback_s, end

    def _get(
        self, op: str, path: str, params: dict[str, Any], source_tenants: Sequence[str]
    ) -> Any:
        prefix = _OP_MESSAGES[op]
        try:
            resp = self._http.get(path, params=params, headers=self._tenant_headers(source_tenants))
        except httpx.TimeoutException as e:
            raise RemoteQueryError(op, f"{prefix}: timeout: {e}") from e
        except httpx.HTTPError as e:
            raise RemoteQueryError(op, f"{prefix}: {e}") from e

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if resp.status_code >= 300 or body.get("status") == "error":
            detail = body.get("error") or resp.text[:200] or resp.reason_phrase
            raise RemoteQueryError(
                op, f"{prefix}: {resp.status_code}: {detail}", status_code=resp.status_code
            )

        warnings = body.get("warnings")
        if warnings:
            logger.warning(
                "PROMETHEUS_WARNINGS",
                extra={"op": op, "tenants": list(source_tenants), "warnings": warnings},
            )
        return body.get("data")

    def query(self, query: str, source_tenants: Sequence[str]) -> tuple[int, float]:
        """Evaluate an instant query at ``now - queryOffset``.

        Returns:
            (series, duration_s): vector results count their samples, a
            scalar counts as one series.

        Raises:
            RemoteQueryError: On any backend failure or unsupported result type.
        """
        _, at = self._time_range()
        start = self._clock()
        data = self._get(OP_QUERY, "/api/v1/query", {"query": query, "time": at}, source_tenants)
        duration_s = self._clock() - start
        result_type = (data or {}).get("resultType")
        logger.debug(
            "queried prometheus %s: query=%r tenants=%s type=%s duration=%.3fs",
            self.url,
            query,
            list(source_tenants),
            result_type,
            duration_s,
        )
        if result_type == "vector":
            return len(data.get("result") or []), duration_s
        if result_type == "scalar":
            return 1, duration_s
        raise RemoteQueryError(
            OP_QUERY, f"{_OP_MESSAGES[OP_QUERY]}: unknown prometheus response type: {result_type}"
        )

    def label_names(self, source_tenants: Sequence[str]) -> list[str]:
        """List label names seen in the lookback window (uncached)."""
        start, end = self._time_range()
        data = self._get(OP_LABELS, "/api/v1/labels", {"start": start, "end": end}, source_tenants)
        labels = [str(label) for label in data or []]
        logger.debug(
            "loaded %d prometheus label names for tenants %s", len(labels), list(source_tenants)
        )
        return labels

    def series(self, selector: str, source_tenants: Sequence[str]) -> int:
        """Count series matching ``selector`` in the lookback window (uncached)."""
        start, end = self._time_range()
        data = self._get(
            OP_SERIES,
            "/api/v1/series",
            {"match[]": selector, "start": start, "end": end},
            source_tenants,
        )
        count = len(data or [])
        logger.debug("selector %r matches %d series", selector, count)
        return count

    # -- read-through cached calls ----------------------------------------------

    def query_stats(self, query: str, source_tenants: Sequence[str]) -> tuple[int, float]:
        """Cached :meth:`query`.

        A cache hit reports the duration measured when the query was first run.

        Raises:
            RemoteQueryError: If the query failed, now or earlier in the run.
        """
        partition = self._cache.partition(source_tenants)
        stats = partition.get_query_stats(query)
        if stats is None:
            try:
                series, duration_s = self.query(query, source_tenants)
                stats = QueryStats(series=series, duration_ns=int(duration_s * 1e9))
            except RemoteQueryError as e:
                stats = QueryStats(error=str(e))
            partition.set_query_stats(query, stats)
        if stats.error is not None:
            raise RemoteQueryError(OP_QUERY, stats.error)
        return stats.series, stats.duration_ns / 1e9

    def labels(self, source_tenants: Sequence[str]) -> list[str]:
        """Cached :meth:`label_names`. Always returns a fresh copy."""
        partition = self._cache.partition(source_tenants)
        if not partition.get_known_labels():
            partition.set_known_labels(self.label_names(source_tenants))
        return partition.get_known_labels()

    def selector_matching_series(self, selector: str, source_tenants: Sequence[str]) -> int:
        """Cached :meth:`series`."""
        partition = self._cache.partition(source_tenants)
        count = partition.get_selector_matching_series(selector)
        if count is None:
            count = self.series(selector, source_tenants)
            partition.set_selector_matching_series(selector, count)
        return count

    def dump_cache(self) -> bool:
        start = self._clock()
        ok = self._cache.dump()
        logger.info("cache dumped in %.3fs", self._clock() - start)
        return ok
