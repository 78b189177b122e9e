"""Metrics backend access: HTTP client and its tenant-partitioned cache."""

from ruleval.remote.cache import QueryStats, TenantCache, TenantPartition, tenant_key
from ruleval.remote.client import PrometheusClient, load_bearer_token

__all__ = [
    "PrometheusClient",
    "QueryStats",
    "TenantCache",
    "TenantPartition",
    "load_bearer_token",
    "tenant_key",
]
