"""RULEVAL - Prometheus rule validation tool.

Validates alerting and recording rule files against a configurable catalog
of checks and emits a hierarchical pass/fail report. Intended as a CI gate
for rule changes.

Note: version is sourced from package metadata (pyproject.toml).
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

from ruleval.config.scope import ValidationScope
from ruleval.errors import ConfigError, RulevalError


def _pkg_version() -> str:
    try:
        return version("ruleval")
    except PackageNotFoundError:
        return "0.0.0"


__version__ = _pkg_version()

__all__ = ["ConfigError", "RulevalError", "ValidationScope", "__version__"]
