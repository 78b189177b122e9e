"""Pytest configuration and fixtures."""

from __future__ import annotations

import textwrap
from collections.abc import Callable
from pathlib import Path

import pytest


@pytest.fixture
def write_file(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write dedented text to ``tmp_path/<name>`` and return the path."""

    def _write(name: str, content: str) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(content).lstrip("\n"))
        return path

    return _write


@pytest.fixture
def sample_rules_text() -> str:
    """One group with one alerting and one recording rule."""
    return textwrap.dedent(
        """
        groups:
          - name: api
            interval: 1m
            rules:
              - alert: HighErrorRate
                expr: rate(http_errors_total[5m]) > 1
                for: 10m
                labels:
                  severity: critical
                annotations:
                  summary: Error rate is high
              - record: job:http_requests:rate5m
                expr: sum by (job) (rate(http_requests_total[5m]))
        """
    ).lstrip("\n")


@pytest.fixture
def sample_config_text() -> str:
    """Config with one alert-scoped and one group-scoped validation rule."""
    return textwrap.dedent(
        """
        validationRules:
          - name: mustHaveSeverity
            scope: Alert
            validations:
              - type: hasLabels
                params:
                  labels: [severity]
          - name: groupInterval
            scope: Group
            validations:
              - type: hasAllowedEvaluationInterval
                params:
                  minimum: 30s
                  maximum: 5m
        """
    ).lstrip("\n")
