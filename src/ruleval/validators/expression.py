"""Expression checks that need a live backend.

Label and selector checks rely on the lexical scan in :mod:`ruleval.rules.promql`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar

from ruleval.config.scope import ValidationScope
from ruleval.durations import format_duration_ms, format_elapsed_s
from ruleval.errors import RemoteQueryError
from ruleval.rules.promql import used_labels, vector_selectors
from ruleval.validators.base import ParamReader, RuleValidator

if TYPE_CHECKING:
    from ruleval.remote.client import PrometheusClient
    from ruleval.rules.model import Rule, RuleGroup

logger = logging.getLogger(__name__)


def log_missing_client(validator_name: str) -> None:
    logger.error(
        "PROMETHEUS_NOT_CONFIGURED",
        extra={
            "validator": validator_name,
            "hint": "add the `prometheus` section to the config to run this check",
        },
    )


@dataclass(frozen=True)
class ExpressionCanBeEvaluated(RuleValidator):
    """Expression evaluates on the backend, optionally within series/duration limits.

    Without a configured backend the check is skipped (an error is logged,
    no validation error is reported).
    """

    name: ClassVar[str] = "expressionCanBeEvaluated"
    scope: ClassVar[ValidationScope] = ValidationScope.ALL_RULES

    time_series_limit: int = 0
    evaluation_duration_limit_ms: int = 0

    @classmethod
    def from_params(cls, params: ParamReader) -> ExpressionCanBeEvaluated:
        limit = params.get_int("timeSeriesLimit")
        if limit < 0:
            raise params.fail("`timeSeriesLimit` must not be negative")
        return cls(
            time_series_limit=limit,
            evaluation_duration_limit_ms=params.get_duration_ms("evaluationDurationLimit"),
        )

    def describe(self) -> str:
        msg = "expression can be successfully evaluated on the live Prometheus instance"
        if self.time_series_limit > 0:
            msg += (
                " and number of time series in the result is not higher than "
                f"{self.time_series_limit}"
            )
        if self.evaluation_duration_limit_ms:
            msg += (
                " and the evaluation is no longer than "
                f"{format_duration_ms(self.evaluation_duration_limit_ms)}"
            )
        return msg

    def validate_rule(
        self, group: RuleGroup, rule: Rule, client: PrometheusClient | None
    ) -> list[str]:
        if client is None:
            log_missing_client(self.name)
            return []
        try:
            series, duration_s = client.query_stats(rule.expr, group.source_tenants)
        except RemoteQueryError as e:
            return [str(e)]
        errors = []
        if self.time_series_limit and series > self.time_series_limit:
            errors.append(
                f"query returned {series} series exceeding the {self.time_series_limit} limit"
            )
        limit_s = self.evaluation_duration_limit_ms / 1000.0
        if limit_s and duration_s > limit_s:
            errors.append(
                f"query took {format_elapsed_s(duration_s)} which exceeds the configured maximum "
                f"{format_duration_ms(self.evaluation_duration_limit_ms)}"
            )
        return errors


@dataclass(frozen=True)
class ExpressionUsesExistingLabels(RuleValidator):
    """Every label the expression filters or groups on is known to the backend."""

    name: ClassVar[str] = "expressionUsesExistingLabels"
    scope: ClassVar[ValidationScope] = ValidationScope.ALL_RULES

    @classmethod
    def from_params(cls, params: ParamReader) -> ExpressionUsesExistingLabels:
        return cls()

    def describe(self) -> str:
        return "expression uses only labels that are actually present in Prometheus"

    def validate_rule(
        self, group: RuleGroup, rule: Rule, client: PrometheusClient | None
    ) -> list[str]:
        if client is None:
            log_missing_client(self.name)
            return []
        labels = used_labels(rule.expr)
        if not labels:
            return []
        try:
            known = set(client.labels(group.source_tenants))
        except RemoteQueryError as e:
            return [str(e)]
        return [
            f"the label `{label}` does not exist in the actual Prometheus instance"
            for label in labels
            if label not in known
        ]


@dataclass(frozen=True)
class ExpressionSelectorsMatchesAnything(RuleValidator):
    """Every selector matches at least one series, and at most ``maximumMatchingSeries``."""

    name: ClassVar[str] = "expressionSelectorsMatchesAnything"
    scope: ClassVar[ValidationScope] = ValidationScope.ALL_RULES

    maximum_matching_series: int = 0

    @classmethod
    def from_params(cls, params: ParamReader) -> ExpressionSelectorsMatchesAnything:
        maximum = params.get_int("maximumMatchingSeries")
        if maximum < 0:
            raise params.fail("`maximumMatchingSeries` must not be negative")
        return cls(maximum_matching_series=maximum)

    def describe(self) -> str:
        msg = "expression selectors actually matches any series in Prometheus"
        if self.maximum_matching_series:
            msg += f" and none matches more than {self.maximum_matching_series} series"
        return msg

    def validate_rule(
        self, group: RuleGroup, rule: Rule, client: PrometheusClient | None
    ) -> list[str]:
        if client is None:
            log_missing_client(self.name)
            return []
        errors = []
        for selector in vector_selectors(rule.expr):
            text = str(selector)
            try:
                count = client.selector_matching_series(text, group.source_tenants)
            except RemoteQueryError as e:
                errors.append(str(e))
                continue
            if count == 0:
                errors.append(f"selector `{text}` does not match any actual series in Prometheus")
            if self.maximum_matching_series and count > self.maximum_matching_series:
                errors.append(
                    f"selector `{text}` matches {count} series which exceeds the limit "
                    f"{self.maximum_matching_series}"
                )
        return errors
