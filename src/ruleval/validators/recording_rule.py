"""Recording-rule-only checks."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar

from ruleval.config.scope import ValidationScope
from ruleval.validators.base import ParamReader, RuleValidator, pattern_text

if TYPE_CHECKING:
    from ruleval.remote.client import PrometheusClient
    from ruleval.rules.model import Rule, RuleGroup


@dataclass(frozen=True)
class RecordedMetricNameMatchesRegexp(RuleValidator):
    name: ClassVar[str] = "recordedMetricNameMatchesRegexp"
    scope: ClassVar[ValidationScope] = ValidationScope.RECORDING_RULE

    pattern: re.Pattern[str]

    @classmethod
    def from_params(cls, params: ParamReader) -> RecordedMetricNameMatchesRegexp:
        return cls(pattern=params.get_regexp("regexp", forbid_empty=True))

    def describe(self) -> str:
        return f"Recorded metric name matches regexp: `{pattern_text(self.pattern)}`"

    def validate_rule(
        self, group: RuleGroup, rule: Rule, client: PrometheusClient | None
    ) -> list[str]:
        if self.pattern.match(rule.record):
            return []
        return [
            f"recorded metric name {rule.record} does not match pattern "
            f"{pattern_text(self.pattern)}"
        ]


@dataclass(frozen=True)
class RecordedMetricNameDoesNotMatchRegexp(RuleValidator):
    name: ClassVar[str] = "recordedMetricNameDoesNotMatchRegexp"
    scope: ClassVar[ValidationScope] = ValidationScope.RECORDING_RULE

    pattern: re.Pattern[str]

    @classmethod
    def from_params(cls, params: ParamReader) -> RecordedMetricNameDoesNotMatchRegexp:
        return cls(pattern=params.get_regexp("regexp", forbid_empty=True))

    def describe(self) -> str:
        return f"Recorded metric name does not match regexp: `{pattern_text(self.pattern)}`"

    def validate_rule(
        self, group: RuleGroup, rule: Rule, client: PrometheusClient | None
    ) -> list[str]:
        if not self.pattern.match(rule.record):
            return []
        return [
            f"recorded metric name {rule.record} matches forbidden pattern "
            f"{pattern_text(self.pattern)}"
        ]
