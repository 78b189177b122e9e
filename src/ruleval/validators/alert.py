"""Alert-only checks."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar

from ruleval.config.scope import ValidationScope
from ruleval.durations import format_duration_ms
from ruleval.validators.base import ParamReader, RuleValidator, matches_text, pattern_text

if TYPE_CHECKING:
    from ruleval.remote.client import PrometheusClient
    from ruleval.rules.model import Rule, RuleGroup


def _limit_param(params: ParamReader) -> int:
    limit_ms = params.get_duration_ms("limit")
    if limit_ms == 0:
        raise params.fail("missing limit")
    return limit_ms


@dataclass(frozen=True)
class ForIsNotLongerThan(RuleValidator):
    name: ClassVar[str] = "forIsNotLongerThan"
    scope: ClassVar[ValidationScope] = ValidationScope.ALERT

    limit_ms: int

    @classmethod
    def from_params(cls, params: ParamReader) -> ForIsNotLongerThan:
        return cls(limit_ms=_limit_param(params))

    def describe(self) -> str:
        return f"`for` is not longer than `{format_duration_ms(self.limit_ms)}`"

    def validate_rule(
        self, group: RuleGroup, rule: Rule, client: PrometheusClient | None
    ) -> list[str]:
        if rule.for_ms > self.limit_ms:
            return [
                f"alert has `for: {format_duration_ms(rule.for_ms)}` which is longer than "
                f"the specified limit of {format_duration_ms(self.limit_ms)}"
            ]
        return []


@dataclass(frozen=True)
class KeepFiringForIsNotLongerThan(RuleValidator):
    name: ClassVar[str] = "keepFiringForIsNotLongerThan"
    scope: ClassVar[ValidationScope] = ValidationScope.ALERT

    limit_ms: int

    @classmethod
    def from_params(cls, params: ParamReader) -> KeepFiringForIsNotLongerThan:
        return cls(limit_ms=_limit_param(params))

    def describe(self) -> str:
        return f"`keep_firing_for` is not longer than `{format_duration_ms(self.limit_ms)}`"

    def validate_rule(
        self, group: RuleGroup, rule: Rule, client: PrometheusClient | None
    ) -> list[str]:
        if rule.keep_firing_for_ms > self.limit_ms:
            return [
                f"alert has `keep_firing_for: {format_duration_ms(rule.keep_firing_for_ms)}` "
                f"which is longer than the specified limit of {format_duration_ms(self.limit_ms)}"
            ]
        return []


@dataclass(frozen=True)
class AlertNameMatchesRegexp(RuleValidator):
    """Alert name must match (or, with ``negative``, must not match) a regexp."""

    name: ClassVar[str] = "alertNameMatchesRegexp"
    scope: ClassVar[ValidationScope] = ValidationScope.ALERT

    pattern: re.Pattern[str]
    negative: bool = False

    @classmethod
    def from_params(cls, params: ParamReader) -> AlertNameMatchesRegexp:
        return cls(
            pattern=params.get_regexp("regexp", forbid_empty=True),
            negative=params.get_bool("negative"),
        )

    def describe(self) -> str:
        return f"Alert name {matches_text(self.negative)} regexp: `{pattern_text(self.pattern)}`"

    def validate_rule(
        self, group: RuleGroup, rule: Rule, client: PrometheusClient | None
    ) -> list[str]:
        matched = self.pattern.match(rule.alert) is not None
        if matched != self.negative:
            return []
        return [
            f"alert name `{rule.alert}` {matches_text(not self.negative)} "
            f"regexp `{pattern_text(self.pattern)}`"
        ]
