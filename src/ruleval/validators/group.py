"""Rule-group checks.

These run once per group (never once per member rule), so a group with N
rules yields at most one set of errors per check.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar

from ruleval.config.scope import ValidationScope
from ruleval.durations import format_duration_ms
from ruleval.validators.base import GroupValidator, ParamReader, pattern_text

if TYPE_CHECKING:
    from ruleval.rules.model import RuleGroup

VALID_PARTIAL_RESPONSE_STRATEGIES = ("warn", "abort")


@dataclass(frozen=True)
class HasAllowedSourceTenants(GroupValidator):
    name: ClassVar[str] = "hasAllowedSourceTenants"
    scope: ClassVar[ValidationScope] = ValidationScope.GROUP

    allowed_source_tenants: tuple[str, ...]

    @classmethod
    def from_params(cls, params: ParamReader) -> HasAllowedSourceTenants:
        return cls(allowed_source_tenants=params.get_str_list("allowedSourceTenants"))

    def describe(self) -> str:
        return (
            "does not have other `source_tenants` than: "
            f"`{'`, `'.join(self.allowed_source_tenants)}`"
        )

    def validate_group(self, group: RuleGroup) -> list[str]:
        invalid = [t for t in group.source_tenants if t not in self.allowed_source_tenants]
        if not invalid:
            return []
        return [f"group has invalid source_tenants: `{'`,`'.join(invalid)}`"]


@dataclass(frozen=True)
class HasAllowedEvaluationInterval(GroupValidator):
    """Group ``interval`` within ``[minimum, maximum]`` (0 maximum = unbounded).

    An unset interval passes unless ``intervalMustBeSet`` is true.
    """

    name: ClassVar[str] = "hasAllowedEvaluationInterval"
    scope: ClassVar[ValidationScope] = ValidationScope.GROUP

    minimum_ms: int = 0
    maximum_ms: int = 0
    must_be_set: bool = False

    @classmethod
    def from_params(cls, params: ParamReader) -> HasAllowedEvaluationInterval:
        minimum = params.get_duration_ms("minimum")
        maximum = params.get_duration_ms("maximum")
        if minimum == 0 and maximum == 0:
            raise params.fail("at least one of the `minimum` or `maximum` must be set")
        if maximum and minimum > maximum:
            raise params.fail("minimum is greater than maximum")
        return cls(
            minimum_ms=minimum,
            maximum_ms=maximum,
            must_be_set=params.get_bool("intervalMustBeSet"),
        )

    def describe(self) -> str:
        maximum = format_duration_ms(self.maximum_ms) if self.maximum_ms else "unlimited"
        text = (
            f"evaluation interval is between `{format_duration_ms(self.minimum_ms)}` "
            f"and `{maximum}`"
        )
        return text + (" and must be set" if self.must_be_set else " if set")

    def validate_group(self, group: RuleGroup) -> list[str]:
        if group.interval_ms == 0:
            return ["evaluation interval must be set"] if self.must_be_set else []
        interval = format_duration_ms(group.interval_ms)
        if self.minimum_ms and group.interval_ms < self.minimum_ms:
            return [
                f"evaluation interval {interval} is less than "
                f"`{format_duration_ms(self.minimum_ms)}`"
            ]
        if self.maximum_ms and group.interval_ms > self.maximum_ms:
            return [
                f"evaluation interval {interval} is greater than "
                f"`{format_duration_ms(self.maximum_ms)}`"
            ]
        return []


@dataclass(frozen=True)
class HasValidPartialResponseStrategy(GroupValidator):
    name: ClassVar[str] = "hasValidPartialResponseStrategy"
    scope: ClassVar[ValidationScope] = ValidationScope.GROUP

    must_be_set: bool = False

    @classmethod
    def from_params(cls, params: ParamReader) -> HasValidPartialResponseStrategy:
        return cls(must_be_set=params.get_bool("mustBeSet"))

    def describe(self) -> str:
        text = "has valid partial_response_strategy (one of `warn` or `abort`)"
        return text + (" and must be set" if self.must_be_set else " if set")

    def validate_group(self, group: RuleGroup) -> list[str]:
        strategy = group.partial_response_strategy
        if not strategy:
            return ["partial_response_strategy must be set"] if self.must_be_set else []
        if strategy not in VALID_PARTIAL_RESPONSE_STRATEGIES:
            return [
                f"invalid partial_response_strategy `{strategy}`, "
                "valid options are `warn` and `abort`"
            ]
        return []


@dataclass(frozen=True)
class MaxRulesPerGroup(GroupValidator):
    name: ClassVar[str] = "maxRulesPerGroup"
    scope: ClassVar[ValidationScope] = ValidationScope.GROUP

    limit: int

    @classmethod
    def from_params(cls, params: ParamReader) -> MaxRulesPerGroup:
        limit = params.get_int("limit")
        if limit < 0:
            raise params.fail("limit must not be negative")
        return cls(limit=limit)

    def describe(self) -> str:
        return f"has at most {self.limit} rules"

    def validate_group(self, group: RuleGroup) -> list[str]:
        if len(group.rules) > self.limit:
            return [f"group has {len(group.rules)} rules, maximum is {self.limit}"]
        return []


@dataclass(frozen=True)
class HasAllowedLimit(GroupValidator):
    """Group ``limit`` must be set and not above the configured maximum."""

    name: ClassVar[str] = "hasAllowedLimit"
    scope: ClassVar[ValidationScope] = ValidationScope.GROUP

    limit: int

    @classmethod
    def from_params(cls, params: ParamReader) -> HasAllowedLimit:
        limit = params.get_int("limit")
        if limit < 0:
            raise params.fail("limit must not be negative")
        return cls(limit=limit)

    def describe(self) -> str:
        return f"does not have higher `limit` configured then {self.limit}"

    def validate_group(self, group: RuleGroup) -> list[str]:
        if group.limit > self.limit:
            return [f"group has limit {group.limit}, allowed maximum is {self.limit}"]
        if group.limit == 0:
            return [
                "limit must be set, the default value 0 means it is unlimited and maximum "
                f"allowed limit is {self.limit}"
            ]
        return []


@dataclass(frozen=True)
class HasAllowedQueryOffset(GroupValidator):
    name: ClassVar[str] = "hasAllowedQueryOffset"
    scope: ClassVar[ValidationScope] = ValidationScope.GROUP

    minimum_ms: int = 0
    maximum_ms: int = 0

    @classmethod
    def from_params(cls, params: ParamReader) -> HasAllowedQueryOffset:
        minimum = params.get_duration_ms("minimum")
        maximum = params.get_duration_ms("maximum")
        if minimum == 0 and maximum == 0:
            raise params.fail("minimum or maximum must be set")
        if maximum and minimum > maximum:
            raise params.fail("minimum is greater than maximum")
        return cls(minimum_ms=minimum, maximum_ms=maximum)

    def describe(self) -> str:
        maximum = format_duration_ms(self.maximum_ms) if self.maximum_ms else "unlimited"
        return (
            f"group query_offset is between `{format_duration_ms(self.minimum_ms)}` "
            f"and `{maximum}`"
        )

    def validate_group(self, group: RuleGroup) -> list[str]:
        offset = format_duration_ms(group.query_offset_ms)
        if self.maximum_ms and group.query_offset_ms > self.maximum_ms:
            return [
                f"group has query_offset {offset}, allowed maximum is "
                f"{format_duration_ms(self.maximum_ms)}"
            ]
        if group.query_offset_ms < self.minimum_ms:
            return [
                f"group has query_offset {offset}, allowed minimum is "
                f"{format_duration_ms(self.minimum_ms)}"
            ]
        return []


@dataclass(frozen=True)
class GroupNameMatchesRegexp(GroupValidator):
    name: ClassVar[str] = "groupNameMatchesRegexp"
    scope: ClassVar[ValidationScope] = ValidationScope.GROUP

    pattern: re.Pattern[str]

    @classmethod
    def from_params(cls, params: ParamReader) -> GroupNameMatchesRegexp:
        return cls(pattern=params.get_regexp("regexp"))

    def describe(self) -> str:
        return f"Group name matches regexp: `{pattern_text(self.pattern)}`"

    def validate_group(self, group: RuleGroup) -> list[str]:
        if self.pattern.match(group.name):
            return []
        return [f"group name {group.name} does not match regexp {pattern_text(self.pattern)}"]
