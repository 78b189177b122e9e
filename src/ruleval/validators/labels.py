"""Label checks, applicable to every rule kind."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar

from ruleval.config.scope import ValidationScope
from ruleval.validators.base import ParamReader, RuleValidator, pattern_text

if TYPE_CHECKING:
    from ruleval.remote.client import PrometheusClient
    from ruleval.rules.model import Rule, RuleGroup


def _required_list(params: ParamReader, name: str, what: str) -> tuple[str, ...]:
    values = params.get_str_list(name)
    if not values:
        raise params.fail(f"missing {what}")
    return values


@dataclass(frozen=True)
class HasLabels(RuleValidator):
    name: ClassVar[str] = "hasLabels"
    scope: ClassVar[ValidationScope] = ValidationScope.ALL_RULES

    labels: tuple[str, ...]

    @classmethod
    def from_params(cls, params: ParamReader) -> HasLabels:
        return cls(labels=_required_list(params, "labels", "labels"))

    def describe(self) -> str:
        return f"has labels: `{'`,`'.join(self.labels)}`"

    def validate_rule(
        self, group: RuleGroup, rule: Rule, client: PrometheusClient | None
    ) -> list[str]:
        return [f"missing label `{label}`" for label in self.labels if label not in rule.labels]


@dataclass(frozen=True)
class DoesNotHaveLabels(RuleValidator):
    name: ClassVar[str] = "doesNotHaveLabels"
    scope: ClassVar[ValidationScope] = ValidationScope.ALL_RULES

    labels: tuple[str, ...]

    @classmethod
    def from_params(cls, params: ParamReader) -> DoesNotHaveLabels:
        return cls(labels=_required_list(params, "labels", "labels"))

    def describe(self) -> str:
        return f"does not have labels: `{'`,`'.join(self.labels)}`"

    def validate_rule(
        self, group: RuleGroup, rule: Rule, client: PrometheusClient | None
    ) -> list[str]:
        return [f"has forbidden label `{label}`" for label in self.labels if label in rule.labels]


@dataclass(frozen=True)
class HasAnyOfLabels(RuleValidator):
    name: ClassVar[str] = "hasAnyOfLabels"
    scope: ClassVar[ValidationScope] = ValidationScope.ALL_RULES

    labels: tuple[str, ...]

    @classmethod
    def from_params(cls, params: ParamReader) -> HasAnyOfLabels:
        return cls(labels=_required_list(params, "labels", "labels"))

    def describe(self) -> str:
        return f"has any of these labels: `{'`,`'.join(self.labels)}`"

    def validate_rule(
        self, group: RuleGroup, rule: Rule, client: PrometheusClient | None
    ) -> list[str]:
        if any(label in rule.labels for label in self.labels):
            return []
        return [f"missing any of these labels `{'`,`'.join(self.labels)}`"]


@dataclass(frozen=True)
class LabelHasAllowedValue(RuleValidator):
    """Label value (or each comma separated item of it) must be in an allow-list.

    A rule without the label passes; combine with ``hasLabels`` to require it.
    """

    name: ClassVar[str] = "labelHasAllowedValue"
    scope: ClassVar[ValidationScope] = ValidationScope.ALL_RULES

    label: str
    allowed_values: tuple[str, ...]
    comma_separated_value: bool = False
    ignore_templated_values: bool = False

    @classmethod
    def from_params(cls, params: ParamReader) -> LabelHasAllowedValue:
        label = params.get_str("label")
        if not label:
            raise params.fail("missing label")
        return cls(
            label=label,
            allowed_values=_required_list(params, "allowedValues", "allowedValues"),
            comma_separated_value=params.get_bool("commaSeparatedValue"),
            ignore_templated_values=params.get_bool("ignoreTemplatedValues"),
        )

    def describe(self) -> str:
        text = f"has one of the allowed values: `{'`,`'.join(self.allowed_values)}`"
        if self.comma_separated_value:
            text = "split by comma " + text
        text = f"label `{self.label}` {text}"
        if self.ignore_templated_values:
            text += " (templated values are ignored)"
        return text

    def validate_rule(
        self, group: RuleGroup, rule: Rule, client: PrometheusClient | None
    ) -> list[str]:
        value = rule.labels.get(self.label)
        if value is None:
            return []
        if self.ignore_templated_values and "{{" in value:
            return []
        candidates = value.split(",") if self.comma_separated_value else [value]
        if any(c in self.allowed_values for c in candidates):
            return []
        return [
            f"label `{self.label}` value `{value}` is not one of the allowed values: "
            f"`{'`,`'.join(self.allowed_values)}`"
        ]


@dataclass(frozen=True)
class LabelMatchesRegexp(RuleValidator):
    name: ClassVar[str] = "labelMatchesRegexp"
    scope: ClassVar[ValidationScope] = ValidationScope.ALL_RULES

    label: str
    regexp: re.Pattern[str]

    @classmethod
    def from_params(cls, params: ParamReader) -> LabelMatchesRegexp:
        label = params.get_str("label")
        if not label:
            raise params.fail("missing label name")
        return cls(label=label, regexp=params.get_regexp("regexp"))

    def describe(self) -> str:
        return f"label `{self.label}` matches regexp `{pattern_text(self.regexp)}`"

    def validate_rule(
        self, group: RuleGroup, rule: Rule, client: PrometheusClient | None
    ) -> list[str]:
        value = rule.labels.get(self.label)
        if value is None or self.regexp.match(value):
            return []
        return [
            f"label `{self.label}` does not match the regular expression "
            f"`{pattern_text(self.regexp)}`"
        ]


@dataclass(frozen=True)
class NonEmptyLabels(RuleValidator):
    name: ClassVar[str] = "nonEmptyLabels"
    scope: ClassVar[ValidationScope] = ValidationScope.ALL_RULES

    @classmethod
    def from_params(cls, params: ParamReader) -> NonEmptyLabels:
        return cls()

    def describe(self) -> str:
        return "labels does not have empty values"

    def validate_rule(
        self, group: RuleGroup, rule: Rule, client: PrometheusClient | None
    ) -> list[str]:
        return [
            f"label `{key}` has empty value, has no effect"
            for key, value in rule.labels.items()
            if value == ""
        ]


@dataclass(frozen=True)
class ExclusiveLabels(RuleValidator):
    """Two labels (optionally with given values) must not be set together."""

    name: ClassVar[str] = "exclusiveLabels"
    scope: ClassVar[ValidationScope] = ValidationScope.ALL_RULES

    first_label: str
    second_label: str
    first_label_value: str = ""
    second_label_value: str = ""

    @classmethod
    def from_params(cls, params: ParamReader) -> ExclusiveLabels:
        first = params.get_str("firstLabel")
        second = params.get_str("secondLabel")
        if not first:
            raise params.fail("missing firstLabel name")
        if not second:
            raise params.fail("missing secondLabel name")
        return cls(
            first_label=first,
            second_label=second,
            first_label_value=params.get_str("firstLabelValue"),
            second_label_value=params.get_str("secondLabelValue"),
        )

    def _text(self, lead: str) -> str:
        text = f"{lead} label `{self.first_label}`"
        if self.first_label_value:
            text += f" with value `{self.first_label_value}`"
        text += f", it cannot have label `{self.second_label}`"
        if self.second_label_value:
            text += f" with value `{self.second_label_value}`"
        return text

    def describe(self) -> str:
        return self._text("if rule has")

    def validate_rule(
        self, group: RuleGroup, rule: Rule, client: PrometheusClient | None
    ) -> list[str]:
        first = rule.labels.get(self.first_label)
        second = rule.labels.get(self.second_label)
        if first is None or second is None:
            return []
        if self.first_label_value and first != self.first_label_value:
            return []
        if self.second_label_value and second != self.second_label_value:
            return []
        return [self._text("if the rule has")]
