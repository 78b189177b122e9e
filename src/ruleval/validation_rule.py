"""Validation rules: named, scoped bundles of validators.

A :class:`ValidationRule` is built once from the config at startup and is
read-only afterwards, so a single instance is shared by every worker.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ruleval.errors import ConfigError
from ruleval.validators.registry import new_from_config

if TYPE_CHECKING:
    from collections.abc import Iterable

    from ruleval.config.loader import Config, ValidatorConfig
    from ruleval.config.scope import ValidationScope
    from ruleval.remote.client import PrometheusClient
    from ruleval.rules.model import Rule, RuleGroup
    from ruleval.validators.base import Validator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttachedValidator:
    """A validator plus the operator-supplied text appended to its errors."""

    validator: Validator
    additional_details: str = ""

    @property
    def name(self) -> str:
        return self.validator.name

    @property
    def scope(self) -> ValidationScope:
        return self.validator.scope

    def describe(self) -> str:
        return self.validator.describe()

    def format_error(self, message: str) -> str:
        text = f"{self.name}: {message}"
        if self.additional_details:
            text += f" ({self.additional_details})"
        return text

    def run(
        self, group: RuleGroup, rule: Rule | None, client: PrometheusClient | None
    ) -> list[str]:
        """Evaluate and return formatted errors."""
        return [self.format_error(e) for e in self.validator.validate(group, rule, client)]


def _text_with_scope(scope: ValidationScope, text: str) -> str:
    return f"{scope.doc_label} {text}"


class ValidationRule:
    """Named validation rule with its validators and onlyIf preconditions.

    Usage::

        rule = ValidationRule("mustHaveSeverity", ValidationScope.ALERT)
        rule.add_validator(HasLabels(labels=("severity",)))
    """

    def __init__(self, name: str, scope: ValidationScope) -> None:
        self.name = name
        self.scope = scope
        self._validators: list[AttachedValidator] = []
        self._only_if: list[AttachedValidator] = []

    def __repr__(self) -> str:
        return f"ValidationRule(name={self.name!r}, scope={self.scope.value})"

    def add_validator(self, validator: Validator, additional_details: str = "") -> None:
        self._validators.append(AttachedValidator(validator, additional_details))

    def add_only_if_validator(self, validator: Validator, additional_details: str = "") -> None:
        self._only_if.append(AttachedValidator(validator, additional_details))

    @property
    def validators(self) -> tuple[AttachedValidator, ...]:
        return tuple(self._validators)

    @property
    def only_if(self) -> tuple[AttachedValidator, ...]:
        return tuple(self._only_if)

    def validation_texts(self) -> list[str]:
        """Descriptions of the main validators, prefixed with this rule's scope."""
        return [_text_with_scope(self.scope, v.describe()) for v in self._validators]

    def only_if_validation_texts(self) -> list[str]:
        """Descriptions of the preconditions, prefixed with each validator's own scope."""
        return [_text_with_scope(v.scope, v.describe()) for v in self._only_if]

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "scope": self.scope.value,
            "validators": self.validation_texts(),
            "only_if": self.only_if_validation_texts(),
        }


def _filter_names(
    names: list[str], disabled: Iterable[str], enabled: Iterable[str]
) -> set[str]:
    known = set(names)
    disabled_set, enabled_set = set(disabled), set(enabled)
    for name in sorted((disabled_set | enabled_set) - known):
        logger.warning("UNKNOWN_VALIDATION_RULE_FILTER", extra={"rule": name})
    selected = enabled_set & known if enabled_set else known
    return selected - disabled_set


def validation_rules_from_config(
    config: Config,
    disabled_rules: Iterable[str] = (),
    enabled_rules: Iterable[str] = (),
) -> list[ValidationRule]:
    """Build every configured validation rule, fail-fast.

    Args:
        config: Loaded config
        disabled_rules: Rule names to leave out
        enabled_rules: If non-empty, only these rule names are built

    Raises:
        ConfigError: Duplicate rule name or any invalid validator entry.
    """
    names = [r.name for r in config.validation_rules]
    seen: set[str] = set()
    for name in names:
        if name in seen:
            raise ConfigError(f"duplicate validation rule name `{name}`")
        seen.add(name)

    selected = _filter_names(names, disabled_rules, enabled_rules)
    rules: list[ValidationRule] = []
    for rule_config in config.validation_rules:
        if rule_config.name not in selected:
            logger.debug("validation rule %s disabled", rule_config.name)
            continue
        rule = ValidationRule(rule_config.name, rule_config.scope)
        for validator_config in rule_config.only_if:
            rule.add_only_if_validator(
                _build(rule_config.name, rule_config.scope, validator_config, only_if=True),
                validator_config.additional_details,
            )
        for validator_config in rule_config.validations:
            rule.add_validator(
                _build(rule_config.name, rule_config.scope, validator_config),
                validator_config.additional_details,
            )
        rules.append(rule)
    return rules


def _build(
    rule_name: str,
    scope: ValidationScope,
    validator_config: ValidatorConfig,
    only_if: bool = False,
) -> Validator:
    try:
        return new_from_config(scope, validator_config, only_if=only_if)
    except ConfigError as e:
        raise ConfigError(f"validation rule `{rule_name}`: {e}") from e
