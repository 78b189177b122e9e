"""Validation scopes."""

from __future__ import annotations

from enum import Enum

from ruleval.errors import ConfigError


class ValidationScope(Enum):
    """Kind of entity a validation rule (or a validator) applies to.

    These values are stable: they appear in config files, reports and docs.
    """

    ALERT = "Alert"
    RECORDING_RULE = "RecordingRule"
    GROUP = "Group"
    ALL_RULES = "AllRules"

    @classmethod
    def parse(cls, value: object) -> ValidationScope:
        """Parse a config value; ``All`` is accepted as an alias of ``AllRules``."""
        if value == "All":
            return cls.ALL_RULES
        for scope in cls:
            if scope.value == value:
                return scope
        raise ConfigError(f"invalid validation scope `{value}`")

    @property
    def doc_label(self) -> str:
        """Scope prefix used when rendering validator descriptions."""
        if self is ValidationScope.ALL_RULES:
            return "Rule"
        return self.value

    def accepts(self, validator_scope: ValidationScope) -> bool:
        """Whether a validator of ``validator_scope`` may be attached under this scope."""
        if self is ValidationScope.GROUP:
            return validator_scope is ValidationScope.GROUP
        if self is ValidationScope.ALL_RULES:
            return validator_scope is ValidationScope.ALL_RULES
        return validator_scope in (ValidationScope.ALL_RULES, self)
