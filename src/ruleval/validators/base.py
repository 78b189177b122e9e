"""Validator contract and strict parameter decoding.

Every check is a small frozen dataclass subclassing :class:`Validator`. Each
variant declares:

- ``name``: stable identifier, used both as the config ``type`` and in
  suppression directives. Never derived from the Python class name.
- ``scope``: the kind of entity it inspects (Alert, RecordingRule, Group or
  AllRules).

Validators are stateless after construction and safe to call concurrently.
A failed check is reported by returning error strings, never by raising.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, ClassVar

from ruleval.durations import parse_duration_ms
from ruleval.errors import ConfigError

if TYPE_CHECKING:
    from ruleval.config.scope import ValidationScope
    from ruleval.remote.client import PrometheusClient
    from ruleval.rules.model import Rule, RuleGroup


def matches_text(negative: bool) -> str:
    return "does not match" if negative else "matches"


class ParamReader:
    """Typed, strict access to a validator's ``params`` mapping.

    Every key the validator reads is recorded; :meth:`finish` rejects any
    key left unread, so a misspelled parameter is a config error instead of
    a silently ignored setting.
    """

    def __init__(self, validator_type: str, params: Mapping[str, Any] | None) -> None:
        if params is not None and not isinstance(params, Mapping):
            raise ConfigError(f"validator `{validator_type}`: params must be a mapping")
        self.validator_type = validator_type
        self._params: Mapping[str, Any] = params or {}
        self._read: set[str] = set()

    def fail(self, message: str) -> ConfigError:
        return ConfigError(f"validator `{self.validator_type}`: {message}")

    def _get(self, name: str) -> Any:
        self._read.add(name)
        return self._params.get(name)

    def get_str(self, name: str, default: str = "") -> str:
        value = self._get(name)
        if value is None:
            return default
        if isinstance(value, (dict, list)):
            raise self.fail(f"param `{name}` must be a string")
        return str(value)

    def get_str_list(self, name: str) -> tuple[str, ...]:
        value = self._get(name)
        if value is None:
            return ()
        if not isinstance(value, list):
            raise self.fail(f"param `{name}` must be a list of strings")
        return tuple(str(v) for v in value)

    def get_bool(self, name: str, default: bool = False) -> bool:
        value = self._get(name)
        if value is None:
            return default
        if not isinstance(value, bool):
            raise self.fail(f"param `{name}` must be a boolean")
        return value

    def get_int(self, name: str, default: int = 0) -> int:
        value = self._get(name)
        if value is None:
            return default
        if isinstance(value, bool) or not isinstance(value, int):
            raise self.fail(f"param `{name}` must be an integer")
        return value

    def get_float(self, name: str, default: float = 0.0) -> float:
        value = self._get(name)
        if value is None:
            return default
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise self.fail(f"param `{name}` must be a number")
        return float(value)

    def get_duration_ms(self, name: str) -> int:
        value = self._get(name)
        if value is None:
            return 0
        try:
            return parse_duration_ms(str(value))
        except ValueError as e:
            raise self.fail(f"param `{name}`: {e}") from None

    def get_regexp(
        self, name: str, default: str = "", forbid_empty: bool = False
    ) -> re.Pattern[str]:
        """Compile an anchored regexp param (the whole value must match)."""
        pattern = self.get_str(name)
        if not pattern:
            if forbid_empty:
                raise self.fail(f"missing {name}")
            pattern = default
        try:
            return re.compile(f"^(?:{pattern})$")
        except re.error as e:
            raise self.fail(f"invalid regexp {pattern}: {e}") from None

    def finish(self) -> None:
        unknown = sorted(set(self._params) - self._read)
        if unknown:
            raise self.fail(
                f"unknown param(s) {', '.join(repr(k) for k in unknown)}, "
                f"supported params are: {', '.join(sorted(self._read)) or 'none'}"
            )


def pattern_text(pattern: re.Pattern[str]) -> str:
    """Original regexp text, without the anchoring added by :meth:`ParamReader.get_regexp`."""
    return pattern.pattern[len("^(?:") : -len(")$")]


class Validator(ABC):
    """A single check evaluated against a rule group and optionally a rule."""

    name: ClassVar[str]
    scope: ClassVar[ValidationScope]

    @classmethod
    @abstractmethod
    def from_params(cls, params: ParamReader) -> Validator:
        """Build from config params.

        Raises:
            ConfigError: If a required param is missing or a value is invalid.
        """

    @abstractmethod
    def describe(self) -> str:
        """Human-readable description of what is checked."""

    @abstractmethod
    def validate(
        self, group: RuleGroup, rule: Rule | None, client: PrometheusClient | None
    ) -> list[str]:
        """Run the check; returns error messages (empty = passed)."""

    def __str__(self) -> str:
        return self.describe()


class RuleValidator(Validator):
    """Validator that inspects a single rule (never called without one)."""

    def validate(
        self, group: RuleGroup, rule: Rule | None, client: PrometheusClient | None
    ) -> list[str]:
        if rule is None:
            return []
        return self.validate_rule(group, rule, client)

    @abstractmethod
    def validate_rule(
        self, group: RuleGroup, rule: Rule, client: PrometheusClient | None
    ) -> list[str]: ...


class GroupValidator(Validator):
    """Validator that inspects a rule group as a whole."""

    def validate(
        self, group: RuleGroup, rule: Rule | None, client: PrometheusClient | None
    ) -> list[str]:
        return self.validate_group(group)

    @abstractmethod
    def validate_group(self, group: RuleGroup) -> list[str]: ...
