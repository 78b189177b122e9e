"""Configuration file loading.

Config files are YAML, decoded with PyYAML and checked strictly: unknown
keys are rejected at every level so typos never silently disable a check.

Top-level layout::

    customExcludeAnnotation: disabled_validation_rules   # optional
    customDisableComment: ignore_validations             # optional
    prometheus:                                          # optional
      url: https://prometheus.example.com
      timeout: 30s
      insecureSkipTlsVerify: false
      cacheFile: .ruleval_cache.json
      maxCacheAge: 1h
      bearerTokenFile: token.txt        # relative to the config file
      queryOffset: 1m
      queryLookback: 20m
      httpHeaders: {X-Scope-OrgID: tenant}
    validationRules:
      - name: mustHaveSeverity
        scope: Alert
        onlyIf: [...]                  # optional, same shape as validations
        validations:
          - type: hasLabels
            additionalDetails: "..."   # optional
            params: {labels: [severity]}

Several files may be combined with :func:`load_configs`: the first is the
base, later files append ``validationRules`` and override ``prometheus`` and
the custom names when they set them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from ruleval.config.scope import ValidationScope
from ruleval.durations import parse_duration_ms
from ruleval.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDE_ANNOTATION = "disabled_validation_rules"
DEFAULT_DISABLE_COMMENT = "ignore_validations"

_TOP_LEVEL_KEYS = frozenset(
    {"validationRules", "customExcludeAnnotation", "customDisableComment", "prometheus"}
)
_RULE_KEYS = frozenset({"name", "scope", "onlyIf", "validations"})
_VALIDATOR_KEYS = frozenset({"type", "params", "additionalDetails"})
_PROMETHEUS_KEYS = frozenset(
    {
        "url",
        "timeout",
        "insecureSkipTlsVerify",
        "cacheFile",
        "maxCacheAge",
        "bearerTokenFile",
        "queryOffset",
        "queryLookback",
        "httpHeaders",
    }
)


@dataclass(frozen=True)
class ValidatorConfig:
    """One validator entry of a validation rule.

    Attributes:
        type: Validator type discriminant (e.g. ``hasLabels``)
        params: Raw parameters, decoded strictly by the validator factory
        additional_details: Operator-supplied text appended to every error
    """

    type: str
    params: dict[str, Any] = field(default_factory=dict)
    additional_details: str = ""


@dataclass(frozen=True)
class ValidationRuleConfig:
    """Named, scoped bundle of validators as written in the config file."""

    name: str
    scope: ValidationScope
    validations: tuple[ValidatorConfig, ...] = ()
    only_if: tuple[ValidatorConfig, ...] = ()


@dataclass(frozen=True)
class PrometheusConfig:
    """Metrics backend settings.

    Attributes:
        url: Backend base URL
        timeout_ms: Per-call timeout (0 = no deadline)
        insecure_skip_tls_verify: Disable TLS certificate verification
        cache_file: Path of the persisted query cache
        max_cache_age_ms: Cache entries older than this are discarded (0 = unlimited)
        bearer_token_file: Token file, already resolved against the config file dir
        query_offset_ms: Evaluate queries this far in the past
        query_lookback_ms: Window length for label and series lookups
        http_headers: Extra headers sent with every request
    """

    url: str
    timeout_ms: int = 30_000
    insecure_skip_tls_verify: bool = False
    cache_file: str = ".ruleval_cache.json"
    max_cache_age_ms: int = 3_600_000  # 1 hour
    bearer_token_file: str = ""
    query_offset_ms: int = 60_000  # 1 minute
    query_lookback_ms: int = 1_200_000  # 20 minutes
    http_headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Config:
    """Fully loaded tool configuration."""

    validation_rules: tuple[ValidationRuleConfig, ...] = ()
    custom_exclude_annotation: str = ""
    custom_disable_comment: str = ""
    prometheus: PrometheusConfig | None = None

    @property
    def exclude_annotation(self) -> str:
        return self.custom_exclude_annotation or DEFAULT_EXCLUDE_ANNOTATION

    @property
    def disable_comment(self) -> str:
        return self.custom_disable_comment or DEFAULT_DISABLE_COMMENT


def _check_keys(data: dict[str, Any], allowed: frozenset[str], where: str) -> None:
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ConfigError(
            f"unknown field(s) {', '.join(repr(k) for k in unknown)} in {where}, "
            f"supported fields are: {', '.join(sorted(allowed))}"
        )


def _expect_mapping(value: Any, where: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{where} must be a mapping, got {type(value).__name__}")
    return value


def _expect_str(value: Any, where: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ConfigError(f"{where} must be a string, got {type(value).__name__}")
    return value


def _duration(value: Any, where: str, default: int) -> int:
    if value is None:
        return default
    try:
        return parse_duration_ms(str(value))
    except ValueError as e:
        raise ConfigError(f"{where}: {e}") from e


def _parse_validator(data: Any, where: str) -> ValidatorConfig:
    raw = _expect_mapping(data, where)
    _check_keys(raw, _VALIDATOR_KEYS, where)
    vtype = _expect_str(raw.get("type"), f"{where}.type")
    if not vtype:
        raise ConfigError(f"{where}: missing validator `type`")
    return ValidatorConfig(
        type=vtype,
        params=_expect_mapping(raw.get("params"), f"{where}.params"),
        additional_details=_expect_str(raw.get("additionalDetails"), f"{where}.additionalDetails"),
    )


def _parse_validators(data: Any, where: str) -> tuple[ValidatorConfig, ...]:
    if data is None:
        return ()
    if not isinstance(data, list):
        raise ConfigError(f"{where} must be a list")
    return tuple(_parse_validator(item, f"{where}[{i}]") for i, item in enumerate(data))


def _parse_validation_rule(data: Any, index: int) -> ValidationRuleConfig:
    where = f"validationRules[{index}]"
    raw = _expect_mapping(data, where)
    _check_keys(raw, _RULE_KEYS, where)
    name = _expect_str(raw.get("name"), f"{where}.name")
    if not name:
        raise ConfigError(f"{where}: missing validation rule `name`")
    if raw.get("scope") is None:
        raise ConfigError(f"scope is missing in the validation rule `{name}`")
    return ValidationRuleConfig(
        name=name,
        scope=ValidationScope.parse(raw["scope"]),
        validations=_parse_validators(raw.get("validations"), f"{where}.validations"),
        only_if=_parse_validators(raw.get("onlyIf"), f"{where}.onlyIf"),
    )


def _parse_prometheus(data: Any, base_dir: Path) -> PrometheusConfig:
    raw = _expect_mapping(data, "prometheus")
    _check_keys(raw, _PROMETHEUS_KEYS, "prometheus")
    defaults = PrometheusConfig(url="")

    token_file = _expect_str(raw.get("bearerTokenFile"), "prometheus.bearerTokenFile")
    if token_file:
        if Path(token_file).is_absolute():
            raise ConfigError("`bearerTokenFile` must be a relative path to the config file")
        token_file = str(base_dir / token_file)

    headers = _expect_mapping(raw.get("httpHeaders"), "prometheus.httpHeaders")

    return PrometheusConfig(
        url=_expect_str(raw.get("url"), "prometheus.url"),
        timeout_ms=_duration(raw.get("timeout"), "prometheus.timeout", defaults.timeout_ms),
        insecure_skip_tls_verify=bool(raw.get("insecureSkipTlsVerify", False)),
        cache_file=_expect_str(raw.get("cacheFile"), "prometheus.cacheFile") or defaults.cache_file,
        max_cache_age_ms=_duration(
            raw.get("maxCacheAge"), "prometheus.maxCacheAge", defaults.max_cache_age_ms
        ),
        bearer_token_file=token_file,
        query_offset_ms=_duration(
            raw.get("queryOffset"), "prometheus.queryOffset", defaults.query_offset_ms
        ),
        query_lookback_ms=_duration(
            raw.get("queryLookback"), "prometheus.queryLookback", defaults.query_lookback_ms
        ),
        http_headers={str(k): str(v) for k, v in headers.items()},
    )


def parse_config(data: Any, base_dir: Path | None = None) -> Config:
    """Build a :class:`Config` from an already-decoded YAML document.

    Args:
        data: Decoded YAML (``None`` for an empty file)
        base_dir: Directory relative paths in the config are resolved against

    Raises:
        ConfigError: On any structural or value error.
    """
    raw = _expect_mapping(data, "config")
    _check_keys(raw, _TOP_LEVEL_KEYS, "config")
    rules_raw = raw.get("validationRules") or []
    if not isinstance(rules_raw, list):
        raise ConfigError("validationRules must be a list")
    prometheus = None
    if raw.get("prometheus") is not None:
        prometheus = _parse_prometheus(raw["prometheus"], base_dir or Path("."))
    return Config(
        validation_rules=tuple(_parse_validation_rule(r, i) for i, r in enumerate(rules_raw)),
        custom_exclude_annotation=_expect_str(
            raw.get("customExcludeAnnotation"), "customExcludeAnnotation"
        ),
        custom_disable_comment=_expect_str(raw.get("customDisableComment"), "customDisableComment"),
        prometheus=prometheus,
    )


def load_config(path: str | Path) -> Config:
    """Load a single config file.

    Raises:
        ConfigError: If the file is missing, is not valid YAML or fails validation.
    """
    p = Path(path)
    try:
        text = p.read_text()
    except OSError as e:
        raise ConfigError(f"open config file: {e}") from e
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"loading config file {p}: {e}") from e
    try:
        return parse_config(data, base_dir=p.parent)
    except ConfigError as e:
        raise ConfigError(f"loading config file {p}: {e}") from e


def merge_configs(base: Config, override: Config) -> Config:
    """Merge ``override`` on top of ``base``."""
    return replace(
        base,
        validation_rules=base.validation_rules + override.validation_rules,
        custom_exclude_annotation=override.custom_exclude_annotation
        or base.custom_exclude_annotation,
        custom_disable_comment=override.custom_disable_comment or base.custom_disable_comment,
        prometheus=override.prometheus if override.prometheus is not None else base.prometheus,
    )


def load_configs(paths: list[str] | list[Path]) -> Config:
    """Load and merge several config files in order."""
    if not paths:
        raise ConfigError("at least one config file is required")
    merged = load_config(paths[0])
    for path in paths[1:]:
        merged = merge_configs(merged, load_config(path))
        logger.debug("merged config file %s", path)
    return merged
