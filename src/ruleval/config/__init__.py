"""Tool configuration: validation rule definitions and backend settings."""

from ruleval.config.loader import (
    DEFAULT_DISABLE_COMMENT,
    DEFAULT_EXCLUDE_ANNOTATION,
    Config,
    PrometheusConfig,
    ValidationRuleConfig,
    ValidatorConfig,
    load_config,
    load_configs,
)
from ruleval.config.scope import ValidationScope

__all__ = [
    "DEFAULT_DISABLE_COMMENT",
    "DEFAULT_EXCLUDE_ANNOTATION",
    "Config",
    "PrometheusConfig",
    "ValidationRuleConfig",
    "ValidationScope",
    "ValidatorConfig",
    "load_config",
    "load_configs",
]
