"""Validator catalog and the config-to-validator factory.

The catalog is a closed set: every variant is listed here explicitly under
its stable ``name``. Lookup never inspects Python class names.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ruleval.errors import ConfigError
from ruleval.validators.alert import (
    AlertNameMatchesRegexp,
    ForIsNotLongerThan,
    KeepFiringForIsNotLongerThan,
)
from ruleval.validators.annotations import (
    AnnotationHasAllowedValue,
    AnnotationIsValidURL,
    AnnotationMatchesRegexp,
    DoesNotHaveAnnotations,
    HasAnnotations,
    HasAnyOfAnnotations,
)
from ruleval.validators.base import ParamReader, Validator
from ruleval.validators.expression import (
    ExpressionCanBeEvaluated,
    ExpressionSelectorsMatchesAnything,
    ExpressionUsesExistingLabels,
)
from ruleval.validators.group import (
    GroupNameMatchesRegexp,
    HasAllowedEvaluationInterval,
    HasAllowedLimit,
    HasAllowedQueryOffset,
    HasAllowedSourceTenants,
    HasValidPartialResponseStrategy,
    MaxRulesPerGroup,
)
from ruleval.validators.labels import (
    DoesNotHaveLabels,
    ExclusiveLabels,
    HasAnyOfLabels,
    HasLabels,
    LabelHasAllowedValue,
    LabelMatchesRegexp,
    NonEmptyLabels,
)
from ruleval.validators.others import DoesNotContainTypos
from ruleval.validators.recording_rule import (
    RecordedMetricNameDoesNotMatchRegexp,
    RecordedMetricNameMatchesRegexp,
)

if TYPE_CHECKING:
    from ruleval.config.loader import ValidatorConfig
    from ruleval.config.scope import ValidationScope

_CATALOG: tuple[type[Validator], ...] = (
    # labels
    HasLabels,
    DoesNotHaveLabels,
    HasAnyOfLabels,
    LabelMatchesRegexp,
    LabelHasAllowedValue,
    NonEmptyLabels,
    ExclusiveLabels,
    # expression
    ExpressionCanBeEvaluated,
    ExpressionUsesExistingLabels,
    ExpressionSelectorsMatchesAnything,
    # other
    DoesNotContainTypos,
    # alert
    ForIsNotLongerThan,
    KeepFiringForIsNotLongerThan,
    AlertNameMatchesRegexp,
    HasAnnotations,
    DoesNotHaveAnnotations,
    HasAnyOfAnnotations,
    AnnotationMatchesRegexp,
    AnnotationHasAllowedValue,
    AnnotationIsValidURL,
    # recording rule
    RecordedMetricNameMatchesRegexp,
    RecordedMetricNameDoesNotMatchRegexp,
    # group
    HasAllowedSourceTenants,
    HasAllowedEvaluationInterval,
    HasValidPartialResponseStrategy,
    MaxRulesPerGroup,
    HasAllowedLimit,
    GroupNameMatchesRegexp,
    HasAllowedQueryOffset,
)

REGISTRY: dict[str, type[Validator]] = {cls.name: cls for cls in _CATALOG}


def is_known(name: str) -> bool:
    return name in REGISTRY


def validator_scope(name: str) -> ValidationScope:
    """Scope a validator type applies to.

    Raises:
        ConfigError: If the type is unknown.
    """
    try:
        return REGISTRY[name].scope
    except KeyError:
        raise ConfigError(f"unknown validator type `{name}`") from None


def new_from_config(
    spec_scope: ValidationScope, config: ValidatorConfig, only_if: bool = False
) -> Validator:
    """Build a validator from its config entry.

    Main validators must support ``spec_scope``; onlyIf validators may be of
    any type.

    Raises:
        ConfigError: Unknown type, scope mismatch, unknown/missing/invalid params.
    """
    cls = REGISTRY.get(config.type)
    if cls is None:
        raise ConfigError(f"unknown validator type `{config.type}`")
    if not only_if and not spec_scope.accepts(cls.scope):
        raise ConfigError(
            f"validator `{config.type}` of scope {cls.scope.value} cannot be used "
            f"in a validation rule of scope {spec_scope.value}"
        )
    params = ParamReader(config.type, config.params)
    validator = cls.from_params(params)
    params.finish()
    return validator
