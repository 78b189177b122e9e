"""Validator contract, catalog and factory."""

from ruleval.validators.base import GroupValidator, ParamReader, RuleValidator, Validator
from ruleval.validators.registry import REGISTRY, is_known, new_from_config, validator_scope

__all__ = [
    "REGISTRY",
    "GroupValidator",
    "ParamReader",
    "RuleValidator",
    "Validator",
    "is_known",
    "new_from_config",
    "validator_scope",
]
