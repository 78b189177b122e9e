"""Checks that do not fit a single label/annotation/expression category."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar

from ruleval.config.scope import ValidationScope
from ruleval.validators.base import ParamReader, RuleValidator

if TYPE_CHECKING:
    from collections.abc import Iterable

    from ruleval.remote.client import PrometheusClient
    from ruleval.rules.model import Rule, RuleGroup


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance (Wagner-Fischer, two rolling rows)."""
    if a == b:
        return 0
    if not a or not b:
        return max(len(a), len(b))

    len_a, len_b = len(a), len(b)
    prev_row: list[int] = list(range(len_b + 1))
    curr_row: list[int] = [0] * (len_b + 1)

    for i in range(1, len_a + 1):
        curr_row[0] = i
        for j in range(1, len_b + 1):
            cost = 0 if a[i - 1] == b[j - 1] else 1
            curr_row[j] = min(
                prev_row[j] + 1,
                curr_row[j - 1] + 1,
                prev_row[j - 1] + cost,
            )
        prev_row, curr_row = curr_row, prev_row

    return prev_row[len_b]


@dataclass(frozen=True)
class DoesNotContainTypos(RuleValidator):
    """Flags label/annotation names that are near misses of well-known names.

    Exactly one threshold is configured: either an absolute
    ``maxLevenshteinDistance`` or a ``maxDifferenceRatio`` (distance divided
    by the well-known name's length). An exact match is never a typo.
    """

    name: ClassVar[str] = "doesNotContainTypos"
    scope: ClassVar[ValidationScope] = ValidationScope.ALL_RULES

    max_levenshtein_distance: int = 0
    max_difference_ratio: float = 0.0
    well_known_annotations: tuple[str, ...] = ()
    well_known_rule_labels: tuple[str, ...] = ()

    @classmethod
    def from_params(cls, params: ParamReader) -> DoesNotContainTypos:
        distance = params.get_int("maxLevenshteinDistance")
        ratio = params.get_float("maxDifferenceRatio")
        if distance < 0:
            raise params.fail("`maxLevenshteinDistance` must be greater than or equal to 0")
        if ratio < 0 or ratio > 1:
            raise params.fail("`maxDifferenceRatio` must be between 0 and 1")
        if distance > 0 and ratio > 0:
            raise params.fail(
                "you can only set one of `maxLevenshteinDistance` or `maxDifferenceRatio`, not both"
            )
        if distance == 0 and ratio == 0:
            raise params.fail(
                "you must set either `maxLevenshteinDistance` or `maxDifferenceRatio` "
                "to a value greater than 0"
            )
        return cls(
            max_levenshtein_distance=distance,
            max_difference_ratio=ratio,
            well_known_annotations=params.get_str_list("wellKnownAnnotations"),
            well_known_rule_labels=params.get_str_list("wellKnownRuleLabels"),
        )

    def describe(self) -> str:
        out = "rule does not contain typos in well known:"
        if self.well_known_annotations:
            out += f"\n        Annotations: `{'`, `'.join(self.well_known_annotations)}`"
        if self.well_known_rule_labels:
            out += f"\n        Rule labels: `{'`, `'.join(self.well_known_rule_labels)}`"
        return out

    def is_typo(self, value: str, well_known: str) -> bool:
        distance = levenshtein_distance(value, well_known)
        if distance == 0:
            return False
        if self.max_levenshtein_distance > 0:
            return distance <= self.max_levenshtein_distance
        return distance / len(well_known) <= self.max_difference_ratio

    def _find(self, kind: str, values: Iterable[str], well_known: tuple[str, ...]) -> list[str]:
        errors = []
        for value in values:
            # an exact well-known name is never reported against its neighbours
            if value in well_known:
                continue
            for candidate in well_known:
                if self.is_typo(value, candidate):
                    errors.append(f"{kind} `{value}` has a typo, did you mean : {candidate}?")
        return errors

    def validate_rule(
        self, group: RuleGroup, rule: Rule, client: PrometheusClient | None
    ) -> list[str]:
        errors = self._find("annotation", rule.annotations, self.well_known_annotations)
        errors += self._find("rule label", rule.labels, self.well_known_rule_labels)
        return errors
