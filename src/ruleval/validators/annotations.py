"""Annotation checks, applicable to alerts only."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar

import httpx

from ruleval.config.scope import ValidationScope
from ruleval.validators.base import ParamReader, RuleValidator, pattern_text

if TYPE_CHECKING:
    from ruleval.remote.client import PrometheusClient
    from ruleval.rules.model import Rule, RuleGroup

logger = logging.getLogger(__name__)

URL_RESOLVE_TIMEOUT_S = 10.0


def _annotation_param(params: ParamReader) -> str:
    annotation = params.get_str("annotation")
    if not annotation:
        raise params.fail("missing annotation name")
    return annotation


def _annotations_param(params: ParamReader) -> tuple[str, ...]:
    annotations = params.get_str_list("annotations")
    if not annotations:
        raise params.fail("missing annotations")
    return annotations


@dataclass(frozen=True)
class HasAnnotations(RuleValidator):
    name: ClassVar[str] = "hasAnnotations"
    scope: ClassVar[ValidationScope] = ValidationScope.ALERT

    annotations: tuple[str, ...]

    @classmethod
    def from_params(cls, params: ParamReader) -> HasAnnotations:
        return cls(annotations=_annotations_param(params))

    def describe(self) -> str:
        return f"has all of these annotations: `{'`,`'.join(self.annotations)}`"

    def validate_rule(
        self, group: RuleGroup, rule: Rule, client: PrometheusClient | None
    ) -> list[str]:
        return [
            f"missing annotation `{annotation}`"
            for annotation in self.annotations
            if annotation not in rule.annotations
        ]


@dataclass(frozen=True)
class DoesNotHaveAnnotations(RuleValidator):
    name: ClassVar[str] = "doesNotHaveAnnotations"
    scope: ClassVar[ValidationScope] = ValidationScope.ALERT

    annotations: tuple[str, ...]

    @classmethod
    def from_params(cls, params: ParamReader) -> DoesNotHaveAnnotations:
        return cls(annotations=_annotations_param(params))

    def describe(self) -> str:
        return f"does not have annotations: `{'`,`'.join(self.annotations)}`"

    def validate_rule(
        self, group: RuleGroup, rule: Rule, client: PrometheusClient | None
    ) -> list[str]:
        return [
            f"has forbidden annotation `{annotation}`"
            for annotation in self.annotations
            if annotation in rule.annotations
        ]


@dataclass(frozen=True)
class HasAnyOfAnnotations(RuleValidator):
    name: ClassVar[str] = "hasAnyOfAnnotations"
    scope: ClassVar[ValidationScope] = ValidationScope.ALERT

    annotations: tuple[str, ...]

    @classmethod
    def from_params(cls, params: ParamReader) -> HasAnyOfAnnotations:
        return cls(annotations=_annotations_param(params))

    def describe(self) -> str:
        return f"has any of these annotations: `{'`,`'.join(self.annotations)}`"

    def validate_rule(
        self, group: RuleGroup, rule: Rule, client: PrometheusClient | None
    ) -> list[str]:
        if any(a in rule.annotations for a in self.annotations):
            return []
        return [f"missing any of these annotations `{'`,`'.join(self.annotations)}`"]


@dataclass(frozen=True)
class AnnotationMatchesRegexp(RuleValidator):
    name: ClassVar[str] = "annotationMatchesRegexp"
    scope: ClassVar[ValidationScope] = ValidationScope.ALERT

    annotation: str
    regexp: re.Pattern[str]

    @classmethod
    def from_params(cls, params: ParamReader) -> AnnotationMatchesRegexp:
        return cls(annotation=_annotation_param(params), regexp=params.get_regexp("regexp"))

    def describe(self) -> str:
        return f"annotation `{self.annotation}` matches regexp `{pattern_text(self.regexp)}`"

    def validate_rule(
        self, group: RuleGroup, rule: Rule, client: PrometheusClient | None
    ) -> list[str]:
        value = rule.annotations.get(self.annotation)
        if value is None or self.regexp.match(value):
            return []
        return [
            f"annotation `{self.annotation}` does not match the regular expression "
            f"`{pattern_text(self.regexp)}`"
        ]


@dataclass(frozen=True)
class AnnotationHasAllowedValue(RuleValidator):
    name: ClassVar[str] = "annotationHasAllowedValue"
    scope: ClassVar[ValidationScope] = ValidationScope.ALERT

    annotation: str
    allowed_values: tuple[str, ...]
    comma_separated_value: bool = False

    @classmethod
    def from_params(cls, params: ParamReader) -> AnnotationHasAllowedValue:
        annotation = _annotation_param(params)
        allowed = params.get_str_list("allowedValues")
        if not allowed:
            raise params.fail("missing allowedValues")
        return cls(
            annotation=annotation,
            allowed_values=allowed,
            comma_separated_value=params.get_bool("commaSeparatedValue"),
        )

    def describe(self) -> str:
        text = f"has one of the allowed values: `{'`,`'.join(self.allowed_values)}`"
        if self.comma_separated_value:
            text = "split by comma " + text
        return f"annotation `{self.annotation}` {text}"

    def validate_rule(
        self, group: RuleGroup, rule: Rule, client: PrometheusClient | None
    ) -> list[str]:
        value = rule.annotations.get(self.annotation)
        if value is None:
            return []
        candidates = value.split(",") if self.comma_separated_value else [value]
        if any(c in self.allowed_values for c in candidates):
            return []
        return [
            f"annotation `{self.annotation}` value `{value}` is not one of the allowed values: "
            f"`{'`,`'.join(self.allowed_values)}`"
        ]


def is_valid_url(value: str) -> bool:
    """Absolute http(s) URL with a host."""
    try:
        url = httpx.URL(value)
    except (httpx.InvalidURL, TypeError):
        return False
    return url.scheme in ("http", "https") and bool(url.host)


@dataclass(frozen=True)
class AnnotationIsValidURL(RuleValidator):
    """Annotation holds a URL; with ``resolveUrl`` it must also not answer 404.

    Resolution issues a real GET request per rule, so it is opt-in.
    """

    name: ClassVar[str] = "annotationIsValidURL"
    scope: ClassVar[ValidationScope] = ValidationScope.ALERT

    annotation: str
    resolve_url: bool = False

    @classmethod
    def from_params(cls, params: ParamReader) -> AnnotationIsValidURL:
        return cls(annotation=_annotation_param(params), resolve_url=params.get_bool("resolveUrl"))

    def describe(self) -> str:
        text = f"Annotation `{self.annotation}` is a valid URL"
        if self.resolve_url:
            text += " and does not return HTTP status 404"
        return text

    def validate_rule(
        self, group: RuleGroup, rule: Rule, client: PrometheusClient | None
    ) -> list[str]:
        value = rule.annotations.get(self.annotation)
        if value is None:
            return []
        if not is_valid_url(value):
            return [f"annotation `{self.annotation}` is not valid URL"]
        if not self.resolve_url:
            return []
        try:
            resp = httpx.get(value, follow_redirects=True, timeout=URL_RESOLVE_TIMEOUT_S)
        except httpx.HTTPError as e:
            logger.debug("failed to resolve %s: %s", value, e)
            return [f"failed to resolve URL `{value}` in the `{self.annotation}` Annotation"]
        if resp.status_code == httpx.codes.NOT_FOUND:
            return [
                f"URL `{value}` in the `{self.annotation}` Annotation returns "
                "HTTP status code 404 NotFound"
            ]
        return []
