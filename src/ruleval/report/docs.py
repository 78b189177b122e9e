"""Human-readable documentation of the configured validation rules."""

from __future__ import annotations

import html
import re
from typing import TYPE_CHECKING

from ruleval.errors import ConfigError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from ruleval.validation_rule import ValidationRule

DOCS_FORMATS = ("text", "markdown", "html")

_BACKTICKS_RE = re.compile(r"`([^`]+)`")
_INDENT_RE = re.compile(r"( {4,})")

_ONLY_IF_HEADING = "Only if ALL the following conditions are met:"
_MUST_HEADING = "Following conditions MUST be met:"


def _as_text(rules: Iterable[ValidationRule]) -> str:
    lines = ["", "Validation rules:"]
    for rule in rules:
        lines += ["", f"  {rule.name} ({rule.scope.value})"]
        only_if = rule.only_if_validation_texts()
        if only_if:
            lines.append(f"    {_ONLY_IF_HEADING}")
            lines += [f"      - {text}" for text in only_if]
        lines.append(f"    {_MUST_HEADING}")
        lines += [f"      - {text}" for text in rule.validation_texts()]
    return "\n".join(lines) + "\n"


def _as_markdown(rules: Iterable[ValidationRule]) -> str:
    lines = ["", "# Validation rules"]
    for rule in rules:
        lines += ["", f"## {rule.name}"]
        only_if = rule.only_if_validation_texts()
        if only_if:
            lines.append(f"#### {_ONLY_IF_HEADING}")
            lines += [f"  - {text}" for text in only_if]
        lines.append(f"#### {_MUST_HEADING}")
        lines += [f"  - {text}" for text in rule.validation_texts()]
    return "\n".join(lines) + "\n"


def _html_item(text: str) -> str:
    text = _BACKTICKS_RE.sub(r"<code>\1</code>", html.escape(text, quote=False))
    return _INDENT_RE.sub(r"<br/>\1", text)


def _as_html(rules: Iterable[ValidationRule]) -> str:
    lines = ["", "<h1>Validation rules</h1>"]
    for rule in rules:
        name = html.escape(rule.name)
        lines += ["  <br/>", f'  <h2><a href="#{name}">{name}</a></h2>']
        only_if = rule.only_if_validation_texts()
        if only_if:
            lines += [f"  <h4>{_ONLY_IF_HEADING}</h4>", "  <ul>"]
            lines += [f"    <li>{_html_item(text)}</li>" for text in only_if]
            lines.append("  </ul>")
        lines += [f"  <h4>{_MUST_HEADING}</h4>", "  <ul>"]
        lines += [f"    <li>{_html_item(text)}</li>" for text in rule.validation_texts()]
        lines.append("  </ul>")
    return "\n".join(lines) + "\n"


_RENDERERS = {
    "text": _as_text,
    "markdown": _as_markdown,
    "html": _as_html,
}


def validation_docs(rules: Iterable[ValidationRule], fmt: str = "text") -> str:
    """Render validation rule docs in ``text``, ``markdown`` or ``html``.

    Raises:
        ConfigError: If the format is not supported.
    """
    renderer = _RENDERERS.get(fmt)
    if renderer is None:
        raise ConfigError(f"unsupported format type {fmt}")
    return renderer(list(rules))
