"""Suppression directives embedded in comments.

A directive is a comment line of the form::

    # ignore_validations: hasLabels, expressionCanBeEvaluated

It can sit in a YAML head comment (file, ``groups:`` key, group or rule) or
inside a rule expression, as a line holding nothing but whitespace before
the ``#``. The prefix is configurable.

This module only works on raw text; it knows nothing about YAML structure.
"""

from __future__ import annotations

import re
from collections.abc import Iterable


def _directive_re(prefix: str) -> re.Pattern[str]:
    return re.compile(r"^\s*#\s*" + re.escape(prefix) + r"\s*:(?P<csv>.*)$")


def extract_directives(text: str, prefix: str) -> list[str]:
    """Return validator names listed by every ``<prefix>:`` directive in ``text``.

    Lines with anything but whitespace before the ``#`` are ignored, so a
    trailing comment after an expression term is not a directive. Names are
    trimmed; empty entries are dropped; order of appearance is kept.
    """
    if not text or not prefix:
        return []
    pattern = _directive_re(prefix)
    names: list[str] = []
    for line in text.splitlines():
        match = pattern.match(line)
        if match is None:
            continue
        names.extend(v.strip() for v in match.group("csv").split(",") if v.strip())
    return names


def disabled_validators(texts: Iterable[str], prefix: str) -> list[str]:
    """Collect directive names from several comment/expression texts."""
    names: list[str] = []
    for text in texts:
        names.extend(extract_directives(text, prefix))
    return names
