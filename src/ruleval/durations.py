"""Prometheus duration strings.

Durations are carried as integer milliseconds throughout the package, the
resolution Prometheus itself uses for rule files. Accepted syntax is the
Prometheus one: a sequence of ``<int><unit>`` terms with units in
descending order (``y w d h m s ms``), or a bare ``0``.
"""

from __future__ import annotations

import re

_UNITS_MS: tuple[tuple[str, int], ...] = (
    ("y", 1000 * 60 * 60 * 24 * 365),
    ("w", 1000 * 60 * 60 * 24 * 7),
    ("d", 1000 * 60 * 60 * 24),
    ("h", 1000 * 60 * 60),
    ("m", 1000 * 60),
    ("s", 1000),
    ("ms", 1),
)

_DURATION_RE = re.compile(
    r"^(?:(?P<y>\d+)y)?(?:(?P<w>\d+)w)?(?:(?P<d>\d+)d)?(?:(?P<h>\d+)h)?"
    r"(?:(?P<m>\d+)m)?(?:(?P<s>\d+)s)?(?:(?P<ms>\d+)ms)?$"
)


def parse_duration_ms(text: str) -> int:
    """Parse a Prometheus duration string into milliseconds.

    Raises:
        ValueError: If the string is empty or not a valid duration.
    """
    text = text.strip()
    if text == "0":
        return 0
    match = _DURATION_RE.match(text)
    if not text or match is None:
        raise ValueError(f"not a valid duration string: {text!r}")
    total = 0
    for unit, mult in _UNITS_MS:
        value = match.group(unit)
        if value is not None:
            total += int(value) * mult
    return total


def format_duration_ms(ms: int) -> str:
    """Render milliseconds in the canonical Prometheus form (``1h30m``, ``0s``)."""
    if ms == 0:
        return "0s"
    out = ""
    remaining = ms
    for unit, mult in _UNITS_MS:
        # years and weeks are only used when they divide exactly
        if unit in ("y", "w") and remaining % mult != 0:
            continue
        value = remaining // mult
        if value > 0:
            out += f"{value}{unit}"
            remaining -= value * mult
    return out


def format_elapsed_s(seconds: float) -> str:
    """Render a measured wall-clock duration, e.g. ``1.234s`` or ``15ms``."""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    return f"{seconds:.3f}s"
