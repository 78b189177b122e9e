"""Lexical scan of PromQL expressions.

Finds vector selectors (``name{...}``, ``name`` or ``{...}``) and the label
names an expression refers to. This is a token scan, not a parser: it
skips strings, comments, numbers, durations and ``[...]`` ranges, and
tells selectors from function calls, aggregations and keywords by the
token that follows. Malformed expressions are not reported.

Labels counted as used:
- matcher labels of every selector (``__name__`` excluded)
- ``by``/``without`` grouping labels
- ``on``/``group_left``/``group_right`` labels (``ignoring`` may name labels
  of the other side, so it is not counted)
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass

METRIC_NAME_LABEL = "__name__"

_IDENT = re.compile(r"[A-Za-z_:][A-Za-z0-9_:]*")
# numbers, durations (5m, 1h30m), hex and exponents
_NUMBER = re.compile(r"[0-9.][0-9A-Za-z_.]*")
_MATCH_OP = re.compile(r"=~|!~|!=|=")
_QUOTES = "\"'`"
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r"}

_AGGREGATIONS = frozenset(
    {
        "sum",
        "min",
        "max",
        "avg",
        "group",
        "stddev",
        "stdvar",
        "count",
        "count_values",
        "bottomk",
        "topk",
        "quantile",
        "limitk",
        "limit_ratio",
    }
)
_GROUPING = frozenset({"by", "without", "on", "ignoring", "group_left", "group_right"})
_KEYWORDS = frozenset({"and", "or", "unless", "bool", "offset", "atan2", "inf", "nan"})


@dataclass(frozen=True)
class LabelMatcher:
    label: str
    op: str
    value: str

    def __str__(self) -> str:
        return f"{self.label}{self.op}{json.dumps(self.value, ensure_ascii=False)}"


@dataclass(frozen=True)
class VectorSelector:
    """One instant or range vector selector.

    Attributes:
        name: Metric name written before the braces ("" if absent)
        matchers: Label matchers in the braces, in order
    """

    name: str
    matchers: tuple[LabelMatcher, ...] = ()

    @property
    def metric_name(self) -> str:
        if self.name:
            return self.name
        for m in self.matchers:
            if m.label == METRIC_NAME_LABEL and m.op == "=":
                return m.value
        return ""

    def __str__(self) -> str:
        if not self.matchers:
            return self.name or "{}"
        return f"{self.name}{{{','.join(str(m) for m in self.matchers)}}}"


class _Scanner:
    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0
        self.selectors: list[VectorSelector] = []
        self.grouping_labels: list[str] = []

    def peek(self) -> str:
        return self.text[self.pos : self.pos + 1]

    def skip_space(self) -> None:
        while self.pos < len(self.text):
            ch = self.text[self.pos]
            if ch == "#":
                end = self.text.find("\n", self.pos)
                self.pos = len(self.text) if end < 0 else end + 1
            elif ch.isspace():
                self.pos += 1
            else:
                return

    def read_string(self) -> str:
        quote = self.text[self.pos]
        self.pos += 1
        out: list[str] = []
        while self.pos < len(self.text):
            ch = self.text[self.pos]
            if ch == "\\" and quote != "`":
                nxt = self.text[self.pos + 1 : self.pos + 2]
                out.append(_ESCAPES.get(nxt, nxt))
                self.pos += 2
                continue
            self.pos += 1
            if ch == quote:
                break
            out.append(ch)
        return "".join(out)

    def read_name(self) -> str:
        if self.peek() and self.peek() in _QUOTES:
            return self.read_string()
        m = _IDENT.match(self.text, self.pos)
        if m is None:
            return ""
        self.pos = m.end()
        return m.group()

    def read_matchers(self) -> tuple[LabelMatcher, ...]:
        self.pos += 1
        matchers: list[LabelMatcher] = []
        while True:
            self.skip_space()
            ch = self.peek()
            if not ch:
                break
            if ch == "}":
                self.pos += 1
                break
            if ch == ",":
                self.pos += 1
                continue
            quoted = ch in _QUOTES
            label = self.read_name()
            if not label and not quoted:
                self.pos += 1
                continue
            self.skip_space()
            op = _MATCH_OP.match(self.text, self.pos)
            if op is None:
                # a lone quoted string in braces is the metric name
                if quoted:
                    matchers.append(LabelMatcher(METRIC_NAME_LABEL, "=", label))
                continue
            self.pos = op.end()
            self.skip_space()
            value = self.read_string() if self.peek() and self.peek() in _QUOTES else ""
            matchers.append(LabelMatcher(label, op.group(), value))
        return tuple(matchers)

    def read_label_list(self) -> list[str]:
        self.pos += 1
        labels: list[str] = []
        while True:
            self.skip_space()
            ch = self.peek()
            if not ch:
                break
            if ch == ")":
                self.pos += 1
                break
            if ch == ",":
                self.pos += 1
                continue
            label = self.read_name()
            if label:
                labels.append(label)
            else:
                self.pos += 1
        return labels

    def skip_range(self) -> None:
        end = self.text.find("]", self.pos)
        self.pos = len(self.text) if end < 0 else end + 1

    def word(self, ident: str) -> None:
        lower = ident.lower()
        if lower in _GROUPING:
            self.skip_space()
            if self.peek() == "(":
                labels = self.read_label_list()
                if lower != "ignoring":
                    self.grouping_labels.extend(labels)
            return
        if lower in _AGGREGATIONS or lower in _KEYWORDS:
            return
        self.skip_space()
        if self.peek() == "(":
            return
        matchers = self.read_matchers() if self.peek() == "{" else ()
        self.selectors.append(VectorSelector(ident, matchers))

    def scan(self) -> _Scanner:
        while True:
            self.skip_space()
            if self.pos >= len(self.text):
                return self
            ch = self.text[self.pos]
            if ch in _QUOTES:
                self.read_string()
            elif ch == "{":
                self.selectors.append(VectorSelector("", self.read_matchers()))
            elif ch == "[":
                self.skip_range()
            elif ch.isdigit() or (ch == "." and self.text[self.pos + 1 : self.pos + 2].isdigit()):
                m = _NUMBER.match(self.text, self.pos)
                self.pos = m.end() if m else self.pos + 1
            else:
                m = _IDENT.match(self.text, self.pos)
                if m is None:
                    self.pos += 1
                    continue
                self.pos = m.end()
                self.word(m.group())


def vector_selectors(expr: str) -> list[VectorSelector]:
    """Selectors of ``expr`` in order of appearance, duplicates dropped."""
    return list(dict.fromkeys(_Scanner(expr).scan().selectors))


def used_labels(expr: str) -> list[str]:
    """Label names ``expr`` filters or groups on, sorted."""
    scanner = _Scanner(expr).scan()
    names = set(scanner.grouping_labels)
    for selector in scanner.selectors:
        names.update(m.label for m in selector.matchers if m.label != METRIC_NAME_LABEL)
    return sorted(names)
