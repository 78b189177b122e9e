"""Rule-file parser.

Decodes Prometheus-style rule files into the read-only model in
:mod:`ruleval.rules.model`. The YAML is composed into a node tree (PyYAML)
rather than loaded into plain dicts so that:

- unknown keys can be rejected with the offending line number,
- head comments can be recovered from the raw lines above each node
  (PyYAML drops comments, node marks tell where to look),
- scalar values keep their literal text (``severity: 1`` stays ``"1"``).

Backend-specific fields are opt-in through :class:`ParserOptions`, passed
explicitly on every call. There is no module-level toggle.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from ruleval.durations import parse_duration_ms
from ruleval.errors import RuleFileParseError
from ruleval.rules.model import Rule, RuleGroup, RulesFile

logger = logging.getLogger(__name__)

_NULL_TAG = "tag:yaml.org,2002:null"

# Keys of a Prometheus rule unit-test file; such files carry no groups.
_TEST_FILE_KEYS = frozenset({"rule_files", "evaluation_interval", "group_eval_order", "tests"})
_FILE_KEYS = frozenset({"groups"})
_GROUP_KEYS = frozenset({"name", "interval", "query_offset", "limit", "rules"})
_RULE_KEYS = frozenset(
    {"record", "alert", "expr", "for", "keep_firing_for", "labels", "annotations"}
)


@dataclass(frozen=True)
class ParserOptions:
    """Optional rule-format extensions.

    Attributes:
        support_loki: Accept ``namespace`` (file) and ``remote_write`` (group)
        support_mimir: Accept ``source_tenants`` (group)
        support_thanos: Accept ``partial_response_strategy`` (group)
    """

    support_loki: bool = False
    support_mimir: bool = False
    support_thanos: bool = False

    @property
    def file_keys(self) -> frozenset[str]:
        keys = _FILE_KEYS | _TEST_FILE_KEYS
        if self.support_loki:
            keys |= {"namespace"}
        return keys

    @property
    def group_keys(self) -> frozenset[str]:
        keys = set(_GROUP_KEYS)
        if self.support_loki:
            keys.add("remote_write")
        if self.support_mimir:
            keys.add("source_tenants")
        if self.support_thanos:
            keys.add("partial_response_strategy")
        return frozenset(keys)


class _Decoder:
    """Walks a composed node tree for one file."""

    def __init__(self, file_name: str, text: str, options: ParserOptions) -> None:
        self.file_name = file_name
        self.lines = text.splitlines()
        self.options = options

    def error(self, node: yaml.Node | None, message: str) -> RuleFileParseError:
        line = node.start_mark.line + 1 if node is not None else 0
        return RuleFileParseError(self.file_name, message, line=line)

    # -- comments ---------------------------------------------------------

    def head_comment(self, node: yaml.Node, after: yaml.Mark | None = None) -> str:
        """Contiguous comment lines directly above ``node``.

        ``after`` is where the preceding content ends. Lines up to it belong
        to that content (e.g. a ``#`` line inside a block scalar) and are
        never part of the comment.
        """
        collected: list[str] = []
        idx = node.start_mark.line - 1
        while idx >= 0 and self._below(idx, after):
            stripped = self.lines[idx].strip()
            if not stripped.startswith("#"):
                break
            collected.append(stripped)
            idx -= 1
        return "\n".join(reversed(collected))

    def _below(self, idx: int, after: yaml.Mark | None) -> bool:
        if after is None or idx > after.line:
            return True
        # the mark may stop in the indentation of the line that follows
        return idx == after.line and not self.lines[idx][: after.column].strip()

    @staticmethod
    def content_end(node: yaml.Node) -> yaml.Mark:
        """End of the last scalar in ``node``.

        Block collections end where the next token starts, past any comment
        lines in between, so their own ``end_mark`` is too late.
        """
        while isinstance(node, (yaml.MappingNode, yaml.SequenceNode)) and node.value:
            if node.flow_style:
                break
            last = node.value[-1]
            node = last[1] if isinstance(node, yaml.MappingNode) else last
        return node.end_mark

    def file_head_comment(self) -> str:
        collected: list[str] = []
        for line in self.lines:
            stripped = line.strip()
            if not stripped:
                continue
            if not stripped.startswith("#"):
                break
            collected.append(stripped)
        return "\n".join(collected)

    # -- scalars and containers -------------------------------------------

    @staticmethod
    def is_null(node: yaml.Node) -> bool:
        return isinstance(node, yaml.ScalarNode) and node.tag == _NULL_TAG

    def mapping(
        self, node: yaml.Node, allowed: frozenset[str], what: str
    ) -> dict[str, tuple[yaml.Node, yaml.Node]]:
        if self.is_null(node):
            return {}
        if not isinstance(node, yaml.MappingNode):
            raise self.error(node, f"{what} must be a mapping")
        out: dict[str, tuple[yaml.Node, yaml.Node]] = {}
        for key_node, value_node in node.value:
            if not isinstance(key_node, yaml.ScalarNode):
                raise self.error(key_node, f"{what} has a non-scalar key")
            key = key_node.value
            if key not in allowed:
                raise self.error(
                    key_node,
                    f"unknown field {key!r} in {what}, supported fields are: "
                    f"{', '.join(sorted(allowed))}",
                )
            if key in out:
                raise self.error(key_node, f"duplicate field {key!r} in {what}")
            out[key] = (key_node, value_node)
        return out

    def sequence(self, node: yaml.Node, what: str) -> list[yaml.Node]:
        if self.is_null(node):
            return []
        if not isinstance(node, yaml.SequenceNode):
            raise self.error(node, f"{what} must be a list")
        return list(node.value)

    def string(self, node: yaml.Node, what: str) -> str:
        if self.is_null(node):
            return ""
        if not isinstance(node, yaml.ScalarNode):
            raise self.error(node, f"{what} must be a string")
        return str(node.value)

    def integer(self, node: yaml.Node, what: str) -> int:
        text = self.string(node, what)
        if not text:
            return 0
        try:
            return int(text)
        except ValueError:
            raise self.error(node, f"{what} must be an integer, got {text!r}") from None

    def duration(self, node: yaml.Node, what: str) -> int:
        text = self.string(node, what)
        if not text:
            return 0
        try:
            return parse_duration_ms(text)
        except ValueError as e:
            raise self.error(node, f"{what}: {e}") from None

    def string_map(self, node: yaml.Node, what: str) -> dict[str, str]:
        if self.is_null(node):
            return {}
        if not isinstance(node, yaml.MappingNode):
            raise self.error(node, f"{what} must be a mapping")
        out: dict[str, str] = {}
        for key_node, value_node in node.value:
            out[self.string(key_node, f"{what} key")] = self.string(value_node, f"{what} value")
        return out

    def string_list(self, node: yaml.Node, what: str) -> tuple[str, ...]:
        return tuple(self.string(item, f"{what} item") for item in self.sequence(node, what))

    @staticmethod
    def construct(node: yaml.Node) -> Any:
        loader = yaml.SafeLoader("")
        try:
            return loader.construct_document(node)
        finally:
            loader.dispose()

    # -- structure ----------------------------------------------------------

    def rule(self, node: yaml.Node, after: yaml.Mark | None = None) -> Rule:
        fields = self.mapping(node, _RULE_KEYS, "rule")
        values = {k: v for k, (_, v) in fields.items()}
        alert = self.string(values["alert"], "alert") if "alert" in values else ""
        record = self.string(values["record"], "record") if "record" in values else ""
        if alert and record:
            raise self.error(node, "only one of 'record' and 'alert' must be set")
        if not alert and not record:
            raise self.error(node, "one of 'record' or 'alert' must be set")
        expr = self.string(values["expr"], "expr") if "expr" in values else ""
        if not expr.strip():
            raise self.error(node, "field 'expr' must be set in rule")
        return Rule(
            expr=expr,
            alert=alert,
            record=record,
            for_ms=self.duration(values["for"], "for") if "for" in values else 0,
            keep_firing_for_ms=(
                self.duration(values["keep_firing_for"], "keep_firing_for")
                if "keep_firing_for" in values
                else 0
            ),
            labels=self.string_map(values["labels"], "labels") if "labels" in values else {},
            annotations=(
                self.string_map(values["annotations"], "annotations")
                if "annotations" in values
                else {}
            ),
            comment=self.head_comment(node, after),
            line=node.start_mark.line + 1,
        )

    def group(self, node: yaml.Node, after: yaml.Mark | None = None) -> RuleGroup:
        fields = self.mapping(node, self.options.group_keys, "group")
        values = {k: v for k, (_, v) in fields.items()}
        name = self.string(values["name"], "name") if "name" in values else ""
        if not name:
            raise self.error(node, "group name must not be empty")
        rules: list[Rule] = []
        if "rules" in values:
            key_node, value_node = fields["rules"]
            after_rule = key_node.end_mark
            for item in self.sequence(value_node, "rules"):
                rules.append(self.rule(item, after_rule))
                after_rule = self.content_end(item)
        remote_write: tuple[dict[str, Any], ...] = ()
        if "remote_write" in values:
            items = self.sequence(values["remote_write"], "remote_write")
            remote_write = tuple(self.construct(item) for item in items)
        return RuleGroup(
            name=name,
            interval_ms=(
                self.duration(values["interval"], "interval") if "interval" in values else 0
            ),
            query_offset_ms=(
                self.duration(values["query_offset"], "query_offset")
                if "query_offset" in values
                else 0
            ),
            limit=self.integer(values["limit"], "limit") if "limit" in values else 0,
            partial_response_strategy=(
                self.string(values["partial_response_strategy"], "partial_response_strategy")
                if "partial_response_strategy" in values
                else ""
            ),
            source_tenants=(
                self.string_list(values["source_tenants"], "source_tenants")
                if "source_tenants" in values
                else ()
            ),
            remote_write=remote_write,
            rules=tuple(rules),
            comment=self.head_comment(node, after),
            line=node.start_mark.line + 1,
        )

    def _preceding_end(self, mapping: yaml.Node, key_node: yaml.Node) -> yaml.Mark | None:
        """End of the value just before ``key_node`` in ``mapping`` (None if first)."""
        end = None
        for k, v in mapping.value:
            if k is key_node:
                break
            end = self.content_end(v)
        return end

    def document(self, root: yaml.Node | None) -> RulesFile:
        head_comment = self.file_head_comment()
        if root is None:
            return RulesFile(name=self.file_name, head_comment=head_comment)
        fields = self.mapping(root, self.options.file_keys, "rules file")
        groups: tuple[RuleGroup, ...] = ()
        groups_comment = ""
        if "groups" in fields:
            key_node, value_node = fields["groups"]
            groups_comment = self.head_comment(key_node, self._preceding_end(root, key_node))
            parsed: list[RuleGroup] = []
            after_group = key_node.end_mark
            for item in self.sequence(value_node, "groups"):
                parsed.append(self.group(item, after_group))
                after_group = self.content_end(item)
            groups = tuple(parsed)
        namespace = ""
        if "namespace" in fields:
            namespace = self.string(fields["namespace"][1], "namespace")
        return RulesFile(
            name=self.file_name,
            groups=groups,
            namespace=namespace,
            head_comment=head_comment,
            groups_comment=groups_comment,
        )


def parse_rules_text(text: str, file_name: str, options: ParserOptions | None = None) -> RulesFile:
    """Parse rule-file content.

    Raises:
        RuleFileParseError: If the YAML is malformed or does not follow the
            rule-file shape.
    """
    decoder = _Decoder(file_name, text, options or ParserOptions())
    try:
        root = yaml.compose(text, Loader=yaml.SafeLoader)
    except yaml.YAMLError as e:
        raise RuleFileParseError(file_name, str(e)) from e
    result = decoder.document(root)
    logger.debug(
        "parsed rules file %s: %d groups, %d rules",
        file_name,
        len(result.groups),
        sum(len(g.rules) for g in result.groups),
    )
    return result


def parse_rules_file(path: str | Path, options: ParserOptions | None = None) -> RulesFile:
    """Read and parse a rule file.

    Raises:
        OSError: If the file cannot be read.
        RuleFileParseError: If the content is not UTF-8 or is invalid.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise RuleFileParseError(str(path), f"file is not valid UTF-8: {e}") from e
    return parse_rules_text(text, str(path), options)
