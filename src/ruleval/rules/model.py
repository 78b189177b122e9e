"""Parsed rule-file model.

Everything here is produced once by the parser and treated as read-only by
the orchestrator and validators, so instances are safe to share between
worker threads.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ruleval.config.scope import ValidationScope


@dataclass(frozen=True)
class Rule:
    """Alerting or recording rule.

    Exactly one of ``alert`` and ``record`` is non-empty.

    Attributes:
        alert: Alert name (alerting rules)
        record: Recorded metric name (recording rules)
        expr: Query expression, verbatim (inline comment lines included)
        for_ms: Pending duration of an alert (0 if unset)
        keep_firing_for_ms: Keep-firing duration of an alert (0 if unset)
        labels: Rule labels
        annotations: Rule annotations (alerting rules)
        comment: Head comment text attached to the rule node
        line: 1-based line of the rule in its file
    """

    expr: str
    alert: str = ""
    record: str = ""
    for_ms: int = 0
    keep_firing_for_ms: int = 0
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    comment: str = ""
    line: int = 0

    @property
    def kind(self) -> ValidationScope:
        if self.alert:
            return ValidationScope.ALERT
        return ValidationScope.RECORDING_RULE

    @property
    def name(self) -> str:
        return self.alert or self.record


@dataclass(frozen=True)
class RuleGroup:
    """Group of rules evaluated together.

    Attributes:
        name: Group name
        interval_ms: Evaluation interval (0 = backend default)
        query_offset_ms: Query offset (0 if unset)
        limit: Limit on alerts/series produced per evaluation (0 = unlimited)
        partial_response_strategy: Thanos partial response strategy ("" if unset)
        source_tenants: Mimir source tenants (empty = default tenant)
        remote_write: Loki remote write targets, kept as raw mappings
        rules: Member rules in file order
        comment: Head comment text attached to the group node
        line: 1-based line of the group in its file
    """

    name: str
    interval_ms: int = 0
    query_offset_ms: int = 0
    limit: int = 0
    partial_response_strategy: str = ""
    source_tenants: tuple[str, ...] = ()
    remote_write: tuple[dict[str, Any], ...] = ()
    rules: tuple[Rule, ...] = ()
    comment: str = ""
    line: int = 0


@dataclass(frozen=True)
class RulesFile:
    """One decoded rule file.

    Attributes:
        name: Path of the file as given to the parser
        groups: Rule groups in file order
        namespace: Loki namespace ("" if unset)
        head_comment: Comment block at the top of the file
        groups_comment: Head comment of the ``groups:`` key
    """

    name: str
    groups: tuple[RuleGroup, ...] = ()
    namespace: str = ""
    head_comment: str = ""
    groups_comment: str = ""
