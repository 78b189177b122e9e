"""Hierarchical validation report.

ValidationReport -> FileReport -> GroupReport -> RuleReport, in input/parse
order. Nodes are created up front by the orchestrator and filled by worker
threads, so every mutation goes through a lock.

Validity bubbling: recording an error on a node marks it and every ancestor
invalid, and flags the root as failed. A node is valid iff neither it nor
any descendant ever recorded an error; it is never re-validated.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable

    from ruleval.config.scope import ValidationScope
    from ruleval.validation_rule import ValidationRule


class RuleReport:
    """Outcome of one rule.

    Attributes:
        name: Alert or recorded metric name
        rule_type: ALERT or RECORDING_RULE
        valid: False once any error was recorded
        excluded: At least one validation rule was skipped via the exclusion annotation
        errors: Formatted validator errors
    """

    def __init__(self, name: str, rule_type: ValidationScope, parent: GroupReport) -> None:
        self.name = name
        self.rule_type = rule_type
        self.valid = True
        self.excluded = False
        self.errors: list[str] = []
        self._parent = parent
        self._lock = threading.Lock()

    def add_errors(self, errors: Iterable[str]) -> None:
        errors = list(errors)
        if not errors:
            return
        with self._lock:
            self.errors.extend(errors)
            self.valid = False
        self._parent._child_invalidated(len(errors))

    def mark_excluded(self) -> None:
        self.excluded = True

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            return {
                "valid": self.valid,
                "rule_type": self.rule_type.value,
                "name": self.name,
                "excluded": self.excluded,
                "errors": list(self.errors),
            }


class GroupReport:
    """Outcome of one rule group: group-level errors plus its rules."""

    def __init__(self, name: str, parent: FileReport) -> None:
        self.name = name
        self.valid = True
        self.excluded = False
        self.errors: list[str] = []
        self.rule_reports: list[RuleReport] = []
        self._parent = parent
        self._lock = threading.Lock()

    def new_rule_report(self, name: str, rule_type: ValidationScope) -> RuleReport:
        report = RuleReport(name, rule_type, self)
        with self._lock:
            self.rule_reports.append(report)
        return report

    def add_errors(self, errors: Iterable[str]) -> None:
        errors = list(errors)
        if not errors:
            return
        with self._lock:
            self.errors.extend(errors)
        self._child_invalidated(len(errors))

    def mark_excluded(self) -> None:
        self.excluded = True

    def _child_invalidated(self, count: int) -> None:
        with self._lock:
            self.valid = False
        self._parent._rule_validation_failed(count)

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            rules = list(self.rule_reports)
            out = {
                "valid": self.valid,
                "group_name": self.name,
                "excluded": self.excluded,
                "errors": list(self.errors),
            }
        out["rule_reports"] = [r.to_dict() for r in rules]
        return out


class FileReport:
    """Outcome of one rule file: file-level (read/parse) errors plus its groups."""

    def __init__(self, name: str, parent: ValidationReport) -> None:
        self.name = name
        self.valid = True
        self.excluded = False
        self.has_rule_validation_errors = False
        self.errors: list[str] = []
        self.group_reports: list[GroupReport] = []
        self._parent = parent
        self._lock = threading.Lock()

    def new_group_report(self, name: str) -> GroupReport:
        report = GroupReport(name, self)
        with self._lock:
            self.group_reports.append(report)
        return report

    def add_errors(self, errors: Iterable[str]) -> None:
        errors = list(errors)
        if not errors:
            return
        with self._lock:
            self.errors.extend(errors)
            self.valid = False
        self._parent._invalidated(len(errors))

    def mark_excluded(self) -> None:
        self.excluded = True

    def _rule_validation_failed(self, count: int) -> None:
        with self._lock:
            self.valid = False
            self.has_rule_validation_errors = True
        self._parent._invalidated(count)

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            groups = list(self.group_reports)
            out = {
                "file_name": self.name,
                "valid": self.valid,
                "excluded": self.excluded,
                "errors": list(self.errors),
                "has_rule_validation_errors": self.has_rule_validation_errors,
            }
        out["group_reports"] = [g.to_dict() for g in groups]
        return out


class ValidationReport:
    """Root of the report: file reports, counters and the pass/fail verdict.

    Thread-safety: Yes

    Attributes:
        failed: True iff any descendant recorded an error
        duration_s: Wall-clock duration of the run
        errors_count: Total number of recorded errors
        validation_rules: Validation rules the run used (rendered as docs)
    """

    def __init__(self, validation_rules: Iterable[ValidationRule] = ()) -> None:
        self.failed = False
        self.duration_s = 0.0
        self.errors_count = 0
        self.files_count = 0
        self.excluded_files_count = 0
        self.groups_count = 0
        self.excluded_groups_count = 0
        self.rules_count = 0
        self.excluded_rules_count = 0
        self.validation_rules: list[ValidationRule] = list(validation_rules)
        self.files_reports: list[FileReport] = []
        self._lock = threading.Lock()

    def new_file_report(self, name: str) -> FileReport:
        report = FileReport(name, self)
        with self._lock:
            self.files_reports.append(report)
        return report

    def _invalidated(self, count: int) -> None:
        with self._lock:
            self.failed = True
            self.errors_count += count

    def count_file(self, excluded: bool = False) -> None:
        with self._lock:
            self.files_count += 1
            if excluded:
                self.excluded_files_count += 1

    def count_group(self, excluded: bool = False) -> None:
        with self._lock:
            self.groups_count += 1
            if excluded:
                self.excluded_groups_count += 1

    def count_rule(self, excluded: bool = False) -> None:
        with self._lock:
            self.rules_count += 1
            if excluded:
                self.excluded_rules_count += 1

    def to_dict(self) -> dict[str, Any]:
        """Snapshot for JSON/YAML output. ``duration`` is in nanoseconds."""
        with self._lock:
            files = list(self.files_reports)
            out: dict[str, Any] = {
                "report_failed": self.failed,
                "duration": int(self.duration_s * 1e9),
                "errors_count": self.errors_count,
                "files_count": self.files_count,
                "excluded_files_count": self.excluded_files_count,
                "groups_count": self.groups_count,
                "excluded_groups_count": self.excluded_groups_count,
                "rules_count": self.rules_count,
                "excluded_rules_count": self.excluded_rules_count,
                "validation_rules": [r.to_dict() for r in self.validation_rules],
            }
        out["files_reports"] = [f.to_dict() for f in files]
        return out
