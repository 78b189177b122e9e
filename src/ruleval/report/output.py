"""Report rendering: text, JSON and YAML.

Text output lists only invalid entries, followed by the verdict and run
statistics. JSON and YAML are full dumps of :meth:`ValidationReport.to_dict`.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import yaml

from ruleval.durations import format_elapsed_s
from ruleval.errors import ConfigError
from ruleval.report.docs import validation_docs

if TYPE_CHECKING:
    from ruleval.report.tree import FileReport, GroupReport, RuleReport, ValidationReport

OUTPUT_FORMATS = ("text", "json", "yaml")

COLOR_RESET = "\033[0m"
COLOR_RED = "\033[31m"
COLOR_GREEN = "\033[32m"


class IndentedOutput:
    """Line buffer with an indentation level and optional ANSI coloring."""

    def __init__(self, step: int = 2, color: bool = False) -> None:
        self.step = step
        self.color = color
        self.level = 0
        self._lines: list[str] = []

    def indent(self) -> None:
        self.level += 1

    def dedent(self) -> None:
        self.level = max(0, self.level - 1)

    def reset(self) -> None:
        self.level = 0

    def _prefix(self) -> str:
        return " " * (self.level * self.step)

    def add_line(self, line: str) -> None:
        self._lines.append(self._prefix() + line)

    def _add_colored(self, line: str, color: str) -> None:
        if self.color:
            self._lines.append(color + self._prefix() + line + COLOR_RESET)
        else:
            self.add_line(line)

    def add_error_line(self, line: str) -> None:
        self._add_colored(line, COLOR_RED)

    def add_success_line(self, line: str) -> None:
        self._add_colored(line, COLOR_GREEN)

    def append_to_previous(self, text: str) -> None:
        self._lines[-1] += text

    def write_errors(self, errors: list[str]) -> None:
        for error in errors:
            self.add_error_line(f"- {error}")

    def text(self) -> str:
        return "\n".join(self._lines) + "\n"


def _rule_text(report: RuleReport, out: IndentedOutput) -> None:
    if report.valid:
        return
    out.add_line(f"{report.rule_type.value}: {report.name}")
    out.indent()
    out.write_errors(report.errors)
    out.dedent()


def _group_text(report: GroupReport, out: IndentedOutput) -> None:
    if report.valid:
        return
    out.add_line(f"Group: {report.name}")
    out.indent()
    if report.excluded:
        out.add_line("Skipped")
        out.dedent()
        return
    if report.errors:
        out.add_line("Group level errors:")
        out.indent()
        out.write_errors(report.errors)
        out.dedent()
    if not report.rule_reports:
        out.add_line("No rules")
    for rule in report.rule_reports:
        _rule_text(rule, out)
    out.dedent()


def _file_text(report: FileReport, out: IndentedOutput) -> None:
    if report.valid:
        return
    out.add_line(f"File: {report.name}")
    out.append_to_previous(" - INVALID")
    out.indent()
    out.write_errors(report.errors)
    for group in report.group_reports:
        _group_text(group, out)
    out.dedent()


def _statistic(kind: str, total: int, excluded: int) -> str:
    return f"{kind}: {total} and {excluded} of them excluded"


def as_text(report: ValidationReport, indent_step: int = 2, color: bool = False) -> str:
    out = IndentedOutput(indent_step, color)
    out.add_line(validation_docs(report.validation_rules, "text"))
    out.add_line("Result:")
    out.indent()
    for file_report in report.files_reports:
        _file_text(file_report, out)
    out.reset()
    out.add_line("")
    if report.failed:
        out.add_error_line("Validation FAILED")
    else:
        out.add_success_line("Validation PASSED")
    out.add_line("Statistics:")
    out.indent()
    out.add_line(f"Duration: {format_elapsed_s(report.duration_s)}")
    out.add_line(_statistic("Files", report.files_count, report.excluded_files_count))
    out.add_line(_statistic("Groups", report.groups_count, report.excluded_groups_count))
    out.add_line(_statistic("Rules", report.rules_count, report.excluded_rules_count))
    return out.text()


def as_json(report: ValidationReport) -> str:
    return json.dumps(report.to_dict(), indent=2) + "\n"


def as_yaml(report: ValidationReport) -> str:
    return yaml.safe_dump(report.to_dict(), sort_keys=False, allow_unicode=True)


def render(report: ValidationReport, fmt: str = "text", color: bool = False) -> str:
    """Render in ``text``, ``json`` or ``yaml``.

    Raises:
        ConfigError: If the format is not supported.
    """
    if fmt == "text":
        return as_text(report, color=color)
    if fmt == "json":
        return as_json(report)
    if fmt == "yaml":
        return as_yaml(report)
    raise ConfigError(f"unsupported output format {fmt}")
