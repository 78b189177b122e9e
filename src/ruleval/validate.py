"""Validation orchestrator.

For every file: parse, then for every group run the group-scoped validation
rules once, then for every rule run the applicable rule-scoped validation
rules, honouring:

- the exclusion annotation (skips whole validation rules for one rule),
- suppression directives in comments (skip individual validators for a
  file, a group or one rule),
- onlyIf preconditions (a failing precondition skips the validation rule
  for that entity; it is not an error).

Errors are additive and local: a validator error never stops sibling
validators, rules, groups or files. Only config errors are fatal, and they
surface before any file is read.

Files are processed in a thread pool. Report nodes are created in input
order before work starts, so the report order never depends on completion
order.
"""

from __future__ import annotations

import glob
import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ruleval.config.loader import DEFAULT_DISABLE_COMMENT, DEFAULT_EXCLUDE_ANNOTATION
from ruleval.config.scope import ValidationScope
from ruleval.errors import ConfigError, RuleFileParseError
from ruleval.remote.client import PrometheusClient
from ruleval.report.tree import ValidationReport
from ruleval.rules.directives import disabled_validators, extract_directives
from ruleval.rules.parser import ParserOptions, parse_rules_file
from ruleval.validation_rule import validation_rules_from_config
from ruleval.validators.registry import is_known

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from ruleval.config.loader import Config
    from ruleval.report.tree import FileReport, GroupReport
    from ruleval.rules.model import Rule, RuleGroup
    from ruleval.validation_rule import AttachedValidator, ValidationRule

logger = logging.getLogger(__name__)


def excluded_rules_from_annotation(text: str) -> list[str]:
    """Validation rule names listed in the exclusion annotation.

    Comma separated; trimmed, empty entries dropped, de-duplicated, sorted.
    """
    return sorted({name.strip() for name in text.split(",") if name.strip()})


def _unknown_directives_error(names: Iterable[str]) -> list[str]:
    return [
        f"invalid disabled validators: unknown validator `{name}`"
        for name in dict.fromkeys(names)
        if not is_known(name)
    ]


def expand_paths(patterns: Sequence[str]) -> list[str]:
    """Expand glob patterns (``**`` and a leading ``~/`` supported) into files.

    Matches of each pattern are sorted; pattern order is kept.

    Raises:
        ConfigError: If a pattern matches no file.
    """
    files: list[str] = []
    for pattern in patterns:
        expanded = os.path.expanduser(pattern) if pattern.startswith("~/") else pattern
        matches = sorted(p for p in glob.glob(expanded, recursive=True) if os.path.isfile(p))
        if not matches:
            raise ConfigError(f"failed expanding glob pattern `{pattern}`: no matching files")
        files.extend(matches)
    return files


@dataclass(frozen=True)
class _Run:
    """Read-only settings shared by every file worker."""

    report: ValidationReport
    validation_rules: tuple[ValidationRule, ...]
    exclude_annotation: str
    disable_comment: str
    client: PrometheusClient | None
    options: ParserOptions
    group_excluded: Callable[[RuleGroup], bool] | None
    file_excluded: Callable[[str], bool] | None

    # -- helpers -------------------------------------------------------------

    def _run_validators(
        self,
        validators: Iterable[AttachedValidator],
        group: RuleGroup,
        rule: Rule | None,
        disabled: set[str],
        where: str,
    ) -> list[str]:
        errors: list[str] = []
        for v in validators:
            if v.name in disabled:
                logger.debug("validator %s disabled by comment for %s", v.name, where)
                continue
            start = time.monotonic()
            errors.extend(v.run(group, rule, self.client))
            logger.debug(
                "validation of %s using %s took %.3fs", where, v.name, time.monotonic() - start
            )
        return errors

    def _only_if_met(
        self,
        spec: ValidationRule,
        group: RuleGroup,
        rule: Rule | None,
        applicable: tuple[ValidationScope, ...],
        where: str,
    ) -> bool:
        for v in spec.only_if:
            if v.scope not in applicable:
                logger.debug(
                    "onlyIf %s of %s not applicable to %s (validator scope %s)",
                    v.name,
                    spec.name,
                    where,
                    v.scope.value,
                )
                continue
            errors = v.run(group, rule, self.client)
            if errors:
                logger.debug(
                    "skipping %s for %s because onlyIf results with errors: %s",
                    spec.name,
                    where,
                    errors,
                )
                return False
        return True

    # -- per entity ------------------------------------------------------------

    def validate_rule(
        self, group: RuleGroup, rule: Rule, group_report: GroupReport, group_disabled: set[str]
    ) -> None:
        rule_report = group_report.new_rule_report(rule.name, rule.kind)
        where = f"rule {rule.name}"
        errors: list[str] = []

        excluded_specs = set(
            excluded_rules_from_annotation(rule.annotations.get(self.exclude_annotation, ""))
        )
        directives = disabled_validators([rule.comment, rule.expr], self.disable_comment)
        errors.extend(_unknown_directives_error(directives))
        disabled = set(directives) | group_disabled

        applicable = (ValidationScope.GROUP, ValidationScope.ALL_RULES, rule.kind)
        skipped_spec = False
        for spec in self.validation_rules:
            if spec.scope not in (rule.kind, ValidationScope.ALL_RULES):
                continue
            if spec.name in excluded_specs:
                logger.debug("%s excluded for %s by annotation", spec.name, where)
                skipped_spec = True
                continue
            if not self._only_if_met(spec, group, rule, applicable, where):
                continue
            errors.extend(self._run_validators(spec.validators, group, rule, disabled, where))

        rule_report.add_errors(errors)
        if skipped_spec:
            rule_report.mark_excluded()
        self.report.count_rule(excluded=skipped_spec)

    def validate_group(
        self, group: RuleGroup, file_report: FileReport, file_disabled: list[str]
    ) -> None:
        group_report = file_report.new_group_report(group.name)
        if self.group_excluded is not None and self.group_excluded(group):
            group_report.mark_excluded()
            self.report.count_group(excluded=True)
            return
        self.report.count_group()

        where = f"group {group.name}"
        directives = extract_directives(group.comment, self.disable_comment)
        errors = _unknown_directives_error(directives)
        disabled = set(directives) | set(file_disabled)

        # once per group, however many rules it has (zero included)
        for spec in self.validation_rules:
            if spec.scope is not ValidationScope.GROUP:
                continue
            if not self._only_if_met(spec, group, None, (ValidationScope.GROUP,), where):
                continue
            errors.extend(self._run_validators(spec.validators, group, None, disabled, where))
        group_report.add_errors(errors)

        for rule in group.rules:
            self.validate_rule(group, rule, group_report, disabled)

    def validate_file(self, file_report: FileReport) -> None:
        path = file_report.name
        if self.file_excluded is not None and self.file_excluded(path):
            file_report.mark_excluded()
            self.report.count_file(excluded=True)
            return
        self.report.count_file()

        try:
            rules_file = parse_rules_file(path, self.options)
        except OSError as e:
            logger.warning("FILE_READ_ERROR", extra={"file": path, "error": str(e)})
            file_report.add_errors([f"cannot read file {path}: {e}"])
            return
        except RuleFileParseError as e:
            logger.warning("FILE_INVALID", extra={"file": path, "error": str(e)})
            file_report.add_errors([f"invalid file {path}: {e}"])
            return

        file_disabled = disabled_validators(
            [rules_file.head_comment, rules_file.groups_comment], self.disable_comment
        )
        for group in rules_file.groups:
            self.validate_group(group, file_report, file_disabled)


def validate_files(
    paths: Sequence[str],
    validation_rules: Sequence[ValidationRule],
    exclude_annotation: str = DEFAULT_EXCLUDE_ANNOTATION,
    disable_comment: str = DEFAULT_DISABLE_COMMENT,
    client: PrometheusClient | None = None,
    options: ParserOptions | None = None,
    disable_parallelization: bool = False,
    max_workers: int | None = None,
    group_excluded: Callable[[RuleGroup], bool] | None = None,
    file_excluded: Callable[[str], bool] | None = None,
) -> ValidationReport:
    """Validate rule files and build the report.

    Args:
        paths: Rule files, in report order
        validation_rules: Validation rules to apply
        exclude_annotation: Rule annotation listing validation rules to skip
        disable_comment: Prefix of suppression directives in comments
        client: Backend client for remote checks (None: remote checks are skipped)
        options: Rule-format extensions passed to the parser
        disable_parallelization: Process files one by one, logging progress
        max_workers: Thread pool size (default: ThreadPoolExecutor's)
        group_excluded: Predicate marking a whole group as excluded
        file_excluded: Predicate marking a whole file as excluded (not parsed)
    """
    report = ValidationReport(validation_rules)
    run = _Run(
        report=report,
        validation_rules=tuple(validation_rules),
        exclude_annotation=exclude_annotation,
        disable_comment=disable_comment,
        client=client,
        options=options or ParserOptions(),
        group_excluded=group_excluded,
        file_excluded=file_excluded,
    )
    file_reports = [report.new_file_report(p) for p in paths]
    total = len(file_reports)

    def process(index: int, file_report: FileReport) -> None:
        start = time.monotonic()
        run.validate_file(file_report)
        extra = {
            "file": file_report.name,
            "duration_s": round(time.monotonic() - start, 3),
            "valid": file_report.valid,
        }
        if disable_parallelization:
            extra["progress"] = f"{index + 1}/{total}"
        logger.info("FILE_VALIDATED", extra=extra)

    start = time.monotonic()
    if disable_parallelization or total <= 1:
        for i, file_report in enumerate(file_reports):
            process(i, file_report)
    else:
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="ruleval") as pool:
            futures = [pool.submit(process, i, fr) for i, fr in enumerate(file_reports)]
            for future in futures:
                future.result()
    report.duration_s = time.monotonic() - start
    return report


def run(
    patterns: Sequence[str],
    config: Config,
    disabled_rules: Iterable[str] = (),
    enabled_rules: Iterable[str] = (),
    options: ParserOptions | None = None,
    disable_parallelization: bool = False,
) -> ValidationReport:
    """Full ``validate`` command: expand paths, build rules and client, validate.

    The backend cache is dumped at the end whenever a client was created.

    Raises:
        ConfigError: Bad config, unknown validator, or a glob matching nothing.
    """
    validation_rules = validation_rules_from_config(config, disabled_rules, enabled_rules)
    paths = expand_paths(patterns)
    logger.info(
        "VALIDATION_STARTED",
        extra={"files": len(paths), "validation_rules": len(validation_rules)},
    )

    client = None
    if config.prometheus is not None and config.prometheus.url:
        client = PrometheusClient(config.prometheus)
    try:
        return validate_files(
            paths,
            validation_rules,
            exclude_annotation=config.exclude_annotation,
            disable_comment=config.disable_comment,
            client=client,
            options=options,
            disable_parallelization=disable_parallelization,
        )
    finally:
        if client is not None:
            client.dump_cache()
            client.close()
