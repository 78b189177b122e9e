"""Tests for ruleval.validate (the orchestrator).

Covers:
- Passing and failing runs over real rule files, with counters
- Scope routing: Alert / RecordingRule / AllRules / Group validation rules
- Group validation rules run once per group, also for empty groups
- Read and parse failures are isolated to their file
- Exclusion annotation skips whole validation rules for one rule
- Suppression directives in file, groups key, group, rule and expression;
  an expression directive never reaches the next rule or group
- Unknown validator names in directives are reported
- onlyIf preconditions
- Group and file exclusion predicates
- Report order independent of parallel completion order
- Glob expansion and the full ``run`` entry point (client lifecycle)
"""

from __future__ import annotations

import logging
import textwrap
from collections.abc import Callable
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from ruleval.config.loader import Config, parse_config
from ruleval.errors import ConfigError
from ruleval.report.tree import ValidationReport
from ruleval.validate import excluded_rules_from_annotation, expand_paths, run, validate_files
from ruleval.validation_rule import ValidationRule, validation_rules_from_config

WriteFile = Callable[[str, str], Path]

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

CONFIG = """
validationRules:
  - name: mustHaveSeverity
    scope: Alert
    validations:
      - type: hasLabels
        params: {labels: [severity]}
  - name: groupSize
    scope: Group
    validations:
      - type: maxRulesPerGroup
        params: {limit: 2}
  - name: recordingNames
    scope: RecordingRule
    validations:
      - type: recordedMetricNameMatchesRegexp
        params: {regexp: "[a-z_]+:[a-z_]+:[a-z0-9_]+"}
"""


def _config(text: str = CONFIG) -> Config:
    return parse_config(yaml.safe_load(textwrap.dedent(text)))


def _rules(text: str = CONFIG) -> list[ValidationRule]:
    return validation_rules_from_config(_config(text))


def _validate(paths: list[Path], text: str = CONFIG, **kwargs: object) -> ValidationReport:
    return validate_files([str(p) for p in paths], _rules(text), **kwargs)  # type: ignore[arg-type]


def _rule_errors(
    report: ValidationReport, file_index: int = 0, group_index: int = 0
) -> dict[str, list[str]]:
    group = report.files_reports[file_index].group_reports[group_index]
    return {r.name: r.errors for r in group.rule_reports}


# ---------------------------------------------------------------------------
# Basic runs
# ---------------------------------------------------------------------------


class TestValidateFiles:
    def test_passing_file(self, write_file: WriteFile, sample_rules_text: str) -> None:
        report = _validate([write_file("rules.yaml", sample_rules_text)])
        assert report.failed is False
        assert report.errors_count == 0
        assert (report.files_count, report.groups_count, report.rules_count) == (1, 1, 2)
        assert report.duration_s >= 0
        assert [v.name for v in report.validation_rules] == [
            "mustHaveSeverity",
            "groupSize",
            "recordingNames",
        ]

    def test_scope_routing(self, write_file: WriteFile) -> None:
        path = write_file(
            "rules.yaml",
            """
            groups:
              - name: g
                rules:
                  - alert: NoSeverity
                    expr: up == 0
                  - record: bad_name
                    expr: sum(up)
            """,
        )
        report = _validate([path])
        assert report.failed is True
        assert _rule_errors(report) == {
            "NoSeverity": ["hasLabels: missing label `severity`"],
            "bad_name": [
                "recordedMetricNameMatchesRegexp: recorded metric name bad_name does not "
                "match pattern [a-z_]+:[a-z_]+:[a-z0-9_]+"
            ],
        }
        assert report.errors_count == 2

    def test_all_rules_scope_applies_to_both_kinds(self, write_file: WriteFile) -> None:
        config = """
        validationRules:
          - name: noEmpty
            scope: AllRules
            validations:
              - type: nonEmptyLabels
        """
        path = write_file(
            "rules.yaml",
            """
            groups:
              - name: g
                rules:
                  - alert: A
                    expr: up
                    labels: {team: ""}
                  - record: a:b:c
                    expr: up
                    labels: {team: ""}
            """,
        )
        report = _validate([path], config)
        errors = _rule_errors(report)
        assert errors["A"] == errors["a:b:c"] == [
            "nonEmptyLabels: label `team` has empty value, has no effect"
        ]

    def test_additional_details_in_errors(self, write_file: WriteFile) -> None:
        config = """
        validationRules:
          - name: sev
            scope: Alert
            validations:
              - type: hasLabels
                additionalDetails: see the alerting guide
                params: {labels: [severity]}
        """
        path = write_file(
            "rules.yaml",
            """
            groups:
              - name: g
                rules:
                  - alert: A
                    expr: up
            """,
        )
        report = _validate([path], config)
        assert _rule_errors(report)["A"] == [
            "hasLabels: missing label `severity` (see the alerting guide)"
        ]


class TestGroupValidation:
    def test_runs_once_per_group(self, write_file: WriteFile) -> None:
        path = write_file(
            "rules.yaml",
            """
            groups:
              - name: big
                rules:
                  - alert: A
                    expr: up
                    labels: {severity: x}
                  - alert: B
                    expr: up
                    labels: {severity: x}
                  - alert: C
                    expr: up
                    labels: {severity: x}
            """,
        )
        report = _validate([path])
        group = report.files_reports[0].group_reports[0]
        assert group.errors == ["maxRulesPerGroup: group has 3 rules, maximum is 2"]
        assert all(r.valid for r in group.rule_reports)
        assert report.errors_count == 1

    def test_runs_for_empty_group(self, write_file: WriteFile) -> None:
        config = """
        validationRules:
          - name: interval
            scope: Group
            validations:
              - type: hasAllowedEvaluationInterval
                params: {maximum: 5m, intervalMustBeSet: true}
        """
        path = write_file("rules.yaml", "groups:\n  - name: empty\n")
        report = _validate([path], config)
        group = report.files_reports[0].group_reports[0]
        assert group.rule_reports == []
        assert group.errors == ["hasAllowedEvaluationInterval: evaluation interval must be set"]


class TestFileFailures:
    def test_parse_failure_is_isolated(self, write_file: WriteFile, sample_rules_text: str) -> None:
        broken = write_file("broken.yaml", "groups:\n  - rules: []\n")
        good = write_file("good.yaml", sample_rules_text)
        report = _validate([broken, good])
        broken_report, good_report = report.files_reports
        assert broken_report.valid is False
        assert broken_report.errors == [
            f"invalid file {broken}: line 2: group name must not be empty"
        ]
        assert broken_report.group_reports == []
        assert good_report.valid is True
        assert report.failed is True
        assert report.files_count == 2

    def test_unreadable_file(self, tmp_path: Path) -> None:
        missing = tmp_path / "missing.yaml"
        report = _validate([missing])
        (file_report,) = report.files_reports
        assert len(file_report.errors) == 1
        assert file_report.errors[0].startswith(f"cannot read file {missing}: ")
        assert report.failed is True

    def test_non_utf8_file_is_isolated(
        self, tmp_path: Path, write_file: WriteFile, sample_rules_text: str
    ) -> None:
        bad = tmp_path / "bad.yaml"
        bad.write_bytes(b"groups:\n  - name: \xff\xfe\n")
        good = write_file("good.yaml", sample_rules_text)
        report = _validate([bad, good])
        bad_report, good_report = report.files_reports
        assert bad_report.valid is False
        assert len(bad_report.errors) == 1
        assert bad_report.errors[0].startswith(f"invalid file {bad}: file is not valid UTF-8")
        assert good_report.valid is True
        assert report.errors_count == 1

    def test_parse_failure_logged(
        self, write_file: WriteFile, caplog: pytest.LogCaptureFixture
    ) -> None:
        broken = write_file("broken.yaml", "groups: [\n")
        with caplog.at_level(logging.WARNING, logger="ruleval.validate"):
            _validate([broken])
        assert "FILE_INVALID" in caplog.messages


# ---------------------------------------------------------------------------
# Exclusions and directives
# ---------------------------------------------------------------------------


class TestExclusionAnnotation:
    def test_parse_annotation(self) -> None:
        assert excluded_rules_from_annotation(" b, a,,a ") == ["a", "b"]
        assert excluded_rules_from_annotation("") == []

    def test_skips_named_validation_rule(self, write_file: WriteFile) -> None:
        path = write_file(
            "rules.yaml",
            """
            groups:
              - name: g
                rules:
                  - alert: Excluded
                    expr: up
                    annotations:
                      disabled_validation_rules: mustHaveSeverity
                  - alert: Checked
                    expr: up
            """,
        )
        report = _validate([path])
        group = report.files_reports[0].group_reports[0]
        excluded, checked = group.rule_reports
        assert excluded.valid is True
        assert excluded.excluded is True
        assert checked.errors == ["hasLabels: missing label `severity`"]
        assert report.excluded_rules_count == 1
        assert report.rules_count == 2

    def test_custom_annotation_name(self, write_file: WriteFile) -> None:
        path = write_file(
            "rules.yaml",
            """
            groups:
              - name: g
                rules:
                  - alert: A
                    expr: up
                    annotations:
                      skip: mustHaveSeverity
            """,
        )
        report = _validate([path], exclude_annotation="skip")
        assert report.failed is False


class TestDirectives:
    def test_rule_comment(self, write_file: WriteFile) -> None:
        path = write_file(
            "rules.yaml",
            """
            groups:
              - name: g
                rules:
                  # ignore_validations: hasLabels
                  - alert: A
                    expr: up
                  - alert: B
                    expr: up
            """,
        )
        report = _validate([path])
        assert _rule_errors(report) == {"A": [], "B": ["hasLabels: missing label `severity`"]}

    def test_expression_comment(self, write_file: WriteFile) -> None:
        path = write_file(
            "rules.yaml",
            """
            groups:
              - name: g
                rules:
                  - alert: A
                    expr: |
                      up
                      # ignore_validations: hasLabels
                  - alert: B
                    expr: up
            """,
        )
        report = _validate([path])
        assert _rule_errors(report) == {"A": [], "B": ["hasLabels: missing label `severity`"]}

    def test_expression_comment_in_last_rule_of_group(self, write_file: WriteFile) -> None:
        path = write_file(
            "rules.yaml",
            """
            groups:
              - name: g1
                rules:
                  - alert: A
                    expr: |
                      up
                      # ignore_validations: hasLabels
              - name: g2
                rules:
                  - alert: B
                    expr: up
            """,
        )
        report = _validate([path])
        assert _rule_errors(report, group_index=0) == {"A": []}
        assert _rule_errors(report, group_index=1) == {
            "B": ["hasLabels: missing label `severity`"]
        }

    def test_group_comment(self, write_file: WriteFile) -> None:
        path = write_file(
            "rules.yaml",
            """
            groups:
              # ignore_validations: hasLabels, maxRulesPerGroup
              - name: g
                rules:
                  - alert: A
                    expr: up
                  - alert: B
                    expr: up
                  - alert: C
                    expr: up
              - name: other
                rules:
                  - alert: D
                    expr: up
            """,
        )
        report = _validate([path])
        first, second = report.files_reports[0].group_reports
        assert first.valid is True
        assert second.valid is False

    def test_file_head_comment(self, write_file: WriteFile) -> None:
        path = write_file(
            "rules.yaml",
            """
            # ignore_validations: hasLabels
            groups:
              - name: g
                rules:
                  - alert: A
                    expr: up
            """,
        )
        assert _validate([path]).failed is False

    def test_custom_prefix(self, write_file: WriteFile) -> None:
        path = write_file(
            "rules.yaml",
            """
            groups:
              - name: g
                rules:
                  # lint-ignore: hasLabels
                  - alert: A
                    expr: up
            """,
        )
        assert _validate([path], disable_comment="lint-ignore").failed is False
        assert _validate([path]).failed is True

    def test_unknown_validator_in_rule_directive(self, write_file: WriteFile) -> None:
        path = write_file(
            "rules.yaml",
            """
            groups:
              - name: g
                rules:
                  # ignore_validations: hasLabels, hasLabel
                  - alert: A
                    expr: up
            """,
        )
        report = _validate([path])
        assert _rule_errors(report) == {
            "A": ["invalid disabled validators: unknown validator `hasLabel`"]
        }

    def test_unknown_validator_in_group_directive(self, write_file: WriteFile) -> None:
        path = write_file(
            "rules.yaml",
            """
            groups:
              # ignore_validations: nope
              - name: g
            """,
        )
        report = _validate([path])
        group = report.files_reports[0].group_reports[0]
        assert group.errors == ["invalid disabled validators: unknown validator `nope`"]


class TestOnlyIf:
    CONFIG = """
    validationRules:
      - name: criticalNeedsRunbook
        scope: Alert
        onlyIf:
          - type: labelHasAllowedValue
            params: {label: severity, allowedValues: [critical]}
        validations:
          - type: hasAnnotations
            params: {annotations: [runbook]}
    """

    def test_precondition(self, write_file: WriteFile) -> None:
        path = write_file(
            "rules.yaml",
            """
            groups:
              - name: g
                rules:
                  - alert: Warning
                    expr: up
                    labels: {severity: warning}
                  - alert: Critical
                    expr: up
                    labels: {severity: critical}
            """,
        )
        report = _validate([path], self.CONFIG)
        assert _rule_errors(report) == {
            "Warning": [],
            "Critical": ["hasAnnotations: missing annotation `runbook`"],
        }

    def test_group_scope_precondition_for_rules(self, write_file: WriteFile) -> None:
        config = """
        validationRules:
          - name: prodNeedsSeverity
            scope: Alert
            onlyIf:
              - type: groupNameMatchesRegexp
                params: {regexp: "prod-.*"}
            validations:
              - type: hasLabels
                params: {labels: [severity]}
        """
        path = write_file(
            "rules.yaml",
            """
            groups:
              - name: prod-api
                rules:
                  - alert: A
                    expr: up
              - name: dev-api
                rules:
                  - alert: B
                    expr: up
            """,
        )
        report = _validate([path], config)
        prod, dev = report.files_reports[0].group_reports
        assert prod.valid is False
        assert dev.valid is True


class TestExclusionPredicates:
    def test_group_excluded(self, write_file: WriteFile) -> None:
        path = write_file(
            "rules.yaml",
            """
            groups:
              - name: skip
                rules:
                  - alert: A
                    expr: up
              - name: keep
                rules:
                  - alert: B
                    expr: up
            """,
        )
        report = _validate([path], group_excluded=lambda g: g.name == "skip")
        skipped, kept = report.files_reports[0].group_reports
        assert skipped.excluded is True
        assert skipped.rule_reports == []
        assert kept.valid is False
        assert (report.groups_count, report.excluded_groups_count) == (2, 1)
        assert report.rules_count == 1

    def test_file_excluded_is_not_parsed(self, write_file: WriteFile) -> None:
        path = write_file("skip.yaml", "groups: [\n")
        report = _validate([path], file_excluded=lambda p: p.endswith("skip.yaml"))
        (file_report,) = report.files_reports
        assert file_report.excluded is True
        assert file_report.valid is True
        assert (report.files_count, report.excluded_files_count) == (1, 1)


# ---------------------------------------------------------------------------
# Concurrency and ordering
# ---------------------------------------------------------------------------


class TestOrdering:
    def _files(self, write_file: WriteFile, count: int) -> list[Path]:
        paths = []
        for i in range(count):
            labels = "{severity: x}" if i % 2 else "{}"
            paths.append(
                write_file(
                    f"f{i:02d}.yaml",
                    f"""
                    groups:
                      - name: g{i}
                        rules:
                          - alert: A{i}
                            expr: up
                            labels: {labels}
                    """,
                )
            )
        return paths

    def test_parallel_keeps_input_order(self, write_file: WriteFile) -> None:
        paths = list(reversed(self._files(write_file, 12)))
        report = _validate(paths, max_workers=4)
        assert [f.name for f in report.files_reports] == [str(p) for p in paths]
        for file_report in report.files_reports:
            index = int(Path(file_report.name).stem[1:])
            assert file_report.valid is bool(index % 2)
            assert file_report.group_reports[0].name == f"g{index}"
        assert report.errors_count == 6
        assert report.rules_count == 12

    def test_sequential_logs_progress(
        self, write_file: WriteFile, caplog: pytest.LogCaptureFixture
    ) -> None:
        paths = self._files(write_file, 2)
        with caplog.at_level(logging.INFO, logger="ruleval.validate"):
            _validate(paths, disable_parallelization=True)
        records = [r for r in caplog.records if r.getMessage() == "FILE_VALIDATED"]
        assert [r.progress for r in records] == ["1/2", "2/2"]
        assert [r.valid for r in records] == [False, True]


# ---------------------------------------------------------------------------
# Paths and the full run
# ---------------------------------------------------------------------------


class TestExpandPaths:
    @pytest.fixture
    def tree(self, write_file: WriteFile, sample_rules_text: str) -> Path:
        write_file("rules/b.yaml", sample_rules_text)
        write_file("rules/a.yaml", sample_rules_text)
        write_file("rules/sub/c.yaml", sample_rules_text)
        write_file("rules/notes.txt", "x")
        return write_file("other.yaml", sample_rules_text).parent

    def test_glob_sorted(self, tree: Path) -> None:
        assert expand_paths([str(tree / "rules" / "*.yaml")]) == [
            str(tree / "rules" / "a.yaml"),
            str(tree / "rules" / "b.yaml"),
        ]

    def test_recursive(self, tree: Path) -> None:
        found = expand_paths([str(tree / "rules" / "**" / "*.yaml")])
        assert str(tree / "rules" / "sub" / "c.yaml") in found
        assert str(tree / "rules" / "a.yaml") in found

    def test_directories_skipped(self, tree: Path) -> None:
        found = expand_paths([str(tree / "rules" / "*")])
        assert str(tree / "rules" / "sub") not in found
        assert str(tree / "rules" / "notes.txt") in found

    def test_pattern_order_kept(self, tree: Path) -> None:
        found = expand_paths([str(tree / "other.yaml"), str(tree / "rules" / "a.yaml")])
        assert found == [str(tree / "other.yaml"), str(tree / "rules" / "a.yaml")]

    def test_home_expansion(self, tree: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HOME", str(tree))
        assert expand_paths(["~/other.yaml"]) == [str(tree / "other.yaml")]

    def test_no_match(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="failed expanding glob pattern"):
            expand_paths([str(tmp_path / "*.yaml")])


class TestRun:
    def test_without_backend(self, write_file: WriteFile, sample_rules_text: str) -> None:
        path = write_file("rules.yaml", sample_rules_text)
        with patch("ruleval.validate.PrometheusClient") as client_cls:
            report = run([str(path)], _config())
        client_cls.assert_not_called()
        assert report.failed is False

    def test_with_backend(self, write_file: WriteFile, sample_rules_text: str) -> None:
        config = _config(
            """
            prometheus:
              url: http://prometheus:9090
            validationRules:
              - name: evaluates
                scope: AllRules
                validations:
                  - type: expressionCanBeEvaluated
                    params: {timeSeriesLimit: 10}
            """
        )
        path = write_file("rules.yaml", sample_rules_text)
        with patch("ruleval.validate.PrometheusClient") as client_cls:
            client = client_cls.return_value
            client.query_stats.return_value = (50, 0.01)
            report = run([str(path)], config)
        client_cls.assert_called_once_with(config.prometheus)
        assert client.query_stats.call_count == 2
        client.dump_cache.assert_called_once_with()
        client.close.assert_called_once_with()
        assert report.errors_count == 2
        assert _rule_errors(report)["HighErrorRate"] == [
            "expressionCanBeEvaluated: query returned 50 series exceeding the 10 limit"
        ]

    def test_cache_dumped_on_failure(self, write_file: WriteFile, sample_rules_text: str) -> None:
        config = _config("prometheus:\n  url: http://prometheus:9090\n")
        path = write_file("rules.yaml", sample_rules_text)
        with (
            patch("ruleval.validate.PrometheusClient") as client_cls,
            patch("ruleval.validate.validate_files", side_effect=RuntimeError("boom")),
            pytest.raises(RuntimeError),
        ):
            run([str(path)], config)
        client_cls.return_value.dump_cache.assert_called_once_with()

    def test_config_errors_before_paths(self) -> None:
        config = _config(
            """
            validationRules:
              - name: x
                scope: Alert
                validations:
                  - type: doesNotExist
            """
        )
        with pytest.raises(ConfigError, match="unknown validator type `doesNotExist`"):
            run(["/nonexistent/*.yaml"], config)

    def test_rule_filters(self, write_file: WriteFile) -> None:
        path = write_file(
            "rules.yaml",
            """
            groups:
              - name: g
                rules:
                  - alert: A
                    expr: up
            """,
        )
        report = run([str(path)], _config(), disabled_rules=["mustHaveSeverity"])
        assert report.failed is False
        assert [r.name for r in report.validation_rules] == ["groupSize", "recordingNames"]
