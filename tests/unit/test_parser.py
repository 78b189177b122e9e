"""Tests for ruleval.rules.parser.

Covers:
- Alerting and recording rules with durations, labels and annotations
- Head comments of the file, ``groups:`` key, groups and rules; ``#``
  lines inside a block scalar never become the next node's comment
- Scalars keep their literal text
- Structural errors: both/none of alert and record, empty expr, empty
  group name, unknown and duplicate fields (with line numbers)
- Backend extensions gated by ParserOptions
- Empty documents and rule unit-test files
"""

from __future__ import annotations

import textwrap
from collections.abc import Callable
from pathlib import Path

import pytest

from ruleval.config.scope import ValidationScope
from ruleval.errors import RuleFileParseError
from ruleval.rules.model import RulesFile
from ruleval.rules.parser import ParserOptions, parse_rules_file, parse_rules_text

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _parse(text: str, options: ParserOptions | None = None) -> RulesFile:
    return parse_rules_text(textwrap.dedent(text).lstrip("\n"), "rules.yaml", options)


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


class TestParseRules:
    def test_sample_file(self, sample_rules_text: str) -> None:
        rules_file = parse_rules_text(sample_rules_text, "sample.yaml")
        assert rules_file.name == "sample.yaml"
        (group,) = rules_file.groups
        assert group.name == "api"
        assert group.interval_ms == 60_000

        alert, record = group.rules
        assert alert.kind is ValidationScope.ALERT
        assert alert.name == "HighErrorRate"
        assert alert.for_ms == 600_000
        assert alert.labels == {"severity": "critical"}
        assert alert.annotations == {"summary": "Error rate is high"}
        assert alert.line == 5

        assert record.kind is ValidationScope.RECORDING_RULE
        assert record.name == "job:http_requests:rate5m"
        assert record.expr == "sum by (job) (rate(http_requests_total[5m]))"
        assert record.for_ms == 0

    def test_scalars_keep_literal_text(self) -> None:
        rules_file = _parse(
            """
            groups:
              - name: g
                limit: 10
                rules:
                  - alert: A
                    expr: vector(1)
                    labels:
                      priority: 1
                      enabled: true
            """
        )
        group = rules_file.groups[0]
        assert group.limit == 10
        assert group.rules[0].labels == {"priority": "1", "enabled": "true"}

    def test_comments(self) -> None:
        rules_file = _parse(
            """
            # ignore_validations: hasLabels

            # groups comment
            groups:
              # group comment
              - name: g
                rules:
                  # rule comment
                  # ignore_validations: nonEmptyLabels
                  - record: r
                    expr: |
                      sum(
                        # ignore_validations: expressionCanBeEvaluated
                        up
                      )
            """
        )
        assert rules_file.head_comment == "# ignore_validations: hasLabels\n# groups comment"
        assert rules_file.groups_comment == "# groups comment"
        group = rules_file.groups[0]
        assert group.comment == "# group comment"
        rule = group.rules[0]
        assert rule.comment == "# rule comment\n# ignore_validations: nonEmptyLabels"
        assert "# ignore_validations: expressionCanBeEvaluated" in rule.expr

    def test_group_without_rules(self) -> None:
        rules_file = _parse(
            """
            groups:
              - name: empty
            """
        )
        assert rules_file.groups[0].rules == ()

    def test_empty_document(self) -> None:
        rules_file = _parse("# only a comment\n")
        assert rules_file.groups == ()
        assert rules_file.head_comment == "# only a comment"

    def test_unit_test_file_has_no_groups(self) -> None:
        rules_file = _parse(
            """
            rule_files: [alerts.yaml]
            evaluation_interval: 1m
            tests: []
            """
        )
        assert rules_file.groups == ()


class TestHeadComments:
    def test_comment_inside_block_scalar_stays_with_its_rule(self) -> None:
        rules_file = _parse(
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
            """
        )
        a, b = rules_file.groups[0].rules
        assert "# ignore_validations: hasLabels" in a.expr
        assert b.comment == ""

    def test_comment_inside_last_rule_of_group(self) -> None:
        rules_file = _parse(
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
            """
        )
        _, g2 = rules_file.groups
        assert g2.comment == ""
        assert g2.rules[0].comment == ""

    def test_comment_after_block_scalar_belongs_to_next_rule(self) -> None:
        rules_file = _parse(
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
            """
        )
        a, b = rules_file.groups[0].rules
        assert "ignore_validations" not in a.expr
        assert b.comment == "# ignore_validations: hasLabels"

    def test_comment_between_plain_rules(self) -> None:
        rules_file = _parse(
            """
            groups:
              - name: g
                rules:
                  - alert: A
                    expr: up
                    labels: {severity: x}
                  # second
                  - alert: B
                    expr: up
            """
        )
        a, b = rules_file.groups[0].rules
        assert a.comment == ""
        assert b.comment == "# second"

    def test_groups_comment_after_other_key(self) -> None:
        rules_file = _parse(
            """
            namespace: ns
            # groups comment
            groups:
              - name: g
            """,
            ParserOptions(support_loki=True),
        )
        assert rules_file.groups_comment == "# groups comment"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TestParseErrors:
    def test_both_alert_and_record(self) -> None:
        with pytest.raises(RuleFileParseError, match="only one of 'record' and 'alert'") as exc:
            _parse(
                """
                groups:
                  - name: g
                    rules:
                      - alert: A
                        record: r
                        expr: up
                """
            )
        assert exc.value.line == 4
        assert str(exc.value).startswith("line 4: ")

    def test_neither_alert_nor_record(self) -> None:
        with pytest.raises(RuleFileParseError, match="one of 'record' or 'alert' must be set"):
            _parse(
                """
                groups:
                  - name: g
                    rules:
                      - expr: up
                """
            )

    def test_empty_expr(self) -> None:
        with pytest.raises(RuleFileParseError, match="field 'expr' must be set in rule"):
            _parse(
                """
                groups:
                  - name: g
                    rules:
                      - alert: A
                        expr: "  "
                """
            )

    def test_empty_group_name(self) -> None:
        with pytest.raises(RuleFileParseError, match="group name must not be empty"):
            _parse(
                """
                groups:
                  - rules: []
                """
            )

    def test_unknown_rule_field(self) -> None:
        with pytest.raises(RuleFileParseError, match="unknown field 'lables' in rule") as exc:
            _parse(
                """
                groups:
                  - name: g
                    rules:
                      - alert: A
                        expr: up
                        lables: {}
                """
            )
        assert exc.value.line == 6

    def test_duplicate_field(self) -> None:
        with pytest.raises(RuleFileParseError, match="duplicate field 'expr'"):
            _parse(
                """
                groups:
                  - name: g
                    rules:
                      - alert: A
                        expr: up
                        expr: down
                """
            )

    def test_bad_duration(self) -> None:
        with pytest.raises(RuleFileParseError, match="for: not a valid duration"):
            _parse(
                """
                groups:
                  - name: g
                    rules:
                      - alert: A
                        expr: up
                        for: often
                """
            )

    def test_malformed_yaml(self) -> None:
        with pytest.raises(RuleFileParseError):
            _parse("groups: [\n")

    def test_groups_must_be_list(self) -> None:
        with pytest.raises(RuleFileParseError, match="groups must be a list"):
            _parse("groups: foo\n")


# ---------------------------------------------------------------------------
# Backend extensions
# ---------------------------------------------------------------------------

EXTENDED = """
namespace: logs
groups:
  - name: g
    source_tenants: [team-a, team-b]
    partial_response_strategy: warn
    remote_write:
      - url: http://cortex/api/v1/push
    rules: []
"""


class TestParserOptions:
    def test_extensions_rejected_by_default(self) -> None:
        with pytest.raises(RuleFileParseError, match="unknown field 'namespace'"):
            _parse(EXTENDED)

    def test_mimir_only_rejects_thanos_field(self) -> None:
        text = """
        groups:
          - name: g
            source_tenants: [team-a]
            partial_response_strategy: warn
        """
        with pytest.raises(RuleFileParseError, match="partial_response_strategy"):
            _parse(text, ParserOptions(support_mimir=True))

    def test_all_extensions(self) -> None:
        options = ParserOptions(support_loki=True, support_mimir=True, support_thanos=True)
        rules_file = _parse(EXTENDED, options)
        assert rules_file.namespace == "logs"
        group = rules_file.groups[0]
        assert group.source_tenants == ("team-a", "team-b")
        assert group.partial_response_strategy == "warn"
        assert group.remote_write == ({"url": "http://cortex/api/v1/push"},)


class TestParseRulesFile:
    def test_reads_from_disk(
        self, write_file: Callable[[str, str], Path], sample_rules_text: str
    ) -> None:
        path = write_file("rules/api.yaml", sample_rules_text)
        rules_file = parse_rules_file(path)
        assert rules_file.name == str(path)
        assert len(rules_file.groups[0].rules) == 2

    def test_missing_file_raises_oserror(self, tmp_path: Path) -> None:
        with pytest.raises(OSError):
            parse_rules_file(tmp_path / "missing.yaml")

    def test_non_utf8_file_is_a_parse_error(self, tmp_path: Path) -> None:
        path = tmp_path / "latin1.yaml"
        path.write_bytes(b"groups:\n  - name: \xff\xfe\n")
        with pytest.raises(RuleFileParseError, match="file is not valid UTF-8") as exc:
            parse_rules_file(path)
        assert exc.value.file_name == str(path)
