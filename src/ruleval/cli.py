"""Project CLI entrypoint.

Provides CLI commands for RULEVAL:
- ruleval validate: Validate rule files against the configured validation rules
- ruleval validation-docs: Render the configured validation rules as docs
- ruleval version: Print the version

Exit code 0 on success, 1 on a failed validation or any config/load error.
The report is printed to stdout in every case; logs go to stderr.
"""

from __future__ import annotations

import argparse
import logging
import sys

from ruleval import _pkg_version
from ruleval.config.loader import load_configs
from ruleval.errors import ConfigError
from ruleval.report.docs import DOCS_FORMATS, validation_docs
from ruleval.report.output import OUTPUT_FORMATS, render
from ruleval.rules.parser import ParserOptions

logger = logging.getLogger(__name__)


def _setup_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
    )


def _cmd_validate(args: argparse.Namespace) -> int:
    from ruleval.validate import run  # noqa: PLC0415 - lazy import for fast CLI startup

    config = load_configs(args.config_file)
    options = ParserOptions(
        support_loki=args.support_loki,
        support_mimir=args.support_mimir,
        support_thanos=args.support_thanos,
    )
    report = run(
        args.paths,
        config,
        disabled_rules=args.disable_rule,
        enabled_rules=args.enable_rule,
        options=options,
        disable_parallelization=args.disable_parallelization,
    )
    sys.stdout.write(render(report, args.output, color=args.color))
    return 1 if report.failed else 0


def _cmd_validation_docs(args: argparse.Namespace) -> int:
    from ruleval.validation_rule import validation_rules_from_config  # noqa: PLC0415

    config = load_configs(args.config_file)
    rules = validation_rules_from_config(config)
    sys.stdout.write(validation_docs(rules, args.output))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ruleval", description="Prometheus rule validation tool"
    )
    parser.add_argument("--version", action="version", version=f"ruleval {_pkg_version()}")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="cmd", required=True)

    p_validate = sub.add_parser("validate", help="Validate rule files")
    p_validate.add_argument(
        "-c",
        "--config-file",
        action="append",
        required=True,
        help="Path to validation config (repeatable, later files extend earlier ones)",
    )
    p_validate.add_argument(
        "-d",
        "--disable-rule",
        action="append",
        default=[],
        help="Validation rule to disable (repeatable)",
    )
    p_validate.add_argument(
        "-e",
        "--enable-rule",
        action="append",
        default=[],
        help="Only run these validation rules (repeatable)",
    )
    p_validate.add_argument(
        "-o", "--output", choices=OUTPUT_FORMATS, default="text", help="Report format"
    )
    p_validate.add_argument("--color", action="store_true", help="Colorize text output")
    p_validate.add_argument(
        "--support-loki", action="store_true", help="Accept Loki rule file fields"
    )
    p_validate.add_argument(
        "--support-mimir", action="store_true", help="Accept Mimir rule file fields"
    )
    p_validate.add_argument(
        "--support-thanos", action="store_true", help="Accept Thanos rule file fields"
    )
    p_validate.add_argument(
        "--disable-parallelization",
        action="store_true",
        help="Validate files one by one (easier to debug)",
    )
    p_validate.add_argument("paths", nargs="+", help="Rule files or glob patterns (** supported)")

    p_docs = sub.add_parser("validation-docs", help="Print docs of the configured validation rules")
    p_docs.add_argument(
        "-c", "--config-file", action="append", required=True, help="Path to validation config"
    )
    p_docs.add_argument("-o", "--output", choices=DOCS_FORMATS, default="text", help="Docs format")

    sub.add_parser("version", help="Print version")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.debug)

    if args.cmd == "version":
        print(f"ruleval {_pkg_version()}")
        return 0

    try:
        if args.cmd == "validate":
            return _cmd_validate(args)
        if args.cmd == "validation-docs":
            return _cmd_validation_docs(args)
    except ConfigError as e:
        logger.error("CONFIG_ERROR", extra={"error": str(e)})
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    return 2


if __name__ == "__main__":
    raise SystemExit(main())
