"""Rule files: model, parser and suppression directives."""

from ruleval.rules.directives import disabled_validators, extract_directives
from ruleval.rules.model import Rule, RuleGroup, RulesFile
from ruleval.rules.parser import ParserOptions, parse_rules_file, parse_rules_text

__all__ = [
    "ParserOptions",
    "Rule",
    "RuleGroup",
    "RulesFile",
    "disabled_validators",
    "extract_directives",
    "parse_rules_file",
    "parse_rules_text",
]
