"""Validation report tree and its renderers."""

from ruleval.report.docs import DOCS_FORMATS, validation_docs
from ruleval.report.output import OUTPUT_FORMATS, as_json, as_text, as_yaml, render
from ruleval.report.tree import FileReport, GroupReport, RuleReport, ValidationReport

__all__ = [
    "DOCS_FORMATS",
    "OUTPUT_FORMATS",
    "FileReport",
    "GroupReport",
    "RuleReport",
    "ValidationReport",
    "as_json",
    "as_text",
    "as_yaml",
    "render",
    "validation_docs",
]
