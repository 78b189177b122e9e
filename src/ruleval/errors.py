"""Ruleval exception hierarchy.

Fail-fast errors surface before any rule file is walked; everything else is
collected into the report and the run continues.

Exception hierarchy:
- RulevalError (base)
  - ConfigError (bad config file, unknown validator type, bad params, bad paths)
  - RuleFileParseError (malformed rule file, scoped to that file)
  - RemoteQueryError (backend transport/status/payload failure, scoped to one check)
  - CacheIOError (cache file unreadable/unwritable, only ever logged)
"""

from __future__ import annotations


class RulevalError(Exception):
    """Base exception for all ruleval errors."""

    pass


class ConfigError(RulevalError):
    """Invalid configuration, aborts the whole run before validation starts."""

    pass


class RuleFileParseError(RulevalError):
    """Rule file could not be decoded.

    Attributes:
        file_name: Path of the offending file
        line: 1-based line number of the offending node (0 if unknown)
    """

    def __init__(self, file_name: str, message: str, line: int = 0) -> None:
        self.file_name = file_name
        self.line = line
        msg = f"line {line}: {message}" if line else message
        super().__init__(msg)


class RemoteQueryError(RulevalError):
    """Backend call failed.

    Raised for transport errors, timeouts, non-2xx status codes and
    ``"status": "error"`` payloads. Warnings in a successful payload are
    not errors.

    Attributes:
        op: Operation name (query, labels, series)
        status_code: HTTP status code (0 if the request failed before a response)
    """

    def __init__(self, op: str, message: str, status_code: int = 0) -> None:
        self.op = op
        self.status_code = status_code
        super().__init__(message)


class CacheIOError(RulevalError):
    """Cache file could not be read or written.

    Attributes:
        path: Cache file path
    """

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        super().__init__(f"cache file {path}: {message}")
