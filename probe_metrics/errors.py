"""Error taxonomy for payload parsing and bucket configuration."""
from __future__ import annotations
from typing import Optional


class ConfigError(ValueError):
    """Invalid parser options or distribution bucket declarations."""

    def __init__(self, message: str, metric: Optional[str] = None):
        super().__init__(message)
        self.metric = metric


class PayloadParseError(ValueError):
    """A payload was rejected as a whole.

    Carries the 1-based line number and raw text of the offending line (when
    the failure is tied to one line) plus the metric name it was about.
    """

    def __init__(self, message: str, line_no: Optional[int] = None, line: Optional[str] = None, metric: Optional[str] = None):
        if line_no is not None:
            message = f"line {line_no}: {message} (line={line!r})"
        super().__init__(message)
        self.line_no = line_no
        self.line = line
        self.metric = metric


class InternalError(RuntimeError):
    """Broken invariant, e.g. merging distributions with different bounds."""


__all__ = ["ConfigError", "PayloadParseError", "InternalError"]
