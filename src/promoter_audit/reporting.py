"""Logging and error-reporting sinks.

The auditor only ever writes to these; it never reads from them to decide
anything. Production code uses the stdlib-backed facilities below, tests use
the in-memory fakes.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Tuple, runtime_checkable


@runtime_checkable
class LoggingFacility(Protocol):
    def debug(self, message: str, **fields: Any) -> None:
        ...

    def info(self, message: str, **fields: Any) -> None:
        ...

    def error(self, message: str, **fields: Any) -> None:
        ...


@runtime_checkable
class ErrorReportingFacility(Protocol):
    def report_error(self, error: BaseException, event: Optional[Any] = None) -> None:
        ...


def format_fields(fields: Dict[str, Any]) -> str:
    """Render structured fields as stable ``key=value`` pairs."""
    return " ".join(f"{key}={fields[key]}" for key in sorted(fields))


def _with_fields(message: str, fields: Dict[str, Any]) -> str:
    if not fields:
        return message
    return f"{message} {format_fields(fields)}"


class StdlibLoggingFacility:
    """LoggingFacility writing through a named ``logging`` logger.

    Fields are appended to the message text and also attached to the record
    as ``record.fields`` for handlers that emit structured output.
    """

    def __init__(self, logger_name: str = "promoter_audit.audit") -> None:
        self._logger = logging.getLogger(logger_name)

    def _log(self, level: int, message: str, fields: Dict[str, Any]) -> None:
        self._logger.log(level, "%s", _with_fields(message, fields), extra={"fields": dict(fields)})

    def debug(self, message: str, **fields: Any) -> None:
        self._log(logging.DEBUG, message, fields)

    def info(self, message: str, **fields: Any) -> None:
        self._log(logging.INFO, message, fields)

    def error(self, message: str, **fields: Any) -> None:
        self._log(logging.ERROR, message, fields)


class LoggingErrorReporter:
    """ErrorReportingFacility that emits one ERROR record per report."""

    def __init__(self, logger_name: str = "promoter_audit.errors") -> None:
        self._logger = logging.getLogger(logger_name)

    def report_error(self, error: BaseException, event: Optional[Any] = None) -> None:
        if event is None:
            self._logger.error("%s: %s", type(error).__name__, error)
        else:
            self._logger.error("%s: %s (event: %s)", type(error).__name__, error, event)


# ── Fakes ─────────────────────────────────────────────────────────────────────


class FakeLoggingFacility:
    """Collects log lines per level in memory."""

    def __init__(self) -> None:
        self.debug_buffer: List[str] = []
        self.info_buffer: List[str] = []
        self.error_buffer: List[str] = []

    def debug(self, message: str, **fields: Any) -> None:
        self.debug_buffer.append(_with_fields(message, fields))

    def info(self, message: str, **fields: Any) -> None:
        self.info_buffer.append(_with_fields(message, fields))

    def error(self, message: str, **fields: Any) -> None:
        self.error_buffer.append(_with_fields(message, fields))

    def info_text(self) -> str:
        return "\n".join(self.info_buffer)


@dataclass(frozen=True)
class ErrorReport:
    error: BaseException
    event: Optional[Any] = None


class FakeReportingFacility:
    """Collects error reports in memory."""

    def __init__(self) -> None:
        self.reports: List[ErrorReport] = []

    def report_error(self, error: BaseException, event: Optional[Any] = None) -> None:
        self.reports.append(ErrorReport(error=error, event=event))

    def messages(self) -> Tuple[str, ...]:
        return tuple(str(report.error) for report in self.reports)
