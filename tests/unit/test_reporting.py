"""Unit tests for logging and error-reporting sinks."""
import logging

from promoter_audit.models import UnverifiedTransactionError
from promoter_audit.reporting import (
    ErrorReportingFacility,
    FakeLoggingFacility,
    FakeReportingFacility,
    LoggingErrorReporter,
    LoggingFacility,
    StdlibLoggingFacility,
    format_fields,
)


class TestFormatFields:
    def test_sorted_key_value_pairs(self):
        assert format_fields({"b": 2, "a": "x"}) == "a=x b=2"

    def test_empty(self):
        assert format_fields({}) == ""


class TestStdlibLoggingFacility:
    def test_levels_and_fields(self, caplog):
        facility = StdlibLoggingFacility("promoter_audit.test")
        with caplog.at_level(logging.DEBUG, logger="promoter_audit.test"):
            facility.debug("probing", parent="p")
            facility.info("verified")
            facility.error("failed", error="503", audit_id="01")
        assert [r.levelno for r in caplog.records] == [logging.DEBUG, logging.INFO, logging.ERROR]
        assert caplog.records[0].getMessage() == "probing parent=p"
        assert caplog.records[1].getMessage() == "verified"
        assert caplog.records[2].getMessage() == "failed audit_id=01 error=503"
        assert caplog.records[2].fields == {"error": "503", "audit_id": "01"}

    def test_satisfies_protocol(self):
        assert isinstance(StdlibLoggingFacility(), LoggingFacility)
        assert isinstance(FakeLoggingFacility(), LoggingFacility)


class TestLoggingErrorReporter:
    def test_report_with_event(self, caplog):
        reporter = LoggingErrorReporter("promoter_audit.test_errors")
        with caplog.at_level(logging.ERROR, logger="promoter_audit.test_errors"):
            reporter.report_error(UnverifiedTransactionError("TRANSACTION REJECTED: x"), "{INSERT d }")
            reporter.report_error(ValueError("bad"))
        messages = [r.getMessage() for r in caplog.records]
        assert messages == [
            "UnverifiedTransactionError: TRANSACTION REJECTED: x (event: {INSERT d })",
            "ValueError: bad",
        ]

    def test_satisfies_protocol(self):
        assert isinstance(LoggingErrorReporter(), ErrorReportingFacility)
        assert isinstance(FakeReportingFacility(), ErrorReportingFacility)


class TestFakes:
    def test_logging_buffers(self):
        logs = FakeLoggingFacility()
        logs.info("one", k="v")
        logs.info("two")
        logs.error("three")
        assert logs.info_buffer == ["one k=v", "two"]
        assert logs.info_text() == "one k=v\ntwo"
        assert logs.error_buffer == ["three"]
        assert logs.debug_buffer == []

    def test_reporting_buffer(self):
        reports = FakeReportingFacility()
        error = RuntimeError("boom")
        reports.report_error(error, event="e")
        assert reports.reports[0].error is error
        assert reports.reports[0].event == "e"
        assert reports.messages() == ("boom",)
