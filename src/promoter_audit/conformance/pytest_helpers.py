"""Reusable test helpers for promoter-audit conformance testing.

Consumers can import these to write their own conformance assertions:
    from promoter_audit.conformance.pytest_helpers import (
        assert_payload_conforms,
        assert_payload_fails,
        assert_push_rejected,
    )
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from promoter_audit.conformance.validators import (
    ConformanceResult,
    validate_document,
)
from promoter_audit.events import encode_push_message
from promoter_audit.reporting import FakeReportingFacility
from promoter_audit.server import AuditResponse, AuditServer


def assert_payload_conforms(
    payload: Dict[str, Any],
    kind: str,
    *,
    strict: bool = False,
) -> ConformanceResult:
    """Assert a document conforms to its wire contract."""
    result = validate_document(kind, payload, strict=strict)
    if not result.valid:
        violations = []
        for mv in result.model_violations:
            violations.append(f"  Model: {mv.field}: {mv.message}")
        for sv in result.schema_violations:
            violations.append(f"  Schema: {sv.json_path}: {sv.message}")
        if result.semantic_error is not None:
            violations.append(f"  Semantic: {result.semantic_error}")
        raise AssertionError(
            f"Document of kind {kind!r} failed conformance:\n"
            + "\n".join(violations)
        )
    return result


def assert_payload_fails(
    payload: Dict[str, Any],
    kind: str,
    *,
    strict: bool = False,
    expected_error: Optional[str] = None,
) -> ConformanceResult:
    """Assert a document DOES NOT conform (expected invalid).

    With ``expected_error``, the semantic error text must match exactly.
    """
    result = validate_document(kind, payload, strict=strict)
    if result.valid:
        raise AssertionError(
            f"Document of kind {kind!r} was expected to fail but passed conformance."
        )
    if expected_error is not None and result.semantic_error != expected_error:
        raise AssertionError(
            f"Expected error {expected_error!r}, got {result.semantic_error!r}"
        )
    return result


def assert_push_rejected(
    server: AuditServer,
    reporter: FakeReportingFacility,
    payload: Dict[str, Any],
    expected_error: str,
) -> AuditResponse:
    """Push ``payload`` through ``server`` and assert it was reported as invalid.

    ``reporter`` must be the reporting facility the server was built with.
    """
    before = len(reporter.reports)
    response = server.audit(encode_push_message(payload))
    new_messages = [str(r.error) for r in reporter.reports[before:]]
    assert new_messages == [expected_error], (
        f"Expected exactly one report {expected_error!r}, got {new_messages!r}"
    )
    return response
