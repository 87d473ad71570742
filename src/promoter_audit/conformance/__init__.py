"""Conformance test suite for promoter-audit.

Run: pytest --pyargs promoter_audit.conformance
"""
from promoter_audit.conformance.loader import (
    FixtureCase,
    Scenario,
    load_fixtures,
    load_scenario,
    scenario_ids,
)
from promoter_audit.conformance.pytest_helpers import (
    assert_payload_conforms,
    assert_payload_fails,
    assert_push_rejected,
)
from promoter_audit.conformance.validators import (
    ConformanceResult,
    ModelViolation,
    SchemaViolation,
    validate_document,
)

__all__ = [
    "ConformanceResult",
    "FixtureCase",
    "ModelViolation",
    "Scenario",
    "SchemaViolation",
    "assert_payload_conforms",
    "assert_payload_fails",
    "assert_push_rejected",
    "load_fixtures",
    "load_scenario",
    "scenario_ids",
    "validate_document",
]
