"""Shared pytest fixtures for conformance tests."""
from __future__ import annotations

from typing import Callable, Tuple

import pytest

from promoter_audit.conformance.loader import Scenario
from promoter_audit.registry import FakeRegistryReader
from promoter_audit.reporting import FakeLoggingFacility, FakeReportingFacility
from promoter_audit.server import AuditServer, StaticManifestSource

ScenarioHarness = Tuple[AuditServer, FakeLoggingFacility, FakeReportingFacility]


@pytest.fixture
def scenario_harness() -> Callable[[Scenario], ScenarioHarness]:
    """Build a webhook handler wired to a scenario's manifest and fake registry."""

    def build(scenario: Scenario) -> ScenarioHarness:
        logs = FakeLoggingFacility()
        reports = FakeReportingFacility()
        server = AuditServer(
            StaticManifestSource(scenario.manifest),
            FakeRegistryReader(scenario.read_repo, scenario.read_manifest_list),
            logs,
            reports,
        )
        return server, logs, reports

    return build
