"""Canonical fixture loading for promoter-audit conformance testing.

Provides FixtureCase and Scenario (frozen dataclasses) plus loaders for
data-driven conformance tests. Reads from the bundled manifest.json and
fixture JSON files.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from promoter_audit.manifest import PromotionManifest, parse_manifest

_FIXTURES_DIR = Path(__file__).parent / "fixtures"
_MANIFEST_PATH = _FIXTURES_DIR / "manifest.json"

_VALID_CATEGORIES = frozenset({"push_payload", "manifest_list"})

_SCENARIO_TYPE = "scenario"

# Known special fixture types that load_fixtures() skips.
# Typos in manifest fixture_type values will raise ValueError.
_SPECIAL_FIXTURE_TYPES: frozenset[str] = frozenset({_SCENARIO_TYPE})


@dataclass(frozen=True)
class FixtureCase:
    """A single fixture test case loaded from the manifest."""

    id: str
    payload: Any
    expected_valid: bool
    kind: str
    notes: str
    min_version: str
    expected_error: Optional[str] = None


@dataclass(frozen=True)
class Scenario:
    """An end-to-end audit scenario: manifest, push, fake registry, outcome."""

    id: str
    manifest: PromotionManifest
    payload: Dict[str, Any]
    read_repo: Dict[str, Any]
    read_manifest_list: Dict[str, Any]
    expected: Dict[str, Any]


def _load_manifest() -> Dict[str, Any]:
    with open(_MANIFEST_PATH, "r", encoding="utf-8") as fh:
        manifest: Dict[str, Any] = json.load(fh)
    return manifest


def _read_fixture(relative: str) -> Any:
    full_path = _FIXTURES_DIR / relative
    if not full_path.exists():
        raise FileNotFoundError(
            f"Fixture file referenced in manifest does not exist: {full_path}"
        )
    with open(full_path, "r", encoding="utf-8") as fh:
        return json.load(fh)


def load_fixtures(category: str) -> List[FixtureCase]:
    """Load canonical fixture cases for a category.

    Args:
        category: ``"push_payload"`` or ``"manifest_list"``.

    Returns:
        List of :class:`FixtureCase` instances with payloads loaded from JSON.

    Raises:
        ValueError: If *category* is not one of the recognised categories.
        FileNotFoundError: If the manifest or a referenced fixture file is missing.
    """
    if category not in _VALID_CATEGORIES:
        raise ValueError(
            f"Unknown fixture category: {category!r}. "
            f"Valid categories: {sorted(_VALID_CATEGORIES)}"
        )

    fixtures: List[FixtureCase] = []
    for entry in _load_manifest()["fixtures"]:
        fixture_path: str = entry["path"]
        if not fixture_path.startswith(category + "/"):
            continue

        ft: Optional[str] = entry.get("fixture_type")
        if ft is not None:
            if ft not in _SPECIAL_FIXTURE_TYPES:
                raise ValueError(
                    f"Unknown fixture_type {ft!r} in manifest entry "
                    f"{entry.get('id', '?')!r}. "
                    f"Known types: {sorted(_SPECIAL_FIXTURE_TYPES)}"
                )
            continue

        fixtures.append(
            FixtureCase(
                id=entry["id"],
                payload=_read_fixture(fixture_path),
                expected_valid=entry["expected_result"] == "valid",
                kind=entry["kind"],
                notes=entry["notes"],
                min_version=entry["min_version"],
                expected_error=entry.get("expected_error"),
            )
        )

    return fixtures


def load_scenario(fixture_id: str) -> Scenario:
    """Load an end-to-end audit scenario by manifest id.

    Raises:
        ValueError: If *fixture_id* is not found or is not a scenario entry.
        FileNotFoundError: If the scenario file does not exist on disk.
    """
    entry: Optional[Dict[str, Any]] = None
    for candidate in _load_manifest()["fixtures"]:
        if candidate["id"] == fixture_id:
            entry = candidate
            break

    if entry is None:
        raise ValueError(f"Scenario fixture not found in manifest: {fixture_id!r}")
    if entry.get("fixture_type") != _SCENARIO_TYPE:
        raise ValueError(
            f"Fixture {fixture_id!r} is not a scenario "
            f"(fixture_type={entry.get('fixture_type')!r}). "
            f"Use load_fixtures() for regular fixture cases."
        )

    data: Dict[str, Any] = _read_fixture(entry["path"])
    records = tuple(
        parse_manifest(doc, source=f"{fixture_id}[{i}]")
        for i, doc in enumerate(data["manifests"])
    )
    return Scenario(
        id=fixture_id,
        manifest=PromotionManifest(records=records),
        payload=data["payload"],
        read_repo=data.get("read_repo", {}),
        read_manifest_list=data.get("read_manifest_list", {}),
        expected=data["expected"],
    )


def scenario_ids() -> List[str]:
    """Ids of every scenario fixture, in manifest order."""
    return [
        entry["id"] for entry in _load_manifest()["fixtures"]
        if entry.get("fixture_type") == _SCENARIO_TYPE
    ]
