"""Unit tests for the webhook request handler."""
import json
from pathlib import Path
from typing import Any, Dict, List, Tuple

import pytest
import requests

from promoter_audit.config import AuditorSettings
from promoter_audit.events import encode_push_message
from promoter_audit.manifest import ManifestIndex, PromotionManifest, parse_manifest
from promoter_audit.models import (
    DecodeError,
    DeletionProhibitedError,
    ManifestError,
    UnverifiedTransactionError,
)
from promoter_audit.registry import FakeRegistryReader
from promoter_audit.server import (
    HTTP_BAD_REQUEST,
    HTTP_INTERNAL_ERROR,
    HTTP_OK,
    AuditServer,
    FileManifestSource,
    StaticManifestSource,
)

PROD = "us.gcr.io/prod"
DIGEST = "sha256:" + "1" * 64


def _make_manifest_document() -> Dict[str, Any]:
    return {
        "registries": [{"name": "gcr.io/staging", "src": True}, {"name": PROD}],
        "images": [{"imageName": "app", "dmap": {DIGEST: ["v1"]}}],
    }


def _make_server(logs, reports, **settings: Any) -> AuditServer:
    manifest = PromotionManifest(records=(parse_manifest(_make_manifest_document()),))
    return AuditServer(
        StaticManifestSource(manifest),
        FakeRegistryReader(),
        logs,
        reports,
        AuditorSettings(**settings),
    )


class _BrokenSource:
    def snapshot(self) -> ManifestIndex:
        raise ManifestError("manifest bucket unreachable")


class TestStatusCodes:
    def test_verified(self, logs, reports):
        response = _make_server(logs, reports).audit(
            encode_push_message({"action": "INSERT", "digest": f"{PROD}/app@{DIGEST}"})
        )
        assert response.status_code == HTTP_OK
        assert response.body == "verified"
        assert response.result.verified
        assert reports.reports == []
        assert len(logs.info_buffer) == 1

    def test_unverified(self, logs, reports):
        other = "sha256:" + "2" * 64
        response = _make_server(logs, reports, use_repo_inventory=False).audit(
            encode_push_message({"action": "INSERT", "digest": f"{PROD}/app@{other}"})
        )
        assert response.status_code == HTTP_OK
        assert response.body == "unverified"
        assert len(reports.reports) == 1
        assert isinstance(reports.reports[0].error, UnverifiedTransactionError)
        assert logs.info_buffer == []

    def test_malformed_envelope(self, logs, reports):
        response = _make_server(logs, reports).audit(b"{}")
        assert response.status_code == HTTP_BAD_REQUEST
        assert response.result is None
        assert len(reports.reports) == 1
        assert isinstance(reports.reports[0].error, DecodeError)

    def test_validation_failure(self, logs, reports):
        digest_ref = f"{PROD}/app@{DIGEST}"
        response = _make_server(logs, reports).audit(
            encode_push_message({"action": "DELETE", "digest": digest_ref})
        )
        assert response.status_code == HTTP_OK
        assert response.body == "rejected"
        assert reports.messages() == (f"{{DELETE {digest_ref} }}: deletions are prohibited",)
        assert isinstance(reports.reports[0].error, DeletionProhibitedError)
        assert logs.debug_buffer == []

    def test_manifest_unavailable(self, logs, reports):
        server = AuditServer(_BrokenSource(), FakeRegistryReader(), logs, reports)
        response = server.audit(
            encode_push_message({"action": "INSERT", "digest": f"{PROD}/app@{DIGEST}"})
        )
        assert response.status_code == HTTP_INTERNAL_ERROR
        assert len(reports.reports) == 1
        assert isinstance(reports.reports[0].error, ManifestError)
        assert reports.reports[0].event is not None


class TestRequestLogging:
    def test_request_logged_at_debug(self, logs, reports):
        _make_server(logs, reports).audit(
            encode_push_message({"action": "INSERT", "digest": f"{PROD}/app@{DIGEST}"})
        )
        assert len(logs.debug_buffer) == 1
        assert logs.debug_buffer[0].startswith("request event=")


class TestManifestSources:
    def test_static_source_shares_index(self):
        source = StaticManifestSource(
            PromotionManifest(records=(parse_manifest(_make_manifest_document()),))
        )
        assert source.snapshot() is source.snapshot()

    def test_file_source_reloads(self, tmp_path: Path, logs, reports):
        path = tmp_path / "manifest.json"
        path.write_text(json.dumps(_make_manifest_document()), encoding="utf-8")
        source = FileManifestSource(path)
        first = source.snapshot()
        assert first.is_known_digest(PROD, "app", DIGEST)

        updated = _make_manifest_document()
        updated["images"] = [{"imageName": "app", "dmap": {}}]
        path.write_text(json.dumps(updated), encoding="utf-8")
        assert not source.snapshot().is_known_digest(PROD, "app", DIGEST)
        assert first.is_known_digest(PROD, "app", DIGEST)

    def test_file_source_missing(self, tmp_path: Path, logs, reports):
        server = AuditServer(
            FileManifestSource(tmp_path / "missing.yaml"), FakeRegistryReader(), logs, reports
        )
        response = server.audit(
            encode_push_message({"action": "INSERT", "digest": f"{PROD}/app@{DIGEST}"})
        )
        assert response.status_code == HTTP_INTERNAL_ERROR

    def test_duplicate_registry_fails_at_construction(self):
        document = _make_manifest_document()
        document["registries"].append({"name": PROD})
        with pytest.raises(ManifestError):
            StaticManifestSource(PromotionManifest(records=(parse_manifest(document),)))

    def test_file_source_undecodable_manifest(self, tmp_path: Path, logs, reports):
        (tmp_path / "promoter-manifest.yaml").write_bytes(b"registries:\n- name: \xff\xfe\n")
        server = AuditServer(FileManifestSource(tmp_path), FakeRegistryReader(), logs, reports)
        response = server.audit(
            encode_push_message({"action": "INSERT", "digest": f"{PROD}/app@{DIGEST}"})
        )
        assert response.status_code == HTTP_INTERNAL_ERROR
        assert len(reports.reports) == 1
        assert isinstance(reports.reports[0].error, ManifestError)
        assert "could not read manifest" in str(reports.reports[0].error)


class _RecordingSession:
    def __init__(self) -> None:
        self.calls: List[Tuple[str, Any]] = []

    def get(self, url: str, headers: Any = None, timeout: Any = None) -> Any:
        self.calls.append((url, timeout))
        raise requests.ConnectionError(f"cannot reach {url}")


class TestFromSettings:
    def test_reads_manifest_path(self, tmp_path: Path, logs, reports):
        path = tmp_path / "manifest.json"
        path.write_text(json.dumps(_make_manifest_document()), encoding="utf-8")
        session = _RecordingSession()
        server = AuditServer.from_settings(
            AuditorSettings(manifest_path=str(path)), logs, reports, session=session
        )
        response = server.audit(
            encode_push_message({"action": "INSERT", "digest": f"{PROD}/app@{DIGEST}"})
        )
        assert response.body == "verified"
        assert session.calls == []

    def test_registry_reads_use_http_timeout(self, tmp_path: Path, logs, reports):
        path = tmp_path / "manifest.json"
        path.write_text(json.dumps(_make_manifest_document()), encoding="utf-8")
        session = _RecordingSession()
        settings = AuditorSettings(
            manifest_path=str(path), http_timeout=7.5, use_repo_inventory=False
        )
        server = AuditServer.from_settings(settings, logs, reports, session=session)
        response = server.audit(
            encode_push_message({"action": "INSERT", "digest": f"{PROD}/app@sha256:{'2' * 64}"})
        )
        assert response.body == "unverified"
        assert session.calls
        assert {timeout for _, timeout in session.calls} == {7.5}

    def test_missing_manifest_path(self):
        with pytest.raises(ManifestError, match="no promotion manifest path"):
            AuditServer.from_settings(AuditorSettings())
