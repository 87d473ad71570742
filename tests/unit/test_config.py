"""Unit tests for auditor settings."""
import pytest
from pydantic import ValidationError as PydanticValidationError

from promoter_audit.config import AuditorSettings


class TestAuditorSettings:
    def test_defaults(self):
        settings = AuditorSettings()
        assert settings.max_candidates is None
        assert settings.max_workers == 1
        assert settings.use_repo_inventory is True
        assert settings.http_timeout == 30.0
        assert settings.manifest_path is None

    @pytest.mark.parametrize(
        "overrides",
        [{"max_candidates": 0}, {"max_workers": 0}, {"http_timeout": 0}],
    )
    def test_bounds(self, overrides):
        with pytest.raises(PydanticValidationError):
            AuditorSettings(**overrides)

    def test_immutable(self):
        settings = AuditorSettings()
        with pytest.raises(Exception):
            setattr(settings, "max_workers", 4)


class TestFromEnv:
    def test_reads_prefixed_variables(self):
        settings = AuditorSettings.from_env({
            "PROMOTER_AUDIT_MAX_CANDIDATES": "5",
            "PROMOTER_AUDIT_MAX_WORKERS": "4",
            "PROMOTER_AUDIT_USE_REPO_INVENTORY": "false",
            "PROMOTER_AUDIT_HTTP_TIMEOUT": "2.5",
            "PROMOTER_AUDIT_MANIFEST_PATH": "/etc/promoter/manifests",
            "UNRELATED": "x",
        })
        assert settings == AuditorSettings(
            max_candidates=5,
            max_workers=4,
            use_repo_inventory=False,
            http_timeout=2.5,
            manifest_path="/etc/promoter/manifests",
        )

    def test_empty_values_keep_defaults(self):
        assert AuditorSettings.from_env({"PROMOTER_AUDIT_MAX_WORKERS": ""}) == AuditorSettings()

    def test_invalid_value(self):
        with pytest.raises(PydanticValidationError):
            AuditorSettings.from_env({"PROMOTER_AUDIT_MAX_WORKERS": "many"})

    def test_process_environment(self, monkeypatch):
        monkeypatch.setenv("PROMOTER_AUDIT_MAX_CANDIDATES", "3")
        assert AuditorSettings.from_env().max_candidates == 3
