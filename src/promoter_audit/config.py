"""Auditor settings."""
from __future__ import annotations

import os
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

ENV_PREFIX = "PROMOTER_AUDIT_"


class AuditorSettings(BaseModel):
    """Tunables for one auditor process.

    Constructed once at startup and passed explicitly to the auditor and
    server; nothing reads the environment behind the caller's back.
    """

    model_config = ConfigDict(frozen=True)

    max_candidates: Optional[int] = Field(
        None,
        ge=1,
        description="Upper bound on parent digests probed per audit "
        "(never more than the distinct digests in the manifest)",
    )
    max_workers: int = Field(
        1,
        ge=1,
        description="Concurrent manifest-list reads during the child search",
    )
    use_repo_inventory: bool = Field(
        True,
        description="Consult the repository listing to skip digests that are not manifest lists",
    )
    http_timeout: float = Field(30.0, gt=0, description="Registry request timeout in seconds")
    manifest_path: Optional[str] = Field(
        None, description="Promotion manifest file or directory"
    )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AuditorSettings":
        """Build settings from ``PROMOTER_AUDIT_*`` environment variables.

        Unset variables keep their defaults. Invalid values raise
        ``pydantic.ValidationError``.
        """
        env = os.environ if environ is None else environ
        values: Dict[str, Any] = {}
        for name in cls.model_fields:
            raw = env.get(ENV_PREFIX + name.upper())
            if raw is not None and raw != "":
                values[name] = raw
        return cls.model_validate(values)
