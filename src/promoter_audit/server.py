"""Webhook request handling.

``AuditServer.audit`` is framework-neutral: it takes the raw request body
and returns the status code and body to send back. Any WSGI or ASGI
adapter can wrap it.

Status policy: the push transport redelivers anything not acknowledged, so
every request that decoded structurally is acknowledged with 200, whether
the transaction was verified, rejected, or invalid. Only a malformed
envelope gets a 400. An unavailable manifest snapshot gets a 500 so the
transport retries once the manifest can be read again.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Union

import requests

from promoter_audit.auditor import Auditor, AuditResult
from promoter_audit.config import AuditorSettings
from promoter_audit.events import decode_push_message
from promoter_audit.manifest import ManifestIndex, PromotionManifest, load_manifests
from promoter_audit.models import DecodeError, ManifestError, ValidationError
from promoter_audit.registry import HttpRegistryReader, RegistryReader
from promoter_audit.reporting import (
    ErrorReportingFacility,
    LoggingErrorReporter,
    LoggingFacility,
    StdlibLoggingFacility,
)

logger = logging.getLogger("promoter_audit.server")

HTTP_OK = 200
HTTP_BAD_REQUEST = 400
HTTP_INTERNAL_ERROR = 500


class ManifestSource(Protocol):
    """Supplies the manifest snapshot used for one audit."""

    def snapshot(self) -> ManifestIndex:
        ...


class StaticManifestSource:
    """Serves one manifest for the life of the process.

    Registry collisions surface here, at construction.
    """

    def __init__(self, manifest: PromotionManifest) -> None:
        self._index = ManifestIndex(manifest)

    def snapshot(self) -> ManifestIndex:
        return self._index


class FileManifestSource:
    """Reloads manifests from disk for every audit."""

    def __init__(self, path: Union[str, Path]) -> None:
        self._path = Path(path)

    def snapshot(self) -> ManifestIndex:
        return ManifestIndex(load_manifests(self._path))


@dataclass(frozen=True)
class AuditResponse:
    status_code: int
    body: str
    result: Optional[AuditResult] = None


class AuditServer:
    """Per-process audit handler; holds no state between requests."""

    def __init__(
        self,
        manifest_source: ManifestSource,
        reader: RegistryReader,
        logging_facility: LoggingFacility,
        reporting_facility: ErrorReportingFacility,
        settings: Optional[AuditorSettings] = None,
    ) -> None:
        self._manifest_source = manifest_source
        self._reader = reader
        self._log = logging_facility
        self._reporter = reporting_facility
        self._settings = settings if settings is not None else AuditorSettings()

    @classmethod
    def from_settings(
        cls,
        settings: AuditorSettings,
        logging_facility: Optional[LoggingFacility] = None,
        reporting_facility: Optional[ErrorReportingFacility] = None,
        session: Optional[requests.Session] = None,
    ) -> "AuditServer":
        """Build a server that reloads ``settings.manifest_path`` and reads registries over HTTP.

        Raises:
            ManifestError: If ``settings.manifest_path`` is not set.
        """
        if not settings.manifest_path:
            raise ManifestError("no promotion manifest path configured")
        return cls(
            FileManifestSource(settings.manifest_path),
            HttpRegistryReader(session=session, timeout=settings.http_timeout),
            logging_facility if logging_facility is not None else StdlibLoggingFacility(),
            reporting_facility if reporting_facility is not None else LoggingErrorReporter(),
            settings,
        )

    def audit(self, body: Union[bytes, str]) -> AuditResponse:
        try:
            event = decode_push_message(body)
        except DecodeError as exc:
            self._reporter.report_error(exc)
            return AuditResponse(HTTP_BAD_REQUEST, "malformed push message")
        except ValidationError as exc:
            self._reporter.report_error(exc)
            return AuditResponse(HTTP_OK, "rejected")

        self._log.debug("request", event=event)

        try:
            index = self._manifest_source.snapshot()
        except ManifestError as exc:
            logger.error("Promotion manifest unavailable: %s", exc)
            self._reporter.report_error(exc, event)
            return AuditResponse(HTTP_INTERNAL_ERROR, "promotion manifest unavailable")

        auditor = Auditor(
            index,
            self._reader,
            logging_facility=self._log,
            reporting_facility=self._reporter,
            settings=self._settings,
        )
        result = auditor.audit(event)
        return AuditResponse(HTTP_OK, result.verdict.value, result=result)
