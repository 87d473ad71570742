"""
promoter-audit: Audit webhook for container-image promotion.

Every push or delete in a production registry is published as a notification.
This library decodes those notifications and checks each one against the
promotion manifest, the desired-state record of which digests may exist in
which registry. Pushes the manifest accounts for are logged as verified;
everything else is reported as an error.

Per-platform children of a promoted multi-architecture image are never named
in the manifest. They are verified by reading the manifest lists of the
image's promoted digests and finding the pushed digest among their entries.

Example:
    >>> from promoter_audit import (
    ...     AuditServer, FakeLoggingFacility, FakeRegistryReader,
    ...     FakeReportingFacility, PromotionManifest, StaticManifestSource,
    ...     encode_push_message, parse_manifest,
    ... )
    >>> record = parse_manifest({
    ...     "registries": [
    ...         {"name": "gcr.io/staging", "src": True},
    ...         {"name": "us.gcr.io/prod"},
    ...     ],
    ...     "images": [{"imageName": "app", "dmap": {"sha256:" + "a" * 64: ["v1"]}}],
    ... })
    >>> server = AuditServer(
    ...     StaticManifestSource(PromotionManifest(records=(record,))),
    ...     FakeRegistryReader(), FakeLoggingFacility(), FakeReportingFacility(),
    ... )
    >>> server.audit(encode_push_message(
    ...     {"action": "INSERT", "digest": "us.gcr.io/prod/app@sha256:" + "a" * 64}
    ... )).body
    'verified'
"""

__version__ = "0.1.0"

# Errors
from promoter_audit.models import (
    DecodeError,
    DeletionProhibitedError,
    DuplicateRegistryError,
    ManifestError,
    MissingActionError,
    MissingReferenceError,
    PromoterAuditError,
    RegistryReadError,
    UnknownActionError,
    UnverifiedTransactionError,
    ValidationError,
)

# Push notification decoding
from promoter_audit.events import (
    AuditAction,
    AuditEvent,
    PushEnvelope,
    PushMessage,
    RegistryPushPayload,
    decode_push_message,
    encode_push_message,
    parse_envelope,
    parse_payload,
    split_digest_reference,
    split_tag_reference,
    validate_payload,
)

# Promotion manifest
from promoter_audit.manifest import (
    ImageLocation,
    ImageRecord,
    ManifestIndex,
    ManifestRecord,
    ParentCandidate,
    PromotionManifest,
    RegistryContext,
    load_manifests,
    parse_manifest,
)

# Registry reads
from promoter_audit.registry import (
    FakeRegistryReader,
    HttpRegistryReader,
    ManifestList,
    ManifestListEntry,
    RegistryReader,
    RepoListing,
)

# Sinks
from promoter_audit.reporting import (
    ErrorReportingFacility,
    FakeLoggingFacility,
    FakeReportingFacility,
    LoggingErrorReporter,
    LoggingFacility,
    StdlibLoggingFacility,
)

# Reconciliation
from promoter_audit.config import AuditorSettings
from promoter_audit.auditor import (
    AuditResult,
    Auditor,
    ProbeFailure,
    Verdict,
    VerdictReason,
)
from promoter_audit.server import (
    AuditResponse,
    AuditServer,
    FileManifestSource,
    ManifestSource,
    StaticManifestSource,
)

__all__ = [
    "__version__",
    # Errors
    "PromoterAuditError",
    "DecodeError",
    "ValidationError",
    "MissingReferenceError",
    "MissingActionError",
    "DeletionProhibitedError",
    "UnknownActionError",
    "ManifestError",
    "DuplicateRegistryError",
    "RegistryReadError",
    "UnverifiedTransactionError",
    # Push notification decoding
    "AuditAction",
    "AuditEvent",
    "PushEnvelope",
    "PushMessage",
    "RegistryPushPayload",
    "decode_push_message",
    "encode_push_message",
    "parse_envelope",
    "parse_payload",
    "split_digest_reference",
    "split_tag_reference",
    "validate_payload",
    # Promotion manifest
    "ImageLocation",
    "ImageRecord",
    "ManifestIndex",
    "ManifestRecord",
    "ParentCandidate",
    "PromotionManifest",
    "RegistryContext",
    "load_manifests",
    "parse_manifest",
    # Registry reads
    "FakeRegistryReader",
    "HttpRegistryReader",
    "ManifestList",
    "ManifestListEntry",
    "RegistryReader",
    "RepoListing",
    # Sinks
    "ErrorReportingFacility",
    "FakeLoggingFacility",
    "FakeReportingFacility",
    "LoggingErrorReporter",
    "LoggingFacility",
    "StdlibLoggingFacility",
    # Reconciliation
    "AuditorSettings",
    "AuditResult",
    "Auditor",
    "ProbeFailure",
    "Verdict",
    "VerdictReason",
    "AuditResponse",
    "AuditServer",
    "FileManifestSource",
    "ManifestSource",
    "StaticManifestSource",
]
