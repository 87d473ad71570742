"""Audit reconciliation: is a pushed digest authorized by the promotion manifest?

Pipeline: parse reference → resolve registry → direct match → child search.

A multi-architecture image is promoted once, as its manifest-list digest.
Registries then surface a separate push for every per-platform child digest,
none of which carry a tag or appear in the manifest. The child search
recognizes those pushes by reading the manifest lists of the image's promoted
digests, in declaration order, and looking for the pushed digest among their
platform entries.
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Set, Tuple

from pydantic import BaseModel, ConfigDict
from ulid import ULID

from promoter_audit.config import AuditorSettings
from promoter_audit.events import AuditEvent, split_digest_reference, split_tag_reference
from promoter_audit.manifest import ManifestIndex, ParentCandidate
from promoter_audit.models import UnverifiedTransactionError
from promoter_audit.registry import ManifestList, RegistryReader, RepoListing
from promoter_audit.reporting import (
    ErrorReportingFacility,
    LoggingErrorReporter,
    LoggingFacility,
    StdlibLoggingFacility,
)

logger = logging.getLogger("promoter_audit.auditor")

TRANSACTION_VERIFIED = "TRANSACTION VERIFIED"
TRANSACTION_REJECTED = "TRANSACTION REJECTED"

# ── Section 1: Result types ───────────────────────────────────────────────────


class Verdict(str, Enum):
    VERIFIED = "verified"
    UNVERIFIED = "unverified"


class VerdictReason(str, Enum):
    DIRECT = "direct"
    DIRECT_TAG = "direct-tag"
    CHILD_OF_PROMOTED_PARENT = "child-of-promoted-parent"
    NO_MATCH = "no-match"
    UNKNOWN_REGISTRY = "unknown-registry"
    MALFORMED_REFERENCE = "malformed-reference"


class ProbeFailure(BaseModel):
    """A parent candidate whose manifest list could not be read."""

    model_config = ConfigDict(frozen=True)

    reference: str
    digest: str
    message: str


class AuditResult(BaseModel):
    """Outcome of reconciling one AuditEvent."""

    model_config = ConfigDict(frozen=True)

    audit_id: str
    event: AuditEvent
    verdict: Verdict
    reason: VerdictReason
    message: str
    registry: Optional[str] = None
    image_name: Optional[str] = None
    parent_digest: Optional[str] = None
    probed: Tuple[str, ...] = ()
    failures: Tuple[ProbeFailure, ...] = ()

    @property
    def verified(self) -> bool:
        return self.verdict is Verdict.VERIFIED


@dataclass
class ReconciliationContext:
    """Request-local search state. Never shared between audits."""

    audit_id: str
    registry_name: str
    image_name: str
    child_digest: str
    limit: int
    visited: Set[str] = field(default_factory=set)
    probed: List[str] = field(default_factory=list)
    failures: List[ProbeFailure] = field(default_factory=list)
    inventories: Dict[str, Optional[RepoListing]] = field(default_factory=dict)


@dataclass(frozen=True)
class _ProbeOutcome:
    candidate: ParentCandidate
    manifest_list: Optional[ManifestList] = None
    error: Optional[str] = None
    exception: Optional[BaseException] = None


# ── Section 2: Auditor ────────────────────────────────────────────────────────


class Auditor:
    """Reconciles push events against one promotion manifest snapshot.

    Args:
        index: Read-only manifest index for this audit.
        reader: Registry reader used for the child search.
        logging_facility: Receives verified transactions and probe failures.
        reporting_facility: Receives every unverified transaction.
        settings: Search bounds and concurrency.
    """

    def __init__(
        self,
        index: ManifestIndex,
        reader: RegistryReader,
        logging_facility: Optional[LoggingFacility] = None,
        reporting_facility: Optional[ErrorReportingFacility] = None,
        settings: Optional[AuditorSettings] = None,
    ) -> None:
        self._index = index
        self._reader = reader
        self._log = logging_facility if logging_facility is not None else StdlibLoggingFacility()
        self._reporter = (
            reporting_facility if reporting_facility is not None else LoggingErrorReporter()
        )
        self._settings = settings if settings is not None else AuditorSettings()

    def audit(self, event: AuditEvent) -> AuditResult:
        """Reconcile ``event`` and record exactly one disposition for it."""
        result = self.reconcile(event)
        if result.verified:
            self._log.info(
                f"{TRANSACTION_VERIFIED}: {event}: {result.message}",
                audit_id=result.audit_id,
                reason=result.reason.value,
                parent=result.parent_digest or "",
            )
        else:
            self._reporter.report_error(
                UnverifiedTransactionError(f"{TRANSACTION_REJECTED}: {event}: {result.message}"),
                event,
            )
        return result

    def reconcile(self, event: AuditEvent) -> AuditResult:
        """Decide whether ``event`` is authorized, without reporting it."""
        audit_id = str(ULID())

        if event.digest:
            try:
                path, digest = split_digest_reference(event.digest)
            except ValueError as exc:
                return self._unverified(audit_id, event, VerdictReason.MALFORMED_REFERENCE, str(exc))
            tag: Optional[str] = None
        else:
            try:
                path, tag = split_tag_reference(event.tag or "")
            except ValueError as exc:
                return self._unverified(audit_id, event, VerdictReason.MALFORMED_REFERENCE, str(exc))
            digest = ""

        location = self._index.resolve(path)
        if location is None:
            return self._unverified(
                audit_id, event, VerdictReason.UNKNOWN_REGISTRY,
                f"no destination registry in the promotion manifest contains {path!r}",
            )
        registry_name = location.registry.name
        image_name = location.image_name

        # Phase A: direct match
        if digest and self._index.is_known_digest(registry_name, image_name, digest):
            return AuditResult(
                audit_id=audit_id, event=event, verdict=Verdict.VERIFIED,
                reason=VerdictReason.DIRECT, message="agrees with promotion manifest",
                registry=registry_name, image_name=image_name,
            )
        if digest:
            declared_for = self._index.find_digest(registry_name, digest)
            if declared_for is not None:
                return AuditResult(
                    audit_id=audit_id, event=event, verdict=Verdict.VERIFIED,
                    reason=VerdictReason.DIRECT,
                    message=f"agrees with promotion manifest (declared for image {declared_for!r})",
                    registry=registry_name, image_name=image_name,
                )
        else:
            if tag is not None and self._index.is_known_tag(registry_name, image_name, tag):
                return AuditResult(
                    audit_id=audit_id, event=event, verdict=Verdict.VERIFIED,
                    reason=VerdictReason.DIRECT_TAG, message="tag agrees with promotion manifest",
                    registry=registry_name, image_name=image_name,
                )
            return self._unverified(
                audit_id, event, VerdictReason.NO_MATCH,
                f"tag {tag!r} is not declared for {registry_name}/{image_name}",
                registry=registry_name, image_name=image_name,
            )

        # Phase B: child of a promoted parent
        limit = self._index.distinct_digest_count
        if self._settings.max_candidates is not None:
            limit = min(limit, self._settings.max_candidates)
        context = ReconciliationContext(
            audit_id=audit_id,
            registry_name=registry_name,
            image_name=image_name,
            child_digest=digest,
            limit=limit,
        )
        parent = self._search_parents(context)

        if parent is not None:
            return AuditResult(
                audit_id=audit_id, event=event, verdict=Verdict.VERIFIED,
                reason=VerdictReason.CHILD_OF_PROMOTED_PARENT,
                message=f"child of promoted parent {parent.reference}",
                registry=registry_name, image_name=image_name,
                parent_digest=parent.digest,
                probed=tuple(context.probed), failures=tuple(context.failures),
            )
        return self._unverified(
            audit_id, event, VerdictReason.NO_MATCH,
            "digest is not in the promotion manifest and no promoted parent lists it as a child",
            registry=registry_name, image_name=image_name, context=context,
        )

    # ── Child search ──────────────────────────────────────────────────────────

    def _search_parents(self, context: ReconciliationContext) -> Optional[ParentCandidate]:
        if self._settings.max_workers > 1:
            return self._search_parallel(context)
        for candidate in self._iter_candidates(context):
            outcome = self._probe(candidate, context.audit_id)
            if self._record(context, outcome):
                return candidate
        return None

    def _search_parallel(self, context: ReconciliationContext) -> Optional[ParentCandidate]:
        # Outcomes are consumed in declaration order, not completion order,
        # so the winner and the failure log match the sequential scan.
        candidates = list(self._iter_candidates(context))
        if not candidates:
            return None
        workers = min(self._settings.max_workers, len(candidates))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="promoter-audit") as pool:
            futures = [pool.submit(self._probe, c, context.audit_id) for c in candidates]
            for position, future in enumerate(futures):
                outcome = future.result()
                if self._record(context, outcome):
                    for pending in futures[position + 1:]:
                        pending.cancel()
                    return outcome.candidate
        return None

    def _iter_candidates(self, context: ReconciliationContext) -> Iterator[ParentCandidate]:
        yielded = 0
        for candidate in self._index.parent_candidates(context.registry_name):
            if candidate.digest in context.visited:
                continue
            if yielded >= context.limit:
                logger.warning(
                    "Child search for %s stopped after %d candidate(s)",
                    context.child_digest, yielded,
                )
                return
            context.visited.add(candidate.digest)
            if not self._may_be_manifest_list(context, candidate):
                logger.debug("Skipping %s: not a manifest list", candidate.reference)
                continue
            yielded += 1
            yield candidate

    def _may_be_manifest_list(self, context: ReconciliationContext, candidate: ParentCandidate) -> bool:
        if not self._settings.use_repo_inventory:
            return True
        repo = f"{candidate.registry.name}/{candidate.image_name}"
        if repo not in context.inventories:
            try:
                context.inventories[repo] = self._reader.read_repo(repo)
            except Exception as exc:
                self._log.debug(
                    "repository inventory unavailable", audit_id=context.audit_id,
                    repository=repo, error=exc,
                )
                context.inventories[repo] = None
        listing = context.inventories[repo]
        if listing is None:
            return True
        return listing.is_manifest_list(candidate.digest) is not False

    def _probe(self, candidate: ParentCandidate, audit_id: str) -> _ProbeOutcome:
        try:
            manifest_list = self._reader.read_manifest_list(
                candidate.registry.name, candidate.image_name, candidate.digest
            )
        except Exception as exc:
            # Any reader failure only disqualifies this candidate. Logged by _record.
            return _ProbeOutcome(candidate=candidate, error=str(exc), exception=exc)
        return _ProbeOutcome(candidate=candidate, manifest_list=manifest_list)

    def _record(self, context: ReconciliationContext, outcome: _ProbeOutcome) -> bool:
        candidate = outcome.candidate
        context.probed.append(candidate.digest)
        if outcome.error is not None:
            context.failures.append(ProbeFailure(
                reference=candidate.reference,
                digest=candidate.digest,
                message=outcome.error,
            ))
            logger.debug(
                "Manifest list read failed for %s", candidate.reference,
                exc_info=outcome.exception,
            )
            self._log.error(
                "could not read manifest list for parent candidate",
                audit_id=context.audit_id, parent=candidate.reference, error=outcome.error,
            )
            return False
        if outcome.manifest_list is None:
            return False
        return outcome.manifest_list.find_child(context.child_digest) is not None

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _unverified(
        self,
        audit_id: str,
        event: AuditEvent,
        reason: VerdictReason,
        message: str,
        registry: Optional[str] = None,
        image_name: Optional[str] = None,
        context: Optional[ReconciliationContext] = None,
    ) -> AuditResult:
        return AuditResult(
            audit_id=audit_id, event=event, verdict=Verdict.UNVERIFIED,
            reason=reason, message=message,
            registry=registry, image_name=image_name,
            probed=tuple(context.probed) if context else (),
            failures=tuple(context.failures) if context else (),
        )
