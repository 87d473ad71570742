"""Registry push notification decoding.

Turns the raw body delivered by the push transport into a typed AuditEvent.
Decoding happens in two layers:

1. Structural: the envelope must be JSON of the expected shape, and its
   base64 ``message.data`` must itself be a JSON payload object. Failures
   raise :class:`~promoter_audit.models.DecodeError`.
2. Semantic: the payload must name a digest or tag and carry an INSERT
   action. Failures raise a :class:`~promoter_audit.models.ValidationError`
   subclass whose message text is matched by downstream alerting, so it
   must not change.
"""
from __future__ import annotations

import base64
import re
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic import ValidationError as PydanticValidationError

from promoter_audit.models import (
    DecodeError,
    DeletionProhibitedError,
    MissingActionError,
    MissingReferenceError,
    UnknownActionError,
)

DIGEST_PATTERN = re.compile(r"^sha256:[0-9a-f]{64}$")
_TAG_PATTERN = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$")

# ── Section 1: Transport envelope ─────────────────────────────────────────────


class PushMessage(BaseModel):
    """Inner push message; ``data`` holds the registry payload JSON."""

    model_config = ConfigDict(frozen=True)

    data: bytes = Field(..., description="Registry payload (base64 on the wire)")
    id: str = Field(
        "",
        validation_alias=AliasChoices("id", "messageId", "message_id"),
        description="Transport message identifier",
    )

    @field_validator("data", mode="before")
    @classmethod
    def _decode_base64(cls, v: object) -> object:
        if isinstance(v, str):
            return base64.b64decode(v, validate=True)
        return v

    @field_serializer("data")
    def _encode_base64(self, v: bytes) -> str:
        return base64.b64encode(v).decode("ascii")


class PushEnvelope(BaseModel):
    """Transport wrapper around a single registry notification."""

    model_config = ConfigDict(frozen=True)

    message: PushMessage
    subscription: str = ""


# ── Section 2: Registry payload ───────────────────────────────────────────────


class RegistryPushPayload(BaseModel):
    """Notification body published by the registry for every push or delete."""

    model_config = ConfigDict(frozen=True)

    action: str = Field("", description="INSERT or DELETE")
    digest: str = Field("", description="<path>@sha256:<hex> reference")
    tag: str = Field("", description="<path>:<tag> reference, if tagged")

    @field_validator("action", "digest", "tag", mode="before")
    @classmethod
    def _null_as_empty(cls, v: object) -> object:
        return "" if v is None else v

    def __str__(self) -> str:
        return f"{{{self.action} {self.digest} {self.tag}}}"


class AuditAction(str, Enum):
    INSERT = "INSERT"
    DELETE = "DELETE"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_raw(cls, raw: str) -> "AuditAction":
        if raw == cls.INSERT.value:
            return cls.INSERT
        if raw == cls.DELETE.value:
            return cls.DELETE
        return cls.UNKNOWN


class AuditEvent(BaseModel):
    """A validated push notification, ready for reconciliation."""

    model_config = ConfigDict(frozen=True)

    action: AuditAction
    raw_action: str
    digest: str = ""
    tag: Optional[str] = None

    @property
    def reference(self) -> str:
        """The most specific image reference carried by the event."""
        return self.digest or self.tag or ""

    def __str__(self) -> str:
        return f"{{{self.raw_action} {self.digest} {self.tag or ''}}}"


# ── Section 3: Decoding ───────────────────────────────────────────────────────


def parse_envelope(raw: Union[bytes, str]) -> PushEnvelope:
    """Parse the transport body into a PushEnvelope.

    Raises:
        DecodeError: If the body is not JSON or lacks the envelope shape.
    """
    try:
        return PushEnvelope.model_validate_json(raw)
    except PydanticValidationError as exc:
        raise DecodeError(f"malformed push envelope: {exc}") from exc


def parse_payload(envelope: PushEnvelope) -> RegistryPushPayload:
    """Parse the registry payload embedded in an envelope.

    Raises:
        DecodeError: If ``message.data`` is not a JSON payload object.
    """
    try:
        return RegistryPushPayload.model_validate_json(envelope.message.data)
    except PydanticValidationError as exc:
        raise DecodeError(f"malformed registry payload: {exc}") from exc


def validate_payload(payload: RegistryPushPayload) -> AuditEvent:
    """Apply the semantic rules to a parsed payload.

    The checks run in a fixed order; the first failing one wins.

    Raises:
        MissingReferenceError: Digest and tag are both empty.
        MissingActionError: Action is empty.
        DeletionProhibitedError: Action is DELETE.
        UnknownActionError: Action is anything other than INSERT.
    """
    if payload.digest == "" and payload.tag == "":
        raise MissingReferenceError()
    if payload.action == "":
        raise MissingActionError()

    action = AuditAction.from_raw(payload.action)
    if action is AuditAction.DELETE:
        raise DeletionProhibitedError(payload)
    if action is not AuditAction.INSERT:
        raise UnknownActionError(payload.action)

    return AuditEvent(
        action=action,
        raw_action=payload.action,
        digest=payload.digest,
        tag=payload.tag or None,
    )


def decode_push_message(raw: Union[bytes, str]) -> AuditEvent:
    """Decode a raw push body all the way to an AuditEvent."""
    return validate_payload(parse_payload(parse_envelope(raw)))


def encode_push_message(
    payload: Union[RegistryPushPayload, Dict[str, Any]],
    message_id: str = "",
    subscription: str = "",
) -> bytes:
    """Wrap a registry payload in a push envelope, as the transport would."""
    if isinstance(payload, RegistryPushPayload):
        data = payload.model_dump_json().encode("utf-8")
    else:
        data = RegistryPushPayload.model_validate(payload).model_dump_json().encode("utf-8")
    envelope = PushEnvelope(
        message=PushMessage(data=data, id=message_id),
        subscription=subscription,
    )
    return envelope.model_dump_json().encode("utf-8")


# ── Section 4: Reference parsing ──────────────────────────────────────────────


def split_digest_reference(reference: str) -> Tuple[str, str]:
    """Split ``<path>@sha256:<hex>`` into ``(path, "sha256:<hex>")``.

    Raises:
        ValueError: If the reference is not a well-formed digest reference.
    """
    path, sep, digest = reference.partition("@")
    if not sep or not path or not DIGEST_PATTERN.match(digest):
        raise ValueError(f"malformed digest reference: {reference!r}")
    return path, digest


def split_tag_reference(reference: str) -> Tuple[str, str]:
    """Split ``<path>:<tag>`` into ``(path, tag)``.

    The path may itself contain a ``host:port`` prefix, so the split is on
    the last colon and the tag must not contain a slash.

    Raises:
        ValueError: If the reference is not a well-formed tag reference.
    """
    path, sep, tag = reference.rpartition(":")
    if not sep or not path or "/" in tag or not _TAG_PATTERN.match(tag):
        raise ValueError(f"malformed tag reference: {reference!r}")
    return path, tag
