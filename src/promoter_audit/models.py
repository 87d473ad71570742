"""Error hierarchy for promoter-audit."""
from typing import Any, Optional


class PromoterAuditError(Exception):
    """Base exception for all library errors."""
    pass


class DecodeError(PromoterAuditError):
    """Push envelope or embedded payload is structurally malformed."""
    pass


class ValidationError(PromoterAuditError):
    """Push payload parsed but is semantically disallowed."""
    pass


class MissingReferenceError(ValidationError):
    def __init__(self) -> None:
        super().__init__("neither Digest nor Tag was specified")


class MissingActionError(ValidationError):
    def __init__(self) -> None:
        super().__init__("Action not specified")


class DeletionProhibitedError(ValidationError):
    """Raised for every DELETE notification.

    The whole payload is kept in the message, not just the digest, so the
    report shows exactly what the registry sent.
    """

    def __init__(self, payload: Any) -> None:
        self.payload = payload
        super().__init__(f"{payload}: deletions are prohibited")


class UnknownActionError(ValidationError):
    """Raised when the action is neither INSERT nor DELETE."""

    def __init__(self, action: str) -> None:
        self.action = action
        super().__init__(f'unknown action "{action}"')


class ManifestError(PromoterAuditError):
    """Promotion manifest could not be loaded or is inconsistent."""
    pass


class DuplicateRegistryError(ManifestError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"registry {name!r} is declared more than once")


class RegistryReadError(PromoterAuditError):
    """A registry reader call failed."""

    def __init__(
        self, registry: str, message: str, digest: Optional[str] = None
    ) -> None:
        self.registry = registry
        self.digest = digest
        target = f"{registry}@{digest}" if digest else registry
        super().__init__(f"could not read {target}: {message}")


class UnverifiedTransactionError(PromoterAuditError):
    """Reported when a push cannot be traced back to the promotion manifest."""
    pass
