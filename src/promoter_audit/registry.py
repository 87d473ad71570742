"""Registry reader facility.

The auditor needs two remote reads: a repository listing (tags and manifest
inventory) and a manifest-list document for one digest. Both are behind the
:class:`RegistryReader` protocol so the auditor can be driven by the HTTP
implementation in production and by :class:`FakeRegistryReader` in tests.
"""
from __future__ import annotations

import logging
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Tuple,
    Type,
    TypeVar,
    Union,
    runtime_checkable,
)

import requests
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from promoter_audit.models import RegistryReadError

logger = logging.getLogger("promoter_audit.registry")

# ── Section 1: Media types ────────────────────────────────────────────────────

DOCKER_MANIFEST_V2: str = "application/vnd.docker.distribution.manifest.v2+json"
DOCKER_MANIFEST_LIST_V2: str = "application/vnd.docker.distribution.manifest.list.v2+json"
OCI_MANIFEST_V1: str = "application/vnd.oci.image.manifest.v1+json"
OCI_IMAGE_INDEX_V1: str = "application/vnd.oci.image.index.v1+json"

MANIFEST_LIST_MEDIA_TYPES = frozenset({DOCKER_MANIFEST_LIST_V2, OCI_IMAGE_INDEX_V1})

# ── Section 2: Wire models ────────────────────────────────────────────────────


class ManifestInfo(BaseModel):
    """Inventory entry for one digest in a repository listing."""

    model_config = ConfigDict(frozen=True)

    image_size_bytes: str = Field("0", validation_alias=AliasChoices("imageSizeBytes", "image_size_bytes"))
    layer_id: str = Field("", validation_alias=AliasChoices("layerId", "layer_id"))
    media_type: str = Field("", validation_alias=AliasChoices("mediaType", "media_type"))
    tag: Tuple[str, ...] = ()
    time_created_ms: str = Field("0", validation_alias=AliasChoices("timeCreatedMs", "time_created_ms"))
    time_uploaded_ms: str = Field("0", validation_alias=AliasChoices("timeUploadedMs", "time_uploaded_ms"))


class RepoListing(BaseModel):
    """Response of a registry's ``tags/list`` endpoint."""

    model_config = ConfigDict(frozen=True)

    child: Tuple[str, ...] = ()
    manifest: Dict[str, ManifestInfo] = Field(default_factory=dict)
    name: str = ""
    tags: Tuple[str, ...] = ()

    def is_manifest_list(self, digest: str) -> Optional[bool]:
        """Whether the listing reports ``digest`` as a manifest list.

        Returns None when the digest is absent from the inventory.
        """
        info = self.manifest.get(digest)
        if info is None:
            return None
        return info.media_type in MANIFEST_LIST_MEDIA_TYPES


class Platform(BaseModel):
    model_config = ConfigDict(frozen=True)

    architecture: str = ""
    os: str = ""
    variant: Optional[str] = None


class ManifestListEntry(BaseModel):
    """A per-platform child manifest referenced by a manifest list."""

    model_config = ConfigDict(frozen=True)

    media_type: str = Field("", validation_alias=AliasChoices("mediaType", "media_type"),
                            serialization_alias="mediaType")
    size: int = Field(0, ge=0)
    digest: str = Field(..., min_length=1)
    platform: Platform = Field(default_factory=Platform)


class ManifestList(BaseModel):
    """A multi-architecture parent manifest."""

    model_config = ConfigDict(frozen=True)

    schema_version: int = Field(2, validation_alias=AliasChoices("schemaVersion", "schema_version"),
                                serialization_alias="schemaVersion")
    media_type: str = Field("", validation_alias=AliasChoices("mediaType", "media_type"),
                            serialization_alias="mediaType")
    manifests: Tuple[ManifestListEntry, ...] = ()

    def child_digests(self) -> Tuple[str, ...]:
        return tuple(entry.digest for entry in self.manifests)

    def find_child(self, digest: str) -> Optional[ManifestListEntry]:
        for entry in self.manifests:
            if entry.digest == digest:
                return entry
        return None


# ── Section 3: Reader protocol ────────────────────────────────────────────────


@runtime_checkable
class RegistryReader(Protocol):
    """Remote reads the auditor performs. Failures raise RegistryReadError."""

    def read_repo(self, name: str) -> RepoListing:
        ...

    def read_manifest_list(self, registry_name: str, image_name: str, digest: str) -> ManifestList:
        ...


def split_registry_name(name: str) -> Tuple[str, str]:
    """Split ``gcr.io/project/sub`` into ``("gcr.io", "project/sub")``."""
    domain, _, repo_path = name.strip("/").partition("/")
    return domain, repo_path


_M = TypeVar("_M", bound=BaseModel)


def _parse_body(model: Type[_M], body: Union[str, bytes, Mapping[str, Any]], target: str,
                digest: Optional[str] = None) -> _M:
    try:
        if isinstance(body, Mapping):
            return model.model_validate(body)
        return model.model_validate_json(body)
    except PydanticValidationError as exc:
        raise RegistryReadError(target, f"unexpected response: {exc}", digest=digest) from exc


# ── Section 4: HTTP reader ────────────────────────────────────────────────────


class HttpRegistryReader:
    """Reads a Docker Registry v2 compatible API over HTTPS.

    Args:
        session: Optional ``requests.Session``; one is created if omitted.
        timeout: Per-request timeout in seconds.
        token_provider: Optional callable returning a bearer token for a
            registry name. Acquiring tokens is the caller's business.
    """

    _MANIFEST_LIST_ACCEPT = ", ".join(sorted(MANIFEST_LIST_MEDIA_TYPES))

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        token_provider: Optional[Callable[[str], Optional[str]]] = None,
    ) -> None:
        self._session = session if session is not None else requests.Session()
        self._timeout = timeout
        self._token_provider = token_provider

    def _headers(self, registry_name: str, accept: Optional[str] = None) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if accept:
            headers["Accept"] = accept
        if self._token_provider is not None:
            token = self._token_provider(registry_name)
            if token:
                headers["Authorization"] = f"Bearer {token}"
        return headers

    def _get(self, url: str, registry_name: str, headers: Dict[str, str],
             digest: Optional[str] = None) -> str:
        logger.debug("GET %s", url)
        try:
            response = self._session.get(url, headers=headers, timeout=self._timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise RegistryReadError(registry_name, str(exc), digest=digest) from exc
        return response.text

    def read_repo(self, name: str) -> RepoListing:
        domain, repo_path = split_registry_name(name)
        url = f"https://{domain}/v2/{repo_path}/tags/list"
        body = self._get(url, name, self._headers(name))
        return _parse_body(RepoListing, body, name)

    def read_manifest_list(self, registry_name: str, image_name: str, digest: str) -> ManifestList:
        domain, repo_path = split_registry_name(registry_name)
        url = f"https://{domain}/v2/{repo_path}/{image_name}/manifests/{digest}"
        headers = self._headers(registry_name, accept=self._MANIFEST_LIST_ACCEPT)
        body = self._get(url, registry_name, headers, digest=digest)
        return _parse_body(ManifestList, body, f"{registry_name}/{image_name}", digest=digest)


# ── Section 5: Fake reader ────────────────────────────────────────────────────

_FakeBody = Union[str, bytes, Mapping[str, Any], BaseException]


class FakeRegistryReader:
    """In-memory reader keyed by the references a real reader would fetch.

    ``repos`` is keyed by repository name (``gcr.io/proj/image``) and
    ``manifest_lists`` by ``<registry>/<image>@<digest>``. Values are JSON
    text, dicts, or an exception instance to raise. Unknown keys raise
    :class:`RegistryReadError`. Every call is appended to ``calls``.
    """

    def __init__(
        self,
        repos: Optional[Mapping[str, _FakeBody]] = None,
        manifest_lists: Optional[Mapping[str, _FakeBody]] = None,
    ) -> None:
        self.repos: Dict[str, _FakeBody] = dict(repos or {})
        self.manifest_lists: Dict[str, _FakeBody] = dict(manifest_lists or {})
        self.calls: List[Tuple[str, str]] = []

    def read_repo(self, name: str) -> RepoListing:
        self.calls.append(("read_repo", name))
        body = self._lookup(self.repos, name, name)
        return _parse_body(RepoListing, body, name)

    def read_manifest_list(self, registry_name: str, image_name: str, digest: str) -> ManifestList:
        key = f"{registry_name}/{image_name}@{digest}"
        self.calls.append(("read_manifest_list", key))
        body = self._lookup(self.manifest_lists, key, registry_name, digest)
        return _parse_body(ManifestList, body, f"{registry_name}/{image_name}", digest=digest)

    @staticmethod
    def _lookup(table: Mapping[str, _FakeBody], key: str, registry: str,
                digest: Optional[str] = None) -> Union[str, bytes, Mapping[str, Any]]:
        if key not in table:
            raise RegistryReadError(registry, f"no fake response for {key!r}", digest=digest)
        body = table[key]
        if isinstance(body, BaseException):
            raise body
        return body

    def manifest_list_reads(self) -> List[str]:
        return [key for op, key in self.calls if op == "read_manifest_list"]

