"""Promotion manifest models, loading, and the read-only lookup index.

A promotion manifest is the desired-state record of which image digests
(and which tags on them) are authorized in which registries. Each manifest
record lists its registries (one source, one or more destinations) and its
images with their digest-to-tags maps.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from promoter_audit.events import DIGEST_PATTERN
from promoter_audit.models import DuplicateRegistryError, ManifestError

logger = logging.getLogger("promoter_audit.manifest")

_MANIFEST_SUFFIXES = frozenset({".yaml", ".yml", ".json"})

# ── Section 1: Models ─────────────────────────────────────────────────────────


class RegistryContext(BaseModel):
    """A registry declared by a manifest record."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    src: bool = Field(
        False,
        validation_alias=AliasChoices("src", "isSource"),
        description="True for the staging registry images are promoted from",
    )
    service_account: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("service_account", "serviceAccount"),
    )

    @field_validator("name")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class ImageRecord(BaseModel):
    """An image and the digests (with their tags) promoted for it."""

    model_config = ConfigDict(frozen=True)

    image_name: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("image_name", "imageName"),
    )
    dmap: Dict[str, Tuple[str, ...]] = Field(default_factory=dict)

    @field_validator("dmap", mode="before")
    @classmethod
    def _untagged_digests(cls, v: object) -> object:
        if isinstance(v, Mapping):
            return {k: (() if tags is None else tags) for k, tags in v.items()}
        return v

    @field_validator("dmap")
    @classmethod
    def _check_digests(cls, v: Dict[str, Tuple[str, ...]]) -> Dict[str, Tuple[str, ...]]:
        for digest in v:
            if not DIGEST_PATTERN.match(digest):
                raise ValueError(f"invalid digest {digest!r}; expected sha256:<64 hex>")
        return v


class ManifestRecord(BaseModel):
    """One declared promotion manifest."""

    model_config = ConfigDict(frozen=True)

    registries: Tuple[RegistryContext, ...] = Field(..., min_length=1)
    images: Tuple[ImageRecord, ...] = ()

    @model_validator(mode="after")
    def _check_unique_names(self) -> "ManifestRecord":
        image_names = [image.image_name for image in self.images]
        duplicates = sorted({n for n in image_names if image_names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate image names: {duplicates}")
        return self

    @property
    def source_registry(self) -> Optional[RegistryContext]:
        for registry in self.registries:
            if registry.src:
                return registry
        return None


class PromotionManifest(BaseModel):
    """Ordered snapshot of every manifest record in force."""

    model_config = ConfigDict(frozen=True)

    records: Tuple[ManifestRecord, ...] = ()


@dataclass(frozen=True)
class ImageLocation:
    """Where an image path lands within the manifest."""

    registry: RegistryContext
    image_name: str


@dataclass(frozen=True)
class ParentCandidate:
    """A top-level digest that may be the manifest list of a pushed child.

    ``index`` is the declaration position; lower wins on ties.
    """

    registry: RegistryContext
    image_name: str
    digest: str
    index: int

    @property
    def reference(self) -> str:
        return f"{self.registry.name}/{self.image_name}@{self.digest}"


# ── Section 2: Index ──────────────────────────────────────────────────────────


class ManifestIndex:
    """Read-only lookup view over a promotion manifest.

    Safe to share between concurrent audits; nothing here mutates after
    construction.

    Raises:
        DuplicateRegistryError: If a registry name appears more than once,
            within one record or across records.
    """

    def __init__(self, records: Union[PromotionManifest, Sequence[ManifestRecord]]) -> None:
        if isinstance(records, PromotionManifest):
            records = records.records
        self._records: Tuple[ManifestRecord, ...] = tuple(records)
        self._registries: Dict[str, Tuple[RegistryContext, ManifestRecord]] = {}
        digests = set()
        for record in self._records:
            for registry in record.registries:
                if registry.name in self._registries:
                    raise DuplicateRegistryError(registry.name)
                self._registries[registry.name] = (registry, record)
            for image in record.images:
                digests.update(image.dmap)
        self._distinct_digest_count = len(digests)
        # Longest names first so nested registry paths resolve correctly.
        self._destinations: Tuple[RegistryContext, ...] = tuple(
            sorted(
                (r for r, _ in self._registries.values() if not r.src),
                key=lambda r: len(r.name),
                reverse=True,
            )
        )

    @property
    def records(self) -> Tuple[ManifestRecord, ...]:
        return self._records

    @property
    def distinct_digest_count(self) -> int:
        """Number of distinct top-level digests declared across the manifest."""
        return self._distinct_digest_count

    def find_registry(self, name: str) -> Optional[RegistryContext]:
        entry = self._registries.get(name.rstrip("/"))
        return entry[0] if entry else None

    def _find_image_record(self, registry_name: str, image_name: str) -> Optional[ImageRecord]:
        entry = self._registries.get(registry_name.rstrip("/"))
        if entry is None:
            return None
        for image in entry[1].images:
            if image.image_name == image_name:
                return image
        return None

    def find_image(self, registry_name: str, image_name: str) -> Optional[Mapping[str, Tuple[str, ...]]]:
        """Return a read-only digest-to-tags map of an image promoted into a registry."""
        image = self._find_image_record(registry_name, image_name)
        return MappingProxyType(image.dmap) if image else None

    def is_known_digest(self, registry_name: str, image_name: str, digest: str) -> bool:
        dmap = self.find_image(registry_name, image_name)
        return dmap is not None and digest in dmap

    def is_known_tag(self, registry_name: str, image_name: str, tag: str) -> bool:
        dmap = self.find_image(registry_name, image_name)
        if dmap is None:
            return False
        return any(tag in tags for tags in dmap.values())

    def resolve(self, path: str) -> Optional[ImageLocation]:
        """Split an image path into a destination registry and image name.

        ``us.gcr.io/prod/proxy/agent`` resolves against a declared
        ``us.gcr.io/prod/proxy`` to image ``agent``. Source registries are
        never promotion targets, so they do not resolve.
        """
        for registry in self._destinations:
            prefix = registry.name + "/"
            if path.startswith(prefix) and len(path) > len(prefix):
                return ImageLocation(registry=registry, image_name=path[len(prefix):])
        return None

    def find_digest(self, registry_name: str, digest: str) -> Optional[str]:
        """Return the first image promoted into a registry under ``digest``.

        Every image of a record is promoted to all of the record's
        registries, so any image of the owning record qualifies.
        """
        entry = self._registries.get(registry_name.rstrip("/"))
        if entry is None:
            return None
        for image in entry[1].images:
            if digest in image.dmap:
                return image.image_name
        return None

    def parent_candidates(self, registry_name: str) -> Iterator[ParentCandidate]:
        """Yield possible parent digests of the record owning a registry.

        Order is registries as listed, then images as listed, then each
        image's digests as listed. A digest repeats once per registry;
        callers skip repeats.
        """
        entry = self._registries.get(registry_name.rstrip("/"))
        if entry is None:
            return
        record = entry[1]
        index = 0
        for registry in record.registries:
            for image in record.images:
                for digest in image.dmap:
                    yield ParentCandidate(
                        registry=registry,
                        image_name=image.image_name,
                        digest=digest,
                        index=index,
                    )
                    index += 1


# ── Section 3: Loading ────────────────────────────────────────────────────────


def parse_manifest(data: Any, source: str = "<memory>") -> ManifestRecord:
    """Validate one manifest document in the promoter's source format.

    Raises:
        ManifestError: If the document does not match the manifest shape.
    """
    if not isinstance(data, Mapping):
        raise ManifestError(f"{source}: manifest must be a mapping, got {type(data).__name__}")
    try:
        return ManifestRecord.model_validate(data)
    except PydanticValidationError as exc:
        raise ManifestError(f"{source}: invalid promotion manifest: {exc}") from exc


def _read_document(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ManifestError(f"{path}: could not read manifest: {exc}") from exc
    try:
        if path.suffix == ".json":
            return json.loads(text)
        return yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ManifestError(f"{path}: could not parse manifest: {exc}") from exc


def load_manifests(path: Union[str, Path]) -> PromotionManifest:
    """Load a manifest file, or every manifest file under a directory.

    Directory contents are read in sorted path order so the resulting record
    order, and therefore the search order, is stable between loads.

    Raises:
        ManifestError: If nothing can be loaded or any document is invalid.
    """
    root = Path(path)
    if root.is_dir():
        files: List[Path] = sorted(
            p for p in root.rglob("*") if p.is_file() and p.suffix in _MANIFEST_SUFFIXES
        )
    elif root.is_file():
        files = [root]
    else:
        raise ManifestError(f"{root}: no such manifest file or directory")

    if not files:
        raise ManifestError(f"{root}: no manifest files found")

    records = [parse_manifest(_read_document(f), source=str(f)) for f in files]
    logger.debug("Loaded %d manifest record(s) from %s", len(records), root)
    return PromotionManifest(records=tuple(records))
