"""Shared pytest fixtures for all tests."""
from typing import Any, Dict

import pytest

from promoter_audit import (
    FakeLoggingFacility,
    FakeRegistryReader,
    FakeReportingFacility,
    ManifestIndex,
    ManifestRecord,
    parse_manifest,
)

STAGING = "gcr.io/k8s-staging-kas-network-proxy"
PROD = "us.gcr.io/k8s-artifacts-prod/kas-network-proxy"
PARENT = "sha256:c419394f3fa40c32352be5a6ec5865270376d4351a3756bb1893be3f28fcba32"
CHILDREN = {
    "amd64": "sha256:7bcbdf4cb26400ac576b33718000f0b630290dcf6380be3f60e33e5ba0461d31",
    "arm": "sha256:c1ccf44d6b6fe49fc8506f7571f4a988ad69eb00c7747cd2b307b5e5b125a1f1",
    "arm64": "sha256:99bade313218f3e6e63fdeb87bcddbf3a134aaa9e45e633be5ee5e60ddaac667",
    "ppc64le": "sha256:43273b274ee48f7fd7fc09bc82e7e75ddc596ca219fd9b522b1701bebec6ceff",
    "s390x": "sha256:8735603bbd7153b8bfc8d2460481282bb44e2e830e5b237738e5c3e2a58c8f45",
}

MANIFEST_LIST_V2 = "application/vnd.docker.distribution.manifest.list.v2+json"
IMAGE_V2 = "application/vnd.docker.distribution.manifest.v2+json"


def kas_manifest_document() -> Dict[str, Any]:
    """The kas-network-proxy promotion manifest: one multi-arch parent."""
    return {
        "registries": [
            {"name": STAGING, "src": True},
            {
                "name": PROD,
                "serviceAccount": "foobar@google-containers.iam.gserviceaccount.com",
            },
        ],
        "images": [
            {"imageName": "proxy-agent", "dmap": {PARENT: ["v0.0.8"]}},
        ],
    }


def manifest_list_document(children: Dict[str, str]) -> Dict[str, Any]:
    """A Docker manifest list with one linux entry per architecture."""
    return {
        "schemaVersion": 2,
        "mediaType": MANIFEST_LIST_V2,
        "manifests": [
            {
                "mediaType": IMAGE_V2,
                "size": 528,
                "digest": digest,
                "platform": {"architecture": arch, "os": "linux"},
            }
            for arch, digest in children.items()
        ],
    }


def repo_listing_document(name: str, media_types: Dict[str, str]) -> Dict[str, Any]:
    """A ``tags/list`` response whose inventory maps digests to media types."""
    return {
        "child": [],
        "manifest": {
            digest: {"imageSizeBytes": "0", "mediaType": media_type, "tag": []}
            for digest, media_type in media_types.items()
        },
        "name": name,
        "tags": [],
    }


@pytest.fixture
def logs() -> FakeLoggingFacility:
    return FakeLoggingFacility()


@pytest.fixture
def reports() -> FakeReportingFacility:
    return FakeReportingFacility()


@pytest.fixture
def kas_record() -> ManifestRecord:
    return parse_manifest(kas_manifest_document())


@pytest.fixture
def kas_index(kas_record: ManifestRecord) -> ManifestIndex:
    return ManifestIndex([kas_record])


@pytest.fixture
def kas_reader() -> FakeRegistryReader:
    """Registry fake holding the parent's inventory and manifest list in staging."""
    media_types = {PARENT: MANIFEST_LIST_V2}
    media_types.update({digest: IMAGE_V2 for digest in CHILDREN.values()})
    return FakeRegistryReader(
        repos={
            f"{STAGING}/proxy-agent": repo_listing_document(
                "k8s-staging-kas-network-proxy/proxy-agent", media_types
            ),
        },
        manifest_lists={
            f"{STAGING}/proxy-agent@{PARENT}": manifest_list_document(CHILDREN),
        },
    )
