"""
Artifact trust verification.

Three independent gates guard every install:

1. Registry allow-list: image references must live under a trusted
   registry path (built-in default, custom repository, or ALLOWED_REGISTRY).
2. Artifact location allow-list: direct download URLs must start with one
   of a fixed set of trusted base URIs.
3. Digest check: after download, the sha256 of the bytes must match the
   digest advertised by the discovery source, when one is advertised.

Registry matching respects path segments: "fake.repo.com" trusts
"fake.repo.com/image" but not "fake.repo.com.private.com/image".
"""

import hashlib
import logging

from pluginmgr.config import Settings
from pluginmgr.lib.errors import (
    IntegrityMismatchError,
    UntrustedLocationError,
    UntrustedRegistryError,
)
from pluginmgr.lib.image_ref import parse_image_reference
from pluginmgr.models.plugin import ArtifactRef, DiscoveredPlugin

logger = logging.getLogger(__name__)

TRUSTED_ARTIFACT_LOCATIONS: list[str] = [
    "https://storage.googleapis.com/pluginmgr-advanced-plugins/",
    "https://pluginmgr-artifacts.s3-us-west-2.amazonaws.com/plugins/artifacts",
]


def _split_list(value: str) -> list[str]:
    return [item.strip().rstrip("/") for item in (value or "").split(",") if item.strip()]


def get_trusted_registries(settings: Settings) -> list[str]:
    """Collect the registry allow-list from every configured source."""
    trusted: list[str] = []
    for entry in (
        _split_list(settings.default_allowed_plugin_repositories)
        + _split_list(settings.custom_image_repository)
        + _split_list(settings.allowed_registry)
    ):
        if entry not in trusted:
            trusted.append(entry)
    return trusted


def _is_under(repository: str, trusted: str) -> bool:
    return repository == trusted or repository.startswith(trusted + "/")


def verify_registry(image: str, trusted_registries: list[str]) -> None:
    """Raise UntrustedRegistryError unless the image lives under a trusted path.

    An empty allow-list trusts nothing.
    """
    try:
        repository = parse_image_reference(image).name
    except ValueError:
        raise UntrustedRegistryError(image, trusted_registries) from None

    for trusted in trusted_registries:
        if _is_under(repository, trusted):
            return
    raise UntrustedRegistryError(image, trusted_registries)


def verify_artifact_location(uri: str, allowed: list[str] = TRUSTED_ARTIFACT_LOCATIONS) -> None:
    """Raise UntrustedLocationError unless the URI starts with a trusted base."""
    for location in allowed:
        if uri.startswith(location):
            return
    raise UntrustedLocationError(uri, allowed)


def compute_digest(data: bytes) -> str:
    """SHA-256 hex digest of artifact bytes."""
    return hashlib.sha256(data).hexdigest()


def verify_plugin_post_download(plugin: DiscoveredPlugin, source_digest: str, data: bytes) -> None:
    """Compare downloaded bytes against the advertised digest.

    No advertised digest means there is nothing to check.
    """
    if not source_digest:
        logger.debug(f"No source digest for plugin '{plugin.name}', skipping digest check")
        return
    actual = compute_digest(data)
    if actual != source_digest.lower():
        raise IntegrityMismatchError(plugin.name, source_digest, actual)


class TrustVerifier:
    """Applies the trust gates with the allow-lists from settings."""

    def __init__(self, settings: Settings):
        self.trusted_registries = get_trusted_registries(settings)
        self.trusted_locations = list(TRUSTED_ARTIFACT_LOCATIONS)

    def verify_pre_download(self, artifact: ArtifactRef) -> None:
        """Registry check for images, location check for URLs.

        Local files are supplied by the user and are not checked here.
        """
        if artifact.image:
            verify_registry(artifact.image, self.trusted_registries)
        elif artifact.uri:
            verify_artifact_location(artifact.uri, self.trusted_locations)

    def verify_post_download(self, plugin: DiscoveredPlugin, artifact: ArtifactRef, data: bytes) -> None:
        verify_plugin_post_download(plugin, artifact.digest, data)
