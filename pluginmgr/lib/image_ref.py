"""
OCI image reference parsing.

    ghcr.io/pluginmgr/cluster:v1.6.0
    localhost:5000/plugins/cluster@sha256:abc...
"""

from typing import NamedTuple


class ImageReference(NamedTuple):
    registry: str  # Host, with port if any
    repository: str  # Path below the registry
    reference: str  # Tag or digest; "latest" when omitted

    @property
    def name(self) -> str:
        """Registry and repository without the tag or digest."""
        return f"{self.registry}/{self.repository}"


def parse_image_reference(image: str) -> ImageReference:
    """Split an image reference into registry, repository and tag/digest.

    Raises ValueError when the reference has no registry host.
    """
    image = image.strip()
    if "@" in image:
        name, reference = image.split("@", 1)
    else:
        name, reference = image, ""
        last_slash = image.rfind("/")
        last_colon = image.rfind(":")
        # A colon before the last slash belongs to host:port
        if last_colon > last_slash:
            name, reference = image[:last_colon], image[last_colon + 1:]

    registry, sep, repository = name.partition("/")
    if not sep or not registry or not repository:
        raise ValueError(f"invalid image reference {image!r}: expected <registry>/<repository>[:tag]")
    return ImageReference(registry, repository, reference or "latest")
