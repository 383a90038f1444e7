"""
Discovery source definitions.

Each configured source is one variant of a tagged union, selected by ``kind``:

    - kind: oci          # inventory image in a registry
      name: default
      image: ghcr.io/pluginmgr/plugin-inventory:latest
    - kind: local        # directory of plugin descriptor files
      name: dev
      path: ~/plugins/dev
    - kind: manifest     # legacy manifest.yaml / plugin_manifest.yaml directory
      name: legacy
      path: ~/plugins/legacy
      context_name: mgmt # entries become context-scoped
"""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter


class _SourceBase(BaseModel):
    name: str
    context_name: str = ""

    @property
    def is_context_scoped(self) -> bool:
        return bool(self.context_name)


class OCIDiscoverySource(_SourceBase):
    kind: Literal["oci"] = "oci"
    image: str


class LocalDiscoverySource(_SourceBase):
    kind: Literal["local"] = "local"
    path: str


class ManifestDiscoverySource(_SourceBase):
    kind: Literal["manifest"] = "manifest"
    path: str


DiscoverySource = Annotated[
    Union[OCIDiscoverySource, LocalDiscoverySource, ManifestDiscoverySource],
    Field(discriminator="kind"),
]

_SOURCE_ADAPTER: TypeAdapter = TypeAdapter(DiscoverySource)


def parse_discovery_source(data: dict) -> DiscoverySource:
    """Build the matching source variant from a plain dict."""
    return _SOURCE_ADAPTER.validate_python(data)
