"""
Pydantic models for pluginmgr.
"""

from pluginmgr.models.discovery import (
    DiscoverySource,
    LocalDiscoverySource,
    ManifestDiscoverySource,
    OCIDiscoverySource,
    parse_discovery_source,
)
from pluginmgr.models.plugin import (
    ArtifactRef,
    DeletePluginOptions,
    DiscoveredPlugin,
    InstalledPluginRecord,
    PluginStatus,
    Scope,
    Target,
    normalize_target,
)

__all__ = [
    # Plugins
    "ArtifactRef",
    "DeletePluginOptions",
    "DiscoveredPlugin",
    "InstalledPluginRecord",
    "PluginStatus",
    "Scope",
    "Target",
    "normalize_target",
    # Discovery sources
    "DiscoverySource",
    "LocalDiscoverySource",
    "ManifestDiscoverySource",
    "OCIDiscoverySource",
    "parse_discovery_source",
]
