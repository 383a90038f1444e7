"""
Installation status for discovered plugins.

Status is never stored. It is recomputed on every query by comparing the
discovered set against the catalog:

- set_available_plugins_status: strict (name, target) matching.
- get_installed_but_not_discovered_standalone_plugins: keeps installed
  standalone plugins visible when no source lists them any more, and marks
  discovered entries as installed by name alone for records written before
  plugins had a target.

Both functions mutate the discovered entries they are given.
"""

from pluginmgr.models.plugin import (
    DiscoveredPlugin,
    InstalledPluginRecord,
    PluginStatus,
    Scope,
    Target,
)


def _index(installed: list[InstalledPluginRecord]) -> dict[tuple[str, Target], InstalledPluginRecord]:
    return {record.key: record for record in installed}


def set_available_plugins_status(
    available: list[DiscoveredPlugin],
    installed: list[InstalledPluginRecord],
) -> None:
    """Set installed_version and status on each discovered entry.

    An update is available when the source's recommendation changed since
    install, not when the installed binary differs from the recommendation.
    """
    records = _index(installed)
    for plugin in available:
        record = records.get(plugin.key)
        if record is None:
            plugin.installed_version = ""
            plugin.status = PluginStatus.NOT_INSTALLED
            continue

        plugin.installed_version = record.version
        if record.discovered_recommended_version == plugin.recommended_version:
            plugin.status = PluginStatus.INSTALLED
        else:
            plugin.status = PluginStatus.UPDATE_AVAILABLE


def mark_installed_by_name(
    available: list[DiscoveredPlugin],
    installed: list[InstalledPluginRecord],
) -> None:
    """Name-only fallback: mark not-installed entries installed, ignoring target.

    The entry also reports the version of the record it matched.
    """
    versions: dict[str, str] = {}
    for record in installed:
        if record.scope == Scope.STANDALONE:
            versions.setdefault(record.name, record.version)
    for plugin in available:
        if plugin.name in versions and plugin.status == PluginStatus.NOT_INSTALLED:
            plugin.status = PluginStatus.INSTALLED
            plugin.installed_version = plugin.installed_version or versions[plugin.name]


def installed_but_not_discovered(
    available: list[DiscoveredPlugin],
    installed: list[InstalledPluginRecord],
) -> list[DiscoveredPlugin]:
    """Synthesize entries for standalone records no source lists any more."""
    discovered = {plugin.key for plugin in available}
    phantoms: list[DiscoveredPlugin] = []
    for record in installed:
        if record.scope != Scope.STANDALONE or record.key in discovered:
            continue
        phantoms.append(DiscoveredPlugin(
            name=record.name,
            target=record.target,
            scope=Scope.STANDALONE,
            description=record.description,
            group=record.group,
            recommended_version=record.version,
            discovery_type="installed",
            source_name=record.discovery_source_id,
            installed_version=record.version,
            status=PluginStatus.INSTALLED,
        ))
    return phantoms


def get_installed_but_not_discovered_standalone_plugins(
    available: list[DiscoveredPlugin],
    installed: list[InstalledPluginRecord],
) -> list[DiscoveredPlugin]:
    """Run both legacy passes and return the entries to append.

    The name-only pass updates ``available`` in place; the returned list
    holds the synthesized entries for records missing from it.
    """
    mark_installed_by_name(available, installed)
    return installed_but_not_discovered(available, installed)
