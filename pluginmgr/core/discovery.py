"""
Plugin discovery across configured sources.

Sources are queried concurrently and share no state; their results are
gathered in one place before any conflict resolution happens. Every entry
is tagged with the kind and name of the source it came from, and entries
from a context-bound source become context-scoped.

A failing source is either skipped with a warning or aborts discovery,
depending on ``fail_fast``.
"""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable

import yaml

from pluginmgr.core.manifest import (
    discover_from_manifest_files,
    discover_local_descriptors,
    parse_descriptor_document,
)
from pluginmgr.core.transport import Transport
from pluginmgr.lib.errors import DiscoverySourceError, PluginError
from pluginmgr.models.discovery import (
    DiscoverySource,
    LocalDiscoverySource,
    ManifestDiscoverySource,
    OCIDiscoverySource,
)
from pluginmgr.models.plugin import ArtifactRef, DiscoveredPlugin, Scope

logger = logging.getLogger(__name__)


def _local_dir(path: str) -> Path:
    directory = Path(path).expanduser()
    if not directory.is_dir():
        raise FileNotFoundError(f"local source path {str(directory)!r}: no such file or directory")
    return directory


async def _list_oci(source: OCIDiscoverySource, transport: Transport) -> list[DiscoveredPlugin]:
    inventory = await transport.fetch(ArtifactRef(image=source.image))
    return parse_descriptor_document(yaml.safe_load(inventory))


async def _list_local(source: LocalDiscoverySource, transport: Transport) -> list[DiscoveredPlugin]:
    directory = _local_dir(source.path)
    plugins = await asyncio.to_thread(discover_local_descriptors, directory)
    if plugins:
        return plugins
    # plain descriptor files absent: the directory is an extracted bundle
    return await asyncio.to_thread(discover_from_manifest_files, directory)


async def _list_manifest(source: ManifestDiscoverySource, transport: Transport) -> list[DiscoveredPlugin]:
    return await asyncio.to_thread(discover_from_manifest_files, _local_dir(source.path))


_HANDLERS: dict[str, Callable[..., Awaitable[list[DiscoveredPlugin]]]] = {
    "oci": _list_oci,
    "local": _list_local,
    "manifest": _list_manifest,
}


def _tag(plugins: list[DiscoveredPlugin], source: DiscoverySource) -> list[DiscoveredPlugin]:
    for plugin in plugins:
        plugin.discovery_type = source.kind
        plugin.source_name = source.name
        if source.is_context_scoped:
            plugin.scope = Scope.CONTEXT
            plugin.context_name = source.context_name
        else:
            plugin.scope = Scope.STANDALONE
            plugin.context_name = ""
    return plugins


async def list_source(source: DiscoverySource, transport: Transport) -> list[DiscoveredPlugin]:
    """Query one source and tag its entries with provenance.

    Raises DiscoverySourceError when the source cannot be read.
    """
    handler = _HANDLERS[source.kind]
    try:
        plugins = await handler(source, transport)
    except (PluginError, OSError, TypeError, ValueError, yaml.YAMLError) as e:
        raise DiscoverySourceError(source.name, e) from e
    logger.info(f"Discovered {len(plugins)} plugins from {source.kind} source '{source.name}'")
    return _tag(plugins, source)


async def discover_from_sources(
    sources: list[DiscoverySource],
    transport: Transport,
    fail_fast: bool = False,
) -> list[DiscoveredPlugin]:
    """Query all sources concurrently and concatenate their entries.

    Results keep the order of ``sources``.
    """
    results = await asyncio.gather(
        *(list_source(source, transport) for source in sources),
        return_exceptions=True,
    )

    plugins: list[DiscoveredPlugin] = []
    for source, result in zip(sources, results):
        if isinstance(result, DiscoverySourceError):
            if fail_fast:
                raise result
            logger.warning(f"Skipping discovery source '{source.name}': {result.cause}")
            continue
        if isinstance(result, BaseException):
            raise result
        plugins.extend(result)
    return plugins
