"""
Plugin lifecycle management.

PluginManager ties discovery, conflict resolution, status resolution and
trust verification together with the catalog and transport it is given:

    discover_plugins()                     context-scoped and standalone entries
    available_plugins()                    deduplicated, status-resolved view
    available_plugins_from_local_source()  same view for one local directory
    install_plugin()                       resolve, verify, fetch, verify, record
    install_plugins_from_local_source()    install one or all from a directory
    describe_plugin() / delete_plugin()    installed-record operations
    sync_plugins()                         install everything not yet installed

An install never writes to the catalog unless every trust check passed.
"""

import asyncio
import contextlib
import logging
import os
from pathlib import Path
from typing import AsyncIterator, Optional

from pluginmgr.config import Settings
from pluginmgr.core.catalog import Catalog, FileCatalog, installed_standalone
from pluginmgr.core.dedup import combine_duplicate_plugins
from pluginmgr.core.discovery import discover_from_sources, list_source
from pluginmgr.core.reconcile import (
    get_installed_but_not_discovered_standalone_plugins,
    set_available_plugins_status,
)
from pluginmgr.core.transport import HttpTransport, Transport
from pluginmgr.core.trust import TrustVerifier, compute_digest
from pluginmgr.lib.errors import (
    AmbiguousTargetError,
    InvalidFieldError,
    PluginError,
    PluginNotFoundError,
    PreDownloadVerificationError,
    SyncError,
    TrustError,
    plugin_not_found,
)
from pluginmgr.models.discovery import LocalDiscoverySource
from pluginmgr.models.plugin import (
    DeletePluginOptions,
    DiscoveredPlugin,
    InstalledPluginRecord,
    PluginStatus,
    Scope,
    Target,
    normalize_target,
)

logger = logging.getLogger(__name__)

INSTALL_ALL = "all"


def validate_plugin(record: InstalledPluginRecord) -> None:
    """Check required fields, reporting every problem at once."""
    problems: list[str] = []
    if not record.name:
        problems.append("plugin name cannot be empty")
    if not record.version:
        problems.append(f'plugin "{record.name}" version cannot be empty')
    if not record.group:
        problems.append(f'plugin "{record.name}" group cannot be empty')
    if problems:
        raise InvalidFieldError(problems)


def select_plugin(plugins: list[DiscoveredPlugin], name: str, target: Target) -> DiscoveredPlugin:
    """Pick the single entry matching name and, if given, target.

    Raises PluginNotFoundError or AmbiguousTargetError.
    """
    matches = [
        p for p in plugins
        if p.name == name and (not target.is_concrete or p.target == target)
    ]
    if not matches:
        raise plugin_not_found(name, target)
    if len({p.target for p in matches}) > 1:
        raise AmbiguousTargetError(name)
    matches.sort(key=lambda p: p.scope != Scope.CONTEXT)
    return matches[0]


class PluginManager:
    def __init__(
        self,
        settings: Settings,
        catalog: Catalog,
        transport: Optional[Transport] = None,
        verifier: Optional[TrustVerifier] = None,
    ):
        self.settings = settings
        self.catalog = catalog
        self.transport = transport or HttpTransport(timeout=settings.http_timeout)
        self.verifier = verifier or TrustVerifier(settings)
        self._catalog_lock = asyncio.Lock()
        self._key_locks: dict[tuple[str, Target], asyncio.Lock] = {}
        self._key_users: dict[tuple[str, Target], int] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "PluginManager":
        return cls(settings, FileCatalog(settings.catalog_file))

    @contextlib.asynccontextmanager
    async def _plugin_lock(self, key: tuple[str, Target]) -> AsyncIterator[None]:
        """Serialize work on one (name, target); the lock is dropped once unused."""
        lock = self._key_locks.setdefault(key, asyncio.Lock())
        self._key_users[key] = self._key_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._key_users[key] -= 1
            if not self._key_users[key]:
                del self._key_users[key]
                del self._key_locks[key]

    # --- Discovery ---

    async def discover_plugins(self) -> tuple[list[DiscoveredPlugin], list[DiscoveredPlugin]]:
        """Query all configured sources.

        Returns (context-scoped entries, standalone entries), not deduplicated.
        """
        fail_fast = self.settings.discovery_fail_fast
        context, standalone = await asyncio.gather(
            discover_from_sources(self.settings.context_sources, self.transport, fail_fast),
            discover_from_sources(self.settings.standalone_sources, self.transport, fail_fast),
        )
        return context, standalone

    async def available_plugins(self) -> list[DiscoveredPlugin]:
        """Discovered plugins, deduplicated and annotated with install status.

        Installed standalone plugins stay listed even when no source
        advertises them any more.
        """
        context, standalone = await self.discover_plugins()
        available = combine_duplicate_plugins(context + standalone)

        installed = await asyncio.to_thread(self.catalog.get_installed)
        set_available_plugins_status(available, installed)
        available.extend(
            get_installed_but_not_discovered_standalone_plugins(available, installed_standalone(installed))
        )
        return combine_duplicate_plugins(available)

    async def available_plugins_from_local_source(self, path: str | Path) -> list[DiscoveredPlugin]:
        """Deduplicated, status-resolved plugins from one local directory."""
        source = LocalDiscoverySource(name=str(path), path=str(path))
        plugins = combine_duplicate_plugins(await list_source(source, self.transport))
        set_available_plugins_status(plugins, await asyncio.to_thread(self.catalog.get_installed))
        return plugins

    # --- Install ---

    async def install_plugin(self, name: str, version: str = "", target: Target | str = Target.UNKNOWN) -> None:
        """Install a plugin from the configured sources.

        An empty version installs the recommended one.
        """
        target = normalize_target(target)
        plugin = select_plugin(await self.available_plugins(), name, target)
        await self._install(plugin, version)

    async def install_plugins_from_local_source(
        self,
        name: str,
        version: str,
        target: Target | str,
        path: str | Path,
        install_all: bool = False,
    ) -> None:
        """Install one plugin, or all of them, from a local directory."""
        target = normalize_target(target)
        plugins = await self.available_plugins_from_local_source(path)
        if install_all or name == INSTALL_ALL:
            await self._install_many(plugins)
            return
        await self._install(select_plugin(plugins, name, target), version)

    async def _install(self, plugin: DiscoveredPlugin, version: str = "") -> InstalledPluginRecord:
        version = version or plugin.recommended_version
        artifact = plugin.artifacts.get(version)
        if artifact is None:
            available = ", ".join(plugin.supported_versions) or "none"
            raise PluginNotFoundError(
                f"unable to find plugin '{plugin.name}' with version '{version}' "
                f"for target '{plugin.target.display}'. Available versions: {available}"
            )

        async with self._plugin_lock(plugin.key):
            try:
                self.verifier.verify_pre_download(artifact)
            except TrustError as e:
                raise PreDownloadVerificationError(plugin.name, e) from e

            data = await self.transport.fetch(artifact)

            async with self._catalog_lock:
                self.verifier.verify_post_download(plugin, artifact, data)

                record = InstalledPluginRecord.from_discovered(plugin, version, digest=compute_digest(data))
                validate_plugin(record)
                previous = await asyncio.to_thread(self._installed_record, plugin.key)

                record.install_path = str(await asyncio.to_thread(self._write_binary, record, data))
                await asyncio.to_thread(self.catalog.upsert, record)

                if previous and previous.install_path and previous.install_path != record.install_path:
                    await asyncio.to_thread(self._remove_binary, previous, True)

        logger.info(f"Installed plugin '{plugin.name}' {version} ({plugin.target.display})")
        return record

    async def _install_many(self, plugins: list[DiscoveredPlugin]) -> None:
        """Install each plugin at its recommended version.

        Every plugin is attempted; failures are collected into one SyncError.
        """
        semaphore = asyncio.Semaphore(self.settings.max_concurrent_installs)

        async def install_one(plugin: DiscoveredPlugin) -> InstalledPluginRecord:
            async with semaphore:
                return await self._install(plugin, plugin.recommended_version)

        results = await asyncio.gather(*(install_one(p) for p in plugins), return_exceptions=True)

        failures: list[tuple[str, Target, Exception]] = []
        for plugin, result in zip(plugins, results):
            if isinstance(result, Exception):
                logger.warning(f"Failed to install '{plugin.name}' ({plugin.target.display}): {result}")
                failures.append((plugin.name, plugin.target, result))
            elif isinstance(result, BaseException):
                raise result
        if failures:
            raise SyncError(failures)

    def _write_binary(self, record: InstalledPluginRecord, data: bytes) -> Path:
        target_dir = record.target.value or "none"
        path = self.settings.plugin_dir / record.name / target_dir / record.version / record.name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        os.chmod(path, 0o755)
        return path

    # --- Installed plugins ---

    def _installed_record(self, key: tuple[str, Target]) -> Optional[InstalledPluginRecord]:
        for record in self.catalog.get_installed():
            if record.key == key:
                return record
        return None

    def _find_installed(self, name: str, target: Target) -> InstalledPluginRecord:
        matches = [
            r for r in self.catalog.get_installed()
            if r.name == name and (not target.is_concrete or r.target == target)
        ]
        if not matches:
            raise plugin_not_found(name, target)
        if len({r.target for r in matches}) > 1:
            raise AmbiguousTargetError(name)
        return matches[0]

    def describe_plugin(self, name: str, target: Target | str = Target.UNKNOWN) -> InstalledPluginRecord:
        """Return the catalog record of an installed plugin."""
        return self._find_installed(name, normalize_target(target))

    async def delete_plugin(self, options: DeletePluginOptions) -> None:
        """Uninstall a plugin: remove its binary, then its catalog record.

        With force_delete, a binary that cannot be removed is logged and
        the record is removed anyway.
        """
        record = await asyncio.to_thread(self._find_installed, options.name, options.target)
        async with self._plugin_lock(record.key):
            async with self._catalog_lock:
                await asyncio.to_thread(self._remove_binary, record, options.force_delete)
                await asyncio.to_thread(self.catalog.remove, record.name, record.target)
        logger.info(f"Deleted plugin '{record.name}' ({record.target.display})")

    def _remove_binary(self, record: InstalledPluginRecord, force: bool) -> None:
        if not record.install_path:
            return
        path = Path(record.install_path)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            if not force:
                raise PluginError(
                    f"failed to remove binary of plugin '{record.name}' at {path}: {e}",
                    hint="--force",
                ) from e
            logger.warning(f"Ignoring failure to remove binary of plugin '{record.name}' at {path}: {e}")

    # --- Sync ---

    async def sync_plugins(self) -> None:
        """Install every available plugin that is not installed or has an update.

        Raises SyncError listing each plugin that failed, after all were tried.
        """
        pending = [p for p in await self.available_plugins() if p.status != PluginStatus.INSTALLED]
        if not pending:
            logger.info("All plugins are up to date")
            return
        logger.info(f"Syncing {len(pending)} plugins")
        await self._install_many(pending)
