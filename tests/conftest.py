"""
Pytest configuration and fixtures.
"""

import os
import tempfile
from pathlib import Path
from typing import Any, Callable

import pytest
import yaml

# Set test environment
os.environ["PLUGINMGR_CONFIG_DIR"] = tempfile.mkdtemp(prefix="pluginmgr-test-")
os.environ["PLUGINMGR_LOG_LEVEL"] = "WARNING"

from pluginmgr.config import Settings  # noqa: E402
from pluginmgr.core.catalog import InMemoryCatalog  # noqa: E402
from pluginmgr.core.manager import PluginManager  # noqa: E402
from pluginmgr.lib.errors import TransportError  # noqa: E402
from pluginmgr.models.discovery import LocalDiscoverySource  # noqa: E402
from pluginmgr.models.plugin import ArtifactRef  # noqa: E402


class FakeTransport:
    """Serves artifact bytes from memory, keyed by artifact location."""

    def __init__(self):
        self.blobs: dict[str, bytes] = {}
        self.failing: set[str] = set()
        self.fetched: list[str] = []

    async def fetch(self, ref: ArtifactRef) -> bytes:
        self.fetched.append(ref.location)
        if ref.location in self.failing:
            raise TransportError(f"failed to fetch {ref.location}: connection refused")
        if ref.path and ref.location not in self.blobs:
            return Path(ref.path).read_bytes()
        return self.blobs.get(ref.location, f"binary of {ref.location}".encode())


def make_descriptor(name: str, target: str = "", version: str = "v1.0.0", **artifact: Any) -> dict[str, Any]:
    """Plugin descriptor with one image artifact under the test registry."""
    if not artifact:
        artifact = {"image": f"fake.repo.com/plugins/{target or 'none'}/{name}:{version}"}
    return {
        "name": name,
        "target": target,
        "description": f"{name} plugin",
        "group": "Run",
        "recommendedVersion": version,
        "artifacts": {version: artifact},
    }


@pytest.fixture
def descriptor() -> Callable[..., dict[str, Any]]:
    return make_descriptor


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    """Create a fresh config directory for each test."""
    path = tmp_path / "config"
    path.mkdir()
    return path


@pytest.fixture
def settings(config_dir: Path) -> Settings:
    """Create test settings trusting the fake registry."""
    return Settings(
        config_dir=config_dir,
        default_allowed_plugin_repositories="",
        allowed_registry="fake.repo.com",
        log_level="WARNING",
    )


@pytest.fixture
def catalog() -> InMemoryCatalog:
    return InMemoryCatalog()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def write_source(tmp_path: Path) -> Callable[..., LocalDiscoverySource]:
    """Write descriptors into a local source directory and return the source."""

    def _write(name: str, descriptors: list[dict[str, Any]], context_name: str = "") -> LocalDiscoverySource:
        directory = tmp_path / "sources" / name
        directory.mkdir(parents=True, exist_ok=True)
        (directory / "plugins.yaml").write_text(yaml.safe_dump({"plugins": descriptors}))
        return LocalDiscoverySource(name=name, path=str(directory), context_name=context_name)

    return _write


@pytest.fixture
def make_manager(settings, catalog, transport) -> Callable[..., PluginManager]:
    """Build a PluginManager over the given sources with the shared fakes."""

    def _make(sources=(), **overrides: Any) -> PluginManager:
        configured = settings.model_copy(update={"discovery_sources": list(sources), **overrides})
        return PluginManager(configured, catalog, transport)

    return _make


@pytest.fixture
def default_sources(write_source, descriptor) -> list[LocalDiscoverySource]:
    """Two context-bound sources and one standalone source.

    context mgmt:      cluster (kubernetes) v1.6.0
    context tmc-fake:  cluster, management-cluster (mission-control) v0.2.0
    standalone:        login (no target) v0.2.0,
                       management-cluster, myplugin (kubernetes) v1.6.0,
                       myplugin (mission-control) v0.2.0
    """
    return [
        write_source("mgmt", [descriptor("cluster", "kubernetes", "v1.6.0")], context_name="mgmt"),
        write_source("tmc-fake", [
            descriptor("cluster", "mission-control", "v0.2.0"),
            descriptor("management-cluster", "mission-control", "v0.2.0"),
        ], context_name="tmc-fake"),
        write_source("default", [
            descriptor("login", "", "v0.2.0"),
            descriptor("management-cluster", "kubernetes", "v1.6.0"),
            descriptor("myplugin", "kubernetes", "v1.6.0"),
            descriptor("myplugin", "mission-control", "v0.2.0"),
        ]),
    ]
