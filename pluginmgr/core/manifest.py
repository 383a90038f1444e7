"""
Plugin descriptor and local manifest parsing.

Descriptor documents (OCI inventories and local source directories):

    plugins:
      - name: cluster
        target: kubernetes
        description: Cluster lifecycle operations
        group: Run
        recommendedVersion: v1.6.0
        artifacts:
          v1.6.0:
            image: ghcr.io/pluginmgr/cluster:v1.6.0
            digest: sha256:...

Manifest directories, tried in this order:

    manifest.yaml          legacy form, every entry targets Unknown
                           artifacts at <dir>/<name>/<version>/<name>
    plugin_manifest.yaml   current form, missing target means Global
                           artifacts at <dir>/<target>/<name>/<version>/<name>
"""

import logging
from pathlib import Path
from typing import Any, Optional

import yaml

from pluginmgr.lib.errors import ManifestNotFoundError
from pluginmgr.models.plugin import ArtifactRef, DiscoveredPlugin, Target, normalize_target

logger = logging.getLogger(__name__)

LEGACY_MANIFEST_FILE = "manifest.yaml"
PLUGIN_MANIFEST_FILE = "plugin_manifest.yaml"
MANIFEST_FILES = (LEGACY_MANIFEST_FILE, PLUGIN_MANIFEST_FILE)


def _load_yaml(path: Path) -> Any:
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f)


def _resolve_artifact(version: str, raw: Any, base_dir: Optional[Path]) -> ArtifactRef:
    if not isinstance(raw, dict):
        raise ValueError(f"artifact for version {version!r} must be a mapping, got {raw!r}")
    artifact = ArtifactRef(**raw)
    if artifact.path and base_dir is not None:
        path = Path(artifact.path).expanduser()
        if not path.is_absolute():
            artifact.path = str((base_dir / path).resolve())
    return artifact


def parse_descriptor(data: dict[str, Any], base_dir: Optional[Path] = None) -> DiscoveredPlugin:
    """Build a DiscoveredPlugin from one descriptor mapping."""
    if not isinstance(data, dict) or not data.get("name"):
        raise ValueError(f"plugin descriptor must be a mapping with a name, got {data!r}")

    raw_artifacts = data.get("artifacts") or {}
    if not isinstance(raw_artifacts, dict):
        raise ValueError(f"artifacts of plugin {data['name']!r} must be a mapping of version to artifact")
    artifacts = {
        str(version): _resolve_artifact(str(version), raw, base_dir)
        for version, raw in raw_artifacts.items()
    }
    recommended = str(data.get("recommendedVersion") or "")
    if not recommended and artifacts:
        recommended = list(artifacts)[-1]

    return DiscoveredPlugin(
        name=data["name"],
        target=data.get("target") or "",
        description=data.get("description", ""),
        group=data.get("group", ""),
        recommended_version=recommended,
        artifacts=artifacts,
    )


def parse_descriptor_document(data: Any, base_dir: Optional[Path] = None) -> list[DiscoveredPlugin]:
    """Parse a document holding one descriptor or a ``plugins:`` list."""
    if data is None:
        return []
    if isinstance(data, dict) and "plugins" in data:
        entries = data.get("plugins") or []
        if not isinstance(entries, list):
            raise ValueError(f"'plugins' must be a list, got {entries!r}")
    else:
        entries = [data]
    return [parse_descriptor(entry, base_dir) for entry in entries]


def discover_local_descriptors(directory: Path) -> list[DiscoveredPlugin]:
    """Read every descriptor file in a local source directory.

    Manifest files are left to discover_from_manifest_files.
    """
    plugins: list[DiscoveredPlugin] = []
    for entry in sorted(directory.iterdir()):
        if not entry.is_file() or entry.suffix not in (".yaml", ".yml"):
            continue
        if entry.name in MANIFEST_FILES:
            continue
        plugins.extend(parse_descriptor_document(_load_yaml(entry), base_dir=directory))
    logger.debug(f"Read {len(plugins)} plugin descriptors from {directory}")
    return plugins


def _manifest_versions(entry: dict[str, Any]) -> tuple[str, list[str]]:
    versions = [str(v) for v in entry.get("versions") or []]
    recommended = str(entry.get("version") or (versions[-1] if versions else ""))
    if recommended and recommended not in versions:
        versions.append(recommended)
    return recommended, versions


def _parse_manifest(directory: Path, manifest_file: str, default_target: Target) -> list[DiscoveredPlugin]:
    path = directory / manifest_file
    data = _load_yaml(path) or {}
    entries = (data.get("plugins") or []) if isinstance(data, dict) else None
    if not isinstance(entries, list):
        raise ValueError(f"{path} must be a mapping with a 'plugins' list")
    plugins: list[DiscoveredPlugin] = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise ValueError(f"plugin entry in {path} must be a mapping, got {entry!r}")
        name = entry.get("name")
        if not name:
            logger.warning(f"Skipping unnamed entry in {path}")
            continue

        if manifest_file == LEGACY_MANIFEST_FILE:
            target = Target.UNKNOWN
            plugin_dir = directory / name
        else:
            raw_target = entry.get("target")
            target = normalize_target(raw_target) if raw_target else default_target
            plugin_dir = directory / target.value / name

        recommended, versions = _manifest_versions(entry)
        digest = entry.get("digest", "")
        artifacts = {
            version: ArtifactRef(path=str(plugin_dir / version / name), digest=digest if version == recommended else "")
            for version in versions
        }
        plugins.append(DiscoveredPlugin(
            name=name,
            target=target,
            description=entry.get("description", ""),
            group=entry.get("group", ""),
            recommended_version=recommended,
            artifacts=artifacts,
        ))
    return plugins


def discover_from_manifest_files(directory: Path) -> list[DiscoveredPlugin]:
    """Discover plugins from the legacy or current manifest in a directory.

    Raises ManifestNotFoundError naming both files when neither exists.
    """
    attempts: list[str] = []
    for manifest_file, default_target in (
        (LEGACY_MANIFEST_FILE, Target.UNKNOWN),
        (PLUGIN_MANIFEST_FILE, Target.GLOBAL),
    ):
        path = directory / manifest_file
        if path.is_file():
            plugins = _parse_manifest(directory, manifest_file, default_target)
            logger.debug(f"Read {len(plugins)} plugins from {path}")
            return plugins
        attempts.append(f"could not find {manifest_file} file: {path}")
    raise ManifestNotFoundError(attempts)
