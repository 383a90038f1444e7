"""
Plugin models.

A plugin is identified by its name and the target it is written for:
  DiscoveredPlugin       advertised by a discovery source, rebuilt on every pass
  InstalledPluginRecord  a row in the local catalog
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class Target(str, Enum):
    """Platform family a plugin is written for."""

    KUBERNETES = "kubernetes"
    MISSION_CONTROL = "mission-control"
    GLOBAL = "global"
    UNKNOWN = ""

    @property
    def is_concrete(self) -> bool:
        return self is not Target.UNKNOWN

    @property
    def display(self) -> str:
        return self.value or "<none>"


class Scope(str, Enum):
    STANDALONE = "Standalone"
    CONTEXT = "Context"


DEFAULT_PLUGIN_GROUP = "Run"


class PluginStatus(str, Enum):
    NOT_INSTALLED = "not installed"
    INSTALLED = "installed"
    UPDATE_AVAILABLE = "update available"


_TARGET_TOKENS: dict[str, Target] = {
    # Canonical values
    "kubernetes": Target.KUBERNETES,
    "mission-control": Target.MISSION_CONTROL,
    "global": Target.GLOBAL,
    "": Target.UNKNOWN,
    # Short forms accepted on the command line and in manifests
    "k8s": Target.KUBERNETES,
    "tmc": Target.MISSION_CONTROL,
    "none": Target.UNKNOWN,
    "<none>": Target.UNKNOWN,
    "unknown": Target.UNKNOWN,
}


def normalize_target(value: "str | Target | None") -> Target:
    """Normalize a target token to a Target.

    Raises ValueError for unrecognized tokens rather than silently mapping
    them to Unknown.
    """
    if isinstance(value, Target):
        return value
    normalized = _TARGET_TOKENS.get(value.strip().lower() if value else "")
    if normalized is None:
        valid = ", ".join(sorted(k for k in _TARGET_TOKENS if k))
        raise ValueError(f"Unknown target: {value!r}. Valid values: {valid}")
    return normalized


def _strip_digest_prefix(value: str) -> str:
    value = (value or "").strip()
    if value.lower().startswith("sha256:"):
        return value[len("sha256:"):]
    return value


class ArtifactRef(BaseModel):
    """Where the bytes of one plugin version live."""

    image: Optional[str] = None  # OCI image reference
    uri: Optional[str] = None  # Direct download URL
    path: Optional[str] = None  # Local file
    digest: str = ""  # sha256 hex of the artifact bytes

    @field_validator("digest", mode="before")
    @classmethod
    def _normalize_digest(cls, v: Any) -> str:
        return _strip_digest_prefix(v or "")

    @model_validator(mode="after")
    def _exactly_one_location(self) -> "ArtifactRef":
        given = [k for k in ("image", "uri", "path") if getattr(self, k)]
        if len(given) != 1:
            raise ValueError(
                f"artifact must set exactly one of image, uri or path (got {given or 'none'})"
            )
        return self

    @property
    def location(self) -> str:
        return self.image or self.uri or self.path or ""


class DiscoveredPlugin(BaseModel):
    """A candidate plugin as advertised by a discovery source."""

    name: str
    target: Target = Target.UNKNOWN
    scope: Scope = Scope.STANDALONE
    description: str = ""
    group: str = ""
    recommended_version: str = ""
    artifacts: dict[str, ArtifactRef] = Field(default_factory=dict)
    discovery_type: str = ""  # Source kind: oci | local | manifest
    source_name: str = ""  # Configured source the entry came from
    context_name: str = ""  # Set only for context-scoped entries

    # Derived, never persisted
    installed_version: str = ""
    status: PluginStatus = PluginStatus.NOT_INSTALLED

    @field_validator("target", mode="before")
    @classmethod
    def _parse_target(cls, v: Any) -> Target:
        return normalize_target(v)

    @property
    def supported_versions(self) -> list[str]:
        return list(self.artifacts)

    @property
    def key(self) -> tuple[str, Target]:
        return (self.name, self.target)


class InstalledPluginRecord(BaseModel):
    """A plugin recorded in the local catalog."""

    name: str = ""
    target: Target = Target.UNKNOWN
    version: str = ""
    group: str = ""
    description: str = ""
    scope: Scope = Scope.STANDALONE
    context_name: str = ""
    discovery_source_id: str = ""
    # Recommended version at install time, not the current one
    discovered_recommended_version: str = ""
    digest: str = ""
    install_path: str = ""
    installed_at: Optional[str] = None

    @field_validator("target", mode="before")
    @classmethod
    def _parse_target(cls, v: Any) -> Target:
        return normalize_target(v)

    @property
    def key(self) -> tuple[str, Target]:
        return (self.name, self.target)

    @classmethod
    def from_discovered(
        cls,
        plugin: DiscoveredPlugin,
        version: str,
        digest: str = "",
    ) -> "InstalledPluginRecord":
        return cls(
            name=plugin.name,
            target=plugin.target,
            version=version,
            group=plugin.group or DEFAULT_PLUGIN_GROUP,
            description=plugin.description,
            scope=plugin.scope,
            context_name=plugin.context_name,
            discovery_source_id=plugin.source_name,
            discovered_recommended_version=plugin.recommended_version,
            digest=digest,
            installed_at=datetime.now(timezone.utc).isoformat(),
        )


class DeletePluginOptions(BaseModel):
    name: str
    target: Target = Target.UNKNOWN
    force_delete: bool = False

    @field_validator("target", mode="before")
    @classmethod
    def _parse_target(cls, v: Any) -> Target:
        return normalize_target(v)
