"""
Configuration management for pluginmgr.

Precedence: explicit values > env vars (PLUGINMGR_*) > .env file > config.yaml > defaults

Config file: <config_dir>/config.yaml
Catalog:     <config_dir>/catalog.yaml
"""

import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

from pluginmgr.models.discovery import DiscoverySource

logger = logging.getLogger(__name__)

ENV_PREFIX = "PLUGINMGR_"

# Registries trusted out of the box, comma separated
DEFAULT_ALLOWED_PLUGIN_REPOSITORIES = "ghcr.io/pluginmgr"

# Known config keys that can be set via `pluginmgr config set`
CONFIG_KEYS = {
    "custom_image_repository", "allowed_registry", "discovery_fail_fast",
    "max_concurrent_installs", "http_timeout", "log_level",
}


def _resolve_config_dir() -> Path:
    """Resolve the config directory from env or default, before Settings init."""
    raw = os.environ.get(f"{ENV_PREFIX}CONFIG_DIR", "")
    if raw:
        return Path(raw).expanduser().resolve()
    return Path.home() / ".config" / "pluginmgr"


def get_config_path(config_dir: Path) -> Path:
    """Get the config.yaml path for a config directory."""
    return config_dir / "config.yaml"


def load_yaml_config(config_dir: Path) -> dict[str, Any]:
    """Load <config_dir>/config.yaml."""
    config_file = get_config_path(config_dir)
    if not config_file.exists():
        return {}
    try:
        with open(config_file) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            logger.warning(f"config.yaml is not a dict, ignoring: {config_file}")
            return {}
        return data
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Error loading config.yaml: {e}")
        return {}


def save_yaml_config(config_dir: Path, data: dict[str, Any]) -> Path:
    """Write config values to <config_dir>/config.yaml."""
    config_file = get_config_path(config_dir)
    config_file.parent.mkdir(parents=True, exist_ok=True)
    with open(config_file, "w") as f:
        yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
    return config_file


class Settings(BaseSettings):
    """Plugin manager configuration."""

    config_dir: Path = Field(
        default_factory=_resolve_config_dir,
        description="Directory holding config.yaml, the catalog and installed plugins",
    )
    catalog_path: Optional[Path] = Field(
        default=None,
        description="Catalog file (defaults to <config_dir>/catalog.yaml)",
    )
    plugin_root: Optional[Path] = Field(
        default=None,
        description="Where plugin binaries are written (defaults to <config_dir>/plugins)",
    )

    # Discovery
    discovery_sources: list[DiscoverySource] = Field(
        default_factory=list,
        description="Configured discovery sources, in precedence order",
    )
    discovery_fail_fast: bool = Field(
        default=False,
        description="Abort discovery on the first failing source instead of skipping it",
    )

    # Trust
    default_allowed_plugin_repositories: str = Field(
        default=DEFAULT_ALLOWED_PLUGIN_REPOSITORIES,
        description="Built-in comma-separated registry allow-list",
    )
    custom_image_repository: str = Field(
        default="",
        description="A single additional trusted repository",
    )
    allowed_registry: str = Field(
        default="",
        description="Comma-separated list of additional trusted registries",
    )

    # Install
    max_concurrent_installs: int = Field(
        default=4, ge=1, description="Concurrent installs during sync"
    )
    http_timeout: float = Field(default=60.0, description="Transport timeout in seconds")

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format string",
    )

    model_config = {
        "env_prefix": ENV_PREFIX,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @model_validator(mode="before")
    @classmethod
    def _inject_yaml_config(cls, data: Any) -> Any:
        """Inject config.yaml values as fallbacks below env vars and .env."""
        if not isinstance(data, dict):
            data = {}

        config_dir = data.get("config_dir") or _resolve_config_dir()
        yaml_config = load_yaml_config(Path(config_dir))

        for key, value in yaml_config.items():
            if key not in data or data[key] is None:
                env_val = os.environ.get(f"{ENV_PREFIX}{key.upper()}")
                if env_val is None:
                    data[key] = value

        return data

    @property
    def catalog_file(self) -> Path:
        """Get the catalog path, defaulting to <config_dir>/catalog.yaml"""
        if self.catalog_path:
            return self.catalog_path
        return self.config_dir / "catalog.yaml"

    @property
    def plugin_dir(self) -> Path:
        """Get the directory plugin binaries are installed into."""
        if self.plugin_root:
            return self.plugin_root
        return self.config_dir / "plugins"

    @property
    def context_sources(self) -> list[DiscoverySource]:
        return [s for s in self.discovery_sources if s.is_context_scoped]

    @property
    def standalone_sources(self) -> list[DiscoverySource]:
        return [s for s in self.discovery_sources if not s.is_context_scoped]


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
