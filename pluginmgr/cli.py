"""
pluginmgr CLI.

Usage:
    pluginmgr plugin list                          # Available plugins and their status
    pluginmgr plugin list --local PATH             # Plugins in a local directory
    pluginmgr plugin install NAME                  # Install the recommended version
    pluginmgr plugin install NAME --version V --target T
    pluginmgr plugin install NAME --local PATH     # Install from a local directory
    pluginmgr plugin install all --local PATH      # Install everything in a directory
    pluginmgr plugin describe NAME [--target T]    # Show an installed plugin
    pluginmgr plugin delete NAME [--target T] [--force]
    pluginmgr plugin sync                          # Install missing plugins and updates
    pluginmgr source list                          # Configured discovery sources
    pluginmgr source add NAME --kind K --location L [--context C]
    pluginmgr source delete NAME
    pluginmgr config show                          # Show current config
    pluginmgr config set KEY VALUE                 # Set a config value
    pluginmgr config get KEY                       # Get a config value
"""

import argparse
import asyncio
import os
import sys
from typing import Any, NoReturn

import yaml
from pydantic import ValidationError

from pluginmgr.config import (
    CONFIG_KEYS,
    ENV_PREFIX,
    Settings,
    get_config_path,
    get_settings,
    load_yaml_config,
    save_yaml_config,
)
from pluginmgr.core.manager import INSTALL_ALL, PluginManager
from pluginmgr.lib.logger import setup_logging
from pluginmgr.lib.typed_errors import parse_error
from pluginmgr.models.discovery import parse_discovery_source
from pluginmgr.models.plugin import DeletePluginOptions, DiscoveredPlugin, normalize_target


# --- Helpers ---


def _fail(error: Exception) -> NoReturn:
    """Print an error with its recovery actions and exit 1."""
    typed = parse_error(error)
    print(f"Error: {typed.message}", file=sys.stderr)
    for line in typed.details or []:
        print(f"  - {line}", file=sys.stderr)
    for action in typed.actions:
        print(f"  Try: {action.option} ({action.label})", file=sys.stderr)
    sys.exit(1)


def _manager(settings: Settings) -> PluginManager:
    return PluginManager.from_settings(settings)


def _print_plugins(plugins: list[DiscoveredPlugin]) -> None:
    if not plugins:
        print("No plugins found.")
        return

    rows = [
        (p.name, p.target.display, p.scope.value, p.recommended_version,
         p.installed_version or "-", p.status.value, p.context_name or p.source_name)
        for p in sorted(plugins, key=lambda p: (p.scope.value, p.name, p.target.value))
    ]
    header = ("NAME", "TARGET", "SCOPE", "RECOMMENDED", "INSTALLED", "STATUS", "SOURCE")
    widths = [max(len(str(row[i])) for row in rows + [header]) for i in range(len(header))]

    print("  ".join(h.ljust(w) for h, w in zip(header, widths)))
    for row in rows:
        print("  ".join(str(c).ljust(w) for c, w in zip(row, widths)).rstrip())


# --- Plugin commands ---


def cmd_plugin_list(args: argparse.Namespace) -> None:
    """List available plugins, from configured sources or a local directory."""
    manager = _manager(get_settings())
    try:
        if args.local:
            plugins = asyncio.run(manager.available_plugins_from_local_source(args.local))
        else:
            plugins = asyncio.run(manager.available_plugins())
    except Exception as e:
        _fail(e)
    _print_plugins(plugins)


def cmd_plugin_install(args: argparse.Namespace) -> None:
    """Install a plugin, or every plugin in a local directory."""
    manager = _manager(get_settings())
    try:
        if args.local:
            asyncio.run(manager.install_plugins_from_local_source(
                args.name, args.version, args.target, args.local,
                install_all=args.name == INSTALL_ALL,
            ))
        elif args.name == INSTALL_ALL:
            print("Error: 'install all' requires --local PATH", file=sys.stderr)
            sys.exit(1)
        else:
            asyncio.run(manager.install_plugin(args.name, args.version, args.target))
    except Exception as e:
        _fail(e)

    if args.name == INSTALL_ALL:
        print(f"Installed all plugins from {args.local}")
    else:
        print(f"Installed plugin '{args.name}'")


def cmd_plugin_describe(args: argparse.Namespace) -> None:
    """Print the catalog record of an installed plugin as YAML."""
    manager = _manager(get_settings())
    try:
        record = manager.describe_plugin(args.name, args.target)
    except Exception as e:
        _fail(e)
    print(yaml.safe_dump(record.model_dump(mode="json"), default_flow_style=False, sort_keys=False), end="")


def cmd_plugin_delete(args: argparse.Namespace) -> None:
    """Uninstall a plugin."""
    manager = _manager(get_settings())
    try:
        options = DeletePluginOptions(
            name=args.name, target=normalize_target(args.target), force_delete=args.force,
        )
        asyncio.run(manager.delete_plugin(options))
    except Exception as e:
        _fail(e)
    print(f"Deleted plugin '{args.name}'")


def cmd_plugin_sync(args: argparse.Namespace) -> None:
    """Install every plugin that is missing or has an update."""
    manager = _manager(get_settings())
    try:
        asyncio.run(manager.sync_plugins())
    except Exception as e:
        _fail(e)
    print("Plugins are in sync")


# --- Source commands ---


def _load_sources() -> tuple[dict[str, Any], list[dict[str, Any]]]:
    config_dir = get_settings().config_dir
    config = load_yaml_config(config_dir)
    return config, list(config.get("discovery_sources") or [])


def cmd_source_list(args: argparse.Namespace) -> None:
    """List configured discovery sources in precedence order."""
    sources = get_settings().discovery_sources
    if not sources:
        print("No discovery sources configured.")
        return

    name_width = max(len(s.name) for s in sources)
    for source in sources:
        location = source.image if source.kind == "oci" else source.path
        scope = f"context: {source.context_name}" if source.is_context_scoped else "standalone"
        print(f"  {source.name:<{name_width}}  {source.kind:<8}  {location}  ({scope})")


def cmd_source_add(args: argparse.Namespace) -> None:
    """Append a discovery source to config.yaml."""
    config, sources = _load_sources()
    if any(s.get("name") == args.name for s in sources):
        print(f"Error: discovery source '{args.name}' already exists", file=sys.stderr)
        sys.exit(1)

    location_key = "image" if args.kind == "oci" else "path"
    try:
        source = parse_discovery_source({
            "kind": args.kind,
            "name": args.name,
            location_key: args.location,
            "context_name": args.context or "",
        })
    except ValidationError as e:
        print(f"Error: invalid discovery source: {e.errors()[0]['msg']}", file=sys.stderr)
        sys.exit(1)

    sources.append({"kind": source.kind, **source.model_dump(exclude_defaults=True)})
    config["discovery_sources"] = sources
    path = save_yaml_config(get_settings().config_dir, config)
    print(f"Added {args.kind} source '{args.name}' to {path}")


def cmd_source_delete(args: argparse.Namespace) -> None:
    """Remove a discovery source from config.yaml."""
    config, sources = _load_sources()
    remaining = [s for s in sources if s.get("name") != args.name]
    if len(remaining) == len(sources):
        print(f"Error: discovery source '{args.name}' not found in config.yaml", file=sys.stderr)
        sys.exit(1)

    config["discovery_sources"] = remaining
    save_yaml_config(get_settings().config_dir, config)
    print(f"Deleted source '{args.name}'")


# --- Config commands ---


def cmd_config(args: argparse.Namespace) -> None:
    """Config management: show, set, get."""
    action = getattr(args, "action", None)

    if action == "show":
        _config_show()
    elif action == "set":
        _config_set(args.key, args.value)
    elif action == "get":
        _config_get(args.key)
    else:
        print("Usage: pluginmgr config {show|set|get}")


def _config_show() -> None:
    """Show config.yaml values and the effective settings."""
    settings = get_settings()
    config = load_yaml_config(settings.config_dir)

    print(f"\nConfig: {get_config_path(settings.config_dir)}")
    print("-" * 40)

    if not config:
        print("  (empty, using defaults)")
    for key, value in config.items():
        if key == "discovery_sources":
            print(f"  {key}: {len(value or [])} configured")
            continue
        env_key = f"{ENV_PREFIX}{key.upper()}"
        override = f" (overridden by env: {env_key})" if env_key in os.environ else ""
        print(f"  {key}: {value}{override}")

    print(f"\n  catalog: {settings.catalog_file}")
    print(f"  plugins: {settings.plugin_dir}")


def _config_set(key: str, value: str) -> None:
    """Set a config value."""
    if key not in CONFIG_KEYS:
        print(f"Unknown key: {key}")
        print(f"Valid keys: {', '.join(sorted(CONFIG_KEYS))}")
        sys.exit(1)

    config_dir = get_settings().config_dir
    config = load_yaml_config(config_dir)

    # Type conversion
    parsed: Any = value
    if key == "max_concurrent_installs":
        try:
            parsed = int(value)
        except ValueError:
            print(f"Error: {key} must be an integer, got '{value}'")
            sys.exit(1)
    elif key == "http_timeout":
        try:
            parsed = float(value)
        except ValueError:
            print(f"Error: {key} must be a number, got '{value}'")
            sys.exit(1)
    elif key == "discovery_fail_fast":
        parsed = value.lower() in ("true", "1", "yes")

    config[key] = parsed
    save_yaml_config(config_dir, config)
    print(f"Set {key} = {parsed}")


def _config_get(key: str) -> None:
    """Get a single config value."""
    env_val = os.environ.get(f"{ENV_PREFIX}{key.upper()}")
    if env_val:
        print(env_val)
        return

    config = load_yaml_config(get_settings().config_dir)
    if key in config:
        print(config[key])
    else:
        print(f"Key '{key}' not set in config.yaml")
        sys.exit(1)


# --- CLI entry point ---


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pluginmgr",
        description="pluginmgr: discover, verify and install CLI plugins",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command")

    # plugin subcommand
    plugin_parser = subparsers.add_parser("plugin", help="Plugin management")
    plugin_sub = plugin_parser.add_subparsers(dest="action")

    list_parser = plugin_sub.add_parser("list", help="List available plugins")
    list_parser.add_argument("--local", "-l", metavar="PATH", help="List plugins from a local directory")

    install_parser = plugin_sub.add_parser("install", help="Install a plugin")
    install_parser.add_argument("name", help="Plugin name, or 'all' with --local")
    install_parser.add_argument("--version", default="", help="Version (default: recommended)")
    install_parser.add_argument("--target", "-t", default="", help="kubernetes[k8s], mission-control[tmc] or global")
    install_parser.add_argument("--local", "-l", metavar="PATH", help="Install from a local directory")

    describe_parser = plugin_sub.add_parser("describe", help="Describe an installed plugin")
    describe_parser.add_argument("name", help="Plugin name")
    describe_parser.add_argument("--target", "-t", default="", help="Plugin target")

    delete_parser = plugin_sub.add_parser("delete", help="Uninstall a plugin")
    delete_parser.add_argument("name", help="Plugin name")
    delete_parser.add_argument("--target", "-t", default="", help="Plugin target")
    delete_parser.add_argument(
        "--force", "-f", action="store_true",
        help="Remove the catalog record even if the binary cannot be removed",
    )

    plugin_sub.add_parser("sync", help="Install missing plugins and updates")

    # source subcommand
    source_parser = subparsers.add_parser("source", help="Discovery source management")
    source_sub = source_parser.add_subparsers(dest="action")
    source_sub.add_parser("list", help="List discovery sources")
    source_add_parser = source_sub.add_parser("add", help="Add a discovery source")
    source_add_parser.add_argument("name", help="Source name")
    source_add_parser.add_argument("--kind", "-k", choices=["oci", "local", "manifest"], required=True)
    source_add_parser.add_argument("--location", required=True, help="Image reference or directory")
    source_add_parser.add_argument("--context", default="", help="Context name (entries become context-scoped)")
    source_delete_parser = source_sub.add_parser("delete", help="Delete a discovery source")
    source_delete_parser.add_argument("name", help="Source name")

    # config subcommand
    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_sub = config_parser.add_subparsers(dest="action")
    config_sub.add_parser("show", help="Show current config")
    config_set_parser = config_sub.add_parser("set", help="Set a config value")
    config_set_parser.add_argument("key", help="Config key")
    config_set_parser.add_argument("value", help="Config value")
    config_get_parser = config_sub.add_parser("get", help="Get a config value")
    config_get_parser.add_argument("key", help="Config key")

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(level="DEBUG" if args.verbose else None)

    if args.command == "plugin":
        handlers = {
            "list": cmd_plugin_list,
            "install": cmd_plugin_install,
            "describe": cmd_plugin_describe,
            "delete": cmd_plugin_delete,
            "sync": cmd_plugin_sync,
        }
    elif args.command == "source":
        handlers = {
            "list": cmd_source_list,
            "add": cmd_source_add,
            "delete": cmd_source_delete,
        }
    elif args.command == "config":
        cmd_config(args)
        return
    else:
        parser.print_help()
        return

    handler = handlers.get(args.action)
    if handler is None:
        parser.parse_args([args.command, "--help"])
        return
    handler(args)


if __name__ == "__main__":
    main()
