"""
Conflict resolution for discovered plugins.

The same plugin name can be advertised by several sources, under several
targets and in both scopes. Per name:

1. A Context entry replaces the Standalone entry for the same target.
2. If any concrete target (kubernetes, mission-control, global) remains,
   the Unknown-target entry is dropped, whatever its scope.

Scope resolution runs first so step 2 sees the final set of targets. The
output holds at most one entry per (name, target), and running it again on
its own output changes nothing.
"""

import logging

from pluginmgr.models.plugin import DiscoveredPlugin, Scope, Target

logger = logging.getLogger(__name__)


def combine_duplicate_plugins(plugins: list[DiscoveredPlugin]) -> list[DiscoveredPlugin]:
    """Collapse duplicate name/target/scope entries by precedence.

    Exact duplicates keep the first entry, so earlier sources win.
    Names keep the order in which they were first seen.
    """
    by_name: dict[str, list[DiscoveredPlugin]] = {}
    for plugin in plugins:
        by_name.setdefault(plugin.name, []).append(plugin)

    result: list[DiscoveredPlugin] = []
    for name, group in by_name.items():
        selected: dict[tuple[Target, Scope], DiscoveredPlugin] = {}
        for plugin in group:
            selected.setdefault((plugin.target, plugin.scope), plugin)

        for target, scope in list(selected):
            if scope == Scope.STANDALONE and (target, Scope.CONTEXT) in selected:
                logger.debug(f"Dropping standalone '{name}' ({target.display}): context-scoped entry wins")
                del selected[(target, scope)]

        if any(target.is_concrete for target, _ in selected):
            for target, scope in list(selected):
                if not target.is_concrete:
                    logger.debug(f"Dropping '{name}' with no target: a concrete target exists")
                    del selected[(target, scope)]

        result.extend(selected.values())
    return result
