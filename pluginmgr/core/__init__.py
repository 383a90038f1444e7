"""
Core plugin lifecycle logic.
"""

from pluginmgr.core.catalog import FileCatalog, InMemoryCatalog
from pluginmgr.core.manager import PluginManager, validate_plugin

__all__ = ["FileCatalog", "InMemoryCatalog", "PluginManager", "validate_plugin"]
