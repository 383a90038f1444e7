"""
pluginmgr: discovery, verification and installation of CLI plugins.
"""

__version__ = "0.1.0"
