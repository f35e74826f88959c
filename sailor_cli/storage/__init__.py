"""
Storage Layer.

This package handles all data persistence: the configuration file and the
state file that carries tasks across restarts.
"""

from .config_manager import ConfigManager
from .state_file import StateFile

__all__ = ["ConfigManager", "StateFile"]
