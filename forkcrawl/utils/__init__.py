"""
Utility modules for forkcrawl.
"""

from .config import Config, ConfigManager, ConfigurationError, load_config, get_config

__all__ = ['Config', 'ConfigManager', 'ConfigurationError', 'load_config', 'get_config']
