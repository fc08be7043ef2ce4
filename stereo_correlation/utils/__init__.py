"""
Utility Functions and Helpers

Configuration and logging setup for the correlation engine.
"""

from .config_manager import ConfigManager
from .logger_config import LoggerConfig, setup_logging, setup_logging_from_config

__all__ = ['ConfigManager', 'LoggerConfig', 'setup_logging', 'setup_logging_from_config']
