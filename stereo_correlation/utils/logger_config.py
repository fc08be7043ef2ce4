"""
Logging configuration for the stereo correlation engine.

Library modules only create loggers; handlers are installed by the
application through ``setup_logging``.
"""

import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Union

PACKAGE_LOGGER = 'stereo_correlation'
DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class LoggerConfig:
    """Configures the package logger once per process."""

    _configured = False

    @classmethod
    def setup_root_logger(cls,
                          level: Union[int, str] = logging.INFO,
                          format_string: Optional[str] = None,
                          log_file: Optional[Union[str, Path]] = None) -> logging.Logger:
        """
        Setup the package logger.

        Args:
            level: Logging level (default: INFO)
            format_string: Custom format string (optional)
            log_file: Optional file path for logging to file

        Returns:
            logging.Logger: Configured package logger
        """
        package_logger = logging.getLogger(PACKAGE_LOGGER)
        if cls._configured:
            return package_logger

        if isinstance(level, str):
            level = logging.getLevelName(level.upper())
            if not isinstance(level, int):
                raise ValueError(f"Unknown logging level: {level}")

        package_logger.setLevel(level)
        package_logger.handlers.clear()
        formatter = logging.Formatter(format_string or DEFAULT_FORMAT)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        package_logger.addHandler(console_handler)

        if log_file is not None:
            log_file = Path(log_file)
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            package_logger.addHandler(file_handler)

        # Prevent propagation to avoid duplicate messages
        package_logger.propagate = False
        cls._configured = True

        package_logger.info(f"Logger configured: level={logging.getLevelName(level)}")
        if log_file:
            package_logger.info(f"Logging to file: {log_file}")
        return package_logger

    @classmethod
    def is_configured(cls) -> bool:
        return cls._configured

    @classmethod
    def reset(cls) -> None:
        """Remove installed handlers so the logger can be configured again."""
        package_logger = logging.getLogger(PACKAGE_LOGGER)
        for handler in list(package_logger.handlers):
            package_logger.removeHandler(handler)
            handler.close()
        package_logger.propagate = True
        package_logger.setLevel(logging.NOTSET)
        cls._configured = False


def setup_logging(level: Union[int, str] = logging.INFO,
                  format_string: Optional[str] = None,
                  log_file: Optional[Union[str, Path]] = None) -> logging.Logger:
    """Configure package logging; later calls return the existing logger unchanged."""
    return LoggerConfig.setup_root_logger(level, format_string, log_file)


def setup_logging_from_config(params: Optional[Dict[str, Any]] = None) -> logging.Logger:
    """Configure package logging from a 'logging' configuration section."""
    params = params or {}
    return setup_logging(params.get('level', 'INFO'), params.get('format'), params.get('log_file'))
