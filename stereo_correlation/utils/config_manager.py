"""
Configuration Management System

Handles loading, validation, and management of correlation parameters.
"""

import yaml
from typing import Dict, Any, Optional
from pathlib import Path

from ..data_models import COST_METRICS, EDGE_EXTENSION_MODES


class ConfigManager:
    """Manages configuration parameters for the stereo correlation engine."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to configuration file. If None, uses default config.
        """
        self.config_path = config_path or self._get_default_config_path()
        self.config = self._load_config()
        self._validate_config()

    def _get_default_config_path(self) -> str:
        """Get path to default configuration file shipped with the package."""
        package_dir = Path(__file__).parent.parent
        return str(package_dir / "config" / "default_config.yaml")

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        try:
            with open(self.config_path, 'r') as file:
                config = yaml.safe_load(file)
            return config or {}
        except FileNotFoundError:
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")
        except yaml.YAMLError as e:
            raise ValueError(f"Error parsing configuration file: {e}")

    def _validate_config(self) -> None:
        """Validate configuration parameters for consistency and feasibility."""
        # Validate search window
        corr = self.config.get('correlator', {})
        search_range = corr.get('search_range', [-50, -50, 50, 50])
        if len(search_range) != 4:
            raise ValueError("search_range must be [min_h, min_v, max_h, max_v]")
        if search_range[0] > search_range[2] or search_range[1] > search_range[3]:
            raise ValueError("search_range minimum must not exceed its maximum")

        kernel_size = corr.get('kernel_size', [24, 24])
        if len(kernel_size) != 2 or min(kernel_size) < 1:
            raise ValueError("kernel_size must be two positive integers")

        # Validate thresholds
        if corr.get('cross_corr_threshold', 2.0) < 0:
            raise ValueError("cross_corr_threshold must be non-negative")
        if corr.get('corr_score_threshold', 1.3) < 0:
            raise ValueError("corr_score_threshold must be non-negative")

        if corr.get('cost_metric', 'absolute_difference') not in COST_METRICS:
            raise ValueError(f"cost_metric must be one of {COST_METRICS}")
        if corr.get('edge_extension', 'zero') not in EDGE_EXTENSION_MODES:
            raise ValueError(f"edge_extension must be one of {EDGE_EXTENSION_MODES}")

        # Validate tiling
        tiling = self.config.get('tiling', {})
        block_size = tiling.get('block_size', [256, 256])
        if len(block_size) != 2 or min(block_size) < 1:
            raise ValueError("tiling block_size must be two positive integers")
        num_workers = tiling.get('num_workers')
        if num_workers is not None and num_workers < 1:
            raise ValueError("tiling num_workers must be positive")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key: Configuration key (e.g., 'correlator.kernel_size')
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key.split('.')
        value = self.config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value using dot notation.

        Args:
            key: Configuration key (e.g., 'correlator.kernel_size')
            value: Value to set
        """
        keys = key.split('.')
        config_ref = self.config

        for k in keys[:-1]:
            if k not in config_ref:
                config_ref[k] = {}
            config_ref = config_ref[k]

        config_ref[keys[-1]] = value
        self._validate_config()

    def save(self, output_path: Optional[str] = None) -> None:
        """
        Save current configuration to file.

        Args:
            output_path: Path to save configuration. If None, overwrites current file.
        """
        save_path = output_path or self.config_path

        with open(save_path, 'w') as file:
            yaml.dump(self.config, file, default_flow_style=False, indent=2)

    def get_correlator_params(self) -> Dict[str, Any]:
        """Get correlator parameters as a dictionary."""
        return self.config.get('correlator', {})

    def get_preprocessing_params(self) -> Dict[str, Any]:
        """Get preprocessing filter parameters as a dictionary."""
        return self.config.get('preprocessing', {})

    def get_tiling_params(self) -> Dict[str, Any]:
        """Get block decomposition parameters as a dictionary."""
        return self.config.get('tiling', {})

    def get_logging_params(self) -> Dict[str, Any]:
        """Get logging parameters as a dictionary."""
        return self.config.get('logging', {})
