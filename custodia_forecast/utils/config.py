"""Configuration management for the Custodia forecasting engine"""

import yaml
from pathlib import Path
from typing import Any


PROJECT_ROOT = Path(__file__).parent.parent.parent


class ConfigLoader:
    """
    Load and manage engine configuration from YAML files

    Supports nested configuration access using dot notation.
    Example: config.get('alerts.target_mape', default=15.0)
    """

    def __init__(self, config_path: str = "config/config.yaml"):
        """
        Initialize configuration loader

        Args:
            config_path: Path to YAML configuration file
        """
        self.config_path = Path(config_path)

        if not self.config_path.exists():
            # Try relative to project root
            self.config_path = PROJECT_ROOT / config_path

        self.config = self._load_config()

    def _load_config(self) -> dict:
        """Load configuration from YAML file"""
        if not self.config_path.exists():
            raise FileNotFoundError(
                f"Configuration file not found: {self.config_path}\n"
                f"Please create config/config.yaml"
            )

        with open(self.config_path, 'r') as f:
            return yaml.safe_load(f) or {}

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by key (supports dot notation)

        Args:
            key: Configuration key (e.g., 'diagnostics.backtest_periods')
            default: Default value if key not found

        Returns:
            Configuration value or default

        Examples:
            >>> config = ConfigLoader()
            >>> config.get('alerts.target_mape')
            15.0
            >>> config.get('alerts.invalid_key', default='fallback')
            'fallback'
        """
        keys = key.split('.')
        value = self.config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def __repr__(self) -> str:
        return f"ConfigLoader(config_path='{self.config_path}')"
