"""
Configuration management module for the budget core.

This module handles loading and saving configuration values and keeps
user preferences in an explicit ``PreferenceStore`` instead of ambient
session state.
"""

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from exceptions import ConfigError

logger = logging.getLogger(__name__)

# Default configuration values
DEFAULT_CONFIG: Dict[str, Any] = {
    'logging': {
        'level': 'INFO',
        'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        'file': None,
    },
    'budget': {
        'forecast_mode': 'planned_only',
        'warning_threshold_months': 6,
        'allow_over_assign': False,
        'month_end_offset': 0,
    },
    'forecast': {
        'past_months': 6,
        'future_months': 12,
        'seasonality': True,
        'include_overrides': True,
        'confidence_threshold': 'moderate',
    },
    'debts': {
        'default_method': 'avalanche',
        'extra_per_month': 0,
        'max_months': 600,
        'keep_minimums': True,
    },
    'rebalance': {
        'bill_window_days': 7,
        'recent_activity_days': 7,
        'max_donors': None,
    },
    'notifications': {
        'enabled': {
            'category_underfunded': True,
        },
        'bill_due_soon': {'days_ahead': 3},
        'income_unassigned': {'threshold': 100, 'high_threshold': 500},
        'budget_over_allocated': {'tolerance': 0},
        'goal_milestone': {'milestones': [25, 50, 75, 100]},
    },
}

CONFIG_FILE = 'config.yaml'


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``override`` into a copy of ``base``, recursing into nested sections."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Union[str, Path, None] = None) -> Dict[str, Any]:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Path to the YAML file (default: config.yaml)

    Returns:
        Configuration dictionary with defaults for missing values

    Raises:
        ConfigError: If the file is not valid YAML or not a mapping
    """
    path = Path(config_path or CONFIG_FILE)
    if not path.exists():
        logger.info(f"Config file {path} not found, using defaults")
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(path, 'r') as f:
            user_config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError("Invalid YAML in config file", details={'path': str(path)}, original_error=e) from e
    except OSError as e:
        raise ConfigError("Could not read config file", details={'path': str(path)}, original_error=e) from e

    if not isinstance(user_config, dict):
        raise ConfigError("Config file must contain a mapping", details={'path': str(path)})

    config = _deep_merge(DEFAULT_CONFIG, user_config)
    logger.info("Configuration loaded successfully")
    return config


def save_config(config: Dict[str, Any], config_path: Union[str, Path, None] = None) -> None:
    """
    Save configuration to a YAML file, preserving keys already on disk.

    Args:
        config: Configuration dictionary to save
        config_path: Target path (default: config.yaml)

    Raises:
        ConfigError: If the file cannot be read or written
    """
    path = Path(config_path or CONFIG_FILE)
    try:
        existing_config: Dict[str, Any] = {}
        if path.exists():
            with open(path, 'r') as f:
                existing_config = yaml.safe_load(f) or {}

        merged = _deep_merge(existing_config, config)

        with open(path, 'w') as f:
            yaml.dump(merged, f, default_flow_style=False)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError("Error saving configuration", details={'path': str(path)}, original_error=e) from e

    logger.info("Configuration saved successfully")


def get_section(config: Dict[str, Any], name: str) -> Dict[str, Any]:
    """Return a config section, falling back to its defaults."""
    section = config.get(name)
    if section is None:
        return copy.deepcopy(DEFAULT_CONFIG.get(name, {}))
    if not isinstance(section, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping")
    return section


class PreferenceStore:
    """
    In-memory user preferences backed by an optional config file.

    Values set here shadow the config until ``reset`` is called; they are
    written back only when ``save_to_file`` is requested.
    """

    def __init__(self, config_path: Union[str, Path, None] = None):
        self.config_path = Path(config_path or CONFIG_FILE)
        self._values: Dict[str, Any] = {}
        self._initialized = False

    def initialize(self, config: Optional[Dict[str, Any]] = None) -> None:
        """
        Seed the store from configuration.

        Should be called once at startup; keys already set are kept.
        """
        source = config if config is not None else load_config(self.config_path)
        for key, value in source.items():
            self._values.setdefault(key, copy.deepcopy(value))
        self._initialized = True
        logger.info("Preference store initialized with configuration")

    def get(self, key: str, default: Any = None) -> Any:
        """Get a preference, loading the config on first use."""
        if not self._initialized:
            self.initialize()
        return self._values.get(key, default)

    def set(self, key: str, value: Any, save_to_file: bool = False) -> None:
        """
        Set a preference.

        Raises:
            ConfigError: If persisting to the config file fails
        """
        self._values[key] = value
        if save_to_file:
            save_config({key: value}, self.config_path)

    def reset(self) -> None:
        """Forget every preference; the next ``get`` reloads the config."""
        self._values.clear()
        self._initialized = False
