# handle_forecaster_src/config_utils.py

import argparse
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "HANDLE_FORECAST_CONFIG"
DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "forecast.yaml"

VALID_SELECTION_RULES = ["aicc", "bic", "adjusted_r2"]
VALID_ARIMA_SEARCH = ["stepwise", "grid"]
VALID_SMOOTHING_VARIANTS = ["ANN", "AAN", "AAdN", "ANA", "AAA", "AAdA"]

# Initialize the global configuration manager
config_manager = None


class ConfigurationManager:
    """
    YAML-backed configuration with dotted-key access.

    Parameters
    ----------
    config_path : Union[str, Path]
        Path to a YAML file. A missing file yields an empty configuration.
    """

    def __init__(self, config_path: Union[str, Path]):
        self.config_path = Path(config_path)
        self._data: Dict[str, Any] = {}
        self._load()

    def _load(self) -> None:
        if not self.config_path.is_file():
            logger.warning("Configuration file not found: %s - using defaults", self.config_path)
            return
        with self.config_path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Configuration root must be a mapping: {self.config_path}")
        self._data = data
        logger.debug("Loaded configuration from %s", self.config_path)

    def get(self, key_path: str, default=None):
        """Look up ``a.b.c`` style keys, returning ``default`` when any part is absent."""
        node: Any = self._data
        for part in key_path.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def get_section(self, name: str) -> Dict[str, Any]:
        section = self._data.get(name, {})
        return dict(section) if isinstance(section, dict) else {}

    def validate_configuration(self) -> Dict[str, List[str]]:
        """
        Check value ranges and enumerations.

        Returns
        -------
        Dict[str, List[str]]
            Section name -> list of problems. Empty when the file is valid.
        """
        errors: Dict[str, List[str]] = {}

        def _add(section: str, msg: str) -> None:
            errors.setdefault(section, []).append(msg)

        period = self.get("series.seasonal_period", 12)
        if not isinstance(period, int) or period < 2:
            _add("series", f"seasonal_period must be an integer >= 2, got {period!r}")

        rule = self.get("selection.rule", "aicc")
        if rule not in VALID_SELECTION_RULES:
            _add("selection", f"rule must be one of {VALID_SELECTION_RULES}, got {rule!r}")

        search = self.get("model.arima.search", "stepwise")
        if search not in VALID_ARIMA_SEARCH:
            _add("model", f"arima.search must be one of {VALID_ARIMA_SEARCH}, got {search!r}")

        for key in ("max_p", "max_q", "max_P", "max_Q", "max_d", "max_D"):
            value = self.get(f"model.arima.{key}", 0)
            if not isinstance(value, int) or value < 0:
                _add("model", f"arima.{key} must be a non-negative integer, got {value!r}")

        variants = self.get("model.smoothing.variants", []) or []
        unknown = [v for v in variants if v not in VALID_SMOOTHING_VARIANTS]
        if unknown:
            _add("model", f"unknown smoothing variants: {unknown}")

        confidence = self.get("forecast.confidence", 0.95)
        if not isinstance(confidence, (int, float)) or not 0.0 < confidence < 1.0:
            _add("forecast", f"confidence must lie in (0, 1), got {confidence!r}")

        return errors


def initialize_config(config_path: Optional[Union[str, Path]] = None) -> None:
    """
    Initializes the global configuration manager.

    The path is taken from the argument, then the HANDLE_FORECAST_CONFIG
    environment variable, then config/forecast.yaml. If the configuration
    fails to load, the error is logged and defaults are used.
    """
    global config_manager
    if config_manager is not None and config_path is None:
        return
    path = Path(config_path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)
    try:
        manager = ConfigurationManager(path)
        validation_errors = manager.validate_configuration()
        if validation_errors:
            logger.warning("Configuration validation warnings: %s", validation_errors)
        config_manager = manager
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.error("Failed to initialize configuration: %s. Using defaults.", e)
        config_manager = None


def reset_config() -> None:
    """Drop the global manager (used by tests and by --config reloads)."""
    global config_manager
    config_manager = None


def get_config_value(key_path: str, default=None, args: Optional[argparse.Namespace] = None,
                     cli_param: Optional[str] = None):
    """
    Retrieves a configuration value, providing support for command-line overrides.
    The function prioritizes values in the following order:
    1. CLI argument (if provided)
    2. Configuration file
    3. Default value
    """
    # First priority: CLI argument
    if args is not None and cli_param and hasattr(args, cli_param):
        cli_value = getattr(args, cli_param)
        if cli_value is not None:
            return cli_value

    # Second priority: Configuration file
    if config_manager is not None:
        config_value = config_manager.get(key_path, None)
        if config_value is not None:
            return config_value

    # Third priority: Default value
    return default
