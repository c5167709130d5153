"""
Configuration loading and management.

Layers the JSON config file and environment variables over the defaults and
validates the result as a ServiceConfig.
"""

import copy
import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union
import logging

from replica_core.models.config import ServiceConfig
from .defaults import DEFAULT_SETTINGS, ENV_VAR_MAPPING

logger = logging.getLogger(__name__)


class ConfigurationLoader:
    """Load and save replication service configuration"""

    def load(self, config_file: Optional[Union[str, Path]] = None) -> ServiceConfig:
        """
        Build the service configuration.

        Precedence, lowest first: defaults, JSON config file, environment.
        An unreadable or invalid config file is logged and skipped.

        Raises:
            pydantic.ValidationError: the merged settings are invalid
        """
        config_data = copy.deepcopy(DEFAULT_SETTINGS)

        if config_file:
            file_data = self._load_file(Path(config_file))
            if file_data:
                self._deep_merge(config_data, file_data)

        config_data = self._apply_env_overrides(config_data)
        return ServiceConfig(**config_data)

    def save(self, config: ServiceConfig, path: Union[str, Path]) -> bool:
        """Save configuration to disk as JSON"""
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, 'w', encoding='utf-8') as f:
                json.dump(config.to_dict(), f, indent=2, ensure_ascii=False)

            logger.info(f"Saved configuration to {path}")
            return True

        except Exception as e:
            logger.error(f"Failed to save config to {path}: {e}")
            return False

    def _load_file(self, config_file: Path) -> Optional[Dict[str, Any]]:
        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load config from {config_file}: {e}")
            return None

        if not isinstance(data, dict):
            logger.error(f"Config file {config_file} must contain a JSON object")
            return None

        logger.info(f"Loaded configuration from {config_file}")
        return data

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> None:
        """Merge ``override`` into ``base`` in place, recursing into dicts"""
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(base.get(key), dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value

    def _apply_env_overrides(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to configuration"""
        for env_var, config_path in ENV_VAR_MAPPING.items():
            env_value = os.getenv(env_var)
            if env_value is not None:
                self._set_nested_value(config_data, config_path, env_value)

        return config_data

    def _set_nested_value(self, data: Dict[str, Any], path: str, value: str) -> None:
        """Set nested dictionary value using dot notation path"""
        keys = path.split('.')
        current = data

        for key in keys[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]

        final_key = keys[-1]
        current[final_key] = self._convert_env_value(value, current.get(final_key))

    def _convert_env_value(self, value: str, current: Any = None) -> Any:
        """Convert environment variable string to the type of the value it replaces"""
        if isinstance(current, bool):
            return value.strip().lower() in ('true', 'yes', '1', 'on')
        if isinstance(current, list):
            return [item.strip() for item in value.split(',') if item.strip()]
        if isinstance(current, str) or current is None:
            return value

        # Numeric conversion
        try:
            if isinstance(current, float) or '.' in value:
                return float(value)
            return int(value)
        except ValueError:
            return value
