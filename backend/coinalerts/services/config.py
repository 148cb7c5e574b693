"""Configuration management and validation service."""

import os
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional
from dataclasses import dataclass

import yaml
from dotenv import load_dotenv

from ..models import is_valid_symbol

logger = logging.getLogger(__name__)


@dataclass
class ConfigValidationError:
    """Represents a configuration validation error."""
    path: str
    message: str


class ConfigValidationException(Exception):
    """Raised when config validation fails."""

    def __init__(self, errors: List[ConfigValidationError]):
        self.errors = errors
        messages = [f"{e.path}: {e.message}" for e in errors]
        super().__init__("Configuration validation failed:\n" + "\n".join(messages))


PROVIDER_SCHEMA = {
    "type": "dict",
    "required": False,
    "properties": {
        "enabled": {"type": "bool", "required": False},
        "api_key": {"type": "str", "required": False},
        "base_url": {"type": "str", "required": False},
    }
}

# Configuration schema definition
CONFIG_SCHEMA = {
    "server": {
        "type": "dict",
        "required": False,
        "properties": {
            "host": {"type": "str", "required": False},
            "port": {"type": "int", "required": False, "min": 1, "max": 65535},
            "debug": {"type": "bool", "required": False},
        }
    },
    "market": {
        "type": "dict",
        "required": False,
        "properties": {
            "default_symbols": {"type": "list", "required": False},
            "primary_provider": {"type": "str", "required": False, "options": ["polygon", "coinmarketcap"]},
            "currency": {"type": "str", "required": False},
            "request_timeout_seconds": {"type": "float", "required": False, "min": 1, "max": 60},
            "snapshot_timeout_seconds": {"type": "float", "required": False, "min": 1, "max": 300},
            "grouped_cache_ttl_seconds": {"type": "int", "required": False, "min": 0},
            "quotes_cache_ttl_seconds": {"type": "int", "required": False, "min": 0},
            "coin_list_cache_ttl_seconds": {"type": "int", "required": False, "min": 0},
            "fallback_batch_size": {"type": "int", "required": False, "min": 1, "max": 250},
        }
    },
    "providers": {
        "type": "dict",
        "required": False,
        "properties": {
            "coinmarketcap": PROVIDER_SCHEMA,
            "polygon": PROVIDER_SCHEMA,
            "coingecko": PROVIDER_SCHEMA,
        }
    },
    "alerts": {
        "type": "dict",
        "required": False,
        "properties": {
            "critical_threshold_pct": {"type": "float", "required": False, "max": 0},
            "warning_threshold_pct": {"type": "float", "required": False, "max": 0},
            "deadline_hours": {"type": "float", "required": False, "min": 0},
        }
    },
    "logging": {
        "type": "dict",
        "required": False,
        "properties": {
            "level": {"type": "str", "required": False, "options": ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]},
            "format": {"type": "str", "required": False},
        }
    },
}

# Environment variables that override provider API keys from the file
ENV_API_KEYS = {
    "coinmarketcap": "CMC_API_KEY",
    "polygon": "POLYGON_API_KEY",
    "coingecko": "COINGECKO_API_KEY",
}


class ConfigService:
    """Service for loading and validating configuration."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize config service.

        Args:
            config_path: Path to config file. If None, uses default location.
        """
        if config_path is None:
            # Default config path relative to backend directory
            backend_dir = Path(__file__).parent.parent.parent
            config_path = str(backend_dir / "config.yaml")

        self.config_path = config_path
        self._config: Dict[str, Any] = {}

    def load_and_validate(self) -> Dict[str, Any]:
        """Load and validate the configuration file.

        Returns:
            Validated configuration dictionary.

        Raises:
            ConfigValidationException: If validation fails.
        """
        errors: List[ConfigValidationError] = []

        if not os.path.exists(self.config_path):
            logger.warning(f"Config file not found at {self.config_path}, using defaults")
            self._config = {}
            return self._config

        try:
            with open(self.config_path, 'r') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            errors.append(ConfigValidationError(
                path="",
                message=f"Invalid YAML syntax: {str(e)}"
            ))
            raise ConfigValidationException(errors)

        if config is None:
            config = {}

        if not isinstance(config, dict):
            errors.append(ConfigValidationError(
                path="",
                message=f"Config must be a dictionary, got {type(config).__name__}"
            ))
            raise ConfigValidationException(errors)

        errors.extend(self._validate_dict(config, CONFIG_SCHEMA, ""))
        errors.extend(self._validate_symbols(config))

        if errors:
            raise ConfigValidationException(errors)

        self._config = config
        logger.info(f"Configuration loaded and validated from {self.config_path}")
        return config

    def load_dict(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Validate and apply an in-memory configuration."""
        errors = self._validate_dict(config, CONFIG_SCHEMA, "")
        errors.extend(self._validate_symbols(config))
        if errors:
            raise ConfigValidationException(errors)
        self._config = config
        return config

    def _validate_symbols(self, config: Dict[str, Any]) -> List[ConfigValidationError]:
        """Default symbols must follow the registry symbol format."""
        market = config.get("market")
        if not isinstance(market, dict):
            return []
        symbols = market.get("default_symbols")
        if not isinstance(symbols, list):
            return []

        return [
            ConfigValidationError(
                path=f"market.default_symbols[{i}]",
                message=f"Invalid token symbol '{s}'"
            )
            for i, s in enumerate(symbols)
            if not isinstance(s, str) or not is_valid_symbol(s)
        ]

    def _validate_dict(
        self,
        data: Dict[str, Any],
        schema: Dict[str, Any],
        path: str
    ) -> List[ConfigValidationError]:
        """Validate a dictionary against schema.

        Args:
            data: Data to validate
            schema: Schema to validate against
            path: Current path for error messages

        Returns:
            List of validation errors
        """
        errors = []

        for key in data:
            if key not in schema:
                errors.append(ConfigValidationError(
                    path=f"{path}.{key}" if path else key,
                    message=f"Unknown configuration key '{key}'"
                ))

        for key, prop_schema in schema.items():
            current_path = f"{path}.{key}" if path else key

            if key not in data:
                if prop_schema.get("required", False):
                    errors.append(ConfigValidationError(
                        path=current_path,
                        message="Required field missing"
                    ))
                continue

            value = data[key]
            errors.extend(self._validate_value(value, prop_schema, current_path))

        return errors

    def _validate_value(
        self,
        value: Any,
        schema: Dict[str, Any],
        path: str
    ) -> List[ConfigValidationError]:
        """Validate a single value against schema."""
        errors = []
        expected_type = schema.get("type")

        type_map = {
            "str": str,
            "int": int,
            "float": (int, float),
            "bool": bool,
            "list": list,
            "dict": dict,
        }

        if expected_type == "dict":
            if not isinstance(value, dict):
                errors.append(ConfigValidationError(
                    path=path,
                    message=f"Expected dict, got {type(value).__name__}"
                ))
                return errors

            if "properties" in schema:
                errors.extend(self._validate_dict(value, schema["properties"], path))

        elif expected_type in type_map:
            expected = type_map[expected_type]
            # bool is an int subclass; reject it for numeric fields
            if not isinstance(value, expected) or (
                expected_type in ("int", "float") and isinstance(value, bool)
            ):
                errors.append(ConfigValidationError(
                    path=path,
                    message=f"Expected {expected_type}, got {type(value).__name__}"
                ))
                return errors

            if expected_type in ("int", "float"):
                if "min" in schema and value < schema["min"]:
                    errors.append(ConfigValidationError(
                        path=path,
                        message=f"Value {value} is below minimum {schema['min']}"
                    ))
                if "max" in schema and value > schema["max"]:
                    errors.append(ConfigValidationError(
                        path=path,
                        message=f"Value {value} is above maximum {schema['max']}"
                    ))

            if "options" in schema and value not in schema["options"]:
                errors.append(ConfigValidationError(
                    path=path,
                    message=f"Value '{value}' not in allowed options: {schema['options']}"
                ))

        return errors

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value.

        Args:
            key: Dot-notation key (e.g., "market.currency")
            default: Default value if not found

        Returns:
            Configuration value
        """
        keys = key.split(".")
        value = self._config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def get_api_key(self, provider: str) -> Optional[str]:
        """Get a provider API key, preferring the environment over the file."""
        env_name = ENV_API_KEYS.get(provider)
        if env_name:
            env_value = os.getenv(env_name)
            if env_value:
                return env_value
        return self.get(f"providers.{provider}.api_key") or None


# Pick up provider keys from a local .env during development
load_dotenv()

# Global config service instance
config_service = ConfigService()
