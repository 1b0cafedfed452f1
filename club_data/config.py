"""Configuration management for club-data using YAML files."""

import os
from pathlib import Path
from typing import Any

import structlog
import yaml

logger = structlog.get_logger()

CONFIG_DIR_NAME = ".club-data"

# Built-in defaults, used when neither config file nor environment sets a key.
DEFAULTS: dict[str, Any] = {
    "dynamodb.table": "club-entities",
    "dynamodb.region": "us-east-1",
    "dynamodb.timeout": 5.0,
    "dynamodb.max_attempts": 3,
    "assign.max_candidates": 100,
    "assign.max_rounds": 3,
}

# Environment variables consulted after both config files.
ENV_FALLBACKS: dict[str, str] = {
    "dynamodb.table": "DYNAMODB_TABLE_NAME",
    "dynamodb.region": "AWS_REGION",
    "dynamodb.endpoint": "DYNAMODB_ENDPOINT",
}


class Config:
    """Configuration manager using YAML file storage.

    Supports both local (repository-level) and global (user-level) configuration.
    Local config is stored in .club-data/config.yaml in the current directory.
    Global config is stored in ~/.club-data/config.yaml.

    When reading, values are looked up in local config first, then global
    config, then the environment (DynamoDB settings only), then built-in defaults.
    """

    def __init__(self, use_global: bool = False, config_dir: Path | None = None) -> None:
        """Initialize configuration manager.

        Args:
            use_global: If True, use global config only. If False, use local config with global fallback.
            config_dir: Custom directory to store config file (overrides use_global)
        """
        if config_dir is not None:
            self.config_dir = Path(config_dir)
            self.is_global = use_global
        elif use_global:
            self.config_dir = Path.home() / CONFIG_DIR_NAME
            self.is_global = True
        else:
            self.config_dir = Path.cwd() / CONFIG_DIR_NAME
            self.is_global = False

        self.config_file = self.config_dir / "config.yaml"

        self._config: dict[str, Any] = self._load()

        self._global_config: dict[str, Any] = {}
        if not self.is_global:
            global_config_file = Path.home() / CONFIG_DIR_NAME / "config.yaml"
            if global_config_file.exists() and global_config_file != self.config_file:
                try:
                    with open(global_config_file, "r") as f:
                        self._global_config = yaml.safe_load(f) or {}
                except (OSError, yaml.YAMLError) as e:
                    logger.warning("Failed to load global config", error=str(e))

        logger.debug("Config initialized", config_file=str(self.config_file), is_global=self.is_global)

    def _load(self) -> dict[str, Any]:
        """Load configuration from YAML file.

        Returns:
            Configuration dictionary
        """
        if not self.config_file.exists():
            logger.debug("Config file does not exist, initializing empty config")
            return {}

        try:
            with open(self.config_file, "r") as f:
                config = yaml.safe_load(f) or {}
                logger.debug("Config loaded successfully", keys=list(config.keys()))
                return config
        except (OSError, yaml.YAMLError) as e:
            logger.error("Failed to load config", error=str(e))
            raise ValueError(f"Failed to load config from {self.config_file}: {e}") from e

    def _save(self) -> None:
        """Save configuration to YAML file."""
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, "w") as f:
                yaml.safe_dump(self._config, f, default_flow_style=False, sort_keys=False)
            logger.debug("Config saved successfully")
        except OSError as e:
            logger.error("Failed to save config", error=str(e))
            raise ValueError(f"Failed to save config to {self.config_file}: {e}") from e

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value.

        Args:
            key: Configuration key
            default: Value returned when no source sets the key (overrides built-in defaults)

        Returns:
            Configuration value or default
        """
        if key in self._config:
            logger.debug("Getting config value from local", key=key)
            return self._config[key]

        if not self.is_global and key in self._global_config:
            logger.debug("Getting config value from global", key=key)
            return self._global_config[key]

        env_var = ENV_FALLBACKS.get(key)
        if env_var and os.environ.get(env_var):
            logger.debug("Getting config value from environment", key=key, env_var=env_var)
            return os.environ[env_var]

        if default is not None:
            return default
        logger.debug("Config value not found, using built-in default", key=key)
        return DEFAULTS.get(key)

    def get_int(self, key: str, default: int | None = None) -> int:
        value = self.get(key, default)
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Config value {key}={value!r} is not an integer") from e

    def get_float(self, key: str, default: float | None = None) -> float:
        value = self.get(key, default)
        try:
            return float(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Config value {key}={value!r} is not a number") from e

    def set(self, key: str, value: str) -> None:
        """Set a configuration value.

        Args:
            key: Configuration key
            value: Configuration value
        """
        logger.debug("Setting config value", key=key)
        self._config[key] = value
        self._save()

    def unset(self, key: str) -> None:
        """Remove a configuration value.

        Args:
            key: Configuration key
        """
        logger.debug("Unsetting config value", key=key)
        if key in self._config:
            del self._config[key]
            self._save()

    def list(self) -> dict[str, Any]:
        """List all configuration settings.

        For local config, merges global config with local config (local takes precedence).

        Returns:
            Dictionary of all config settings
        """
        if self.is_global:
            logger.debug("Listing global config values", count=len(self._config))
            return self._config.copy()

        merged = self._global_config.copy()
        merged.update(self._config)
        logger.debug("Listing merged config values", count=len(merged))
        return merged


def get_config(use_global: bool = False) -> Config:
    """Get a configuration instance.

    Args:
        use_global: If True, return global config. If False, return local config with global fallback.

    Returns:
        Config instance
    """
    return Config(use_global=use_global)
