"""Configuration manager for loading and validating .httpchain.yml"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import ValidationError

from httpchain.domain.config import (
    ClientConfig,
    DNSConfig,
    LoggingConfig,
    RetryPolicy,
    TransportSettings,
)

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".httpchain.yml"


class ConfigurationError(Exception):
    """Configuration validation error."""

    pass


class ConfigManager:
    """Manages configuration from .httpchain.yml and environment variables

    Loads configuration with validation using Pydantic models. Configuration priority:
    1. Default values (defined in Pydantic models)
    2. .httpchain.yml file (searched from current directory upwards)
    3. Environment variables (HTTPCHAIN_*)
    4. CLI arguments (handled by CLI layer)
    """

    DEFAULT_CONFIG: Dict[str, Any] = {
        "retry": {},
        "dns": {"servers": []},
        "transport": {},
        "logging": {},
    }

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        """Initialize config manager

        Args:
            config_path: Path to .httpchain.yml (searches from current dir if None)

        Raises:
            ConfigurationError: If configuration validation fails
        """
        if isinstance(config_path, str):
            config_path = Path(config_path)
        self.config_path = config_path or self._find_config_file()
        try:
            self.config: ClientConfig = self._load_config()
        except ValidationError as e:
            errors = []
            for error in e.errors():
                field = ".".join(str(x) for x in error["loc"])
                msg = error["msg"]
                errors.append(f"  - {field}: {msg}")
            raise ConfigurationError(
                "Configuration validation failed:\n" + "\n".join(errors)
            ) from e

    def _find_config_file(self) -> Optional[Path]:
        """Find .httpchain.yml starting from current directory

        Returns:
            Path to config file or None if not found
        """
        current = Path.cwd()
        for parent in [current] + list(current.parents):
            config_file = parent / CONFIG_FILE_NAME
            if config_file.exists():
                logger.info(f"Found config file: {config_file}")
                return config_file
        logger.debug(f"No {CONFIG_FILE_NAME} found, using defaults")
        return None

    def _load_config(self) -> ClientConfig:
        """Load configuration from file and validate with Pydantic

        Returns:
            Validated ClientConfig instance

        Raises:
            ValidationError: If configuration is invalid
        """
        config_dict = copy.deepcopy(self.DEFAULT_CONFIG)

        if self.config_path and self.config_path.exists():
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    file_config = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ConfigurationError(f"Failed to read config from {self.config_path}: {e}") from e
            if not isinstance(file_config, dict):
                raise ConfigurationError(f"Config file {self.config_path} must contain a mapping")
            config_dict = self._merge_config(config_dict, file_config)
            logger.info(f"Loaded configuration from {self.config_path}")

        config_dict = self._apply_env_overrides(config_dict)
        return ClientConfig(**config_dict)

    def _merge_config(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge configuration dictionaries

        Args:
            base: Base configuration
            override: Override configuration

        Returns:
            Merged configuration
        """
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides

        Args:
            config: Configuration dictionary

        Returns:
            Configuration with env overrides applied
        """
        if os.getenv("HTTPCHAIN_USER_AGENT"):
            config["user_agent"] = os.getenv("HTTPCHAIN_USER_AGENT")

        if os.getenv("HTTPCHAIN_TIMEOUT"):
            config["timeout"] = os.getenv("HTTPCHAIN_TIMEOUT")

        if os.getenv("HTTPCHAIN_MAX_ATTEMPTS"):
            config["retry"]["max_attempts"] = os.getenv("HTTPCHAIN_MAX_ATTEMPTS")

        # Comma-separated list, e.g. "1.1.1.1:53,8.8.8.8:53"
        dns_servers = os.getenv("HTTPCHAIN_DNS_SERVERS")
        if dns_servers is not None:
            config["dns"]["servers"] = [s.strip() for s in dns_servers.split(",") if s.strip()]

        if os.getenv("HTTPCHAIN_DUMP_REQUESTS"):
            config["logging"]["dump_requests"] = os.getenv("HTTPCHAIN_DUMP_REQUESTS")

        return config

    def get_retry_policy(self) -> RetryPolicy:
        """Get retry policy

        Returns:
            Retry policy model
        """
        return self.config.retry

    def get_dns_config(self) -> DNSConfig:
        """Get custom DNS configuration

        Returns:
            DNS configuration model
        """
        return self.config.dns

    def get_transport_settings(self) -> TransportSettings:
        return self.config.transport

    def get_logging_config(self) -> LoggingConfig:
        return self.config.logging

    def as_dict(self) -> Dict[str, Any]:
        """Effective configuration as plain YAML/JSON-safe data (retry statuses sorted)"""
        data = self.config.model_dump(mode="json")
        data["retry"]["retry_statuses"] = sorted(data["retry"]["retry_statuses"])
        return data

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by key (supports dot notation)

        Args:
            key: Configuration key (e.g., "retry.max_attempts" or "dns")
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key.split(".")
        value = self.as_dict()
        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value
