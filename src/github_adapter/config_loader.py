"""
ConfigLoader module for loading and validating client configuration files (TOML or YAML)
"""

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from github_adapter.rate_limit_handler import (
    AbuseLimitHandler, RateLimitChecker, RateLimitHandler, ThresholdRateLimitChecker
)
from github_adapter.request import DEFAULT_API_URL


class ConfigurationError(Exception):
    """Raised when configuration is invalid or incomplete"""
    pass


class MissingEnvironmentError(Exception):
    """Raised when required environment variables are missing"""
    pass


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


@dataclass
class ClientConfig:
    """Configuration data class for the GitHub client"""
    base_url: str = DEFAULT_API_URL
    user_agent: Optional[str] = None
    timeout: float = 30.0
    authentication: Dict[str, Any] = field(default_factory=dict)
    retries: Dict[str, Any] = field(default_factory=dict)
    pagination: Dict[str, Any] = field(default_factory=dict)
    rate_limits: Dict[str, Any] = field(default_factory=dict)
    cache: Dict[str, Any] = field(default_factory=dict)
    logging: Dict[str, Any] = field(default_factory=dict)


class ConfigLoader:
    """Loads and validates client configuration files"""

    # Required configuration sections and their mandatory keys
    REQUIRED_SECTIONS = {
        'api': ['base_url'],
    }

    # Optional sections that default to empty values
    OPTIONAL_SECTIONS = [
        'authentication',
        'retries',
        'pagination',
        'rate_limits',
        'cache',
        'logging'
    ]

    RATE_LIMIT_HANDLERS = {
        'wait': RateLimitHandler.WAIT,
        'fail': RateLimitHandler.FAIL
    }

    ABUSE_LIMIT_HANDLERS = {
        'wait': AbuseLimitHandler.WAIT,
        'fail': AbuseLimitHandler.FAIL
    }

    @staticmethod
    def load_config(config_path: Path) -> ClientConfig:
        """
        Load client configuration from a TOML or YAML file

        Args:
            config_path: Path to a .toml, .yaml or .yml file

        Returns:
            ClientConfig object with all configuration data

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigurationError: If the file cannot be parsed or required configuration is missing
        """
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        if config_path.suffix.lower() == '.toml':
            config_data = ConfigLoader._load_toml(config_path)
        else:
            config_data = ConfigLoader._load_yaml(config_path)

        ConfigLoader._validate_required_sections(config_data)
        ConfigLoader._validate_values(config_data)

        api = config_data['api']
        return ClientConfig(
            base_url=api['base_url'],
            user_agent=api.get('user_agent'),
            timeout=float(api.get('timeout', 30.0)),
            **{section: config_data.get(section, {}) for section in ConfigLoader.OPTIONAL_SECTIONS}
        )

    @staticmethod
    def _load_toml(config_path: Path) -> Dict[str, Any]:
        try:
            with open(config_path, 'rb') as f:
                return tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML syntax in {config_path}: {e}") from e

    @staticmethod
    def _load_yaml(config_path: Path) -> Dict[str, Any]:
        try:
            with open(config_path, 'r') as f:
                config_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {config_path}: {e}") from e
        return config_data or {}

    @staticmethod
    def _validate_required_sections(config_data: Dict[str, Any]) -> None:
        """
        Validate that all required configuration sections and keys are present

        Args:
            config_data: Parsed configuration data

        Raises:
            ConfigurationError: If any required section or key is missing
        """
        missing_items = []

        for section_name, required_keys in ConfigLoader.REQUIRED_SECTIONS.items():
            if section_name not in config_data:
                missing_items.append(f"Section [{section_name}]")
            else:
                section_data = config_data[section_name]
                for key in required_keys:
                    if key not in section_data:
                        missing_items.append(f"Key '{key}' in section [{section_name}]")

        if missing_items:
            raise ConfigurationError(
                f"Missing required configuration items: {', '.join(missing_items)}"
            )

    @staticmethod
    def _validate_values(config_data: Dict[str, Any]) -> None:
        rate_limits = config_data.get('rate_limits', {})

        handler = rate_limits.get('handler', 'wait')
        if handler not in ConfigLoader.RATE_LIMIT_HANDLERS:
            raise ConfigurationError(f"Unsupported rate limit handler: {handler}")

        abuse_handler = rate_limits.get('abuse_handler', 'wait')
        if abuse_handler not in ConfigLoader.ABUSE_LIMIT_HANDLERS:
            raise ConfigurationError(f"Unsupported abuse limit handler: {abuse_handler}")

        if rate_limits.get('sleep_at_or_below', 0) < 0:
            raise ConfigurationError("sleep_at_or_below must be zero or greater")

        if config_data.get('retries', {}).get('connection_retries', 0) < 0:
            raise ConfigurationError("connection_retries cannot be less than 0")

        if config_data.get('pagination', {}).get('page_size', 0) < 0:
            raise ConfigurationError("page_size cannot be less than 0")

    @staticmethod
    def validate_environment_variables(config: ClientConfig) -> bool:
        """
        Validate that all required environment variables are set

        Args:
            config: ClientConfig object to validate

        Returns:
            True if all environment variables are present

        Raises:
            MissingEnvironmentError: If any required environment variables are missing
        """
        missing_vars = []

        for key, value in config.authentication.items():
            if key.endswith('_env') and isinstance(value, str):
                if not os.getenv(value):
                    missing_vars.append(value)

        if missing_vars:
            raise MissingEnvironmentError(
                f"Missing required environment variables: {', '.join(missing_vars)}"
            )

        return True

    @staticmethod
    def get_environment_value(env_var_name: str) -> str:
        """
        Get environment variable value with proper error handling

        Raises:
            MissingEnvironmentError: If environment variable is not set
        """
        value = os.getenv(env_var_name)
        if value is None:
            raise MissingEnvironmentError(f"Environment variable '{env_var_name}' is not set")
        return value

    @staticmethod
    def resolve_token(config: ClientConfig) -> Optional[str]:
        """Token named by ``authentication.token_env``, or None when not configured"""
        token_env = config.authentication.get('token_env')
        if not token_env:
            return None
        return ConfigLoader.get_environment_value(token_env)

    @staticmethod
    def resolve_rate_limit_handler(config: ClientConfig) -> RateLimitHandler:
        return ConfigLoader.RATE_LIMIT_HANDLERS[config.rate_limits.get('handler', 'wait')]

    @staticmethod
    def resolve_abuse_limit_handler(config: ClientConfig) -> AbuseLimitHandler:
        return ConfigLoader.ABUSE_LIMIT_HANDLERS[config.rate_limits.get('abuse_handler', 'wait')]

    @staticmethod
    def resolve_rate_limit_checker(config: ClientConfig) -> RateLimitChecker:
        threshold = config.rate_limits.get('sleep_at_or_below', 0)
        if threshold > 0:
            return ThresholdRateLimitChecker(threshold)
        return RateLimitChecker.NONE

    @staticmethod
    def configure_logging(config: ClientConfig) -> None:
        """Install a basic logging setup for applications that want one"""
        level_name = str(config.logging.get('level', 'INFO')).upper()
        level = getattr(logging, level_name, None)
        if not isinstance(level, int):
            raise ConfigurationError(f"Unsupported logging level: {level_name}")

        handlers = [logging.StreamHandler()]
        log_file = config.logging.get('file')
        if log_file:
            handlers.append(logging.FileHandler(log_file))

        logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers)
