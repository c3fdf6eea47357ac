"""
Configuration management for Indaleko Transit.

This module provides configuration utilities for controlling behavior
of the transit encryption layer, including development/production modes,
the Vault connection and the record store backend.
"""

import logging
import os
from pathlib import Path
from copy import deepcopy

import yaml

from .errors import ConfigurationError


logger = logging.getLogger(__name__)


_TRUE_VALUES = ("1", "true", "True", "yes", "Yes")
_FALSE_VALUES = ("0", "false", "False", "no", "No")


class TransitConfig:
    """
    Configuration for Indaleko Transit.

    This class provides access to configuration settings, including
    environment-specific behaviors, Vault connection settings and
    encryption defaults.
    """

    # Default configuration values
    _default_config: dict[str, object] = {
        "mode": "DEV",  # DEV or PROD
        "application": "indaleko",
        "transit": {
            "path": "transit",
        },
        "vault": {
            "enabled": False,
            "address": "http://127.0.0.1:8200",
            "token": "",
            "namespace": None,
            "timeout": 30,  # seconds
            "retries": 0,
            "convergent_context": "indaleko-transit-convergent",
        },
        "encryption": {
            "key": None,
            "key_iterations": 100000,
        },
        "database": {
            "backend": "memory",  # memory or arangodb
            "url": "http://localhost:8529",
            "database": "indaleko_transit",
            "username": "root",
            "password": "",
        },
    }

    # Instance configuration values, loaded from file or environment
    _config: dict[str, object] = {}

    # Flag indicating if the configuration has been initialized
    _initialized: bool = False

    @classmethod
    def initialize(cls, config_path: str | None = None) -> None:
        """
        Initialize the configuration.

        Args:
            config_path: Optional path to a YAML configuration file

        Raises:
            ConfigurationError: If the configuration file is missing or invalid
        """
        # Start with default configuration (deep copy to avoid shared nested dictionaries)
        cls._config = deepcopy(cls._default_config)

        # Load configuration from file if provided
        if config_path:
            cls._load_from_file(config_path)

        # Override with environment variables
        cls._load_from_env()

        cls._initialized = True

    @classmethod
    def _merge(cls, values: dict[str, object]) -> None:
        """Merge a loaded document into the configuration, section by section."""
        for section, section_values in values.items():
            current = cls._config.get(section)
            if isinstance(section_values, dict) and isinstance(current, dict):
                current.update(section_values)
            else:
                cls._config[section] = section_values

    @classmethod
    def _read_yaml(cls, file_path: str) -> dict[str, object]:
        path = Path(file_path)
        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {file_path}")

        try:
            with open(path, "r") as f:
                document = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Error loading configuration file {file_path}: {e}") from e

        if document is None:
            return {}
        if not isinstance(document, dict):
            raise ConfigurationError(f"Configuration file {file_path} must contain a mapping")
        return document

    @classmethod
    def _load_from_file(cls, config_path: str) -> None:
        """
        Load configuration from a YAML file.

        Args:
            config_path: Path to the YAML configuration file
        """
        cls._merge(cls._read_yaml(config_path))
        logger.debug("Loaded configuration from %s", config_path)

    @classmethod
    def _load_from_env(cls) -> None:
        """Load configuration from environment variables."""
        # Check for mode override
        env_mode = os.environ.get("INDALEKO_MODE")
        if env_mode in ("DEV", "PROD"):
            cls._config["mode"] = env_mode

        env_application = os.environ.get("INDALEKO_APPLICATION")
        if env_application:
            cls._config["application"] = env_application

        # Check for Vault enabled override
        env_vault = os.environ.get("INDALEKO_VAULT_ENABLED")
        if env_vault in _TRUE_VALUES:
            cls._config["vault"]["enabled"] = True
        elif env_vault in _FALSE_VALUES:
            cls._config["vault"]["enabled"] = False

        # Standard Vault client variables
        env_vault_addr = os.environ.get("VAULT_ADDR")
        if env_vault_addr:
            cls._config["vault"]["address"] = env_vault_addr

        env_vault_token = os.environ.get("VAULT_TOKEN")
        if env_vault_token:
            cls._config["vault"]["token"] = env_vault_token

        env_vault_namespace = os.environ.get("VAULT_NAMESPACE")
        if env_vault_namespace:
            cls._config["vault"]["namespace"] = env_vault_namespace

        # Master key for the development-mode oracle
        env_key = os.environ.get("INDALEKO_ENCRYPTION_KEY")
        if env_key:
            cls._config["encryption"]["key"] = env_key

        env_db_backend = os.environ.get("INDALEKO_DB_BACKEND")
        if env_db_backend:
            cls._config["database"]["backend"] = env_db_backend

        # Check for database URL override
        env_db_url = os.environ.get("INDALEKO_DB_URL")
        if env_db_url:
            cls._config["database"]["url"] = env_db_url

        env_db_username = os.environ.get("INDALEKO_DB_USERNAME")
        if env_db_username:
            cls._config["database"]["username"] = env_db_username

        env_db_password = os.environ.get("INDALEKO_DB_PASSWORD")
        if env_db_password:
            cls._config["database"]["password"] = env_db_password

    @classmethod
    def _ensure_initialized(cls) -> None:
        """Ensure the configuration is initialized."""
        if not cls._initialized:
            cls.initialize()

    @classmethod
    def get(cls, key: str, default: object = None) -> object:
        """
        Get a configuration value.

        Args:
            key: The configuration key to retrieve, dotted for nested values
            default: Default value to return if key is not found

        Returns:
            The configuration value, or default if not found
        """
        cls._ensure_initialized()

        # Support nested keys with dot notation
        if "." in key:
            value = cls._config
            for part in key.split("."):
                if isinstance(value, dict) and part in value:
                    value = value[part]
                else:
                    return default
            return value

        return cls._config.get(key, default)

    @classmethod
    def is_dev_mode(cls) -> bool:
        """
        Check if the system is in development mode.

        Returns:
            True if in development mode, False otherwise
        """
        return cls.get("mode") == "DEV"

    @classmethod
    def is_vault_enabled(cls) -> bool:
        """
        Check if the remote Vault transit engine should be used.

        When disabled, an in-process oracle stands in for Vault.

        Returns:
            True if Vault is enabled, False otherwise
        """
        return bool(cls.get("vault.enabled", False))

    @classmethod
    def get_application(cls) -> str:
        """Get the application name used to derive default key names."""
        return str(cls.get("application", "indaleko"))

    @classmethod
    def get_transit_path(cls) -> str:
        """Get the default transit mount path."""
        return str(cls.get("transit.path", "transit"))

    @classmethod
    def get_vault_settings(cls) -> dict:
        """
        Get the Vault connection settings.

        Returns:
            Dictionary containing the Vault connection settings
        """
        return {
            "address": cls.get("vault.address", "http://127.0.0.1:8200"),
            "token": cls.get("vault.token", ""),
            "namespace": cls.get("vault.namespace"),
            "timeout": cls.get("vault.timeout", 30),
            "retries": cls.get("vault.retries", 0),
            "convergent_context": cls.get("vault.convergent_context", ""),
        }

    @classmethod
    def get_database_url(cls) -> str:
        """
        Get the database URL.

        Returns:
            The URL of the database
        """
        return cls.get("database.url", "http://localhost:8529")

    @classmethod
    def get_database_credentials(cls) -> dict:
        """
        Get the database credentials.

        Returns:
            Dictionary containing database credentials
        """
        return {
            "username": cls.get("database.username", "root"),
            "password": cls.get("database.password", ""),
            "database": cls.get("database.database", "indaleko_transit"),
        }

    @classmethod
    def load_from_secrets_file(cls, file_path: str) -> None:
        """
        Load configuration from a secrets file.

        This is a convenience method for loading configuration from
        a secrets file, which can contain the Vault token or the
        database password.

        Args:
            file_path: Path to the secrets file
        """
        cls._ensure_initialized()

        path = Path(file_path)
        if not path.exists():
            logger.warning("Secrets file not found: %s", file_path)
            return

        cls._merge(cls._read_yaml(file_path))
        logger.info("Loaded configuration from secrets file: %s", file_path)
