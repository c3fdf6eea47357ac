"""
Tests for the TransitConfig class.
"""

import os
import tempfile
from pathlib import Path

import pytest
import yaml

from indaleko_transit.config import TransitConfig
from indaleko_transit.errors import ConfigurationError


_ENV_KEYS = [
    "INDALEKO_MODE",
    "INDALEKO_APPLICATION",
    "INDALEKO_VAULT_ENABLED",
    "VAULT_ADDR",
    "VAULT_TOKEN",
    "VAULT_NAMESPACE",
    "INDALEKO_ENCRYPTION_KEY",
    "INDALEKO_DB_BACKEND",
    "INDALEKO_DB_URL",
]


class TestTransitConfig:
    """Tests for the TransitConfig class."""

    def setup_method(self) -> None:
        """Set up the test environment."""
        # Reset the configuration state before each test
        TransitConfig._config = {}
        TransitConfig._initialized = False

        # Save original environment variables
        self.original_env = {}
        for key in _ENV_KEYS:
            self.original_env[key] = os.environ.get(key)
            if key in os.environ:
                del os.environ[key]

    def teardown_method(self) -> None:
        """Clean up after the test."""
        # Restore original environment variables
        for key, value in self.original_env.items():
            if value is not None:
                os.environ[key] = value
            elif key in os.environ:
                del os.environ[key]
        TransitConfig.initialize()

    def test_default_config(self) -> None:
        """Test the default configuration values."""
        # Get a configuration value to trigger initialization
        mode = TransitConfig.get("mode")
        assert mode == "DEV"  # Default mode

        # Check other default values
        assert TransitConfig.is_vault_enabled() is False
        assert TransitConfig.get_application() == "indaleko"
        assert TransitConfig.get_transit_path() == "transit"
        assert TransitConfig.get("vault.address") == "http://127.0.0.1:8200"
        assert TransitConfig.get("database.backend") == "memory"
        assert TransitConfig.get_database_url() == "http://localhost:8529"

    def test_missing_key_returns_default(self) -> None:
        """Test that unknown keys fall back to the supplied default."""
        assert TransitConfig.get("vault.nope") is None
        assert TransitConfig.get("nope.nested", "fallback") == "fallback"

    def test_environment_override(self) -> None:
        """Test overriding configuration with environment variables."""
        # Set environment variables
        os.environ["INDALEKO_MODE"] = "PROD"
        os.environ["INDALEKO_APPLICATION"] = "clinic"
        os.environ["INDALEKO_VAULT_ENABLED"] = "true"
        os.environ["VAULT_ADDR"] = "https://vault.example.com:8200"
        os.environ["VAULT_TOKEN"] = "s.token"
        os.environ["VAULT_NAMESPACE"] = "team-a"
        os.environ["INDALEKO_DB_URL"] = "http://db.example.com:8529"

        # Re-initialize the configuration
        TransitConfig.initialize()

        # Check that the environment values were used
        assert TransitConfig.get("mode") == "PROD"
        assert TransitConfig.is_dev_mode() is False
        assert TransitConfig.get_application() == "clinic"
        assert TransitConfig.is_vault_enabled() is True

        settings = TransitConfig.get_vault_settings()
        assert settings["address"] == "https://vault.example.com:8200"
        assert settings["token"] == "s.token"
        assert settings["namespace"] == "team-a"
        assert TransitConfig.get_database_url() == "http://db.example.com:8529"

    def test_invalid_mode_is_ignored(self) -> None:
        """Test that an unknown mode in the environment keeps the default."""
        os.environ["INDALEKO_MODE"] = "STAGING"
        TransitConfig.initialize()

        assert TransitConfig.get("mode") == "DEV"

    def test_file_config(self) -> None:
        """Test loading configuration from a file."""
        # Create a temporary config file
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            yaml.dump({
                "mode": "PROD",
                "transit": {"path": "transit-eu"},
                "vault": {"timeout": 5, "retries": 2},
                "database": {"url": "http://custom-db.example.com:8529"},
            }, f)
            config_path = f.name

        try:
            TransitConfig.initialize(config_path)

            assert TransitConfig.get("mode") == "PROD"
            assert TransitConfig.get_transit_path() == "transit-eu"
            assert TransitConfig.get_vault_settings()["timeout"] == 5
            assert TransitConfig.get_vault_settings()["retries"] == 2
            assert TransitConfig.get_database_url() == "http://custom-db.example.com:8529"

            # Sections are merged, not replaced
            assert TransitConfig.get("vault.address") == "http://127.0.0.1:8200"
            assert TransitConfig.get("database.backend") == "memory"
        finally:
            os.unlink(config_path)

    def test_environment_wins_over_file(self) -> None:
        """Test that environment variables override the configuration file."""
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            yaml.dump({"mode": "PROD"}, f)
            config_path = f.name

        try:
            os.environ["INDALEKO_MODE"] = "DEV"
            TransitConfig.initialize(config_path)

            assert TransitConfig.get("mode") == "DEV"
        finally:
            os.unlink(config_path)

    def test_missing_config_file(self) -> None:
        """Test that a missing configuration file is an error."""
        with pytest.raises(ConfigurationError):
            TransitConfig.initialize("/nonexistent/transit.yaml")

    def test_invalid_config_file(self) -> None:
        """Test that a file that is not a mapping is an error."""
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            f.write("- just\n- a list\n")
            config_path = f.name

        try:
            with pytest.raises(ConfigurationError):
                TransitConfig.initialize(config_path)
        finally:
            os.unlink(config_path)

    def test_secrets_file(self) -> None:
        """Test loading secrets on top of the configuration."""
        with tempfile.TemporaryDirectory() as tmp_dir:
            secrets_path = Path(tmp_dir) / "transit.yaml"
            secrets_path.write_text(yaml.dump({
                "vault": {"token": "s.secret"},
                "database": {"password": "hunter2"},
            }))

            TransitConfig.load_from_secrets_file(str(secrets_path))

            assert TransitConfig.get_vault_settings()["token"] == "s.secret"
            assert TransitConfig.get_database_credentials()["password"] == "hunter2"
            assert TransitConfig.get_database_credentials()["username"] == "root"

    def test_missing_secrets_file_is_ignored(self) -> None:
        """Test that a missing secrets file leaves the configuration alone."""
        TransitConfig.load_from_secrets_file("/nonexistent/secrets.yaml")

        assert TransitConfig.get("vault.token") == ""
