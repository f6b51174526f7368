"""
Test environment-specific configurations
"""

import pytest
from config.environments import get_environment_config
from config.environments.development import get_development_config
from config.environments.production import get_production_config


class TestEnvironmentConfigs:
    """Test environment-specific configuration loading"""

    def test_development_config(self):
        """Test development configuration"""
        config = get_development_config()

        assert config.environment == "development"
        assert config.debug == True
        assert config.logging.level == "DEBUG"
        assert config.logging.enable_file_logging == True
        assert "DEV" in config.ui.app_title
        assert config.storage.db_path == "data/dev_assistant_store.db"

    def test_production_config(self):
        """Test production configuration"""
        config = get_production_config()

        assert config.environment == "production"
        assert config.debug == False
        assert config.logging.level == "INFO"
        assert "DEV" not in config.ui.app_title
        assert config.cache.recommendations_ttl == 24 * 60 * 60

    def test_environment_selection_development(self, monkeypatch):
        """Test environment selection for development"""
        monkeypatch.setenv("APP_ENV", "development")
        config = get_environment_config()

        assert config.environment == "development"
        assert config.debug == True

    def test_environment_selection_production(self, monkeypatch):
        """Test environment selection for production"""
        monkeypatch.setenv("APP_ENV", "production")
        config = get_environment_config()

        assert config.environment == "production"
        assert config.debug == False

    def test_default_environment(self, monkeypatch):
        """Test default environment when APP_ENV is not set"""
        monkeypatch.delenv("APP_ENV", raising=False)
        config = get_environment_config()

        # Should default to development
        assert config.environment == "development"

    def test_unknown_environment_uses_base_config(self, monkeypatch):
        monkeypatch.setenv("APP_ENV", "staging")
        config = get_environment_config()

        assert config.environment == "staging"
        assert "DEV" not in config.ui.app_title

    def test_api_settings_come_from_environment(self, monkeypatch):
        monkeypatch.setenv("APP_ENV", "production")
        monkeypatch.setenv("COMPETITION_API_BASE_URL", "https://prod.example/api")

        assert get_environment_config().api.base_url == "https://prod.example/api"

    def test_config_validation(self, tmp_path):
        """Test that all environment configs pass validation"""
        for config in (get_development_config(), get_production_config()):
            config.storage.db_path = str(tmp_path / "store.db")
            config.logging.log_file = str(tmp_path / "logs" / "app.log")

            assert config.validate() == []
