"""
Test environment-specific configurations
"""

from config.app_config import reload_config
from config.environments import get_environment_config
from config.environments.development import DevelopmentConfig, get_development_config
from config.environments.production import ProductionConfig, get_production_config


class TestEnvironmentConfigs:
    """Test environment-specific configuration loading"""

    def test_development_config(self):
        config = get_development_config()

        assert config.environment == "development"
        assert config.debug is True
        assert config.logging.level == "DEBUG"
        assert "DEV" in config.ui.app_title
        assert config.storage.db_path == "data/dev_sentiai_chat.db"
        assert config.resilience.max_retries == 1

    def test_production_config(self):
        config = get_production_config()

        assert config.environment == "production"
        assert config.debug is False
        assert config.logging.level == "WARNING"
        assert "DEV" not in config.ui.app_title
        assert config.resilience.recovery_timeout == 120

    def test_environment_selection(self, monkeypatch):
        monkeypatch.setenv("APP_ENV", "development")
        assert isinstance(get_environment_config(), DevelopmentConfig)

        monkeypatch.setenv("APP_ENV", "Production")
        assert isinstance(get_environment_config(), ProductionConfig)

    def test_unknown_environment_uses_base_config(self, monkeypatch):
        monkeypatch.setenv("APP_ENV", "staging")
        config = get_environment_config()

        assert not isinstance(config, (DevelopmentConfig, ProductionConfig))
        assert config.environment == "staging"

    def test_global_config_follows_environment(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("APP_ENV", "production")
        try:
            assert isinstance(reload_config(), ProductionConfig)
        finally:
            monkeypatch.setenv("APP_ENV", "test")
            reload_config()
