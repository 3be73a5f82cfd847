"""
Environment-specific configurations
"""

import os
from typing import Dict, Type

from config.app_config import AppConfig
from .development import DevelopmentConfig
from .production import ProductionConfig

ENVIRONMENT_CONFIGS: Dict[str, Type[AppConfig]] = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
}


def get_environment_config() -> AppConfig:
    """
    Load the configuration class selected by APP_ENV.

    Unknown environments (e.g. 'test', 'staging') get the base AppConfig.
    """
    env = os.getenv("APP_ENV", "development").lower()
    return ENVIRONMENT_CONFIGS.get(env, AppConfig).load()
