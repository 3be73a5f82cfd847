"""
Development environment configuration overrides
"""

from dataclasses import dataclass
from config.app_config import AppConfig


@dataclass
class DevelopmentConfig(AppConfig):
    """Local development: verbose logs, a separate database, quick failure on flaky APIs"""

    def __post_init__(self):
        self.environment = "development"
        self.debug = True

        self.logging.level = "DEBUG"
        self.logging.enable_file_logging = True
        self.logging.log_file = "logs/dev-sentiai.log"

        self.ui.app_title = "🧪 SentiAI Chat (DEV)"
        self.storage.db_path = "data/dev_sentiai_chat.db"

        # Fail fast while iterating on prompts
        self.resilience.max_retries = 1
        self.resilience.failure_threshold = 3


def get_development_config() -> DevelopmentConfig:
    return DevelopmentConfig.load()
