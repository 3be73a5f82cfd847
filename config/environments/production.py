"""
Production environment configuration overrides
"""

from dataclasses import dataclass
from config.app_config import AppConfig


@dataclass
class ProductionConfig(AppConfig):
    """Deployed app: warnings only, longer circuit recovery"""

    def __post_init__(self):
        self.environment = "production"
        self.debug = False

        self.logging.level = "WARNING"
        self.logging.enable_file_logging = True
        self.logging.log_file = "logs/sentiai.log"

        self.ui.app_title = "💬 SentiAI Chat"

        self.resilience.max_retries = 3
        self.resilience.failure_threshold = 5
        self.resilience.recovery_timeout = 120


def get_production_config() -> ProductionConfig:
    return ProductionConfig.load()
