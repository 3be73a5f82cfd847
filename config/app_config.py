"""
Unified Configuration System for SentiAI Chat

This module provides a centralized configuration system that consolidates all application settings,
supports environment-based overrides, and provides type-safe configuration access.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List
import streamlit as st
import os
from pathlib import Path


@dataclass
class APIConfig:
    """API configuration settings"""
    openai_api_key: str = ""
    langfuse_secret_key: str = ""
    langfuse_public_key: str = ""
    langfuse_host: str = "https://cloud.langfuse.com"

    @classmethod
    def from_env(cls) -> 'APIConfig':
        """Load API config from environment variables"""
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            langfuse_secret_key=os.getenv("LANGFUSE_SECRET_KEY", ""),
            langfuse_public_key=os.getenv("LANGFUSE_PUBLIC_KEY", ""),
            langfuse_host=os.getenv("LANGFUSE_HOST", "https://cloud.langfuse.com")
        )

    @classmethod
    def from_secrets(cls) -> 'APIConfig':
        """Load API config from Streamlit secrets"""
        # In test environment, prefer environment variables
        if os.getenv("PYTEST_CURRENT_TEST") is not None:
            return cls.from_env()

        try:
            return cls(
                openai_api_key=st.secrets.get("OPENAI_API_KEY", ""),
                langfuse_secret_key=st.secrets.get("LANGFUSE_SECRET_KEY", ""),
                langfuse_public_key=st.secrets.get("LANGFUSE_PUBLIC_KEY", ""),
                langfuse_host=st.secrets.get("LANGFUSE_HOST", "https://cloud.langfuse.com")
            )
        except Exception:
            # Fallback to environment variables if secrets not available
            return cls.from_env()

    @property
    def has_openai(self) -> bool:
        return bool(self.openai_api_key)

    @property
    def has_langfuse(self) -> bool:
        return bool(self.langfuse_secret_key and self.langfuse_public_key)


@dataclass
class LLMConfig:
    """Language model configuration"""
    model_name: str = "gpt-4o-mini"
    temperature: float = 0.7
    max_tokens: int = 1000
    classification_temperature: float = 0.1
    classification_max_tokens: int = 20
    title_temperature: float = 0.7
    title_max_length: int = 50
    translation_temperature: float = 0.3
    tts_model: str = "tts-1"
    transcription_model: str = "whisper-1"
    embedding_model: str = "text-embedding-3-small"
    request_timeout: float = 30.0
    persona_prompt_name: str = "sentiai-persona"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary of completion parameters"""
        return {
            "model": self.model_name,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }


@dataclass
class MemoryConfig:
    """Conversation history window configuration"""
    history_turns: int = 10
    max_token_limit: int = 3000
    model_name: str = "gpt-4o-mini"  # For token counting


@dataclass
class VectorStoreConfig:
    """Similarity index configuration"""
    embedder: str = "histogram"  # "histogram" or "openai"
    dimensions: int = 256
    retrieval_k: int = 5
    suggestion_k: int = 3
    max_similar_in_prompt: int = 5


@dataclass
class StorageConfig:
    """Persistence configuration"""
    db_path: str = "data/sentiai_chat.db"
    enable_persistence: bool = True


@dataclass
class ResilienceConfig:
    """Retry and circuit breaker configuration for remote calls"""
    max_retries: int = 2
    base_delay: float = 1.0
    max_delay: float = 20.0
    failure_threshold: int = 5
    recovery_timeout: int = 60


@dataclass
class MoodConfig:
    """Mood tracking configuration"""
    trend_window: int = 7
    trend_threshold: float = 0.1


@dataclass
class CrisisConfig:
    """Crisis resources shown to the user"""
    notification_message: str = (
        "If you're in crisis, please contact 988 Suicide & Crisis Lifeline "
        "(call or text 988) or text HOME to 741741 for the Crisis Text Line."
    )


@dataclass
class UIConfig:
    """User interface configuration"""
    app_title: str = "SentiAI Chat"
    page_icon: str = "💬"
    default_conversation_title: str = "New conversation"
    input_placeholder: str = "Share what's on your mind..."
    suggestion_limit: int = 5
    greetings: List[str] = field(default_factory=lambda: [
        "Hi there! I'm here to chat and provide a supportive space. How are you feeling today?",
        "Hello! I'm your empathetic chat companion. I'm here to listen and support you. How can I help today?",
        "Welcome! I'm here to provide a judgment-free space to talk. How are you doing right now?",
    ])
    disclaimer: str = (
        "SentiAI Chat is a supportive conversation companion, not a substitute for "
        "professional care. If you are in danger, contact your local emergency services."
    )


@dataclass
class LoggingConfig:
    """Logging and monitoring configuration"""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    enable_file_logging: bool = True
    log_file: str = "logs/app.log"
    enable_langfuse_tracing: bool = True


@dataclass
class AppConfig:
    """Main application configuration"""
    api: APIConfig = field(default_factory=APIConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    vectorstore: VectorStoreConfig = field(default_factory=VectorStoreConfig)
    memory: MemoryConfig = field(default_factory=MemoryConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    resilience: ResilienceConfig = field(default_factory=ResilienceConfig)
    mood: MoodConfig = field(default_factory=MoodConfig)
    crisis: CrisisConfig = field(default_factory=CrisisConfig)
    ui: UIConfig = field(default_factory=UIConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Environment settings
    environment: str = field(default_factory=lambda: os.getenv("APP_ENV", "development"))
    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")

    @classmethod
    def load(cls) -> 'AppConfig':
        """Load configuration with environment overrides"""
        config = cls()

        # Load API configuration from secrets/environment
        config.api = APIConfig.from_secrets()

        if os.getenv("SENTIAI_DB_PATH"):
            config.storage.db_path = os.getenv("SENTIAI_DB_PATH")
        if os.getenv("SENTIAI_EMBEDDER"):
            config.vectorstore.embedder = os.getenv("SENTIAI_EMBEDDER")

        # Apply environment-specific overrides
        if config.environment == "production":
            config.debug = False
            config.logging.level = "WARNING"
        elif config.environment == "development":
            config.debug = True
            config.logging.level = "DEBUG"

        return config

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors"""
        errors = []

        if self.vectorstore.embedder not in ("histogram", "openai"):
            errors.append(f"Unknown embedder '{self.vectorstore.embedder}'")

        if self.vectorstore.embedder == "openai" and not self.api.openai_api_key:
            errors.append("OpenAI embedder requires an OpenAI API key")

        if not self.ui.greetings:
            errors.append("At least one greeting is required")

        if self.memory.history_turns < 1:
            errors.append("history_turns must be positive")

        if self.storage.enable_persistence:
            db_dir = Path(self.storage.db_path).parent
            if not db_dir.exists():
                db_dir.mkdir(parents=True, exist_ok=True)

        if self.logging.enable_file_logging:
            log_dir = Path(self.logging.log_file).parent
            if not log_dir.exists():
                log_dir.mkdir(parents=True, exist_ok=True)

        return errors

    def get_langfuse_config(self) -> Dict[str, str]:
        """Get Langfuse client keyword arguments"""
        return {
            "secret_key": self.api.langfuse_secret_key,
            "public_key": self.api.langfuse_public_key,
            "host": self.api.langfuse_host
        }


# Global configuration instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance for the current APP_ENV"""
    global _config
    if _config is None:
        from config.environments import get_environment_config

        _config = get_environment_config()

        # Validate configuration
        errors = _config.validate()
        if errors:
            import warnings
            for error in errors:
                warnings.warn(f"Configuration error: {error}")

    return _config


def reload_config() -> AppConfig:
    """Reload configuration (useful for testing)"""
    global _config
    _config = None
    return get_config()
