"""
Langfuse client adapter for the application.
Handles prompt management so the assistant persona can be edited without a deploy.
"""

from typing import Dict, Optional

from langfuse import Langfuse

from config.app_config import AppConfig, get_config
from utils.logging_config import get_logger


class LangfuseClient:
    """
    Adapter for Langfuse prompt management.
    Every method degrades to ``None`` when Langfuse is not configured or unreachable.
    """

    def __init__(self, config: Optional[AppConfig] = None):
        self.logger = get_logger(__name__)
        self.config = config or get_config()
        self._client: Optional[Langfuse] = None
        self._prompt_cache: Dict[str, str] = {}

    @property
    def enabled(self) -> bool:
        return self.config.api.has_langfuse and self.config.logging.enable_langfuse_tracing

    def get_client(self) -> Optional[Langfuse]:
        """
        Get configured Langfuse client

        Returns:
            Optional[Langfuse]: Configured client or None if not available
        """
        if not self.enabled:
            return None

        if self._client is None:
            try:
                self._client = Langfuse(**self.config.get_langfuse_config())
                self.logger.info("Langfuse client initialized successfully")
            except Exception as e:
                self.logger.warning(f"Failed to initialize Langfuse client: {e}")
                return None

        return self._client

    def get_prompt(self, prompt_name: str, version: Optional[int] = None) -> Optional[str]:
        """
        Get prompt text from Langfuse prompt management

        Args:
            prompt_name: Name of the prompt
            version: Specific version (optional)

        Returns:
            Optional[str]: Prompt content or None if not available
        """
        cache_key = f"{prompt_name}:{version or 'latest'}"
        if cache_key in self._prompt_cache:
            return self._prompt_cache[cache_key]

        client = self.get_client()
        if client is None:
            return None

        try:
            if version:
                prompt = client.get_prompt(prompt_name, version=version)
            else:
                prompt = client.get_prompt(prompt_name)
        except Exception as e:
            self.logger.warning(f"Failed to get prompt '{prompt_name}': {e}")
            return None

        text = prompt.prompt if isinstance(prompt.prompt, str) else None
        if text:
            self._prompt_cache[cache_key] = text
        return text


# Global client instance
_langfuse_client: Optional[LangfuseClient] = None


def get_langfuse_client() -> LangfuseClient:
    """Get the global Langfuse client instance"""
    global _langfuse_client
    if _langfuse_client is None:
        _langfuse_client = LangfuseClient()
    return _langfuse_client
