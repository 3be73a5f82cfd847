"""
OpenAI client adapter for the application.
Implements the remote language-model collaborator: classification, chat
completion, language detection, translation, speech synthesis, titles and
embeddings. Every call goes through the shared retry/circuit-breaker policy and
failures surface as ``RemoteModelError``.
"""

from typing import Any, Dict, List, Optional

import openai

from config.app_config import AppConfig, get_config
from infrastructure.resilience.retry_service import (
    CircuitBreakerError,
    RetryService,
    get_retry_service,
)
from services.exceptions import (
    ConfigurationError,
    InvalidModelResponseError,
    RemoteModelError,
)
from utils.logging_config import get_logger, log_model_usage

SENTIMENT_LABELS = (
    "positive, negative, neutral, anxious, depressed, hopeful, overwhelmed, "
    "calm, urgent, frustrated, suppressed, confused, fearful"
)

CLASSIFY_PROMPT = (
    "Analyze the sentiment in the following text and respond with ONLY ONE of these categories:\n"
    f"{SENTIMENT_LABELS}.\n\n"
    "Pay special attention to signs of suppressed emotions like saying \"I'm fine\" while "
    "expressing negative feelings.\n"
    "If there are signs of crisis or self-harm, classify as \"urgent\".\n"
    "Respond with only the sentiment label and nothing else."
)

DETECT_LANGUAGE_PROMPT = (
    "You are a language detection tool. Respond with only the ISO 639-1 language code "
    "(2 letters, e.g., 'en', 'es', 'fr') for the given text. Nothing else."
)

TRANSLATE_PROMPT = (
    "You are a translation tool. Translate the following text into {language}. "
    "Provide only the translated text, nothing else."
)

TITLE_PROMPT = (
    "Create a short, descriptive title (maximum {max_length} characters) for a conversation "
    "that starts with the following message. Return only the title text."
)


class OpenAIClient:
    """
    Adapter for OpenAI chat, audio and embedding endpoints.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        client: Optional[Any] = None,
        retry_service: Optional[RetryService] = None
    ):
        """
        Args:
            config: Application configuration (global config by default)
            client: Pre-built ``openai.AsyncOpenAI`` compatible client
            retry_service: Retry/circuit breaker policy (global service by default)
        """
        self.logger = get_logger(__name__)
        self.config = config or get_config()
        self.retry_service = retry_service or get_retry_service()
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            api_key = self.config.api.openai_api_key
            if not api_key:
                raise ConfigurationError("OpenAI API key not configured")
            # Retries are handled by RetryService
            self._client = openai.AsyncOpenAI(
                api_key=api_key,
                max_retries=0,
                timeout=self.config.llm.request_timeout
            )
            self.logger.info(f"OpenAI client initialized: {self.config.llm.model_name}")
        return self._client

    async def _call(self, operation: str, func) -> Any:
        """Run ``func`` under the retry policy, mapping every failure to RemoteModelError"""
        try:
            return await self.retry_service.retry_with_circuit_breaker(func)
        except CircuitBreakerError as e:
            raise RemoteModelError(str(e), operation=operation, cause=e) from e
        except openai.OpenAIError as e:
            raise RemoteModelError(
                f"{operation} failed: {e.__class__.__name__}", operation=operation, cause=e
            ) from e

    async def _chat(
        self,
        operation: str,
        messages: List[Dict[str, str]],
        temperature: float,
        max_tokens: int
    ) -> str:
        async def request():
            return await self.client.chat.completions.create(
                model=self.config.llm.model_name,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )

        response = await self._call(operation, request)

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError) as e:
            raise InvalidModelResponseError(f"{operation}: malformed response", operation=operation, cause=e)
        if not content or not content.strip():
            raise InvalidModelResponseError(f"{operation}: empty response", operation=operation)

        usage = getattr(response, "usage", None)
        if usage is not None and getattr(usage, "total_tokens", None) is not None:
            log_model_usage(self.logger, self.config.llm.model_name, usage.total_tokens, operation=operation)

        return content.strip()

    async def classify_sentiment(self, text: str) -> str:
        """Return the raw label the model picked for ``text``"""
        label = await self._chat(
            "classify_sentiment",
            [
                {"role": "system", "content": CLASSIFY_PROMPT},
                {"role": "user", "content": text},
            ],
            temperature=self.config.llm.classification_temperature,
            max_tokens=self.config.llm.classification_max_tokens,
        )
        return label.lower()

    async def complete_chat(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ) -> str:
        """
        Args:
            messages: Role-tagged chat messages, system prompt first
            temperature: Sampling temperature (config default when omitted)
            max_tokens: Completion budget (config default when omitted)

        Returns:
            str: The assistant reply
        """
        return await self._chat(
            "complete_chat",
            messages,
            temperature=self.config.llm.temperature if temperature is None else temperature,
            max_tokens=max_tokens or self.config.llm.max_tokens,
        )

    async def detect_language(self, text: str) -> str:
        """Return the ISO 639-1 code of ``text``"""
        code = await self._chat(
            "detect_language",
            [
                {"role": "system", "content": DETECT_LANGUAGE_PROMPT},
                {"role": "user", "content": text},
            ],
            temperature=self.config.llm.classification_temperature,
            max_tokens=10,
        )
        code = code.strip().strip(".\"'`").lower()[:2]
        if len(code) != 2 or not code.isalpha():
            raise InvalidModelResponseError(f"detect_language: not a language code: {code!r}")
        return code

    async def translate(self, text: str, target_language: str) -> str:
        return await self._chat(
            "translate",
            [
                {"role": "system", "content": TRANSLATE_PROMPT.format(language=target_language)},
                {"role": "user", "content": text},
            ],
            temperature=self.config.llm.translation_temperature,
            max_tokens=self.config.llm.max_tokens,
        )

    async def generate_title(self, first_message: str) -> str:
        max_length = self.config.llm.title_max_length
        title = await self._chat(
            "generate_title",
            [
                {"role": "system", "content": TITLE_PROMPT.format(max_length=max_length)},
                {"role": "user", "content": first_message},
            ],
            temperature=self.config.llm.title_temperature,
            max_tokens=20,
        )
        return title.strip("\"'")[:max_length]

    async def synthesize_speech(self, text: str, voice: str = "alloy") -> bytes:
        """Return MP3 audio bytes for ``text``"""
        async def request():
            return await self.client.audio.speech.create(
                model=self.config.llm.tts_model,
                voice=voice,
                input=text,
            )

        response = await self._call("synthesize_speech", request)
        return response.content

    async def transcribe(self, audio: bytes, filename: str = "speech.wav") -> str:
        """Speech-to-text for recorded voice input"""
        async def request():
            return await self.client.audio.transcriptions.create(
                model=self.config.llm.transcription_model,
                file=(filename, audio),
            )

        response = await self._call("transcribe", request)
        return response.text.strip()

    async def embed(self, texts: List[str]) -> List[List[float]]:
        async def request():
            return await self.client.embeddings.create(
                model=self.config.llm.embedding_model,
                input=texts,
            )

        response = await self._call("embed", request)
        return [item.embedding for item in sorted(response.data, key=lambda item: item.index)]


def create_openai_client(config: Optional[AppConfig] = None) -> Optional[OpenAIClient]:
    """
    Build a client for one Streamlit session, or None when no API key is configured.

    The underlying AsyncOpenAI client binds to the event loop it first runs on,
    so each session owns its own instance.
    """
    config = config or get_config()
    if not config.api.has_openai:
        return None
    return OpenAIClient(config=config)
