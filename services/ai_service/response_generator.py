"""
Assistant reply generation.

``ResponseGenerator`` returns the crisis message for urgent input, otherwise
tries the remote strategy when one is configured and falls back to templates.
It never raises.
"""

import random
from abc import ABC, abstractmethod
from typing import Optional

from services.ai_service.fallback_service import (
    CRISIS_MESSAGE,
    SAFE_FALLBACK_MESSAGE,
    EmpatheticTemplateSystem,
)
from services.ai_service.models import SentimentResult
from services.ai_service.prompt_builder import PromptBuilder
from services.chat_service.models import ConversationContext, UserPreferences
from utils.logging_config import get_error_tracker, get_logger, log_execution_time


class ResponseStrategy(ABC):
    """Interface for reply strategies"""

    name = "strategy"

    @abstractmethod
    async def respond(
        self,
        message: str,
        sentiment: SentimentResult,
        context: ConversationContext,
        preferences: UserPreferences
    ) -> str:
        pass


class TemplateResponseStrategy(ResponseStrategy):
    """Random empathetic template for the sentiment, with topic and suppression rules"""

    name = "local"

    def __init__(self, rng: Optional[random.Random] = None):
        self.templates = EmpatheticTemplateSystem(rng)

    async def respond(self, message, sentiment, context, preferences) -> str:
        return self.templates.get_response(message, sentiment.sentiment, context.history_text)


class RemoteResponseStrategy(ResponseStrategy):
    """Chat completion over the prompt built from persona, profile, sentiment and memory"""

    name = "remote"

    def __init__(self, remote_model, prompt_builder: Optional[PromptBuilder] = None, temperature: float = 0.7):
        self.logger = get_logger(__name__)
        self.remote_model = remote_model
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.temperature = temperature

    async def respond(self, message, sentiment, context, preferences) -> str:
        messages = self.prompt_builder.build_messages(message, sentiment.sentiment, context, preferences)
        reply = await self.remote_model.complete_chat(messages, temperature=self.temperature)
        return await self.ensure_language(reply, preferences)

    async def ensure_language(self, reply: str, preferences: Optional[UserPreferences]) -> str:
        """Translate ``reply`` into the preferred language when it came back in another one"""
        target = preferences.preferred_language if preferences else "en"
        if target == "en":
            return reply

        try:
            detected = await self.remote_model.detect_language(reply)
        except Exception as e:
            self.logger.warning(f"Could not detect reply language, keeping reply as is: {e}")
            return reply
        if detected == target:
            return reply

        try:
            return await self.remote_model.translate(reply, target)
        except Exception as e:
            get_error_tracker().track_error(e, "reply_translation")
            return reply


class ResponseGenerator:
    """
    Remote-first reply generation with template fallback. Never raises.
    """

    def __init__(
        self,
        local: Optional[TemplateResponseStrategy] = None,
        remote: Optional[RemoteResponseStrategy] = None
    ):
        self.logger = get_logger(__name__)
        self.local = local or TemplateResponseStrategy()
        self.remote = remote

    async def generate(
        self,
        message: str,
        sentiment: SentimentResult,
        context: Optional[ConversationContext] = None,
        preferences: Optional[UserPreferences] = None
    ) -> str:
        """
        Args:
            message: The user's message
            sentiment: Its classification
            context: Earlier messages, similar past messages and profile
            preferences: User preferences

        Returns:
            str: Reply text
        """
        if sentiment.is_crisis:
            return CRISIS_MESSAGE

        context = context or ConversationContext()
        preferences = preferences or UserPreferences()

        if self.remote is not None:
            try:
                with log_execution_time(self.logger, "remote_reply", sentiment=sentiment.sentiment.value):
                    return await self.remote.respond(message, sentiment, context, preferences)
            except Exception as e:
                get_error_tracker().track_error(e, "remote_reply")

        try:
            return await self.local.respond(message, sentiment, context, preferences)
        except Exception as e:
            get_error_tracker().track_error(e, "template_reply")
            return SAFE_FALLBACK_MESSAGE
