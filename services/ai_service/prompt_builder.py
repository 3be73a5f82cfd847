"""
Chat-completion prompt construction for the remote response strategy.
"""

from typing import Callable, Dict, List, Optional

import tiktoken

from config.app_config import get_config
from services.ai_service.models import Sentiment
from services.chat_service.models import ConversationContext, UserPreferences, UserProfile
from utils.logging_config import get_logger


DEFAULT_PERSONA = (
    "You are SentiAI, an empathetic, non-judgmental chat companion. "
    "Listen carefully, reflect the user's feelings back in plain language and ask gentle, open questions. "
    "Keep replies short and warm, and never sound clinical or robotic."
)

SAFETY_INSTRUCTIONS = (
    "Safety rules: you are not a therapist and must not diagnose or prescribe. "
    "If the user mentions self-harm, suicide or being in danger, encourage them to contact the "
    "988 Suicide & Crisis Lifeline (call or text 988) or text HOME to 741741, and stay supportive."
)

GENDER_TONE = {
    "male": "Use a direct, steady and supportive tone.",
    "female": "Use a warm, validating and supportive tone.",
    "non-binary": "Use inclusive, gender-neutral language and a warm tone.",
    "prefer-not-to-say": "Use gender-neutral language.",
}

LANGUAGE_NAMES = {
    "en": "English", "es": "Spanish", "fr": "French", "de": "German", "it": "Italian",
    "pt": "Portuguese", "nl": "Dutch", "ru": "Russian", "zh": "Chinese", "ja": "Japanese",
    "ko": "Korean", "ar": "Arabic", "hi": "Hindi", "tr": "Turkish", "pl": "Polish",
}

TokenCounter = Callable[[str], int]


def language_name(code: str) -> str:
    return LANGUAGE_NAMES.get(code, code)


def tiktoken_counter(model_name: str) -> TokenCounter:
    """Token counter for ``model_name``, cl100k_base for models tiktoken does not know"""
    try:
        encoding = tiktoken.encoding_for_model(model_name)
    except KeyError:
        encoding = tiktoken.get_encoding("cl100k_base")
    return lambda text: len(encoding.encode(text))


class PromptBuilder:
    """
    Builds the system prompt and the trimmed, role-tagged history for a reply.
    """

    def __init__(
        self,
        history_turns: Optional[int] = None,
        max_token_limit: Optional[int] = None,
        max_similar: Optional[int] = None,
        token_counter: Optional[TokenCounter] = None,
        persona_provider: Optional[Callable[[], Optional[str]]] = None,
        model_name: Optional[str] = None
    ):
        """
        Args:
            history_turns: Number of most recent messages included as history
            max_token_limit: Token budget for the history
            max_similar: Maximum number of similar past messages in the system prompt
            token_counter: Function counting tokens in a string (tiktoken by default)
            persona_provider: Returns a managed persona prompt, or None for the built-in one
            model_name: Model whose tokenizer counts history tokens

        Omitted settings come from the global configuration.
        """
        self.logger = get_logger(__name__)
        if None in (history_turns, max_token_limit, max_similar) or (token_counter is None and model_name is None):
            config = get_config()
            history_turns = history_turns or config.memory.history_turns
            max_token_limit = max_token_limit or config.memory.max_token_limit
            max_similar = config.vectorstore.max_similar_in_prompt if max_similar is None else max_similar
            model_name = model_name or config.memory.model_name
        self.history_turns = history_turns
        self.max_token_limit = max_token_limit
        self.max_similar = max_similar
        self._model_name = model_name
        self._token_counter = token_counter
        self.persona_provider = persona_provider

    @property
    def token_counter(self) -> TokenCounter:
        if self._token_counter is None:
            self._token_counter = tiktoken_counter(self._model_name)
        return self._token_counter

    def persona(self) -> str:
        if self.persona_provider is not None:
            try:
                managed = self.persona_provider()
            except Exception as e:
                self.logger.warning(f"Managed persona prompt unavailable: {e}")
                managed = None
            if managed:
                return managed
        return DEFAULT_PERSONA

    def profile_block(self, profile: Optional[UserProfile]) -> str:
        if profile is None or profile.is_empty:
            return ""
        parts = []
        if profile.name:
            parts.append(f"The user's name is {profile.name}; use it sparingly.")
        if profile.age_band:
            parts.append(f"The user is in the {profile.age_band} age group; keep examples relevant to that stage of life.")
        if profile.gender and profile.gender in GENDER_TONE:
            parts.append(GENDER_TONE[profile.gender])
        return " ".join(parts)

    def build_system_prompt(
        self,
        sentiment: Sentiment,
        context: ConversationContext,
        preferences: Optional[UserPreferences] = None
    ) -> str:
        parts = [self.persona(), SAFETY_INSTRUCTIONS]

        profile = self.profile_block(context.profile)
        if profile:
            parts.append(profile)

        parts.append(f"The user's current detected sentiment is: {sentiment.value}.")

        for similar in context.similar_messages[:self.max_similar]:
            parts.append(f"Previous relevant context: {similar.content}")

        if preferences and preferences.preferred_language != "en":
            parts.append(f"Respond in {language_name(preferences.preferred_language)}.")

        return "\n".join(parts)

    def trim_history(self, history: List[Dict[str, str]]) -> List[Dict[str, str]]:
        """Drop the oldest entries until the history fits the token budget; the newest one is always kept"""
        trimmed = list(history)
        total = sum(self.token_counter(item["content"]) for item in trimmed)
        while len(trimmed) > 1 and total > self.max_token_limit:
            dropped = trimmed.pop(0)
            total -= self.token_counter(dropped["content"])
        return trimmed

    def build_messages(
        self,
        message: str,
        sentiment: Sentiment,
        context: ConversationContext,
        preferences: Optional[UserPreferences] = None
    ) -> List[Dict[str, str]]:
        """
        Args:
            message: The user's current message (not yet part of ``context.messages``)
            sentiment: Its detected sentiment
            context: Earlier messages, similar past messages and profile
            preferences: User preferences (target language)

        Returns:
            List of chat-completion messages: system prompt, recent history, current message
        """
        recent = context.messages[-(self.history_turns - 1):] if self.history_turns > 1 else []
        history = [{"role": item.role, "content": item.content} for item in recent]
        history.append({"role": "user", "content": message})

        return [
            {"role": "system", "content": self.build_system_prompt(sentiment, context, preferences)},
            *self.trim_history(history),
        ]
