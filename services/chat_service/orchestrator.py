"""
Conversation orchestrator - runs one chat turn end to end.

classify -> retrieve -> generate -> commit, then background work (indexing,
title derivation) scheduled as asyncio tasks that update conversations by id.
Nothing raises past this class.
"""

import asyncio
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

from pydantic import ValidationError

from config.app_config import AppConfig, get_config
from services.ai_service.fallback_service import SAFE_FALLBACK_MESSAGE
from services.ai_service.models import MoodRecord, MoodTrend, SentimentResult, Suggestion
from services.ai_service.mood_aggregator import MoodAggregator
from services.ai_service.response_generator import (
    RemoteResponseStrategy,
    ResponseGenerator,
    TemplateResponseStrategy,
)
from services.ai_service.prompt_builder import PromptBuilder
from services.ai_service.sentiment_classifier import DEFAULT_RESULT, RemoteSentimentStrategy, SentimentClassifier
from services.ai_service.suggestion_engine import SuggestionEngine
from services.chat_service.conversation_manager import ConversationManager
from services.chat_service.conversation_repository import from_json, to_json
from services.chat_service.models import (
    Conversation,
    ConversationContext,
    Message,
    Sender,
    UserPreferences,
    UserProfile,
    now,
)
from services.memory_service.embeddings import create_embedder
from services.memory_service.similarity_index import SimilarityIndex
from services.exceptions import PersistenceError
from utils.logging_config import get_error_tracker, get_logger, log_user_interaction

CrisisNotifier = Callable[[str], None]


class TurnState(str, Enum):
    IDLE = "idle"
    CLASSIFYING = "classifying"
    RETRIEVING = "retrieving"
    GENERATING = "generating"
    COMMITTING = "committing"


@dataclass
class TurnResult:
    """Outcome of one user turn"""
    conversation_id: str
    user_message: Message
    bot_message: Message
    sentiment: SentimentResult
    crisis: bool = False
    committed: bool = True


@dataclass
class ViewState:
    """Read-only snapshot handed to the presentation layer"""
    conversations: List[Conversation]
    active_conversation: Optional[Conversation]
    is_composing: bool
    suggestions: List[Suggestion] = field(default_factory=list)
    mood_records: List[MoodRecord] = field(default_factory=list)
    mood_trend: MoodTrend = MoodTrend.STABLE
    preferences: UserPreferences = field(default_factory=UserPreferences)
    profile: UserProfile = field(default_factory=UserProfile)


def derive_local_title(first_message: str, max_length: int = 50) -> str:
    """Short messages become the title; longer ones are cut to their first five words"""
    text = " ".join(first_message.split())
    if len(text) < 30:
        return text
    return f"{' '.join(text.split(' ')[:5])}..."[:max_length]


class ConversationOrchestrator:
    """
    Coordinates classifier, similarity index, generator and conversation state.

    Args:
        manager: Conversation state store
        classifier: Sentiment classifier
        generator: Reply generator
        similarity_index: Index of past user messages
        suggestion_engine: Follow-up suggestions
        mood_aggregator: Mood records and trend
        remote_model: Remote language model, used for titles, language detection,
            translation and speech; None runs fully locally
        crisis_notifier: Called once with ``crisis_message`` for each urgent turn
        crisis_message: Resource message passed to the notifier
        preferences: Initial user preferences
        profile: Initial user profile
        retrieval_k: Number of similar messages retrieved per turn
    """

    def __init__(
        self,
        manager: ConversationManager,
        classifier: SentimentClassifier,
        generator: ResponseGenerator,
        similarity_index: SimilarityIndex,
        suggestion_engine: SuggestionEngine,
        mood_aggregator: MoodAggregator,
        remote_model=None,
        crisis_notifier: Optional[CrisisNotifier] = None,
        crisis_message: str = "",
        preferences: Optional[UserPreferences] = None,
        profile: Optional[UserProfile] = None,
        retrieval_k: int = 5
    ):
        self.logger = get_logger(__name__)
        self.manager = manager
        self.classifier = classifier
        self.generator = generator
        self.similarity_index = similarity_index
        self.suggestion_engine = suggestion_engine
        self.mood_aggregator = mood_aggregator
        self.remote_model = remote_model
        self.crisis_notifier = crisis_notifier
        self.crisis_message = crisis_message
        self.preferences = preferences or UserPreferences()
        self.profile = profile or UserProfile()
        self.retrieval_k = retrieval_k

        self._state = TurnState.IDLE
        self._background_tasks: Set[asyncio.Task] = set()

    @property
    def state(self) -> TurnState:
        return self._state

    @property
    def is_composing(self) -> bool:
        return self._state is not TurnState.IDLE

    @property
    def has_background_tasks(self) -> bool:
        return bool(self._background_tasks)

    async def start(self) -> List[Conversation]:
        """Load saved conversations and index their user messages"""
        conversations = self.manager.load()
        for conversation in conversations:
            await self.similarity_index.index_conversation(conversation)
        return conversations

    # Turn pipeline

    async def send_message(self, text: str, language: Optional[str] = None) -> Optional[TurnResult]:
        """
        Run one turn for ``text`` in the active conversation.

        Args:
            text: Raw user input
            language: Language code of ``text`` when already known (e.g. from voice input)

        Returns:
            TurnResult, or None when the input was blank, a turn is already
            running, or no conversation existed (one is created and the turn deferred)
        """
        if not text or not text.strip():
            return None

        if self._state is not TurnState.IDLE:
            self.logger.warning(f"Ignoring message while turn is {self._state.value}")
            return None

        conversation = self.manager.active_conversation
        if conversation is None:
            self.manager.create_conversation()
            return None

        conversation_id = conversation.id
        log_user_interaction(self.logger, "send_message", conversation_id=conversation_id, length=len(text))
        sent_at = now()
        sentiment: Optional[SentimentResult] = None

        try:
            self._state = TurnState.CLASSIFYING
            content, detected, original_text, translated_from = await self._prepare_text(text.strip(), language)
            sentiment = await self.classifier.classify_async(content)
            if sentiment.is_crisis:
                self._notify_crisis()

            self._state = TurnState.RETRIEVING
            similar = await self._retrieve(content)

            self._state = TurnState.GENERATING
            current = self.manager.get(conversation_id) or conversation
            context = ConversationContext(messages=current.messages, similar_messages=similar, profile=self.profile)
            reply = await self._generate(content, sentiment, context)

            self._state = TurnState.COMMITTING
            user_message = Message(
                content=content,
                sender=Sender.USER,
                timestamp=sent_at,
                sentiment=sentiment.sentiment,
                language=detected,
                original_text=original_text,
                translated_from=translated_from,
            )
            bot_message = Message(content=reply, sender=Sender.BOT, language=self.preferences.preferred_language)
            return self._commit(conversation_id, user_message, bot_message, sentiment)
        except Exception as e:
            get_error_tracker().track_error(e, "send_message", conversation_id=conversation_id)
            sentiment = sentiment or DEFAULT_RESULT
            return TurnResult(
                conversation_id,
                Message(content=text.strip(), sender=Sender.USER, timestamp=sent_at, sentiment=sentiment.sentiment),
                Message(content=SAFE_FALLBACK_MESSAGE, sender=Sender.BOT),
                sentiment,
                crisis=sentiment.is_crisis,
                committed=False,
            )
        finally:
            self._state = TurnState.IDLE

    async def _prepare_text(self, text: str, language: Optional[str]):
        """
        Detect the language and translate non-English input to English for processing.

        Returns:
            (content, language, original_text, translated_from)
        """
        if self.remote_model is None or not self.preferences.auto_translate_enabled:
            return text, language, None, None

        detected = language
        if detected is None:
            try:
                detected = await self.remote_model.detect_language(text)
            except Exception as e:
                get_error_tracker().track_error(e, "detect_language")
                return text, None, None, None

        if detected == "en":
            return text, detected, None, None

        try:
            translated = await self.remote_model.translate(text, "en")
        except Exception as e:
            get_error_tracker().track_error(e, "translate_input")
            return text, detected, None, None
        return translated, detected, text, detected

    def _notify_crisis(self):
        if self.crisis_notifier is None:
            self.logger.warning("Crisis message detected but no notifier is registered")
            return
        try:
            self.crisis_notifier(self.crisis_message)
        except Exception as e:
            get_error_tracker().track_error(e, "crisis_notifier")

    async def _retrieve(self, text: str) -> List[Any]:
        try:
            return await self.similarity_index.query(text, self.retrieval_k)
        except Exception as e:
            get_error_tracker().track_error(e, "similarity_query")
            return []

    async def _generate(self, text: str, sentiment: SentimentResult, context: ConversationContext) -> str:
        try:
            return await self.generator.generate(text, sentiment, context, self.preferences)
        except Exception as e:
            get_error_tracker().track_error(e, "generate_reply")
            return SAFE_FALLBACK_MESSAGE

    def _commit(
        self,
        conversation_id: str,
        user_message: Message,
        bot_message: Message,
        sentiment: SentimentResult
    ) -> TurnResult:
        before = self.manager.get(conversation_id)
        first_user_message = before is not None and not before.user_messages

        updated = self.manager.append_messages(conversation_id, user_message, bot_message)
        if updated is None:
            self.logger.warning(f"Conversation {conversation_id} was removed before its reply was committed")
            return TurnResult(conversation_id, user_message, bot_message, sentiment,
                              crisis=sentiment.is_crisis, committed=False)

        self._schedule(self.similarity_index.add(user_message.content, conversation_id, user_message))
        if first_user_message:
            self._schedule(self._apply_title(conversation_id, user_message.original_text or user_message.content))

        return TurnResult(conversation_id, user_message, bot_message, sentiment, crisis=sentiment.is_crisis)

    # Background work

    def _schedule(self, coroutine) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coroutine)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    async def wait_for_background_tasks(self):
        """Wait until every scheduled background task has finished"""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    async def _apply_title(self, conversation_id: str, first_message: str):
        """Derive a title and apply it only if the placeholder is still in place"""
        if self.remote_model is not None:
            try:
                title = await self.remote_model.generate_title(first_message)
            except Exception as e:
                get_error_tracker().track_error(e, "generate_title")
                return
        else:
            title = derive_local_title(first_message)

        if not title:
            return

        placeholder = self.manager.default_title

        def apply(conversation: Conversation) -> Conversation:
            if conversation.title != placeholder:
                return conversation
            return conversation.touched(title=title)

        self.manager.patch(conversation_id, apply)

    # Intents

    def new_conversation(self) -> Conversation:
        log_user_interaction(self.logger, "new_conversation")
        return self.manager.create_conversation()

    def select_conversation(self, conversation_id: str) -> bool:
        log_user_interaction(self.logger, "select_conversation", conversation_id=conversation_id)
        return self.manager.select(conversation_id)

    def delete_conversation(self, conversation_id: str) -> bool:
        log_user_interaction(self.logger, "delete_conversation", conversation_id=conversation_id)
        return self.manager.delete(conversation_id)

    def update_preferences(self, partial: Dict[str, Any]) -> UserPreferences:
        """Merge ``partial`` into the preferences; invalid values leave them unchanged"""
        try:
            self.preferences = self.preferences.with_updates(partial)
        except ValidationError as e:
            get_error_tracker().track_error(e, "update_preferences")
        return self.preferences

    def update_profile(self, partial: Dict[str, Any]) -> UserProfile:
        """Merge ``partial`` into the profile; invalid values leave it unchanged"""
        try:
            self.profile = self.profile.with_updates(partial)
        except ValidationError as e:
            get_error_tracker().track_error(e, "update_profile")
        return self.profile

    async def synthesize_speech(self, text: str) -> Optional[bytes]:
        """Audio for ``text`` when speech is enabled and a remote model is configured"""
        if self.remote_model is None or not self.preferences.text_to_speech_enabled:
            return None
        try:
            return await self.remote_model.synthesize_speech(text, self.preferences.voice)
        except Exception as e:
            get_error_tracker().track_error(e, "synthesize_speech")
            return None

    async def transcribe(self, audio: bytes) -> Optional[str]:
        """Transcript of recorded voice input, or None when it cannot be produced"""
        if self.remote_model is None:
            return None
        try:
            return await self.remote_model.transcribe(audio)
        except Exception as e:
            get_error_tracker().track_error(e, "transcribe")
            return None

    def export_conversations(self) -> str:
        return to_json(self.manager.conversations)

    async def import_conversations(self, payload: str) -> Optional[int]:
        """
        Replace all conversations with an exported set.

        Returns:
            Number of imported conversations, or None when the payload is invalid
        """
        try:
            conversations = from_json(payload)
        except PersistenceError as e:
            get_error_tracker().track_error(e, "import_conversations")
            return None

        self.manager.replace_all(conversations)
        for conversation in conversations:
            await self.similarity_index.index_conversation(conversation)
        log_user_interaction(self.logger, "import_conversations", count=len(conversations))
        return len(conversations)

    async def view_state(self) -> ViewState:
        conversations = self.manager.conversations
        active = self.manager.active_conversation
        try:
            suggestions = await self.suggestion_engine.suggest(active, conversations, self.profile)
        except Exception as e:
            get_error_tracker().track_error(e, "suggestions")
            suggestions = []
        records = self.mood_aggregator.aggregate(conversations)
        return ViewState(
            conversations=conversations,
            active_conversation=active,
            is_composing=self.is_composing,
            suggestions=suggestions,
            mood_records=records,
            mood_trend=self.mood_aggregator.trend(records),
            preferences=self.preferences,
            profile=self.profile,
        )


def create_orchestrator(
    config: Optional[AppConfig] = None,
    repository=None,
    remote_model=None,
    crisis_notifier: Optional[CrisisNotifier] = None,
    persona_provider: Optional[Callable[[], Optional[str]]] = None,
    rng: Optional[random.Random] = None
) -> ConversationOrchestrator:
    """
    Wire an orchestrator from configuration.

    Remote strategies are enabled only when ``remote_model`` is given.
    """
    config = config or get_config()
    rng = rng or random.Random()

    index = SimilarityIndex(create_embedder(
        config.vectorstore.embedder, remote_model, dimensions=config.vectorstore.dimensions
    ))
    remote_sentiment = RemoteSentimentStrategy(remote_model) if remote_model is not None else None
    remote_reply = None
    if remote_model is not None:
        remote_reply = RemoteResponseStrategy(
            remote_model,
            PromptBuilder(
                history_turns=config.memory.history_turns,
                max_token_limit=config.memory.max_token_limit,
                max_similar=config.vectorstore.max_similar_in_prompt,
                persona_provider=persona_provider,
                model_name=config.memory.model_name,
            ),
            temperature=config.llm.temperature,
        )

    return ConversationOrchestrator(
        manager=ConversationManager(
            repository=repository,
            greetings=config.ui.greetings,
            default_title=config.ui.default_conversation_title,
            rng=rng,
        ),
        classifier=SentimentClassifier(remote=remote_sentiment),
        generator=ResponseGenerator(local=TemplateResponseStrategy(rng), remote=remote_reply),
        similarity_index=index,
        suggestion_engine=SuggestionEngine(
            index, rng=rng, limit=config.ui.suggestion_limit, similar_k=config.vectorstore.suggestion_k
        ),
        mood_aggregator=MoodAggregator(config.mood.trend_window, config.mood.trend_threshold),
        remote_model=remote_model,
        crisis_notifier=crisis_notifier,
        crisis_message=config.crisis.notification_message,
        retrieval_k=config.vectorstore.retrieval_k,
    )
