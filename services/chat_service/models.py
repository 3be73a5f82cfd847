"""
Chat service data models for conversations, messages and user settings.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Dict, Optional, Any

from pydantic import BaseModel, ConfigDict, Field

from services.ai_service.models import Sentiment


def new_id() -> str:
    return uuid.uuid4().hex


def now() -> datetime:
    return datetime.now().astimezone()


class Sender(str, Enum):
    USER = "user"
    BOT = "bot"


@dataclass(frozen=True)
class Message:
    """Individual message in a conversation; immutable once created"""
    content: str
    sender: Sender
    id: str = field(default_factory=new_id)
    timestamp: datetime = field(default_factory=now)
    sentiment: Optional[Sentiment] = None
    language: Optional[str] = None
    original_text: Optional[str] = None
    translated_from: Optional[str] = None

    @property
    def is_user(self) -> bool:
        return self.sender is Sender.USER

    @property
    def role(self) -> str:
        """Chat-completion role for this message"""
        return "user" if self.is_user else "assistant"


@dataclass
class Conversation:
    """Conversation containing messages and metadata"""
    title: str
    messages: List[Message] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=now)
    updated_at: datetime = field(default_factory=now)
    main_sentiment: Optional[Sentiment] = None
    language: Optional[str] = None

    @property
    def user_messages(self) -> List[Message]:
        return [message for message in self.messages if message.is_user]

    @property
    def last_user_message(self) -> Optional[Message]:
        for message in reversed(self.messages):
            if message.is_user:
                return message
        return None

    def with_messages(self, *new_messages: Message) -> 'Conversation':
        """Return a copy with messages appended, main sentiment and updated_at refreshed"""
        messages = self.messages + list(new_messages)
        return replace(
            self,
            messages=messages,
            main_sentiment=find_main_sentiment(messages),
            updated_at=next_timestamp(self.updated_at),
        )

    def touched(self, **changes: Any) -> 'Conversation':
        """Return a copy with ``changes`` applied and updated_at advanced"""
        return replace(self, updated_at=next_timestamp(self.updated_at), **changes)


def next_timestamp(previous: datetime) -> datetime:
    """Current time, bumped past ``previous`` when the clock has not advanced"""
    current = now()
    if current <= previous:
        return previous + timedelta(microseconds=1)
    return current


def find_main_sentiment(messages: List[Message]) -> Optional[Sentiment]:
    """Most frequent sentiment among user messages; ties go to the first one seen"""
    counts: Dict[Sentiment, int] = {}
    for message in messages:
        if message.is_user and message.sentiment is not None:
            counts[message.sentiment] = counts.get(message.sentiment, 0) + 1

    main, best = None, 0
    for sentiment, count in counts.items():  # insertion order = first seen
        if count > best:
            main, best = sentiment, count
    return main


class UserPreferences(BaseModel):
    """User-editable settings"""
    model_config = ConfigDict(frozen=True, extra="ignore")

    preferred_language: str = "en"
    text_to_speech_enabled: bool = False
    auto_translate_enabled: bool = False
    theme: str = Field(default="system", pattern="^(light|dark|system)$")
    adaptive_colors_enabled: bool = False
    voice: str = "alloy"

    def with_updates(self, partial: Dict[str, Any]) -> 'UserPreferences':
        """Validated copy with ``partial`` merged in"""
        return UserPreferences.model_validate({**self.model_dump(), **partial})


AGE_BANDS = (
    (18, "under-18"),
    (25, "18-24"),
    (35, "25-34"),
    (45, "35-44"),
    (55, "45-54"),
)


class UserProfile(BaseModel):
    """Optional personal details used to personalise replies"""
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: Optional[str] = None
    age: Optional[int] = Field(default=None, ge=0, le=120)
    gender: Optional[str] = Field(default=None, pattern="^(male|female|non-binary|prefer-not-to-say)$")

    @property
    def age_band(self) -> Optional[str]:
        if self.age is None:
            return None
        for upper, band in AGE_BANDS:
            if self.age < upper:
                return band
        return "55+"

    @property
    def is_empty(self) -> bool:
        return not (self.name or self.age is not None or self.gender)

    def with_updates(self, partial: Dict[str, Any]) -> 'UserProfile':
        """Validated copy with ``partial`` merged in"""
        return UserProfile.model_validate({**self.model_dump(), **partial})


@dataclass
class ConversationContext:
    """Everything the response generator may use beyond the message itself"""
    messages: List[Message] = field(default_factory=list)
    similar_messages: List[Any] = field(default_factory=list)  # List[SimilarMessage]
    profile: Optional[UserProfile] = None

    @property
    def history_text(self) -> str:
        return " ".join(message.content for message in self.messages).lower()
