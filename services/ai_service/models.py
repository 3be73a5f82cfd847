"""
AI service data models for sentiment, suggestions and mood tracking.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, Optional


class Sentiment(str, Enum):
    """Closed set of emotional tones a message can carry"""
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"
    ANXIOUS = "anxious"
    DEPRESSED = "depressed"
    HOPEFUL = "hopeful"
    OVERWHELMED = "overwhelmed"
    CALM = "calm"
    URGENT = "urgent"
    FRUSTRATED = "frustrated"
    SUPPRESSED = "suppressed"
    CONFUSED = "confused"
    FEARFUL = "fearful"

    @classmethod
    def parse(cls, label: Optional[str]) -> Optional['Sentiment']:
        """Map a free-form label onto the closed set, or None when it is not a member"""
        if not label:
            return None
        cleaned = label.strip().strip(".\"'`").lower()
        try:
            return cls(cleaned)
        except ValueError:
            return None


@dataclass(frozen=True)
class SentimentResult:
    """Outcome of classifying one message"""
    sentiment: Sentiment
    confidence: float
    source: str = "local"  # "local", "remote" or "default"

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")

    @property
    def is_crisis(self) -> bool:
        return self.sentiment is Sentiment.URGENT


class SuggestionType(str, Enum):
    QUESTION = "question"
    TIP = "tip"
    EXERCISE = "exercise"


@dataclass(frozen=True)
class Suggestion:
    """A prompt the user can click to continue the conversation"""
    text: str
    type: SuggestionType = SuggestionType.QUESTION


class MoodTrend(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


@dataclass
class MoodRecord:
    """Mood summary for one calendar day"""
    date: date
    average_sentiment_score: float
    sentiment_counts: Dict[Sentiment, int] = field(default_factory=dict)

    @property
    def message_count(self) -> int:
        return sum(self.sentiment_counts.values())


@dataclass(frozen=True)
class MoodPoint:
    """One labelled point of a mood journey chart"""
    label: str
    value: Optional[float]
    mood: Optional[str] = None
