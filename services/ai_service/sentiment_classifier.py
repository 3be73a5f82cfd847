"""
Sentiment classification for user messages.

Two interchangeable strategies share one interface: a keyword heuristic that
runs locally and a remote language-model classifier. ``SentimentClassifier``
combines them remote-first with the heuristic as fallback and never raises.
"""

import re
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Dict, Optional, Pattern, Tuple

from services.ai_service.models import Sentiment, SentimentResult
from services.exceptions import InvalidModelResponseError
from utils.logging_config import get_error_tracker, get_logger, log_sentiment_event

logger = get_logger(__name__)


# Scored categories, in tie-break order
SENTIMENT_KEYWORDS: Dict[Sentiment, Tuple[str, ...]] = {
    Sentiment.POSITIVE: ("happy", "good", "great", "excellent", "joy", "thankful", "excited", "pleased", "content"),
    Sentiment.NEGATIVE: ("sad", "bad", "terrible", "awful", "miserable", "unhappy", "disappointed", "upset"),
    Sentiment.ANXIOUS: ("anxious", "worried", "nervous", "fear", "scared", "panic", "stress", "afraid", "tense"),
    Sentiment.DEPRESSED: ("depressed", "hopeless", "worthless", "empty", "numb", "alone", "lonely", "despair"),
    Sentiment.HOPEFUL: ("hope", "optimistic", "better", "improve", "forward", "future", "possibility"),
    Sentiment.OVERWHELMED: ("overwhelmed", "too much", "can't handle", "exhausted", "burnout", "pressure"),
    Sentiment.CALM: ("calm", "peaceful", "relaxed", "steady", "balanced", "centered", "mindful"),
    Sentiment.FRUSTRATED: ("frustrated", "frustrating", "annoyed", "irritated", "angry", "fed up", "stuck"),
    Sentiment.CONFUSED: ("confused", "confusing", "unsure", "uncertain", "lost", "don't understand", "unclear"),
    Sentiment.FEARFUL: ("terrified", "frightened", "dread", "horrified", "petrified", "threatened"),
}

URGENT_KEYWORDS: Tuple[str, ...] = (
    "emergency", "crisis", "suicide", "suicidal", "kill", "die", "hurt myself",
    "self harm", "end it all", "can't go on", "no reason to live",
)

SUPPRESSION_KEYWORDS: Tuple[str, ...] = (
    "fine", "okay", "ok", "nothing", "whatever", "i'm good", "no big deal", "it's nothing",
)

# Keyword matches that, next to a suppression keyword, indicate masked feelings
NEGATIVE_AFFECT = (Sentiment.NEGATIVE, Sentiment.ANXIOUS, Sentiment.DEPRESSED)

SHORT_TEXT_LENGTH = 10
DEFAULT_RESULT = SentimentResult(Sentiment.NEUTRAL, 0.7, source="default")


@lru_cache(maxsize=None)
def _keyword_pattern(keyword: str) -> Pattern:
    return re.compile(rf"\b{re.escape(keyword)}\b")


def count_keyword_matches(text: str, keywords: Tuple[str, ...]) -> int:
    """Count whole-word occurrences of every keyword in already-normalised ``text``"""
    return sum(len(_keyword_pattern(keyword).findall(text)) for keyword in keywords)


def normalize(text: str) -> str:
    return text.lower().replace("’", "'")


class SentimentStrategy(ABC):
    """Interface shared by local and remote classifiers"""

    name = "strategy"

    @abstractmethod
    async def classify(self, text: str) -> SentimentResult:
        pass


class KeywordSentimentStrategy(SentimentStrategy):
    """
    Deterministic keyword heuristic.

    Order of rules: crisis keywords, suppression co-occurring with negative
    affect, highest category count, then the short-text and neutral defaults.
    """

    name = "local"

    def __init__(
        self,
        keywords: Optional[Dict[Sentiment, Tuple[str, ...]]] = None,
        urgent_keywords: Tuple[str, ...] = URGENT_KEYWORDS,
        suppression_keywords: Tuple[str, ...] = SUPPRESSION_KEYWORDS
    ):
        self.keywords = keywords or SENTIMENT_KEYWORDS
        self.urgent_keywords = urgent_keywords
        self.suppression_keywords = suppression_keywords

    def analyze(self, text: str) -> SentimentResult:
        normalized = normalize(text)

        urgent_matches = count_keyword_matches(normalized, self.urgent_keywords)
        if urgent_matches > 0:
            return SentimentResult(Sentiment.URGENT, min(0.3 * urgent_matches, 0.9))

        counts = {
            sentiment: count_keyword_matches(normalized, keywords)
            for sentiment, keywords in self.keywords.items()
        }

        if any(counts.get(s, 0) for s in NEGATIVE_AFFECT) and \
                count_keyword_matches(normalized, self.suppression_keywords) > 0:
            return SentimentResult(Sentiment.SUPPRESSED, 0.7)

        detected, highest = Sentiment.NEUTRAL, 0
        for sentiment, count in counts.items():
            if count > highest:
                detected, highest = sentiment, count

        if highest == 0:
            if len(text.strip()) < SHORT_TEXT_LENGTH:
                return SentimentResult(Sentiment.SUPPRESSED, 0.6)
            return SentimentResult(Sentiment.NEUTRAL, 0.7)

        return SentimentResult(detected, min(0.5 + 0.1 * highest, 0.9))

    async def classify(self, text: str) -> SentimentResult:
        return self.analyze(text)


class RemoteSentimentStrategy(SentimentStrategy):
    """Ask the remote language model for one label from the closed set"""

    name = "remote"
    confidence = 0.8

    def __init__(self, remote_model):
        self.remote_model = remote_model

    async def classify_strict(self, text: str) -> SentimentResult:
        """
        Raises:
            RemoteModelError: On any failure, including a label outside the closed set
        """
        label = await self.remote_model.classify_sentiment(text)
        sentiment = Sentiment.parse(label)
        if sentiment is None:
            raise InvalidModelResponseError(f"Unknown sentiment label: {label!r}", operation="classify_sentiment")
        return SentimentResult(sentiment, self.confidence, source="remote")

    async def classify(self, text: str) -> SentimentResult:
        """Remote label, or neutral when the call fails or the label is invalid"""
        try:
            return await self.classify_strict(text)
        except Exception as e:
            logger.warning(f"Remote sentiment classification failed: {e}")
            return DEFAULT_RESULT


class SentimentClassifier:
    """
    Remote-first classifier with local fallback. Never raises.
    """

    def __init__(
        self,
        local: Optional[KeywordSentimentStrategy] = None,
        remote: Optional[RemoteSentimentStrategy] = None
    ):
        self.logger = get_logger(__name__)
        self.local = local or KeywordSentimentStrategy()
        self.remote = remote

    def classify(self, text: str) -> SentimentResult:
        """Local heuristic only; neutral on internal failure"""
        try:
            result = self.local.analyze(text)
        except Exception as e:
            get_error_tracker().track_error(e, "sentiment_classification")
            return DEFAULT_RESULT
        log_sentiment_event(self.logger, result.sentiment.value, result.confidence, result.source)
        return result

    async def classify_async(self, text: str) -> SentimentResult:
        """
        Remote classification when available, local heuristic otherwise or on failure.

        A local crisis detection is never downgraded by a remote label.
        """
        local_result = self.classify(text)
        if self.remote is None or local_result.is_crisis:
            return local_result

        try:
            result = await self.remote.classify_strict(text)
        except Exception as e:
            get_error_tracker().track_error(e, "remote_sentiment_classification")
            return local_result

        log_sentiment_event(self.logger, result.sentiment.value, result.confidence, result.source)
        return result

