"""
AI service - sentiment classification, reply templates and mood tracking.

Modules that depend on chat models (prompt_builder, response_generator,
suggestion_engine) are imported directly from their modules.
"""

from .models import Sentiment, SentimentResult, Suggestion, SuggestionType, MoodRecord, MoodTrend
from .sentiment_classifier import (
    SentimentClassifier,
    KeywordSentimentStrategy,
    RemoteSentimentStrategy,
)
from .fallback_service import EmpatheticTemplateSystem, CRISIS_MESSAGE, SAFE_FALLBACK_MESSAGE
from .mood_aggregator import MoodAggregator

__all__ = [
    'Sentiment',
    'SentimentResult',
    'Suggestion',
    'SuggestionType',
    'MoodRecord',
    'MoodTrend',
    'SentimentClassifier',
    'KeywordSentimentStrategy',
    'RemoteSentimentStrategy',
    'EmpatheticTemplateSystem',
    'CRISIS_MESSAGE',
    'SAFE_FALLBACK_MESSAGE',
    'MoodAggregator'
]
