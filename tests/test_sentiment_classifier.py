"""
Tests for sentiment classification
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from services.ai_service.models import Sentiment, SentimentResult
from services.ai_service.sentiment_classifier import (
    DEFAULT_RESULT,
    KeywordSentimentStrategy,
    RemoteSentimentStrategy,
    SentimentClassifier,
    count_keyword_matches,
)
from services.exceptions import RemoteModelError


class TestKeywordMatching:

    def test_whole_words_only(self):
        assert count_keyword_matches("i feel good", ("good",)) == 1
        assert count_keyword_matches("goodness me", ("good",)) == 0
        assert count_keyword_matches("too much, way too much", ("too much",)) == 2


class TestKeywordSentimentStrategy:
    """Test the local heuristic"""

    def setup_method(self):
        self.strategy = KeywordSentimentStrategy()

    @pytest.mark.parametrize("text", [
        "I want to die",
        "I think about suicide a lot lately",
        "This is an emergency",
        "Sometimes I want to hurt myself",
    ])
    def test_crisis_keywords(self, text):
        result = self.strategy.analyze(text)
        assert result.sentiment is Sentiment.URGENT
        assert result.is_crisis

    def test_crisis_wins_over_positive_words(self):
        assert self.strategy.analyze("I'm happy but I want to end it all").sentiment is Sentiment.URGENT

    def test_help_alone_is_not_a_crisis(self):
        assert self.strategy.analyze("Can you help me plan my week?").sentiment is not Sentiment.URGENT

    def test_masked_feelings(self):
        result = self.strategy.analyze("I'm fine, just a bit sad and worried")
        assert result.sentiment is Sentiment.SUPPRESSED
        assert result.confidence == 0.7

    def test_curly_apostrophe_is_normalised(self):
        assert self.strategy.analyze("I’m good, nothing really, just lonely").sentiment is Sentiment.SUPPRESSED

    def test_highest_count_wins(self):
        result = self.strategy.analyze("I am so anxious and worried, kind of sad")
        assert result.sentiment is Sentiment.ANXIOUS
        assert result.confidence == pytest.approx(0.7)

    def test_ties_go_to_the_first_category(self):
        assert self.strategy.analyze("Happy today, but also sad about it").sentiment is Sentiment.POSITIVE

    def test_confidence_is_capped(self):
        result = self.strategy.analyze("happy happy happy happy happy happy happy good great")
        assert result.confidence == 0.9

    def test_short_text_without_keywords_is_suppressed(self):
        result = self.strategy.analyze("meh")
        assert result.sentiment is Sentiment.SUPPRESSED
        assert result.confidence == 0.6

    def test_long_text_without_keywords_is_neutral(self):
        result = self.strategy.analyze("I went to the shop and bought some bread")
        assert result == SentimentResult(Sentiment.NEUTRAL, 0.7)

    def test_deterministic(self):
        text = "I'm stressed and overwhelmed by exams"
        assert self.strategy.analyze(text) == self.strategy.analyze(text)


class TestRemoteSentimentStrategy:

    def test_valid_label(self):
        model = Mock(classify_sentiment=AsyncMock(return_value=" Anxious. "))
        result = asyncio.run(RemoteSentimentStrategy(model).classify("text"))

        assert result.sentiment is Sentiment.ANXIOUS
        assert result.confidence == 0.8
        assert result.source == "remote"

    def test_invalid_label_defaults_to_neutral(self):
        model = Mock(classify_sentiment=AsyncMock(return_value="melancholic"))
        assert asyncio.run(RemoteSentimentStrategy(model).classify("text")) == DEFAULT_RESULT

    def test_failure_defaults_to_neutral(self):
        model = Mock(classify_sentiment=AsyncMock(side_effect=RemoteModelError("down")))
        assert asyncio.run(RemoteSentimentStrategy(model).classify("text")) == DEFAULT_RESULT


class TestSentimentClassifier:
    """Test remote-first classification with local fallback"""

    def test_local_only(self):
        classifier = SentimentClassifier()
        result = asyncio.run(classifier.classify_async("I feel so calm and relaxed"))

        assert result.sentiment is Sentiment.CALM
        assert result.source == "local"

    def test_remote_label_is_used(self, remote_model):
        remote_model.classify_sentiment.return_value = "hopeful"
        classifier = SentimentClassifier(remote=RemoteSentimentStrategy(remote_model))

        result = asyncio.run(classifier.classify_async("The bread was fresh today"))

        assert result.sentiment is Sentiment.HOPEFUL
        assert result.source == "remote"

    def test_remote_failure_falls_back_to_local(self, remote_model):
        remote_model.classify_sentiment.side_effect = RemoteModelError("timeout")
        classifier = SentimentClassifier(remote=RemoteSentimentStrategy(remote_model))

        result = asyncio.run(classifier.classify_async("I'm worried and nervous"))

        assert result.sentiment is Sentiment.ANXIOUS
        assert result.source == "local"

    def test_remote_invalid_label_falls_back_to_local(self, remote_model):
        remote_model.classify_sentiment.return_value = "blue"
        classifier = SentimentClassifier(remote=RemoteSentimentStrategy(remote_model))

        assert asyncio.run(classifier.classify_async("so frustrated and annoyed")).sentiment is Sentiment.FRUSTRATED

    def test_local_crisis_is_never_downgraded(self, remote_model):
        remote_model.classify_sentiment.return_value = "calm"
        classifier = SentimentClassifier(remote=RemoteSentimentStrategy(remote_model))

        result = asyncio.run(classifier.classify_async("I want to kill myself"))

        assert result.sentiment is Sentiment.URGENT
        remote_model.classify_sentiment.assert_not_called()

    def test_local_failure_returns_default(self):
        local = Mock(analyze=Mock(side_effect=RuntimeError("bad pattern")))
        assert SentimentClassifier(local=local).classify("anything") == DEFAULT_RESULT


class TestSentimentResult:

    def test_confidence_bounds(self):
        with pytest.raises(ValueError):
            SentimentResult(Sentiment.CALM, 1.5)

    def test_parse(self):
        assert Sentiment.parse("'Urgent'") is Sentiment.URGENT
        assert Sentiment.parse("") is None
        assert Sentiment.parse("ecstatic") is None
