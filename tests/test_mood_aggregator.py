"""
Tests for mood records, trends and chart series
"""

from datetime import date, datetime, timedelta

import pytest

from services.ai_service.models import MoodRecord, MoodTrend, Sentiment
from services.ai_service.mood_aggregator import (
    MoodAggregator,
    happiness_percentage,
    mood_label,
    sentiment_score,
)
from services.chat_service.models import Conversation, Message, Sender


def at(day, hour=12):
    """Local wall-clock time on ``day``"""
    return datetime(day.year, day.month, day.day, hour).astimezone()


def user(sentiment, when):
    return Message(content="text", sender=Sender.USER, sentiment=sentiment, timestamp=when)


def records(*scores, start=date(2024, 3, 1)):
    return [MoodRecord(date=start + timedelta(days=i), average_sentiment_score=s) for i, s in enumerate(scores)]


class TestScores:

    def test_scale(self):
        assert sentiment_score(Sentiment.POSITIVE) == 1.0
        assert sentiment_score(Sentiment.NEUTRAL) == 0.0
        assert sentiment_score(Sentiment.URGENT) == -1.0

    def test_happiness_percentage(self):
        assert happiness_percentage(-1.0) == 0
        assert happiness_percentage(0.0) == 50
        assert happiness_percentage(1.0) == 100
        assert happiness_percentage(3.0) == 100

    def test_mood_label(self):
        assert mood_label(0.8) is Sentiment.POSITIVE
        assert mood_label(0.3) is Sentiment.HOPEFUL
        assert mood_label(0.0) is Sentiment.NEUTRAL
        assert mood_label(-0.4) is Sentiment.ANXIOUS
        assert mood_label(-0.9) is Sentiment.NEGATIVE


class TestAggregate:

    def setup_method(self):
        self.aggregator = MoodAggregator()

    def test_empty(self):
        assert self.aggregator.aggregate([]) == []
        assert self.aggregator.trend([]) is MoodTrend.STABLE

    def test_same_day_messages_share_a_record(self):
        day = date(2024, 3, 5)
        conversations = [
            Conversation(title="a", messages=[
                Message(content="Hi!", sender=Sender.BOT, timestamp=at(day, 9)),
                user(Sentiment.POSITIVE, at(day, 10)),
                user(Sentiment.NEGATIVE, at(day, 11)),
            ]),
            Conversation(title="b", messages=[user(Sentiment.POSITIVE, at(day, 15))]),
        ]

        result = self.aggregator.aggregate(conversations)

        assert len(result) == 1
        assert result[0].message_count == 3
        assert result[0].sentiment_counts == {Sentiment.POSITIVE: 2, Sentiment.NEGATIVE: 1}
        assert result[0].average_sentiment_score == pytest.approx((1.0 - 0.8 + 1.0) / 3)

    def test_records_are_ordered_by_day(self):
        first, second = date(2024, 3, 1), date(2024, 3, 2)
        conversation = Conversation(title="a", messages=[
            user(Sentiment.CALM, at(second)),
            user(Sentiment.ANXIOUS, at(first)),
        ])

        result = self.aggregator.aggregate([conversation])

        assert [r.date for r in result] == [at(first).date(), at(second).date()]

    def test_unclassified_messages_are_skipped(self):
        conversation = Conversation(title="a", messages=[user(None, at(date(2024, 3, 1)))])
        assert self.aggregator.aggregate([conversation]) == []


class TestTrend:

    def setup_method(self):
        self.aggregator = MoodAggregator(trend_window=7, trend_threshold=0.1)

    def test_improving(self):
        assert self.aggregator.trend(records(-0.8, -0.6, 0.2, 0.5)) is MoodTrend.IMPROVING

    def test_declining(self):
        assert self.aggregator.trend(records(0.9, 0.7, -0.2, -0.5)) is MoodTrend.DECLINING

    def test_stable_within_threshold(self):
        assert self.aggregator.trend(records(0.1, 0.15, 0.12, 0.1)) is MoodTrend.STABLE

    def test_single_record_is_stable(self):
        assert self.aggregator.trend(records(0.9)) is MoodTrend.STABLE

    def test_only_recent_window_counts(self):
        history = records(1.0, 1.0, 1.0, 1.0, -0.5, -0.5, -0.5, 0.5, 0.5, 0.5)
        assert self.aggregator.trend(history) is MoodTrend.IMPROVING


class TestSeries:

    def setup_method(self):
        self.aggregator = MoodAggregator()
        self.today = date(2024, 3, 28)

    def test_week_has_seven_points_with_gaps(self):
        data = [MoodRecord(date=self.today, average_sentiment_score=0.6)]

        series = self.aggregator.mood_series(data, "week", self.today)

        assert len(series) == 7
        assert [p.value for p in series[:-1]] == [None] * 6
        assert series[-1].value == 0.6
        assert series[-1].mood == "positive"
        assert series[-1].label == "Thu"

    def test_month_has_four_weekly_points(self):
        data = [
            MoodRecord(date=self.today, average_sentiment_score=0.4),
            MoodRecord(date=self.today - timedelta(days=1), average_sentiment_score=0.0),
            MoodRecord(date=self.today - timedelta(days=25), average_sentiment_score=-0.6),
        ]

        series = self.aggregator.mood_series(data, "month", self.today)

        assert len(series) == 4
        assert series[0].value == pytest.approx(-0.6)
        assert series[1].value is None
        assert series[3].value == pytest.approx(0.2)

    def test_unknown_period(self):
        with pytest.raises(ValueError):
            self.aggregator.mood_series([], "year", self.today)

    def test_weekly_average(self):
        data = records(0.2, 0.4, start=self.today - timedelta(days=1))
        data.append(MoodRecord(date=self.today - timedelta(days=10), average_sentiment_score=-1.0))

        assert self.aggregator.weekly_average(data, self.today) == pytest.approx(0.3)
        assert self.aggregator.weekly_average([], self.today) is None
