"""
Daily mood records and trends derived from classified user messages.
"""

from datetime import date, timedelta
from statistics import mean
from typing import Dict, List, Optional, Sequence

from services.ai_service.models import MoodPoint, MoodRecord, MoodTrend, Sentiment

SENTIMENT_SCORES: Dict[Sentiment, float] = {
    Sentiment.POSITIVE: 1.0,
    Sentiment.HOPEFUL: 0.7,
    Sentiment.CALM: 0.5,
    Sentiment.NEUTRAL: 0.0,
    Sentiment.CONFUSED: -0.2,
    Sentiment.ANXIOUS: -0.3,
    Sentiment.SUPPRESSED: -0.4,
    Sentiment.OVERWHELMED: -0.5,
    Sentiment.FRUSTRATED: -0.6,
    Sentiment.FEARFUL: -0.7,
    Sentiment.NEGATIVE: -0.8,
    Sentiment.DEPRESSED: -0.9,
    Sentiment.URGENT: -1.0,
}

# (exclusive lower bound, label), checked top down
MOOD_BANDS = (
    (0.5, Sentiment.POSITIVE),
    (0.2, Sentiment.HOPEFUL),
    (-0.2, Sentiment.NEUTRAL),
    (-0.5, Sentiment.ANXIOUS),
)


def sentiment_score(sentiment: Sentiment) -> float:
    return SENTIMENT_SCORES[sentiment]


def mood_label(score: float) -> Sentiment:
    """Coarse sentiment label for an average score"""
    for lower, label in MOOD_BANDS:
        if score > lower:
            return label
    return Sentiment.NEGATIVE


def happiness_percentage(score: float) -> int:
    """Map a score on [-1, 1] onto a 0-100 meter"""
    clamped = max(-1.0, min(1.0, score))
    return round((clamped + 1) * 50)


class MoodAggregator:
    """
    Groups user messages by local calendar day and scores them.

    Args:
        trend_window: Number of most recent daily records considered for the trend
        trend_threshold: Minimum difference between half means to call a trend
    """

    def __init__(self, trend_window: int = 7, trend_threshold: float = 0.1):
        self.trend_window = trend_window
        self.trend_threshold = trend_threshold

    def aggregate(self, conversations: Sequence) -> List[MoodRecord]:
        """
        Returns:
            List[MoodRecord]: One record per day with at least one classified user message, oldest first
        """
        scores: Dict[date, List[float]] = {}
        counts: Dict[date, Dict[Sentiment, int]] = {}

        for conversation in conversations:
            for message in conversation.messages:
                if not message.is_user or message.sentiment is None:
                    continue
                day = message.timestamp.astimezone().date() if message.timestamp.tzinfo else message.timestamp.date()
                scores.setdefault(day, []).append(sentiment_score(message.sentiment))
                day_counts = counts.setdefault(day, {})
                day_counts[message.sentiment] = day_counts.get(message.sentiment, 0) + 1

        return [
            MoodRecord(date=day, average_sentiment_score=mean(scores[day]), sentiment_counts=counts[day])
            for day in sorted(scores)
        ]

    def trend(self, records: Sequence[MoodRecord]) -> MoodTrend:
        """Compare the two halves of the most recent window of records"""
        window = list(records)[-self.trend_window:]
        if len(window) < 2:
            return MoodTrend.STABLE

        half = len(window) // 2
        first = mean(r.average_sentiment_score for r in window[:half])
        second = mean(r.average_sentiment_score for r in window[half:])

        if second - first > self.trend_threshold:
            return MoodTrend.IMPROVING
        if first - second > self.trend_threshold:
            return MoodTrend.DECLINING
        return MoodTrend.STABLE

    def record_for(self, records: Sequence[MoodRecord], day: date) -> Optional[MoodRecord]:
        for record in records:
            if record.date == day:
                return record
        return None

    def weekly_average(self, records: Sequence[MoodRecord], today: date) -> Optional[float]:
        """Mean daily score over the 7 days ending ``today``, None without data"""
        start = today - timedelta(days=6)
        values = [r.average_sentiment_score for r in records if start <= r.date <= today]
        return mean(values) if values else None

    def mood_series(self, records: Sequence[MoodRecord], period: str, today: date) -> List[MoodPoint]:
        """
        Chart points for the mood journey.

        Args:
            records: Daily records
            period: "week" (7 daily points) or "month" (4 weekly points)
            today: Last day shown

        Returns:
            List[MoodPoint]: Oldest first; days without data have ``value`` None
        """
        by_day = {r.date: r.average_sentiment_score for r in records}

        if period == "week":
            points = []
            for offset in range(6, -1, -1):
                day = today - timedelta(days=offset)
                value = by_day.get(day)
                points.append(MoodPoint(
                    label=day.strftime("%a"),
                    value=value,
                    mood=mood_label(value).value if value is not None else None,
                ))
            return points

        if period == "month":
            points = []
            for week in range(3, -1, -1):
                end = today - timedelta(days=week * 7)
                start = end - timedelta(days=6)
                values = [by_day[start + timedelta(days=i)] for i in range(7) if start + timedelta(days=i) in by_day]
                value = mean(values) if values else None
                points.append(MoodPoint(
                    label=f"{start.strftime('%b')} {start.day}-{end.day}",
                    value=value,
                    mood=mood_label(value).value if value is not None else None,
                ))
            return points

        raise ValueError(f"Unknown period '{period}', expected 'week' or 'month'")
