"""
Follow-up suggestions shown under the chat input.
"""

import random
import re
from typing import Dict, List, Optional, Sequence, Tuple

from services.ai_service.models import Sentiment, Suggestion, SuggestionType
from services.chat_service.models import Conversation, UserProfile
from utils.logging_config import get_error_tracker, get_logger

QUESTION = SuggestionType.QUESTION
TIP = SuggestionType.TIP
EXERCISE = SuggestionType.EXERCISE

OPENERS: Tuple[Suggestion, ...] = (
    Suggestion("How are you feeling today?", QUESTION),
    Suggestion("What's been on your mind lately?", QUESTION),
    Suggestion("Try taking a few deep breaths before chatting", TIP),
    Suggestion("Share something positive that happened today", EXERCISE),
)

_ANXIOUS_POOL = (
    Suggestion("Try the 5-5-5 breathing technique: breathe in for 5 seconds, hold for 5, out for 5", TIP),
    Suggestion("Would listing out your concerns help organize your thoughts?", QUESTION),
    Suggestion("Rate your anxiety level from 1-10", EXERCISE),
)
_LOW_MOOD_POOL = (
    Suggestion("What's one small positive thing you noticed today?", QUESTION),
    Suggestion("Consider naming 3 things you're grateful for", TIP),
    Suggestion("Would you like to talk about something that brings you joy?", QUESTION),
)
_POSITIVE_POOL = (
    Suggestion("That's wonderful! What contributed to these positive feelings?", QUESTION),
    Suggestion("Consider journaling about this positive experience", TIP),
    Suggestion("How might you extend this positive feeling?", QUESTION),
)

SENTIMENT_POOLS: Dict[Sentiment, Tuple[Suggestion, ...]] = {
    Sentiment.ANXIOUS: _ANXIOUS_POOL,
    Sentiment.OVERWHELMED: _ANXIOUS_POOL,
    Sentiment.DEPRESSED: _LOW_MOOD_POOL,
    Sentiment.NEGATIVE: _LOW_MOOD_POOL,
    Sentiment.POSITIVE: _POSITIVE_POOL,
    Sentiment.HOPEFUL: _POSITIVE_POOL,
    Sentiment.FEARFUL: (
        Suggestion("What would help you feel a little safer right now?", QUESTION),
        Suggestion("Name 5 things you can see around you to ground yourself", EXERCISE),
        Suggestion("Is this fear about something happening now or something that might happen?", QUESTION),
    ),
    Sentiment.FRUSTRATED: (
        Suggestion("What part of this situation is within your control?", QUESTION),
        Suggestion("Try writing down what's frustrating you without editing it", EXERCISE),
        Suggestion("A short walk can help release built-up tension", TIP),
    ),
    Sentiment.CONFUSED: (
        Suggestion("What's the one question you most want answered?", QUESTION),
        Suggestion("Try describing the situation as if to a friend", EXERCISE),
    ),
    Sentiment.SUPPRESSED: (
        Suggestion("What's really going on underneath \"fine\"?", QUESTION),
        Suggestion("Try finishing the sentence: \"Honestly, I feel...\"", EXERCISE),
    ),
    Sentiment.CALM: (
        Suggestion("What helped you feel this calm today?", QUESTION),
        Suggestion("Take a moment to notice how calm feels in your body", EXERCISE),
    ),
    Sentiment.URGENT: (
        Suggestion("Call or text 988 to reach the Suicide & Crisis Lifeline", TIP),
        Suggestion("Is there someone you trust who can be with you right now?", QUESTION),
    ),
}

GENERIC_FOLLOW_UPS: Tuple[Suggestion, ...] = (
    Suggestion("Could you tell me more about that?", QUESTION),
    Suggestion("How did that make you feel?", QUESTION),
    Suggestion("Is there something specific you'd like support with today?", QUESTION),
)

QUESTION_PATTERN = re.compile(r"([^.!?]+\?)")

MIN_CONTEXTUAL_SUGGESTIONS = 3


def extract_question(text: str) -> Optional[str]:
    """First question sentence in ``text``"""
    if "?" not in text:
        return None
    match = QUESTION_PATTERN.search(text)
    return match.group(1).strip() if match else None


class SuggestionEngine:
    """
    Suggests openers for new conversations and follow-ups for ongoing ones.

    Args:
        similarity_index: Index used to find past exchanges like the current one
        rng: Random source for shuffling
        limit: Maximum number of suggestions
        similar_k: Number of similar messages to inspect
    """

    def __init__(
        self,
        similarity_index=None,
        rng: Optional[random.Random] = None,
        limit: int = 5,
        similar_k: int = 3
    ):
        self.logger = get_logger(__name__)
        self.similarity_index = similarity_index
        self.rng = rng or random.Random()
        self.limit = limit
        self.similar_k = similar_k

    def openers(self, profile: Optional[UserProfile] = None) -> List[Suggestion]:
        suggestions = list(OPENERS)
        if profile is not None:
            if profile.name:
                suggestions.append(Suggestion(f"How has your day been, {profile.name}?", QUESTION))
            if profile.age is not None:
                if profile.age < 25:
                    suggestions.append(Suggestion("How are things going with school or studies?", QUESTION))
                else:
                    suggestions.append(Suggestion("How's your work-life balance these days?", QUESTION))
        return suggestions

    async def follow_ups_from_similar(
        self,
        conversation: Conversation,
        all_conversations: Sequence[Conversation]
    ) -> List[Suggestion]:
        """Questions the assistant asked right after messages similar to the latest one"""
        last = conversation.last_user_message
        if self.similarity_index is None or last is None:
            return []

        matches = await self.similarity_index.query(last.content, self.similar_k, exclude_message_id=last.id)
        by_id = {c.id: c for c in all_conversations}
        by_id.setdefault(conversation.id, conversation)

        suggestions = []
        for match in matches:
            source = by_id.get(match.conversation_id)
            if source is None:
                continue
            for index, msg in enumerate(source.messages[:-1]):
                if msg.id != match.message_id:
                    continue
                following = source.messages[index + 1]
                question = None if following.is_user else extract_question(following.content)
                if question:
                    suggestions.append(Suggestion(question, QUESTION))
                break
        return suggestions

    async def suggest(
        self,
        conversation: Optional[Conversation],
        all_conversations: Sequence[Conversation] = (),
        profile: Optional[UserProfile] = None
    ) -> List[Suggestion]:
        """
        Args:
            conversation: Active conversation
            all_conversations: Every conversation, used to look up past follow-ups
            profile: Optional user profile for personalised openers

        Returns:
            List[Suggestion]: At most ``limit`` suggestions, shuffled
        """
        if conversation is None or len(conversation.messages) <= 1:
            return self._finalize(self.openers(profile))

        suggestions: List[Suggestion] = []
        last = conversation.last_user_message
        if last is not None:
            suggestions.extend(SENTIMENT_POOLS.get(last.sentiment or Sentiment.NEUTRAL, ()))
            try:
                suggestions.extend(await self.follow_ups_from_similar(conversation, all_conversations))
            except Exception as e:
                get_error_tracker().track_error(e, "suggestions_from_similar")

        if len(suggestions) < MIN_CONTEXTUAL_SUGGESTIONS:
            suggestions.extend(GENERIC_FOLLOW_UPS)

        return self._finalize(suggestions)

    def _finalize(self, suggestions: List[Suggestion]) -> List[Suggestion]:
        unique = list({suggestion.text: suggestion for suggestion in suggestions}.values())
        self.rng.shuffle(unique)
        return unique[:self.limit]
