"""
AI service fallback system for graceful degradation.
Holds the empathetic response templates used when no remote model is
configured, when it fails, and for replies that must never be generated.
"""

import random
import re
from typing import Dict, Iterable, Optional, Tuple

from services.ai_service.models import Sentiment
from utils.logging_config import get_logger


CRISIS_MESSAGE = (
    "I notice you may be in distress. Please remember that you're not alone. "
    "If you're in crisis, please reach out to a crisis helpline like the 988 Suicide & Crisis Lifeline "
    "(call or text 988) or text HOME to 741741 to reach the Crisis Text Line. "
    "Would it help to talk about what you're experiencing right now?"
)

SUPPRESSED_PROBE = (
    "I notice you said you're fine, but sometimes that word can cover many different feelings. "
    "It's okay if you're not actually feeling fine right now. "
    "Would you like to share more about what's really going on?"
)

SAFE_FALLBACK_MESSAGE = (
    "I'm sorry, I encountered an issue while responding. "
    "I'm still here with you. Could you tell me a little more?"
)


RESPONSE_TEMPLATES: Dict[Sentiment, Tuple[str, ...]] = {
    Sentiment.POSITIVE: (
        "I'm glad to hear you're feeling good! What's contributing to those positive feelings?",
        "It's wonderful that you're in good spirits. Would you like to share more about what's going well?",
        "I'm happy you're feeling positive. How can we maintain this energy going forward?",
    ),
    Sentiment.NEGATIVE: (
        "I'm sorry to hear you're not feeling well. Would you like to talk more about what's troubling you?",
        "That sounds difficult. Remember that it's okay to feel this way, and these feelings won't last forever.",
        "I'm here to listen. Sometimes expressing our feelings can help us process them better.",
    ),
    Sentiment.NEUTRAL: (
        "How has your day been going so far?",
        "I'm here to chat whenever you need support or just want to talk.",
        "Is there anything specific on your mind that you'd like to discuss?",
    ),
    Sentiment.ANXIOUS: (
        "It sounds like you might be feeling anxious. Taking slow, deep breaths can sometimes help in the moment.",
        "Anxiety can be challenging. Would it help to talk about what's causing these feelings?",
        "When anxiety builds up, grounding exercises can help. Would you like to try one together?",
    ),
    Sentiment.DEPRESSED: (
        "I'm sorry you're feeling this way. Depression can make things seem hopeless, but please know you're not alone.",
        "These feelings are valid, and reaching out is a positive step. "
        "Have you been able to talk to anyone else about how you're feeling?",
        "Small steps can help. Perhaps we could think about one tiny positive action you might take today?",
    ),
    Sentiment.HOPEFUL: (
        "It's great to hear a sense of hope in your words. What positive possibilities are you seeing?",
        "Hope is powerful. What's giving you this optimistic outlook?",
        "I'm glad you're feeling hopeful. How can we build on this positive momentum?",
    ),
    Sentiment.OVERWHELMED: (
        "It sounds like you have a lot on your plate right now. Would it help to break things down into smaller steps?",
        "Feeling overwhelmed is natural when facing many challenges. Which one feels most pressing right now?",
        "Let's take a step back and breathe. We can approach one thing at a time.",
    ),
    Sentiment.CALM: (
        "It's wonderful that you're feeling calm. What practices help you maintain this sense of peace?",
        "Calmness is a valuable state. How did you arrive at this peaceful mindset?",
        "This sense of calm can be a great foundation. Is there anything you'd like to explore from this grounded place?",
    ),
    Sentiment.URGENT: (
        CRISIS_MESSAGE,
    ),
    Sentiment.FRUSTRATED: (
        "I can sense your frustration. It's completely valid to feel this way when things aren't going as expected.",
        "It seems like you're dealing with some frustration. Would it help to talk about what's causing this?",
        "Frustration can be challenging to navigate. Is there a specific situation that's contributing to this feeling?",
    ),
    Sentiment.SUPPRESSED: (
        "I notice you're saying you're okay, but I'm wondering if there might be more you'd like to share?",
        "Sometimes when we say we're 'fine,' there are other feelings beneath the surface. "
        "It's safe to express those here if you'd like.",
        "I'm hearing that you're okay, but I'm also sensing there might be more to it. "
        "Would you like to talk more about what's going on?",
    ),
    Sentiment.CONFUSED: (
        "It sounds like you might be feeling uncertain about some things. Would it help to explore that confusion together?",
        "Being confused can feel uncomfortable. Is there a specific situation that's causing this uncertainty?",
        "I notice you might be feeling a bit lost. Sometimes talking through our thoughts can help bring clarity.",
    ),
    Sentiment.FEARFUL: (
        "I can hear that you're feeling afraid, which is completely understandable. "
        "Would you like to talk about what's causing this fear?",
        "Fear is a powerful emotion and often has important things to tell us. "
        "What do you think your fear might be trying to protect you from?",
        "Being scared is a natural response to perceived threats. "
        "Is there something specific that's triggered this feeling for you?",
    ),
}

# Recurring-topic follow-ups, checked in this order
TOPIC_FOLLOW_UPS: Tuple[Tuple[str, Tuple[str, ...], str], ...] = (
    (
        "family",
        ("family", "parents", "mother", "father", "mom", "dad", "sister", "brother"),
        "I notice family relationships seem to be an important theme in our conversation. "
        "Would you like to explore how these relationships are affecting you?",
    ),
    (
        "work",
        ("work", "job", "boss", "coworker", "coworkers", "office"),
        "Work seems to be coming up frequently in our discussion. "
        "How is your work situation impacting your overall wellbeing?",
    ),
    (
        "school",
        ("school", "exam", "exams", "class", "classes", "studies", "homework"),
        "School keeps coming up as we talk. How are your studies affecting the way you feel day to day?",
    ),
    (
        "relationship",
        ("relationship", "partner", "boyfriend", "girlfriend", "husband", "wife"),
        "Your relationship seems to be on your mind a lot. What feels most important to talk through about it?",
    ),
    (
        "sleep",
        ("sleep", "sleeping", "insomnia", "tired"),
        "You've mentioned sleep a few times now. How have your nights been lately, and how do they shape your days?",
    ),
    (
        "money",
        ("money", "bills", "debt", "rent"),
        "Money worries seem to keep coming back in our conversation. "
        "Would it help to talk about which part of it weighs on you the most?",
    ),
)


def _mentions(text: str, words: Iterable[str]) -> bool:
    return any(re.search(rf"\b{re.escape(word)}\b", text) for word in words)


class EmpatheticTemplateSystem:
    """
    Template-based replies keyed by sentiment.

    Selection order: crisis message, suppressed probe, recurring topic
    follow-up, then a random template for the category.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.logger = get_logger(__name__)
        self.rng = rng or random.Random()
        self.templates = RESPONSE_TEMPLATES

    def detect_recurring_topic(self, message: str, history: str) -> Optional[str]:
        """Name of the first topic mentioned both in ``history`` and in ``message``"""
        if not history:
            return None
        message_lower = message.lower()
        history_lower = history.lower()
        for topic, words, _ in TOPIC_FOLLOW_UPS:
            if _mentions(history_lower, words) and _mentions(message_lower, words):
                return topic
        return None

    def topic_follow_up(self, topic: str) -> str:
        for name, _, follow_up in TOPIC_FOLLOW_UPS:
            if name == topic:
                return follow_up
        raise KeyError(topic)

    def get_response(self, message: str, sentiment: Sentiment, history: str = "") -> str:
        """
        Args:
            message: The user's message
            sentiment: Detected sentiment of ``message``
            history: Concatenated text of the earlier conversation

        Returns:
            str: Reply text
        """
        if sentiment is Sentiment.URGENT:
            return CRISIS_MESSAGE

        if sentiment is Sentiment.SUPPRESSED:
            return SUPPRESSED_PROBE

        topic = self.detect_recurring_topic(message, history)
        if topic:
            self.logger.debug(f"Recurring topic follow-up: {topic}")
            return self.topic_follow_up(topic)

        candidates = self.templates.get(sentiment) or self.templates[Sentiment.NEUTRAL]
        return self.rng.choice(candidates)

    def get_service_status_message(self, circuit_state: Dict) -> str:
        """
        User-facing status line for the remote model's circuit breaker
        """
        state = circuit_state.get("state", "unknown")
        remaining_timeout = circuit_state.get("remaining_timeout", 0)

        if state == "open":
            if remaining_timeout > 60:
                return f"🔴 **Smart replies paused** - retrying in ~{remaining_timeout // 60:.0f} minutes"
            return f"🔴 **Smart replies paused** - retrying in {remaining_timeout:.0f} seconds"
        elif state == "half_open":
            return "🟡 **Smart replies recovering**"
        return "🟢 **Smart replies available**"

