"""
Shared fixtures for the test suite
"""

import os
import random
from unittest.mock import AsyncMock, Mock

import pytest

# Keep environment overrides out of the default configuration
os.environ.setdefault("APP_ENV", "test")


@pytest.fixture
def remote_model():
    """Remote language model double with every call succeeding"""
    model = Mock()
    model.classify_sentiment = AsyncMock(return_value="calm")
    model.complete_chat = AsyncMock(return_value="That sounds like a lot. What feels heaviest right now?")
    model.detect_language = AsyncMock(return_value="en")
    model.translate = AsyncMock(side_effect=lambda text, language: f"[{language}] {text}")
    model.generate_title = AsyncMock(return_value="Talking about work")
    model.synthesize_speech = AsyncMock(return_value=b"ID3audio")
    model.transcribe = AsyncMock(return_value="I had a long day")
    model.embed = AsyncMock(side_effect=lambda texts: [[1.0, 0.0, 0.0] for _ in texts])
    return model


@pytest.fixture
def rng():
    return random.Random(42)
