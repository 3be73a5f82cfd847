"""
Tests for the conversation orchestrator
"""

import asyncio
import json
import random
from unittest.mock import Mock

import pytest

from config.app_config import AppConfig
from services.ai_service.fallback_service import CRISIS_MESSAGE, SAFE_FALLBACK_MESSAGE, SUPPRESSED_PROBE
from services.ai_service.models import Sentiment
from services.chat_service.conversation_repository import InMemoryConversationRepository
from services.chat_service.orchestrator import TurnState, create_orchestrator, derive_local_title
from utils.logging_config import get_error_tracker


@pytest.fixture(autouse=True)
def word_token_counter(monkeypatch):
    """Count words instead of loading a tokenizer"""
    monkeypatch.setattr(
        "services.ai_service.prompt_builder.tiktoken_counter",
        lambda model_name: lambda text: len(text.split()),
    )


def build(remote_model=None, notifier=None):
    return create_orchestrator(
        config=AppConfig(),
        repository=InMemoryConversationRepository(),
        remote_model=remote_model,
        crisis_notifier=notifier or Mock(),
        rng=random.Random(7),
    )


def turn(orchestrator, text, language=None):
    """Run one turn and its background work in a single event loop"""
    async def run():
        result = await orchestrator.send_message(text, language)
        await orchestrator.wait_for_background_tasks()
        return result
    return asyncio.run(run())


class TestDeriveLocalTitle:

    def test_short_text_is_the_title(self):
        assert derive_local_title("Feeling tired") == "Feeling tired"

    def test_long_text_keeps_five_words(self):
        text = "I have been feeling really overwhelmed at work lately"
        assert derive_local_title(text) == "I have been feeling really..."


class TestSendMessage:
    """Test the turn pipeline with a remote model"""

    def setup_method(self):
        self.notifier = Mock()

    def test_blank_input_is_ignored(self, remote_model):
        orchestrator = build(remote_model, self.notifier)
        orchestrator.new_conversation()

        assert turn(orchestrator, "   ") is None
        assert len(orchestrator.manager.active_conversation.messages) == 1

    def test_without_conversation_one_is_created(self, remote_model):
        orchestrator = build(remote_model, self.notifier)

        assert turn(orchestrator, "hello") is None
        assert orchestrator.manager.active_conversation is not None

    def test_normal_turn(self, remote_model):
        orchestrator = build(remote_model, self.notifier)
        conversation = orchestrator.new_conversation()

        result = turn(orchestrator, "Work has been stressful")

        assert result.committed
        assert result.sentiment.sentiment is Sentiment.CALM
        assert result.bot_message.content == "That sounds like a lot. What feels heaviest right now?"
        stored = orchestrator.manager.get(conversation.id)
        assert [m.content for m in stored.messages[1:]] == ["Work has been stressful", result.bot_message.content]
        assert stored.messages[1].sentiment is Sentiment.CALM
        assert orchestrator.state is TurnState.IDLE
        self.notifier.assert_not_called()

    def test_title_is_derived_once(self, remote_model):
        orchestrator = build(remote_model, self.notifier)
        conversation = orchestrator.new_conversation()

        turn(orchestrator, "Work has been stressful")
        remote_model.generate_title.return_value = "Another title"
        turn(orchestrator, "And my boss is upset")

        assert orchestrator.manager.get(conversation.id).title == "Talking about work"
        remote_model.generate_title.assert_awaited_once_with("Work has been stressful")

    def test_title_failure_keeps_placeholder(self, remote_model):
        remote_model.generate_title.side_effect = RuntimeError("down")
        orchestrator = build(remote_model, self.notifier)
        conversation = orchestrator.new_conversation()

        turn(orchestrator, "Work has been stressful")

        assert orchestrator.manager.get(conversation.id).title == "New conversation"

    def test_remote_classification_failure_uses_keywords(self, remote_model):
        remote_model.classify_sentiment.side_effect = RuntimeError("down")
        orchestrator = build(remote_model, self.notifier)
        orchestrator.new_conversation()

        result = turn(orchestrator, "I am so happy today")

        assert result.sentiment.sentiment is Sentiment.POSITIVE
        assert result.sentiment.source == "local"

    def test_invalid_remote_label_uses_keywords(self, remote_model):
        remote_model.classify_sentiment.return_value = "furious"
        orchestrator = build(remote_model, self.notifier)
        orchestrator.new_conversation()

        assert turn(orchestrator, "I am so worried").sentiment.sentiment is Sentiment.ANXIOUS

    def test_crisis_turn(self, remote_model):
        orchestrator = build(remote_model, self.notifier)
        orchestrator.new_conversation()

        result = turn(orchestrator, "I want to end it all")

        assert result.crisis
        assert result.sentiment.sentiment is Sentiment.URGENT
        assert result.bot_message.content == CRISIS_MESSAGE
        self.notifier.assert_called_once_with(AppConfig().crisis.notification_message)
        remote_model.complete_chat.assert_not_awaited()

    def test_failing_notifier_does_not_break_turn(self, remote_model):
        orchestrator = build(remote_model, Mock(side_effect=RuntimeError("no ui")))
        orchestrator.new_conversation()

        assert turn(orchestrator, "I want to end it all").committed

    def test_remote_reply_failure_uses_templates(self, remote_model):
        remote_model.complete_chat.side_effect = RuntimeError("down")
        orchestrator = build(remote_model, self.notifier)
        orchestrator.new_conversation()

        result = turn(orchestrator, "I feel so lonely")

        assert result.committed
        assert result.bot_message.content

    def test_non_english_input_is_translated(self, remote_model):
        remote_model.detect_language.return_value = "es"
        orchestrator = build(remote_model, self.notifier)
        orchestrator.update_preferences({"auto_translate_enabled": True})
        orchestrator.new_conversation()

        result = turn(orchestrator, "Estoy cansada")

        assert result.user_message.content == "[en] Estoy cansada"
        assert result.user_message.original_text == "Estoy cansada"
        assert result.user_message.translated_from == "es"
        assert result.user_message.language == "es"
        remote_model.generate_title.assert_awaited_once_with("Estoy cansada")

    def test_no_translation_without_preference(self, remote_model):
        remote_model.detect_language.return_value = "es"
        orchestrator = build(remote_model, self.notifier)
        orchestrator.new_conversation()

        result = turn(orchestrator, "Estoy cansada")

        assert result.user_message.content == "Estoy cansada"
        remote_model.translate.assert_not_awaited()

    def test_user_message_is_indexed(self, remote_model):
        orchestrator = build(remote_model, self.notifier)
        orchestrator.new_conversation()

        turn(orchestrator, "Work has been stressful")

        assert len(orchestrator.similarity_index) == 1

    def test_internal_failure_returns_safe_reply(self, remote_model):
        orchestrator = build(remote_model, self.notifier)
        conversation = orchestrator.new_conversation()
        orchestrator.manager.append_messages = Mock(side_effect=RuntimeError("storage offline"))

        result = turn(orchestrator, "Work has been stressful")

        assert not result.committed
        assert result.bot_message.content == SAFE_FALLBACK_MESSAGE
        assert result.user_message.content == "Work has been stressful"
        assert result.sentiment.sentiment is Sentiment.CALM
        assert orchestrator.state is TurnState.IDLE
        assert len(orchestrator.manager.get(conversation.id).messages) == 1

    def test_turn_after_importing_naive_timestamps(self, remote_model):
        payload = json.dumps([{
            "id": "imported",
            "title": "Old export",
            "created_at": "2024-01-01T10:00:00",
            "updated_at": "2024-01-01T10:00:00",
            "messages": [
                {"id": "greeting", "content": "Hi!", "sender": "bot", "timestamp": "2024-01-01T10:00:00"},
            ],
        }])
        orchestrator = build(remote_model, self.notifier)
        assert asyncio.run(orchestrator.import_conversations(payload)) == 1

        result = turn(orchestrator, "Work has been stressful")

        assert result.committed
        stored = orchestrator.manager.get("imported")
        assert len(stored.messages) == 3
        assert stored.messages[0].timestamp < stored.messages[1].timestamp

    def test_reply_does_not_wait_for_title(self, remote_model):
        orchestrator = build(remote_model, self.notifier)
        conversation = orchestrator.new_conversation()

        async def scenario():
            release = asyncio.Event()

            async def slow_title(text):
                await release.wait()
                return "Talking about work"

            remote_model.generate_title.side_effect = slow_title
            result = await orchestrator.send_message("Work has been stressful")

            assert result.committed
            assert orchestrator.has_background_tasks
            assert orchestrator.manager.get(conversation.id).title == "New conversation"

            release.set()
            await orchestrator.wait_for_background_tasks()

        asyncio.run(scenario())

        assert orchestrator.manager.get(conversation.id).title == "Talking about work"
        assert not orchestrator.has_background_tasks


class TestLateRouting:
    """Replies land in the conversation the turn started in"""

    def test_switch_during_turn(self, remote_model):
        orchestrator = build(remote_model)
        first = orchestrator.new_conversation()
        second = orchestrator.new_conversation()

        def switch(messages, temperature):
            orchestrator.select_conversation(first.id)
            return "Reply for the second conversation"

        remote_model.complete_chat.side_effect = switch

        result = turn(orchestrator, "Hello from the second one")

        assert result.committed
        assert result.conversation_id == second.id
        assert len(orchestrator.manager.get(second.id).messages) == 3
        assert len(orchestrator.manager.get(first.id).messages) == 1
        assert orchestrator.manager.active_id == first.id

    def test_delete_during_turn(self, remote_model):
        orchestrator = build(remote_model)
        conversation = orchestrator.new_conversation()

        def delete(messages, temperature):
            orchestrator.delete_conversation(conversation.id)
            return "Too late"

        remote_model.complete_chat.side_effect = delete

        result = turn(orchestrator, "Anyone there?")

        assert not result.committed
        assert orchestrator.manager.get(conversation.id) is None
        assert all(len(c.messages) == 1 for c in orchestrator.manager.conversations)


class TestLocalOnly:

    def test_turn_without_remote_model(self):
        orchestrator = build()
        conversation = orchestrator.new_conversation()

        result = turn(orchestrator, "Feeling tired")

        assert result.committed
        assert result.sentiment.source == "local"
        assert orchestrator.manager.get(conversation.id).title == "Feeling tired"

    def test_brushing_off_after_negative_turn_is_probed(self):
        orchestrator = build()
        orchestrator.new_conversation()

        first = turn(orchestrator, "work has been awful")
        result = turn(orchestrator, "I'm fine")

        assert first.user_message.sentiment is Sentiment.NEGATIVE
        assert result.user_message.sentiment is Sentiment.SUPPRESSED
        assert result.bot_message.content == SUPPRESSED_PROBE

    def test_remote_only_intents_return_none(self):
        orchestrator = build()
        orchestrator.update_preferences({"text_to_speech_enabled": True})

        assert asyncio.run(orchestrator.synthesize_speech("hi")) is None
        assert asyncio.run(orchestrator.transcribe(b"audio")) is None


class TestIntents:

    def test_speech_follows_preference(self, remote_model):
        orchestrator = build(remote_model)

        assert asyncio.run(orchestrator.synthesize_speech("hi")) is None

        orchestrator.update_preferences({"text_to_speech_enabled": True, "voice": "nova"})
        assert asyncio.run(orchestrator.synthesize_speech("hi")) == b"ID3audio"
        remote_model.synthesize_speech.assert_awaited_once_with("hi", "nova")

    def test_speech_failure(self, remote_model):
        remote_model.synthesize_speech.side_effect = RuntimeError("down")
        orchestrator = build(remote_model)
        orchestrator.update_preferences({"text_to_speech_enabled": True})

        assert asyncio.run(orchestrator.synthesize_speech("hi")) is None

    def test_transcribe(self, remote_model):
        orchestrator = build(remote_model)
        assert asyncio.run(orchestrator.transcribe(b"audio")) == "I had a long day"

        remote_model.transcribe.side_effect = RuntimeError("down")
        assert asyncio.run(orchestrator.transcribe(b"audio")) is None

    def test_profile_and_preferences(self, remote_model):
        orchestrator = build(remote_model)

        orchestrator.update_profile({"name": "Sam", "age": 30})
        orchestrator.update_preferences({"theme": "dark"})

        assert orchestrator.profile.age_band == "25-34"
        assert orchestrator.preferences.theme == "dark"

    def test_invalid_preferences_are_ignored(self, remote_model):
        orchestrator = build(remote_model)
        errors = get_error_tracker().error_counts.get("ValidationError:update_preferences", 0)

        preferences = orchestrator.update_preferences({"theme": "neon", "voice": "nova"})

        assert preferences.theme == "system"
        assert preferences.voice == "alloy"
        assert orchestrator.preferences is preferences
        assert get_error_tracker().error_counts["ValidationError:update_preferences"] == errors + 1

    def test_invalid_profile_is_ignored(self, remote_model):
        orchestrator = build(remote_model)
        orchestrator.update_profile({"name": "Sam"})

        profile = orchestrator.update_profile({"age": 500})

        assert profile.name == "Sam"
        assert profile.age is None
        assert orchestrator.profile is profile

    def test_export_and_import(self, remote_model):
        source = build(remote_model)
        source.new_conversation()
        turn(source, "Work has been stressful")
        payload = source.export_conversations()

        target = build(remote_model)
        count = asyncio.run(target.import_conversations(payload))

        assert count == 1
        assert target.manager.conversations == source.manager.conversations
        assert target.manager.active_id == source.manager.active_id
        assert len(target.similarity_index) == 1

    def test_invalid_import_keeps_state(self, remote_model):
        orchestrator = build(remote_model)
        conversation = orchestrator.new_conversation()

        assert asyncio.run(orchestrator.import_conversations("nope")) is None
        assert [c.id for c in orchestrator.manager.conversations] == [conversation.id]

    def test_view_state(self, remote_model):
        orchestrator = build(remote_model)
        orchestrator.new_conversation()
        turn(orchestrator, "I am so worried")

        view = asyncio.run(orchestrator.view_state())

        assert not view.is_composing
        assert len(view.conversations) == 1
        assert view.active_conversation.id == view.conversations[0].id
        assert view.suggestions
        assert len(view.mood_records) == 1
        assert view.preferences == orchestrator.preferences

    def test_start_loads_and_indexes(self, remote_model):
        repository = InMemoryConversationRepository()
        writer = create_orchestrator(config=AppConfig(), repository=repository, remote_model=remote_model)
        writer.new_conversation()
        turn(writer, "Work has been stressful")

        reader = create_orchestrator(config=AppConfig(), repository=repository, remote_model=remote_model)
        conversations = asyncio.run(reader.start())

        assert len(conversations) == 1
        assert len(reader.similarity_index) == 1
