"""
Tests for conversation manager
"""

import random
from unittest.mock import Mock

from services.ai_service.models import Sentiment
from services.chat_service.conversation_manager import ConversationManager
from services.chat_service.conversation_repository import InMemoryConversationRepository
from services.chat_service.models import Conversation, Message, Sender
from services.exceptions import PersistenceError

GREETINGS = ["Hello there!", "Welcome back!", "Hi, how are you?"]


class FlakyRepository(InMemoryConversationRepository):
    """Repository whose saves fail while ``failing`` is set"""

    def __init__(self):
        super().__init__()
        self.failing = False
        self.saves = 0

    def save_conversations(self, conversations):
        if self.failing:
            raise PersistenceError("disk full")
        self.saves += 1
        super().save_conversations(conversations)


class TestConversationManager:
    """Test conversation manager functionality"""

    def setup_method(self):
        self.repository = InMemoryConversationRepository()
        self.manager = ConversationManager(self.repository, GREETINGS, rng=random.Random(0))

    def test_create_conversation(self):
        conversation = self.manager.create_conversation()

        assert self.manager.active_id == conversation.id
        assert conversation.title == "New conversation"
        assert len(conversation.messages) == 1
        assert conversation.messages[0].sender is Sender.BOT
        assert conversation.messages[0].content in GREETINGS
        assert self.repository.load_active_conversation_id() == conversation.id

    def test_new_conversations_go_first(self):
        first = self.manager.create_conversation()
        second = self.manager.create_conversation()

        assert [c.id for c in self.manager.conversations] == [second.id, first.id]

    def test_select(self):
        first = self.manager.create_conversation()
        self.manager.create_conversation()

        assert self.manager.select(first.id)
        assert self.manager.active_conversation.id == first.id
        assert not self.manager.select("missing")
        assert self.manager.active_id == first.id

    def test_delete_inactive_keeps_selection(self):
        first = self.manager.create_conversation()
        second = self.manager.create_conversation()

        assert self.manager.delete(first.id)

        assert self.manager.active_id == second.id
        assert [c.id for c in self.manager.conversations] == [second.id]

    def test_delete_active_selects_first_remaining(self):
        first = self.manager.create_conversation()
        second = self.manager.create_conversation()
        third = self.manager.create_conversation()

        self.manager.delete(third.id)

        assert self.manager.active_id == second.id
        assert {c.id for c in self.manager.conversations} == {first.id, second.id}

    def test_delete_last_creates_new_conversation(self):
        only = self.manager.create_conversation()

        self.manager.delete(only.id)

        assert len(self.manager.conversations) == 1
        assert self.manager.active_id != only.id
        assert self.manager.active_conversation is not None

    def test_delete_unknown(self):
        assert not self.manager.delete("missing")

    def test_append_messages_updates_main_sentiment(self):
        conversation = self.manager.create_conversation()
        user = Message(content="so anxious", sender=Sender.USER, sentiment=Sentiment.ANXIOUS)
        reply = Message(content="I'm here", sender=Sender.BOT)

        updated = self.manager.append_messages(conversation.id, user, reply)

        assert updated.messages[-2:] == [user, reply]
        assert updated.main_sentiment is Sentiment.ANXIOUS
        assert updated.updated_at > conversation.updated_at
        assert self.repository.load_conversations()[0].messages[-1] == reply

    def test_patch_missing_conversation(self):
        assert self.manager.patch("missing", lambda c: c) is None
        assert self.manager.append_messages("missing", Message(content="x", sender=Sender.USER)) is None

    def test_rename(self):
        conversation = self.manager.create_conversation()
        assert self.manager.rename(conversation.id, "Sleep troubles").title == "Sleep troubles"

    def test_replace_all_keeps_valid_selection(self):
        self.manager.create_conversation()
        imported = [Conversation(title="Imported")]

        self.manager.replace_all(imported)

        assert self.manager.conversations == imported
        assert self.manager.active_id == imported[0].id


class TestPersistence:

    def test_load_restores_state(self):
        repository = InMemoryConversationRepository()
        writer = ConversationManager(repository, GREETINGS)
        first = writer.create_conversation()
        writer.create_conversation()
        writer.select(first.id)

        reader = ConversationManager(repository, GREETINGS)
        reader.load()

        assert len(reader.conversations) == 2
        assert reader.active_id == first.id

    def test_load_with_unknown_active_id_selects_first(self):
        repository = InMemoryConversationRepository()
        writer = ConversationManager(repository, GREETINGS)
        conversation = writer.create_conversation()
        repository.save_active_conversation_id("gone")

        reader = ConversationManager(repository, GREETINGS)
        reader.load()

        assert reader.active_id == conversation.id

    def test_load_failure_starts_empty(self):
        repository = Mock()
        repository.load_conversations.side_effect = PersistenceError("corrupt")

        manager = ConversationManager(repository, GREETINGS)

        assert manager.load() == []
        assert manager.active_id is None

    def test_failed_save_is_retried_on_next_mutation(self):
        repository = FlakyRepository()
        manager = ConversationManager(repository, GREETINGS)

        repository.failing = True
        conversation = manager.create_conversation()
        assert manager.dirty
        assert repository.load_conversations() == []

        repository.failing = False
        manager.rename(conversation.id, "Retried")

        assert not manager.dirty
        assert repository.load_conversations()[0].title == "Retried"

    def test_without_repository(self):
        manager = ConversationManager(None, GREETINGS)
        manager.create_conversation()

        assert manager.persist()
        assert len(manager.load()) == 1
