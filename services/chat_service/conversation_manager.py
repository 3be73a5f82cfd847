"""
Conversation manager service - holds the conversation list and the active selection.

Every mutation goes through this class, is applied by conversation id and is
followed by a save. A failed save is logged and retried with the next mutation.
"""

import random
from typing import Callable, List, Optional

from services.chat_service.models import Conversation, Message, Sender
from services.exceptions import PersistenceError
from utils.logging_config import get_error_tracker, get_logger, log_conversation_event

DEFAULT_TITLE = "New conversation"


class ConversationManager:
    """
    Service for managing conversation state and operations.

    Args:
        repository: Persistence collaborator (None keeps state in memory only)
        greetings: Pool the seed assistant message is drawn from
        default_title: Placeholder title until one is derived
        rng: Random source for greeting selection
    """

    def __init__(
        self,
        repository=None,
        greetings: Optional[List[str]] = None,
        default_title: str = DEFAULT_TITLE,
        rng: Optional[random.Random] = None
    ):
        self.logger = get_logger(__name__)
        self.repository = repository
        self.greetings = greetings or ["Hi there! How are you feeling today?"]
        self.default_title = default_title
        self.rng = rng or random.Random()
        self._conversations: List[Conversation] = []
        self._active_id: Optional[str] = None
        self.dirty = False

    # State access

    @property
    def conversations(self) -> List[Conversation]:
        return list(self._conversations)

    @property
    def active_id(self) -> Optional[str]:
        return self._active_id

    @property
    def active_conversation(self) -> Optional[Conversation]:
        return self.get(self._active_id) if self._active_id else None

    def get(self, conversation_id: str) -> Optional[Conversation]:
        for conversation in self._conversations:
            if conversation.id == conversation_id:
                return conversation
        return None

    # Persistence

    def load(self) -> List[Conversation]:
        """Load saved state; starts empty when nothing can be loaded"""
        if self.repository is None:
            return self.conversations

        try:
            self._conversations = self.repository.load_conversations()
            active_id = self.repository.load_active_conversation_id()
        except PersistenceError as e:
            get_error_tracker().track_error(e, "load_conversations")
            self._conversations, active_id = [], None

        if active_id is None or self.get(active_id) is None:
            active_id = self._conversations[0].id if self._conversations else None
        self._active_id = active_id
        self.logger.info(f"Loaded {len(self._conversations)} conversations")
        return self.conversations

    def persist(self) -> bool:
        """Save the full state; returns False and stays dirty when the save fails"""
        if self.repository is None:
            return True
        try:
            self.repository.save_conversations(self._conversations)
            self.repository.save_active_conversation_id(self._active_id)
        except Exception as e:
            self.dirty = True
            get_error_tracker().track_error(e, "persist_conversations")
            return False
        self.dirty = False
        return True

    # Mutations

    def create_conversation(self) -> Conversation:
        """Create, activate and return a conversation seeded with a random greeting"""
        greeting = Message(content=self.rng.choice(self.greetings), sender=Sender.BOT)
        conversation = Conversation(title=self.default_title, messages=[greeting])
        self._conversations.insert(0, conversation)
        self._active_id = conversation.id
        log_conversation_event(self.logger, "created", conversation.id)
        self.persist()
        return conversation

    def select(self, conversation_id: str) -> bool:
        if self.get(conversation_id) is None:
            self.logger.warning(f"Cannot select unknown conversation {conversation_id}")
            return False
        self._active_id = conversation_id
        self.persist()
        return True

    def delete(self, conversation_id: str) -> bool:
        """
        Remove a conversation. Deleting the active one activates the first
        remaining conversation, or a new one when none remain.
        """
        if self.get(conversation_id) is None:
            return False

        self._conversations = [c for c in self._conversations if c.id != conversation_id]
        log_conversation_event(self.logger, "deleted", conversation_id)

        if self._active_id == conversation_id:
            if self._conversations:
                self._active_id = self._conversations[0].id
            else:
                self.create_conversation()
                return True
        self.persist()
        return True

    def patch(self, conversation_id: str, update: Callable[[Conversation], Conversation]) -> Optional[Conversation]:
        """
        Replace the conversation with ``update(current)``, looked up by id at call time.

        Returns:
            The updated conversation, or None when it no longer exists
        """
        for index, conversation in enumerate(self._conversations):
            if conversation.id == conversation_id:
                updated = update(conversation)
                self._conversations[index] = updated
                self.persist()
                return updated
        self.logger.debug(f"Skipping update for missing conversation {conversation_id}")
        return None

    def append_messages(self, conversation_id: str, *messages: Message) -> Optional[Conversation]:
        updated = self.patch(conversation_id, lambda c: c.with_messages(*messages))
        if updated is not None:
            log_conversation_event(self.logger, "message_added", conversation_id, count=len(messages))
        return updated

    def rename(self, conversation_id: str, title: str) -> Optional[Conversation]:
        return self.patch(conversation_id, lambda c: c.touched(title=title))

    def replace_all(self, conversations: List[Conversation]):
        """Replace every conversation, e.g. after an import"""
        self._conversations = list(conversations)
        if self.get(self._active_id or "") is None:
            self._active_id = self._conversations[0].id if self._conversations else None
        self.persist()
