"""
Conversation repository - SQLite persistence for conversations and the active selection.
"""

import json
import os
import sqlite3
from contextlib import closing
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from services.ai_service.models import Sentiment
from services.chat_service.models import Conversation, Message, Sender
from services.exceptions import PersistenceError
from utils.logging_config import get_logger

ACTIVE_CONVERSATION_KEY = "active_conversation_id"


def _parse_sentiment(value: Optional[str]) -> Optional[Sentiment]:
    return Sentiment.parse(value) if value else None


def _parse_timestamp(value: str) -> datetime:
    """ISO timestamp as an aware datetime; naive values are read as local time"""
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.astimezone()


def message_to_dict(message: Message) -> Dict[str, Any]:
    return {
        "id": message.id,
        "content": message.content,
        "sender": message.sender.value,
        "timestamp": message.timestamp.isoformat(),
        "sentiment": message.sentiment.value if message.sentiment else None,
        "language": message.language,
        "original_text": message.original_text,
        "translated_from": message.translated_from,
    }


def message_from_dict(data: Dict[str, Any]) -> Message:
    return Message(
        id=data["id"],
        content=data["content"],
        sender=Sender(data["sender"]),
        timestamp=_parse_timestamp(data["timestamp"]),
        sentiment=_parse_sentiment(data.get("sentiment")),
        language=data.get("language"),
        original_text=data.get("original_text"),
        translated_from=data.get("translated_from"),
    )


def conversation_to_dict(conversation: Conversation) -> Dict[str, Any]:
    return {
        "id": conversation.id,
        "title": conversation.title,
        "messages": [message_to_dict(m) for m in conversation.messages],
        "created_at": conversation.created_at.isoformat(),
        "updated_at": conversation.updated_at.isoformat(),
        "main_sentiment": conversation.main_sentiment.value if conversation.main_sentiment else None,
        "language": conversation.language,
    }


def conversation_from_dict(data: Dict[str, Any]) -> Conversation:
    return Conversation(
        id=data["id"],
        title=data["title"],
        messages=[message_from_dict(m) for m in data.get("messages", [])],
        created_at=_parse_timestamp(data["created_at"]),
        updated_at=_parse_timestamp(data["updated_at"]),
        main_sentiment=_parse_sentiment(data.get("main_sentiment")),
        language=data.get("language"),
    )


def to_json(conversations: Sequence[Conversation]) -> str:
    """Serialise conversations for export"""
    return json.dumps([conversation_to_dict(c) for c in conversations], ensure_ascii=False, indent=2)


def from_json(payload: str) -> List[Conversation]:
    """
    Raises:
        PersistenceError: If the payload is not a valid export, including
            empty conversations and ids used more than once
    """
    try:
        conversations = [conversation_from_dict(item) for item in json.loads(payload)]
    except (ValueError, KeyError, TypeError) as e:
        raise PersistenceError(f"Invalid conversation export: {e}") from e
    _check_import(conversations)
    return conversations


def _check_import(conversations: Sequence[Conversation]):
    conversation_ids, message_ids = set(), set()
    for conversation in conversations:
        if conversation.id in conversation_ids:
            raise PersistenceError(f"Duplicate conversation id in export: {conversation.id}")
        conversation_ids.add(conversation.id)
        if not conversation.messages:
            raise PersistenceError(f"Conversation {conversation.id} has no messages")
        for message in conversation.messages:
            if message.id in message_ids:
                raise PersistenceError(f"Duplicate message id in export: {message.id}")
            message_ids.add(message.id)


class ConversationRepository:
    """
    Repository for conversation persistence.
    Saves replace the whole stored list in one transaction.
    """

    def __init__(self, db_path: str = "data/sentiai_chat.db"):
        """
        Args:
            db_path: Path to the SQLite database file
        """
        self.logger = get_logger(__name__)
        self.db_path = db_path
        self._init_database()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _init_database(self):
        """Create tables and indexes if they do not exist"""
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        try:
            with closing(self._connect()) as conn, conn:
                conn.execute('''
                    CREATE TABLE IF NOT EXISTS conversations (
                        id TEXT PRIMARY KEY,
                        position INTEGER NOT NULL,
                        title TEXT NOT NULL,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL,
                        main_sentiment TEXT,
                        language TEXT
                    )
                ''')
                conn.execute('''
                    CREATE TABLE IF NOT EXISTS messages (
                        id TEXT PRIMARY KEY,
                        conversation_id TEXT NOT NULL,
                        position INTEGER NOT NULL,
                        content TEXT NOT NULL,
                        sender TEXT NOT NULL,
                        timestamp TEXT NOT NULL,
                        sentiment TEXT,
                        language TEXT,
                        original_text TEXT,
                        translated_from TEXT,
                        FOREIGN KEY (conversation_id) REFERENCES conversations (id)
                    )
                ''')
                conn.execute('''
                    CREATE TABLE IF NOT EXISTS app_state (
                        key TEXT PRIMARY KEY,
                        value TEXT
                    )
                ''')
                conn.execute('''
                    CREATE INDEX IF NOT EXISTS idx_messages_conversation_id ON messages (conversation_id)
                ''')
            self.logger.info("Conversation database initialized successfully")
        except sqlite3.Error as e:
            self.logger.error(f"Error initializing conversation database: {e}")
            raise PersistenceError(f"Cannot initialize database at {self.db_path}: {e}") from e

    def load_conversations(self) -> List[Conversation]:
        """
        Returns:
            List[Conversation]: Conversations in saved order, messages in timeline order
        """
        try:
            with closing(self._connect()) as conn:
                conn.row_factory = sqlite3.Row
                conversation_rows = conn.execute(
                    "SELECT * FROM conversations ORDER BY position"
                ).fetchall()
                message_rows = conn.execute(
                    "SELECT * FROM messages ORDER BY conversation_id, position"
                ).fetchall()
        except sqlite3.Error as e:
            self.logger.error(f"Error loading conversations: {e}")
            raise PersistenceError(f"Cannot load conversations: {e}") from e

        messages: Dict[str, List[Message]] = {}
        for row in message_rows:
            messages.setdefault(row["conversation_id"], []).append(message_from_dict(dict(row)))

        return [
            Conversation(
                id=row["id"],
                title=row["title"],
                messages=messages.get(row["id"], []),
                created_at=_parse_timestamp(row["created_at"]),
                updated_at=_parse_timestamp(row["updated_at"]),
                main_sentiment=_parse_sentiment(row["main_sentiment"]),
                language=row["language"],
            )
            for row in conversation_rows
        ]

    def save_conversations(self, conversations: Sequence[Conversation]):
        """Replace the stored conversations with ``conversations``"""
        try:
            with closing(self._connect()) as conn, conn:
                conn.execute("DELETE FROM messages")
                conn.execute("DELETE FROM conversations")
                conn.executemany(
                    '''INSERT INTO conversations
                       (id, position, title, created_at, updated_at, main_sentiment, language)
                       VALUES (?, ?, ?, ?, ?, ?, ?)''',
                    [
                        (
                            c.id, position, c.title, c.created_at.isoformat(), c.updated_at.isoformat(),
                            c.main_sentiment.value if c.main_sentiment else None, c.language,
                        )
                        for position, c in enumerate(conversations)
                    ],
                )
                conn.executemany(
                    '''INSERT INTO messages
                       (id, conversation_id, position, content, sender, timestamp,
                        sentiment, language, original_text, translated_from)
                       VALUES (:id, :conversation_id, :position, :content, :sender, :timestamp,
                               :sentiment, :language, :original_text, :translated_from)''',
                    [
                        {**message_to_dict(m), "conversation_id": c.id, "position": position}
                        for c in conversations
                        for position, m in enumerate(c.messages)
                    ],
                )
        except sqlite3.Error as e:
            self.logger.error(f"Error saving conversations: {e}")
            raise PersistenceError(f"Cannot save conversations: {e}") from e

    def load_active_conversation_id(self) -> Optional[str]:
        try:
            with closing(self._connect()) as conn:
                row = conn.execute(
                    "SELECT value FROM app_state WHERE key = ?", (ACTIVE_CONVERSATION_KEY,)
                ).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot load active conversation: {e}") from e
        return row[0] if row else None

    def save_active_conversation_id(self, conversation_id: Optional[str]):
        try:
            with closing(self._connect()) as conn, conn:
                if conversation_id is None:
                    conn.execute("DELETE FROM app_state WHERE key = ?", (ACTIVE_CONVERSATION_KEY,))
                else:
                    conn.execute(
                        "INSERT OR REPLACE INTO app_state (key, value) VALUES (?, ?)",
                        (ACTIVE_CONVERSATION_KEY, conversation_id),
                    )
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot save active conversation: {e}") from e


class InMemoryConversationRepository:
    """Repository that keeps conversations for the current process only"""

    def __init__(self):
        self._payload = "[]"
        self._active_id: Optional[str] = None

    def load_conversations(self) -> List[Conversation]:
        return from_json(self._payload)

    def save_conversations(self, conversations: Sequence[Conversation]):
        self._payload = to_json(conversations)

    def load_active_conversation_id(self) -> Optional[str]:
        return self._active_id

    def save_active_conversation_id(self, conversation_id: Optional[str]):
        self._active_id = conversation_id
