"""
Append-only similarity index over user messages.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

import numpy as np

from services.ai_service.models import Sentiment
from services.memory_service.embeddings import BaseEmbedder, CharacterHistogramEmbedder, cosine_similarity
from utils.logging_config import get_error_tracker, get_logger


@dataclass(frozen=True, eq=False)
class VectorEntry:
    """One indexed user message"""
    id: str
    content: str
    embedding: np.ndarray
    conversation_id: str
    message_id: str
    timestamp: datetime
    sentiment: Optional[Sentiment] = None


@dataclass(frozen=True)
class SimilarMessage:
    """A past user message ranked against a query"""
    message_id: str
    content: str
    similarity: float
    conversation_id: str
    timestamp: Optional[datetime] = None
    sentiment: Optional[Sentiment] = None


class SimilarityIndex:
    """
    In-memory index of user messages ranked by cosine similarity.

    Entries are never updated or removed for the lifetime of the instance.
    """

    def __init__(self, embedder: Optional[BaseEmbedder] = None):
        self.logger = get_logger(__name__)
        self.embedder = embedder or CharacterHistogramEmbedder()
        self._entries: List[VectorEntry] = []
        self._message_ids = set()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> List[VectorEntry]:
        return list(self._entries)

    async def add(self, content: str, conversation_id: str, msg) -> bool:
        """
        Index a chat message under its conversation. Never raises.

        Only user-authored messages are indexed; repeated message ids are ignored.

        Returns:
            bool: True when an entry was appended
        """
        try:
            if not msg.is_user or not content.strip() or msg.id in self._message_ids:
                return False

            embedding = await self.embedder.embed(content)
            self._entries.append(VectorEntry(
                id=f"{conversation_id}:{msg.id}",
                content=content,
                embedding=embedding,
                conversation_id=conversation_id,
                message_id=msg.id,
                timestamp=msg.timestamp,
                sentiment=msg.sentiment,
            ))
            self._message_ids.add(msg.id)
            return True
        except Exception as e:
            get_error_tracker().track_error(e, "similarity_index_add")
            return False

    async def index_conversation(self, conversation) -> int:
        """Index every user message of ``conversation``; returns how many were added"""
        added = 0
        for msg in conversation.user_messages:
            if await self.add(msg.content, conversation.id, msg):
                added += 1
        return added

    async def query(self, text: str, k: int, exclude_message_id: Optional[str] = None) -> List[SimilarMessage]:
        """
        Rank indexed messages against ``text``.

        Args:
            text: Query text
            k: Maximum number of results
            exclude_message_id: Message to leave out (typically the query itself)

        Returns:
            List[SimilarMessage]: At most ``k`` results, most similar first; ties keep insertion order
        """
        if k <= 0 or not self._entries:
            return []

        query_embedding = await self.embedder.embed_query(text)
        scored = [
            SimilarMessage(
                message_id=entry.message_id,
                content=entry.content,
                similarity=cosine_similarity(query_embedding, entry.embedding),
                conversation_id=entry.conversation_id,
                timestamp=entry.timestamp,
                sentiment=entry.sentiment,
            )
            for entry in self._entries
            if entry.message_id != exclude_message_id
        ]
        scored.sort(key=lambda result: result.similarity, reverse=True)
        return scored[:k]
