"""
Embedding backends for the similarity index.
"""

from abc import ABC, abstractmethod
from typing import List

import numpy as np

from services.exceptions import EmbeddingError


class BaseEmbedder(ABC):
    """Abstract interface for text embedding."""

    dimensions: int = 0

    @abstractmethod
    async def embed(self, text: str) -> np.ndarray:
        """Embed a single stored text."""
        ...

    async def embed_query(self, text: str) -> np.ndarray:
        """Embed a search query."""
        return await self.embed(text)

    async def embed_batch(self, texts: List[str]) -> List[np.ndarray]:
        """Embed multiple texts."""
        return [await self.embed(text) for text in texts]


class CharacterHistogramEmbedder(BaseEmbedder):
    """
    Normalised character-frequency histogram.

    Each character's code point modulo ``dimensions`` increments a bucket and
    the histogram is divided by the number of characters. A heuristic stand-in
    for semantic embeddings that needs no network.
    """

    def __init__(self, dimensions: int = 256):
        self.dimensions = dimensions

    def vectorize(self, text: str) -> np.ndarray:
        vector = np.zeros(self.dimensions, dtype=np.float64)
        if not text:
            return vector
        codes = np.fromiter((ord(char) % self.dimensions for char in text), dtype=np.int64, count=len(text))
        np.add.at(vector, codes, 1.0)
        return vector / len(text)

    async def embed(self, text: str) -> np.ndarray:
        return self.vectorize(text)


class OpenAIEmbedder(BaseEmbedder):
    """Embeddings from the remote model's embedding endpoint"""

    def __init__(self, remote_model, dimensions: int = 1536):
        self.remote_model = remote_model
        self.dimensions = dimensions

    async def embed(self, text: str) -> np.ndarray:
        return (await self.embed_batch([text]))[0]

    async def embed_batch(self, texts: List[str]) -> List[np.ndarray]:
        if not texts:
            return []
        try:
            vectors = await self.remote_model.embed(texts)
        except Exception as e:
            raise EmbeddingError(f"Remote embedding failed: {e}") from e
        if len(vectors) != len(texts):
            raise EmbeddingError(f"Expected {len(texts)} embeddings, got {len(vectors)}")
        return [np.asarray(vector, dtype=np.float64) for vector in vectors]


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity; 0.0 when either vector has zero norm"""
    norm = np.linalg.norm(a) * np.linalg.norm(b)
    if norm == 0 or a.shape != b.shape:
        return 0.0
    return float(np.dot(a, b) / norm)


def create_embedder(kind: str, remote_model=None, dimensions: int = 256) -> BaseEmbedder:
    """Build the embedder named in configuration, histogram when the remote one is unavailable"""
    if kind == "openai" and remote_model is not None:
        return OpenAIEmbedder(remote_model)
    return CharacterHistogramEmbedder(dimensions=dimensions)
