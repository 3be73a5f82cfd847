"""
Memory service - embeds past user messages and finds similar ones.
"""

from .embeddings import BaseEmbedder, CharacterHistogramEmbedder, OpenAIEmbedder, create_embedder
from .similarity_index import SimilarityIndex, SimilarMessage

__all__ = [
    'BaseEmbedder',
    'CharacterHistogramEmbedder',
    'OpenAIEmbedder',
    'create_embedder',
    'SimilarityIndex',
    'SimilarMessage'
]
