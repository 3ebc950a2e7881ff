"""
Vector index layer: embedding providers and vector store adapters.
"""

from .index import IVectorStore, SimpleInMemoryVectorStore
from .types import IndexedDocument, SearchResult
from .embeddings import IEmbeddingProvider, DeterministicHashEmbedding, OllamaEmbedding, SentenceTransformerEmbedding

__all__ = [
    'IVectorStore',
    'SimpleInMemoryVectorStore',
    'IndexedDocument',
    'SearchResult',
    'IEmbeddingProvider',
    'DeterministicHashEmbedding',
    'OllamaEmbedding',
    'SentenceTransformerEmbedding'
]
