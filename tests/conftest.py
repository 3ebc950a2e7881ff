"""
Shared fixtures: a throwaway content store, the in-memory index and the
token-hashing embedder, so nothing here needs a model or a Chroma server.
"""

import pytest
from unittest.mock import MagicMock

from portfolio_rag.agents.relevance import RelevanceAnalyzer
from portfolio_rag.core.dao import ContentStore
from portfolio_rag.core.schema import load_indexable_types
from portfolio_rag.core.sync import IndexSynchronizer
from portfolio_rag.vector.embeddings import DeterministicHashEmbedding
from portfolio_rag.vector.index import SimpleInMemoryVectorStore


@pytest.fixture
def content_store(tmp_path):
    return ContentStore(str(tmp_path / "portfolio.db"))


@pytest.fixture
def vector_store():
    return SimpleInMemoryVectorStore()


@pytest.fixture
def embedder():
    return DeterministicHashEmbedding(dimension=256)


@pytest.fixture
def types_config():
    return load_indexable_types()


@pytest.fixture
def synchronizer(content_store, vector_store, embedder, types_config):
    sync = IndexSynchronizer(
        content_store, vector_store, embedder, types_config,
        retry_attempts=2, retry_backoff_sec=0
    )
    content_store.subscribe(sync.handle_event)
    return sync


@pytest.fixture
def offline_analyzer():
    """Analyzer whose model is unreachable, so every decision is the keyword fallback."""
    probe_client = MagicMock()
    probe_client.list.side_effect = ConnectionError("connection refused")
    return RelevanceAnalyzer(fast_path=False, client=MagicMock(), probe_client=probe_client)


@pytest.fixture
def sample_project():
    return {
        "title": "Angular dashboard",
        "description": [
            {"type": "paragraph", "children": [
                {"type": "text", "text": "Projet de tableau de bord"},
                {"type": "text", "text": "Angular avec graphiques temps réel"},
            ]}
        ],
        "github_link": "https://github.com/example/dashboard",
        "codings": [{"id": 1, "name": "Angular"}, {"id": 2, "name": "TypeScript"}],
    }
