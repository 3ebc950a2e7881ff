"""
Wiring of the RAG components from configuration.
"""

import threading
from dataclasses import dataclass
from typing import Optional

from . import config
from .admin import VectorAdminService
from .dao import ContentStore
from .schema import IndexableTypesConfig
from .sessions import SessionStore
from .sync import IndexSynchronizer
from ..agents.assistant import PortfolioAssistant
from ..agents.relevance import RelevanceAnalyzer
from ..agents.retriever import RetrievalOrchestrator
from ..vector.embeddings import IEmbeddingProvider
from ..vector.index import IVectorStore


@dataclass
class RagServices:
    content_store: ContentStore
    vector_store: IVectorStore
    embedding_provider: IEmbeddingProvider
    types_config: IndexableTypesConfig
    synchronizer: IndexSynchronizer
    analyzer: RelevanceAnalyzer
    retriever: RetrievalOrchestrator
    sessions: SessionStore
    assistant: PortfolioAssistant
    admin: VectorAdminService


def build_services(content_store: Optional[ContentStore] = None,
                   vector_store: Optional[IVectorStore] = None,
                   embedding_provider: Optional[IEmbeddingProvider] = None,
                   types_config: Optional[IndexableTypesConfig] = None,
                   analyzer: Optional[RelevanceAnalyzer] = None,
                   sessions: Optional[SessionStore] = None,
                   chat_client=None) -> RagServices:
    """Build every component, using configuration for anything not passed in."""
    content_store = content_store or ContentStore(config.DB_PATH)
    vector_store = vector_store or config.get_vector_store()
    embedding_provider = embedding_provider or config.get_embedding_provider()
    types_config = types_config or config.get_indexable_types()

    synchronizer = IndexSynchronizer(
        content_store, vector_store, embedding_provider, types_config,
        retry_attempts=config.SYNC_RETRY_ATTEMPTS,
        retry_backoff_sec=config.SYNC_RETRY_BACKOFF_SEC,
    )
    content_store.subscribe(synchronizer.handle_event)

    analyzer = analyzer or RelevanceAnalyzer(
        host=config.OLLAMA_URL,
        model_name=config.ANALYZER_MODEL,
        timeout=config.ANALYZER_TIMEOUT_SEC,
        num_ctx=config.ANALYZER_NUM_CTX,
        owner_name=config.OWNER_NAME,
        enabled=config.ANALYZER_ENABLED,
        fast_path=config.ANALYZER_FAST_PATH,
        probe_timeout=config.ANALYZER_PROBE_TIMEOUT_SEC,
        probe_cache_sec=config.ANALYZER_PROBE_CACHE_SEC,
    )
    retriever = RetrievalOrchestrator(
        analyzer, embedding_provider, vector_store, types_config,
        min_k=config.RETRIEVAL_MIN_K, max_k=config.RETRIEVAL_MAX_K,
    )
    sessions = sessions or SessionStore(config.get_session_backend(), config.CHAT_HISTORY_LIMIT)
    assistant = PortfolioAssistant(
        retriever, sessions,
        host=config.OLLAMA_URL,
        model_name=config.CHAT_MODEL,
        timeout=config.CHAT_TIMEOUT_SEC,
        temperature=config.CHAT_TEMPERATURE,
        owner_name=config.OWNER_NAME,
        client=chat_client,
    )
    admin = VectorAdminService(synchronizer, vector_store, embedding_provider, types_config)

    return RagServices(
        content_store=content_store,
        vector_store=vector_store,
        embedding_provider=embedding_provider,
        types_config=types_config,
        synchronizer=synchronizer,
        analyzer=analyzer,
        retriever=retriever,
        sessions=sessions,
        assistant=assistant,
        admin=admin,
    )


_services: Optional[RagServices] = None
_services_lock = threading.Lock()


def get_services() -> RagServices:
    """Process-wide services, built on first use."""
    global _services
    if _services is None:
        with _services_lock:
            if _services is None:
                _services = build_services()
    return _services


def reset_services() -> None:
    global _services
    with _services_lock:
        _services = None
