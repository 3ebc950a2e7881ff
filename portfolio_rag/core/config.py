"""
Runtime configuration for the portfolio RAG subsystem.
Everything is read from the environment (optionally a .env file) once at import.
"""

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Content store and sessions
DB_PATH = os.getenv("DB_PATH", "./data/portfolio.db")
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
SESSION_BACKEND = os.getenv("SESSION_BACKEND", "sqlite")  # sqlite|memory
OWNER_NAME = os.getenv("OWNER_NAME", "the site owner")

# Vector store
VECTOR_PROVIDER = os.getenv("VECTOR_PROVIDER", "chroma")  # chroma|memory
CHROMA_URL = os.getenv("CHROMA_URL", "http://localhost:8001")
CHROMA_PERSIST_PATH = os.getenv("CHROMA_PERSIST_PATH", "")  # local persistent mode when set
CHROMA_COLLECTION = os.getenv("CHROMA_COLLECTION", "portfolio-rag")

# Embeddings
EMBED_PROVIDER = os.getenv("EMBED_PROVIDER", "ollama")  # ollama|sentence_transformers|hash
EMBED_MODEL = os.getenv("EMBED_MODEL", "mxbai-embed-large")
EMBED_DIM = int(os.getenv("EMBED_DIM", "384"))  # hash provider only
OLLAMA_URL = os.getenv("OLLAMA_URL", "http://localhost:11434")
OLLAMA_TIMEOUT_SEC = float(os.getenv("OLLAMA_TIMEOUT_SEC", "30"))

# Relevance analysis
ANALYZER_ENABLED = os.getenv("ANALYZER_ENABLED", "true").lower() == "true"
ANALYZER_FAST_PATH = os.getenv("ANALYZER_FAST_PATH", "true").lower() == "true"
ANALYZER_MODEL = os.getenv("ANALYZER_MODEL", "qwen2.5:1.5b")
ANALYZER_TIMEOUT_SEC = float(os.getenv("ANALYZER_TIMEOUT_SEC", "8"))
ANALYZER_NUM_CTX = int(os.getenv("ANALYZER_NUM_CTX", "512"))
ANALYZER_PROBE_TIMEOUT_SEC = float(os.getenv("ANALYZER_PROBE_TIMEOUT_SEC", "1.0"))
ANALYZER_PROBE_CACHE_SEC = float(os.getenv("ANALYZER_PROBE_CACHE_SEC", "30"))

# Retrieval
RETRIEVAL_MIN_K = int(os.getenv("RETRIEVAL_MIN_K", "2"))
RETRIEVAL_MAX_K = int(os.getenv("RETRIEVAL_MAX_K", "8"))

# Conversational model
CHAT_MODEL = os.getenv("CHAT_MODEL", "qwen2.5:1.5b")
CHAT_TIMEOUT_SEC = float(os.getenv("CHAT_TIMEOUT_SEC", "60"))
CHAT_HISTORY_LIMIT = int(os.getenv("CHAT_HISTORY_LIMIT", "10"))
CHAT_TEMPERATURE = float(os.getenv("CHAT_TEMPERATURE", "0.7"))

# Synchronization
INDEXABLE_TYPES_PATH = os.getenv("INDEXABLE_TYPES_PATH", "")
WATCHED_TYPES = os.getenv("WATCHED_TYPES", "")  # comma separated, empty = config default
SYNC_RETRY_ATTEMPTS = int(os.getenv("SYNC_RETRY_ATTEMPTS", "2"))
SYNC_RETRY_BACKOFF_SEC = float(os.getenv("SYNC_RETRY_BACKOFF_SEC", "0.5"))

# Reconciliation heartbeat
RECONCILE_ENABLED = os.getenv("RECONCILE_ENABLED", "false").lower() == "true"
RECONCILE_INTERVAL_SEC = int(os.getenv("RECONCILE_INTERVAL_SEC", "3600"))

VERSION = "1.0.0"


@lru_cache(maxsize=1)
def get_indexable_types():
    """Validated indexable type configuration, loaded once per process."""
    from .schema import load_indexable_types
    watched = [t.strip() for t in WATCHED_TYPES.split(",") if t.strip()] or None
    return load_indexable_types(INDEXABLE_TYPES_PATH or None, watched=watched)


def get_vector_store():
    """Get configured vector store implementation."""
    if VECTOR_PROVIDER == "memory":
        from ..vector.index import SimpleInMemoryVectorStore
        return SimpleInMemoryVectorStore()

    from ..vector.chroma_store import ChromaVectorStore
    return ChromaVectorStore(
        url=CHROMA_URL,
        collection_name=CHROMA_COLLECTION,
        persist_path=CHROMA_PERSIST_PATH or None,
    )


def get_embedding_provider():
    """Get configured embedding provider implementation."""
    if EMBED_PROVIDER == "hash":
        from ..vector.embeddings import DeterministicHashEmbedding
        return DeterministicHashEmbedding(dimension=EMBED_DIM)
    elif EMBED_PROVIDER == "sentence_transformers":
        from ..vector.embeddings import SentenceTransformerEmbedding
        return SentenceTransformerEmbedding(EMBED_MODEL)

    from ..vector.embeddings import OllamaEmbedding
    return OllamaEmbedding(host=OLLAMA_URL, model_name=EMBED_MODEL, timeout=OLLAMA_TIMEOUT_SEC)


def get_session_backend():
    """Get configured chat session persistence backend."""
    from .sessions import InMemorySessionBackend, SQLiteSessionBackend
    if SESSION_BACKEND == "memory":
        return InMemorySessionBackend()
    return SQLiteSessionBackend(DB_PATH)


def ensure_db_directory(db_path: str = None):
    """Ensure the database directory exists."""
    Path(db_path or DB_PATH).parent.mkdir(parents=True, exist_ok=True)


def validate_config():
    """Validate configuration and return any issues."""
    issues = []

    if VECTOR_PROVIDER not in ["chroma", "memory"]:
        issues.append(f"Invalid VECTOR_PROVIDER: {VECTOR_PROVIDER}")

    if EMBED_PROVIDER not in ["ollama", "sentence_transformers", "hash"]:
        issues.append(f"Invalid EMBED_PROVIDER: {EMBED_PROVIDER}")

    if SESSION_BACKEND not in ["sqlite", "memory"]:
        issues.append(f"Invalid SESSION_BACKEND: {SESSION_BACKEND}")

    if RETRIEVAL_MIN_K < 1 or RETRIEVAL_MAX_K < RETRIEVAL_MIN_K:
        issues.append("RETRIEVAL_MIN_K must be >= 1 and <= RETRIEVAL_MAX_K")

    if SYNC_RETRY_ATTEMPTS < 1:
        issues.append("SYNC_RETRY_ATTEMPTS must be >= 1")

    if RECONCILE_INTERVAL_SEC < 1:
        issues.append("RECONCILE_INTERVAL_SEC must be >= 1")

    if INDEXABLE_TYPES_PATH and not Path(INDEXABLE_TYPES_PATH).is_file():
        issues.append(f"INDEXABLE_TYPES_PATH does not exist: {INDEXABLE_TYPES_PATH}")

    return issues
