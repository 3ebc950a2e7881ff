"""
ChromaDB-backed vector store.

The collection handle is established lazily under a lock and dropped after
a backend failure so the next call reconnects. Chroma is never asked to
embed anything: vectors always come from our embedding provider.
"""

import threading
import weakref
from contextlib import contextmanager
from typing import Dict, List, Optional
from urllib.parse import urlparse

import chromadb
import httpx
from chromadb.errors import ChromaError, InvalidArgumentError, InvalidDimensionException, UniqueConstraintError

from .index import IVectorStore
from .types import IndexedDocument, SearchResult
from ..core.errors import StoreRejected, StoreUnavailable
from ..util.logging import logger

# Checked before BACKEND_ERRORS: these are ChromaErrors too
ARGUMENT_ERRORS = (InvalidArgumentError, InvalidDimensionException)
BACKEND_ERRORS = (ChromaError, httpx.HTTPError, ConnectionError, ValueError)


def _already_exists(error: Exception) -> bool:
    return isinstance(error, UniqueConstraintError) or "already exists" in str(error).lower()


class ChromaVectorStore(IVectorStore):
    """IVectorStore over a Chroma collection in cosine space."""

    def __init__(self, url: str = "http://localhost:8001", collection_name: str = "portfolio-rag",
                 persist_path: Optional[str] = None, client=None):
        """
        Args:
            url: Chroma server URL, used when no persist_path is given
            collection_name: Name of the collection holding all indexed types
            persist_path: Local directory for an embedded persistent client
            client: Pre-built chromadb client (tests)
        """
        self.url = url
        self.collection_name = collection_name
        self.persist_path = persist_path
        self._client = client
        self._collection = None
        self._collection_lock = threading.RLock()
        # Entries vanish once no writer holds the lock
        self._document_locks = weakref.WeakValueDictionary()
        self._document_locks_guard = threading.Lock()

    def _create_client(self):
        if self.persist_path:
            return chromadb.PersistentClient(path=self.persist_path)

        parsed = urlparse(self.url)
        return chromadb.HttpClient(
            host=parsed.hostname or "localhost",
            port=parsed.port or (443 if parsed.scheme == "https" else 8000),
            ssl=parsed.scheme == "https",
        )

    @contextmanager
    def _backend_call(self, operation: str):
        """Translate backend exceptions and drop the cached handle on failure."""
        try:
            yield
        except (StoreUnavailable, StoreRejected):
            raise
        except ARGUMENT_ERRORS as e:
            # The backend is fine, the request is not; keep the handle
            logger.log_vector_operation(operation, "-", {"error": str(e)}, status="rejected")
            raise StoreRejected(operation, e)
        except BACKEND_ERRORS as e:
            self._collection = None
            logger.log_vector_operation(operation, "-", {"error": str(e)}, status="failed")
            raise StoreUnavailable(operation, e)

    def _get_collection(self):
        collection = self._collection
        if collection is not None:
            return collection

        with self._collection_lock:
            if self._collection is not None:
                return self._collection

            with self._backend_call("ensure_collection"):
                if self._client is None:
                    self._client = self._create_client()

                try:
                    self._collection = self._client.get_collection(name=self.collection_name)
                except ARGUMENT_ERRORS:
                    raise
                except (ChromaError, ValueError):
                    try:
                        self._collection = self._client.create_collection(
                            name=self.collection_name,
                            metadata={"hnsw:space": "cosine"},
                            embedding_function=None,
                        )
                        logger.info(f"Created Chroma collection '{self.collection_name}'")
                    except (ChromaError, ValueError) as e:
                        if not _already_exists(e):
                            raise
                        # Another caller created it between our get and create
                        self._collection = self._client.get_collection(name=self.collection_name)

            return self._collection

    def _document_lock(self, document_id: str) -> threading.Lock:
        with self._document_locks_guard:
            lock = self._document_locks.get(document_id)
            if lock is None:
                lock = threading.Lock()
                self._document_locks[document_id] = lock
            return lock

    def ensure_collection(self) -> None:
        self._get_collection()

    def upsert(self, document_id: str, text: str, metadata: Dict[str, object], embedding: List[float]) -> None:
        collection = self._get_collection()
        with self._document_lock(document_id):
            with self._backend_call("upsert"):
                previous = collection.get(ids=[document_id], include=["documents", "metadatas", "embeddings"])
                collection.delete(ids=[document_id])
                try:
                    collection.add(
                        ids=[document_id],
                        documents=[text],
                        metadatas=[metadata],
                        embeddings=[list(embedding)],
                    )
                except Exception:
                    self._restore(collection, document_id, previous)
                    raise
        logger.log_vector_operation("upsert", document_id, {"dimension": len(embedding)})

    def _restore(self, collection, document_id: str, previous) -> None:
        """Put back the entry a failed upsert removed, if there was one."""
        if not previous or not previous.get("ids"):
            return
        try:
            collection.add(
                ids=list(previous["ids"]),
                documents=previous["documents"],
                metadatas=previous["metadatas"],
                embeddings=previous["embeddings"],
            )
            logger.log_vector_operation("restore", document_id, status="restored")
        except Exception as e:
            logger.error(f"Could not restore previous version of {document_id}: {e}")

    def delete(self, document_id: str) -> None:
        collection = self._get_collection()
        with self._document_lock(document_id):
            with self._backend_call("delete"):
                collection.delete(ids=[document_id])
        logger.log_vector_operation("delete", document_id)

    def query(self, embedding: List[float], k: int = 5) -> List[SearchResult]:
        collection = self._get_collection()
        with self._backend_call("query"):
            total = collection.count()
            if total == 0 or k < 1:
                return []
            response = collection.query(
                query_embeddings=[list(embedding)],
                n_results=min(k, total),
                include=["documents", "metadatas", "distances"],
            )

        ids = response.get("ids") or [[]]
        documents = response.get("documents") or [[]]
        metadatas = response.get("metadatas") or [[]]
        distances = response.get("distances") or [[]]

        results = [
            SearchResult(
                document_id=document_id,
                text=documents[0][i] or "",
                metadata=dict(metadatas[0][i] or {}),
                distance=float(distances[0][i]),
            )
            for i, document_id in enumerate(ids[0])
        ]
        results.sort(key=lambda r: r.distance)
        return results

    def purge_all(self) -> int:
        """
        Drop the collection and create it again empty.

        Recreating also clears the embedding dimension Chroma pinned on the
        old collection, so a reindex after a model change starts clean.

        Returns:
            Number of documents the dropped collection held
        """
        with self._collection_lock:
            collection = self._get_collection()
            with self._backend_call("purge_all"):
                removed = collection.count()
                self._client.delete_collection(name=self.collection_name)
                self._collection = None
            self._get_collection()

        logger.log_operation("vector.purge_all", "success", {"removed": removed})
        return removed

    def purge_by_type(self, source_type: str) -> int:
        collection = self._get_collection()
        with self._backend_call("purge_by_type"):
            ids = collection.get(where={"source_type": source_type}, include=[])["ids"]
            if ids:
                collection.delete(where={"source_type": source_type})
        logger.log_operation("vector.purge_by_type", "success", {"source_type": source_type, "removed": len(ids)})
        return len(ids)

    def count(self) -> int:
        collection = self._get_collection()
        with self._backend_call("count"):
            return collection.count()

    def get_index_state(self) -> Dict[str, Dict[str, object]]:
        collection = self._get_collection()
        with self._backend_call("get_index_state"):
            response = collection.get(include=["metadatas"])
        return {
            document_id: dict(metadata or {})
            for document_id, metadata in zip(response["ids"], response["metadatas"])
        }

    def list_documents(self, limit: int = 50, offset: int = 0, source_type: Optional[str] = None) -> List[IndexedDocument]:
        collection = self._get_collection()
        kwargs = {"limit": limit, "offset": offset, "include": ["documents", "metadatas"]}
        if source_type:
            kwargs["where"] = {"source_type": source_type}

        with self._backend_call("list_documents"):
            response = collection.get(**kwargs)

        return [
            IndexedDocument(document_id=document_id, text=text or "", metadata=dict(metadata or {}))
            for document_id, text, metadata in zip(response["ids"], response["documents"], response["metadatas"])
        ]
