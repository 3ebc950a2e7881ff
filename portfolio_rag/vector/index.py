"""
Vector store interface and the in-memory implementation.

Only the index synchronizer writes through this interface; the retrieval
path only queries.
"""

import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import numpy as np

from .types import IndexedDocument, SearchResult


class IVectorStore(ABC):
    """Abstract interface for vector storage operations."""

    @abstractmethod
    def ensure_collection(self) -> None:
        """Get or create the backing collection (cosine space)."""
        pass

    @abstractmethod
    def upsert(self, document_id: str, text: str, metadata: Dict[str, object], embedding: List[float]) -> None:
        """Replace whatever is stored under document_id with this document."""
        pass

    @abstractmethod
    def delete(self, document_id: str) -> None:
        """Delete a document by id. Deleting an absent id is not an error."""
        pass

    @abstractmethod
    def query(self, embedding: List[float], k: int = 5) -> List[SearchResult]:
        """Return up to k documents by ascending cosine distance."""
        pass

    @abstractmethod
    def purge_all(self) -> int:
        """Remove every document. Returns the number removed."""
        pass

    @abstractmethod
    def purge_by_type(self, source_type: str) -> int:
        """Remove every document of one source type. Returns the number removed."""
        pass

    @abstractmethod
    def count(self) -> int:
        """Total number of documents."""
        pass

    @abstractmethod
    def get_index_state(self) -> Dict[str, Dict[str, object]]:
        """document_id -> metadata for every stored document."""
        pass

    def list_types(self) -> List[str]:
        """Distinct source types present in the index."""
        return sorted(self.type_counts())

    def type_counts(self) -> Dict[str, int]:
        """Document count per source type."""
        counts: Dict[str, int] = {}
        for metadata in self.get_index_state().values():
            source_type = str(metadata.get("source_type", "unknown"))
            counts[source_type] = counts.get(source_type, 0) + 1
        return counts

    @abstractmethod
    def list_documents(self, limit: int = 50, offset: int = 0, source_type: Optional[str] = None) -> List[IndexedDocument]:
        """Page through stored documents without their vectors."""
        pass


class SimpleInMemoryVectorStore(IVectorStore):
    """Simple in-memory implementation of IVectorStore using cosine distance."""

    def __init__(self):
        self._documents: Dict[str, IndexedDocument] = {}
        self._index: Dict[str, np.ndarray] = {}  # document_id -> normalized vector
        self._lock = threading.RLock()

    def ensure_collection(self) -> None:
        pass

    def upsert(self, document_id: str, text: str, metadata: Dict[str, object], embedding: List[float]) -> None:
        vector = np.asarray(embedding, dtype=np.float64)
        norm = np.linalg.norm(vector)

        with self._lock:
            self.delete(document_id)
            self._documents[document_id] = IndexedDocument(
                document_id=document_id,
                text=text,
                metadata=dict(metadata),
                embedding=list(embedding),
            )
            self._index[document_id] = vector / norm if norm > 0 else vector

    def delete(self, document_id: str) -> None:
        with self._lock:
            self._documents.pop(document_id, None)
            self._index.pop(document_id, None)

    def query(self, embedding: List[float], k: int = 5) -> List[SearchResult]:
        query_vector = np.asarray(embedding, dtype=np.float64)
        norm = np.linalg.norm(query_vector)
        if norm == 0 or k < 1:
            return []
        normalized_query = query_vector / norm

        with self._lock:
            distances = [
                (document_id, 1.0 - float(np.dot(normalized_query, stored)))
                for document_id, stored in self._index.items()
            ]
            distances.sort(key=lambda x: (x[1], x[0]))

            results = []
            for document_id, distance in distances[:k]:
                document = self._documents[document_id]
                results.append(SearchResult(
                    document_id=document_id,
                    text=document.text,
                    metadata=dict(document.metadata),
                    distance=distance,
                ))
            return results

    def purge_all(self) -> int:
        with self._lock:
            removed = len(self._documents)
            self._documents.clear()
            self._index.clear()
            return removed

    def purge_by_type(self, source_type: str) -> int:
        with self._lock:
            doomed = [
                document_id for document_id, document in self._documents.items()
                if document.metadata.get("source_type") == source_type
            ]
            for document_id in doomed:
                self.delete(document_id)
            return len(doomed)

    def count(self) -> int:
        with self._lock:
            return len(self._documents)

    def get_index_state(self) -> Dict[str, Dict[str, object]]:
        with self._lock:
            return {document_id: dict(document.metadata) for document_id, document in self._documents.items()}

    def list_documents(self, limit: int = 50, offset: int = 0, source_type: Optional[str] = None) -> List[IndexedDocument]:
        with self._lock:
            documents = [
                document for document_id, document in sorted(self._documents.items())
                if source_type is None or document.metadata.get("source_type") == source_type
            ]
            return [
                IndexedDocument(document_id=d.document_id, text=d.text, metadata=dict(d.metadata))
                for d in documents[offset:offset + limit]
            ]
