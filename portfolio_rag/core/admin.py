"""
Administrative surface over the vector index: stats, sync, purge, search, export.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from . import config
from .errors import StoreRejected, StoreUnavailable
from .schema import IndexableTypesConfig
from ..util.logging import logger

EXPORT_PAGE_SIZE = 200


class VectorAdminService:
    """Operations behind the /vectors admin routes."""

    def __init__(self, synchronizer, vector_store, embedding_provider, types_config: IndexableTypesConfig):
        self.synchronizer = synchronizer
        self.vector_store = vector_store
        self.embedding_provider = embedding_provider
        self.types_config = types_config

    def test_connection(self) -> Dict[str, Any]:
        """Probe the vector store and the embedding service independently."""
        status = {}

        try:
            self.vector_store.ensure_collection()
            status["vector_store"] = {"ok": True, "documents": self.vector_store.count()}
        except (StoreUnavailable, StoreRejected) as e:
            status["vector_store"] = {"ok": False, "error": str(e)}

        try:
            dimension = len(self.embedding_provider.embed_text("connection test"))
            status["embedding"] = {"ok": True, "dimension": dimension}
        except StoreUnavailable as e:
            status["embedding"] = {"ok": False, "error": str(e)}

        status["ok"] = status["vector_store"]["ok"] and status["embedding"]["ok"]
        return status

    def config_view(self) -> Dict[str, Any]:
        return {
            "vector_provider": config.VECTOR_PROVIDER,
            "chroma_url": config.CHROMA_URL,
            "collection": config.CHROMA_COLLECTION,
            "embed_provider": config.EMBED_PROVIDER,
            "embed_model": config.EMBED_MODEL,
            "ollama_url": config.OLLAMA_URL,
            "analyzer_model": config.ANALYZER_MODEL,
            "chat_model": config.CHAT_MODEL,
            "indexable_types": list(self.types_config.types),
            "watched_types": list(self.types_config.watched),
        }

    def stats(self) -> Dict[str, Any]:
        """
        Raises:
            StoreUnavailable: if the index cannot be read
        """
        last_sync_at = self.synchronizer.last_sync_at
        return {
            "document_count": self.vector_store.count(),
            "indexed_types": list(self.types_config.types),
            "type_counts": self.vector_store.type_counts(),
            "last_sync_at": last_sync_at.isoformat() if last_sync_at else None,
        }

    def collections(self) -> List[Dict[str, Any]]:
        """Every indexable type with its index and content counts."""
        counts = self.vector_store.type_counts()
        content_store = self.synchronizer.content_store
        return [
            {
                "type": content_type,
                "label": schema.label,
                "watched": self.types_config.is_watched(content_type),
                "fields": list(schema.fields),
                "indexed_count": counts.get(content_type, 0),
                "record_count": content_store.count(content_type),
            }
            for content_type, schema in self.types_config.types.items()
        ]

    def sync_full(self) -> Dict[str, Any]:
        return self.synchronizer.sync_all().as_dict()

    def sync_type(self, content_type: str) -> Dict[str, Any]:
        return self.synchronizer.sync_type(content_type).as_dict()

    def sync_one(self, content_type: str, record_id: Any) -> Dict[str, Any]:
        job = self.synchronizer.sync_one(content_type, record_id)
        return {"document_id": job.document_id, "state": job.state.value, "skipped": job.skipped}

    def remove_document(self, content_type: str, record_id: Any) -> Dict[str, Any]:
        return {"document_id": self.synchronizer.remove_document(content_type, record_id), "removed": True}

    def purge_all(self) -> Dict[str, Any]:
        removed = self.vector_store.purge_all()
        logger.warning(f"Purged the whole index ({removed} documents)")
        return {"removed": removed}

    def purge_type(self, content_type: str) -> Dict[str, Any]:
        # Unknown types are allowed so orphaned documents can be purged
        removed = self.vector_store.purge_by_type(content_type)
        return {"type": content_type, "removed": removed}

    def reindex(self) -> Dict[str, Any]:
        """Purge everything, then rebuild from the content store."""
        removed = self.vector_store.purge_all()
        stats = self.synchronizer.sync_all().as_dict()
        stats["removed"] = removed
        return stats

    def reconcile(self, apply: bool = True) -> Dict[str, Any]:
        return self.synchronizer.reconcile(apply=apply).as_dict()

    def search(self, query: str, k: int = 5) -> List[Dict[str, Any]]:
        """Raw similarity search, bypassing relevance analysis."""
        embedding = self.embedding_provider.embed_text(query)
        return [
            {
                "document_id": r.document_id,
                "text": r.text,
                "metadata": r.metadata,
                "distance": r.distance,
                "similarity": round(r.similarity, 3),
            }
            for r in self.vector_store.query(embedding, k)
        ]

    def embed(self, text: str) -> Dict[str, Any]:
        embedding = self.embedding_provider.embed_text(text)
        return {"dimension": len(embedding), "preview": [round(v, 6) for v in embedding[:8]]}

    def list_documents(self, limit: int = 50, offset: int = 0, source_type: Optional[str] = None) -> List[Dict[str, Any]]:
        return [
            {"document_id": d.document_id, "text": d.text, "metadata": d.metadata}
            for d in self.vector_store.list_documents(limit=limit, offset=offset, source_type=source_type)
        ]

    def export_report(self, types: Optional[List[str]] = None) -> str:
        """Flat text report of the indexed documents, grouped by type."""
        selected = types or self.vector_store.list_types()
        lines = [
            "Portfolio vector index export",
            f"Generated: {datetime.now().isoformat()}",
            f"Types: {', '.join(selected) if selected else '(none)'}",
            "",
        ]

        for content_type in selected:
            documents = []
            offset = 0
            while True:
                page = self.vector_store.list_documents(limit=EXPORT_PAGE_SIZE, offset=offset, source_type=content_type)
                documents.extend(page)
                if len(page) < EXPORT_PAGE_SIZE:
                    break
                offset += EXPORT_PAGE_SIZE

            lines.append(f"=== {self.types_config.label_for(content_type)} ({content_type}): {len(documents)} documents ===")
            for document in documents:
                lines.append(f"--- {document.document_id}")
                lines.append(document.text)
                for key in sorted(document.metadata):
                    lines.append(f"  {key}: {document.metadata[key]}")
            lines.append("")

        return "\n".join(lines)
