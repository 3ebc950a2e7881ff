"""
HTTP API: vector index administration and the chat surface.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Depends, Query
from fastapi.middleware.cors import CORSMiddleware

from .schemas import (
    HealthResponse,
    ChatMessageRequest,
    ChatMessageResponse,
    AnalyzeRequest,
    AnalyzeResponse,
    SessionHistoryResponse,
    SearchRequest,
    SearchResponse,
    EmbeddingRequest,
    EmbeddingResponse,
    StatsResponse,
    CollectionInfo,
    SyncStatsResponse,
    SyncOneResponse,
    PurgeResponse,
    ExportRequest,
    ExportResponse,
)
from ..core.config import VERSION, DEBUG
from ..core.db import health_check
from ..core.errors import (
    RagError, StoreRejected, StoreUnavailable, UnknownContentType, RecordNotFound, SyncJobError,
)
from ..core.services import RagServices, get_services
from ..util.logging import logger

app = FastAPI(
    title="Portfolio RAG API",
    version=VERSION,
    description="Vector index synchronization and retrieval for a portfolio assistant",
    docs_url="/docs" if DEBUG else None,
    redoc_url="/redoc" if DEBUG else None
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:4200", "http://127.0.0.1:4200", "http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@contextmanager
def rag_errors():
    """Translate RAG errors into HTTP errors."""
    try:
        yield
    except (UnknownContentType, RecordNotFound) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StoreUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    except SyncJobError as e:
        raise HTTPException(status_code=500, detail=str(e))
    except RagError as e:
        logger.error(f"Unhandled RAG error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/health", response_model=HealthResponse)
def health_check_endpoint(services: RagServices = Depends(get_services)):
    """Check system health."""
    db_health = health_check(services.content_store.db_path)
    try:
        services.vector_store.ensure_collection()
        vector_health = True
    except (StoreUnavailable, StoreRejected):
        vector_health = False

    return HealthResponse(
        status="healthy" if db_health and vector_health else "degraded",
        version=VERSION,
        db_health=db_health,
        vector_store=vector_health
    )


# Vector administration

@app.get("/vectors/test-connection")
def test_connection(services: RagServices = Depends(get_services)):
    return services.admin.test_connection()


@app.get("/vectors/config")
def vector_config(services: RagServices = Depends(get_services)):
    return services.admin.config_view()


@app.get("/vectors/stats", response_model=StatsResponse)
def vector_stats(services: RagServices = Depends(get_services)):
    with rag_errors():
        return StatsResponse(**services.admin.stats())


@app.get("/vectors/collections", response_model=List[CollectionInfo])
def vector_collections(services: RagServices = Depends(get_services)):
    with rag_errors():
        return [CollectionInfo(**c) for c in services.admin.collections()]


@app.post("/vectors/purge/all", response_model=PurgeResponse)
def purge_all(services: RagServices = Depends(get_services)):
    with rag_errors():
        return PurgeResponse(**services.admin.purge_all())


@app.post("/vectors/purge/collection/{content_type}", response_model=PurgeResponse)
def purge_collection(content_type: str, services: RagServices = Depends(get_services)):
    with rag_errors():
        return PurgeResponse(**services.admin.purge_type(content_type))


@app.post("/vectors/reindex", response_model=SyncStatsResponse)
def reindex(services: RagServices = Depends(get_services)):
    with rag_errors():
        return SyncStatsResponse(**services.admin.reindex())


@app.post("/vectors/search", response_model=SearchResponse)
def vector_search(req: SearchRequest, services: RagServices = Depends(get_services)):
    with rag_errors():
        return SearchResponse(query=req.query, results=services.admin.search(req.query, req.k))


@app.post("/vectors/embedding", response_model=EmbeddingResponse)
def vector_embedding(req: EmbeddingRequest, services: RagServices = Depends(get_services)):
    with rag_errors():
        return EmbeddingResponse(**services.admin.embed(req.text))


# Sync routes: fixed paths before the {content_type}/{record_id} pattern

@app.post("/vectors/sync/full", response_model=SyncStatsResponse)
def sync_full(services: RagServices = Depends(get_services)):
    with rag_errors():
        return SyncStatsResponse(**services.admin.sync_full())


@app.post("/vectors/sync/collection/{content_type}", response_model=SyncStatsResponse)
def sync_collection(content_type: str, services: RagServices = Depends(get_services)):
    with rag_errors():
        return SyncStatsResponse(**services.admin.sync_type(content_type))


@app.post("/vectors/sync/{content_type}/{record_id}", response_model=SyncOneResponse)
def sync_record(content_type: str, record_id: int, services: RagServices = Depends(get_services)):
    with rag_errors():
        return SyncOneResponse(**services.admin.sync_one(content_type, record_id))


@app.delete("/vectors/sync/{content_type}/{record_id}")
def remove_record(content_type: str, record_id: int, services: RagServices = Depends(get_services)):
    with rag_errors():
        return services.admin.remove_document(content_type, record_id)


@app.get("/vectors/documents")
def list_documents(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    type: Optional[str] = None,
    services: RagServices = Depends(get_services)
):
    with rag_errors():
        return {"documents": services.admin.list_documents(limit=limit, offset=offset, source_type=type)}


@app.post("/vectors/export", response_model=ExportResponse)
def export_vectors(req: ExportRequest, services: RagServices = Depends(get_services)):
    with rag_errors():
        content = services.admin.export_report(req.types or None)
    return ExportResponse(
        content=content,
        filename=f"vector-export-{datetime.now().date().isoformat()}.txt",
        types=req.types
    )


@app.post("/vectors/reconcile")
def reconcile(apply: bool = True, services: RagServices = Depends(get_services)):
    with rag_errors():
        return services.admin.reconcile(apply=apply)


# Chat

@app.post("/chat/message", response_model=ChatMessageResponse)
def chat_message(req: ChatMessageRequest, services: RagServices = Depends(get_services)):
    with rag_errors():
        return ChatMessageResponse(**services.assistant.reply(req.message, req.session_id))


@app.post("/chat/analyze", response_model=AnalyzeResponse)
def chat_analyze(req: AnalyzeRequest, services: RagServices = Depends(get_services)):
    """Run the read path without calling the chat model."""
    result = services.retriever.retrieve(req.message)
    decision = result.decision
    return AnalyzeResponse(
        should_retrieve=decision.should_retrieve,
        confidence=decision.confidence,
        keywords=decision.keywords,
        reasoning=decision.reasoning,
        source=decision.source,
        search_query=result.search_query,
        k=result.k,
        retrieval_status=result.status,
        context=result.context
    )


@app.get("/chat/sessions/{session_id}", response_model=SessionHistoryResponse)
def get_session(session_id: str, services: RagServices = Depends(get_services)):
    return SessionHistoryResponse(session_id=session_id, messages=services.sessions.history(session_id))


@app.delete("/chat/sessions/{session_id}")
def reset_session(session_id: str, services: RagServices = Depends(get_services)):
    return {"session_id": session_id, "removed": services.sessions.reset(session_id)}
