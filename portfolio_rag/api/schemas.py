"""
Request and response models for the HTTP API.
"""

from pydantic import BaseModel, field_validator
from typing import Optional, List, Dict, Any


class HealthResponse(BaseModel):
    status: str
    version: str
    db_health: bool
    vector_store: bool


class ChatMessageRequest(BaseModel):
    message: str
    session_id: Optional[str] = None

    @field_validator('message')
    @classmethod
    def message_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('message cannot be empty')
        return v


class ChatMessageResponse(BaseModel):
    session_id: str
    content: str
    context_used: bool
    retrieval_status: str
    reasoning: str


class AnalyzeRequest(BaseModel):
    message: str

    @field_validator('message')
    @classmethod
    def message_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('message cannot be empty')
        return v


class AnalyzeResponse(BaseModel):
    should_retrieve: bool
    confidence: float
    keywords: List[str]
    reasoning: str
    source: str
    search_query: str = ""
    k: int = 0
    retrieval_status: Optional[str] = None
    context: Optional[str] = None


class SessionHistoryResponse(BaseModel):
    session_id: str
    messages: List[Dict[str, str]]


class SearchRequest(BaseModel):
    query: str
    k: int = 5

    @field_validator('query')
    @classmethod
    def query_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('query cannot be empty')
        return v

    @field_validator('k')
    @classmethod
    def k_must_be_valid(cls, v):
        if v < 1 or v > 50:
            raise ValueError('k must be between 1 and 50')
        return v


class SearchHit(BaseModel):
    document_id: str
    text: str
    metadata: Dict[str, Any]
    distance: float
    similarity: float


class SearchResponse(BaseModel):
    query: str
    results: List[SearchHit]


class EmbeddingRequest(BaseModel):
    text: str

    @field_validator('text')
    @classmethod
    def text_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('text cannot be empty')
        return v


class EmbeddingResponse(BaseModel):
    dimension: int
    preview: List[float]


class StatsResponse(BaseModel):
    document_count: int
    indexed_types: List[str]
    type_counts: Dict[str, int]
    last_sync_at: Optional[str] = None


class CollectionInfo(BaseModel):
    type: str
    label: str
    watched: bool
    fields: List[str]
    indexed_count: int
    record_count: int


class SyncStatsResponse(BaseModel):
    synced: int
    errors: int
    skipped: int
    total: int
    failed_ids: List[str] = []
    removed: Optional[int] = None


class SyncOneResponse(BaseModel):
    document_id: str
    state: str
    skipped: bool


class PurgeResponse(BaseModel):
    removed: int
    type: Optional[str] = None


class ExportRequest(BaseModel):
    types: List[str] = []


class ExportResponse(BaseModel):
    content: str
    filename: str
    types: List[str]
