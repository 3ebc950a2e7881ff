"""
Error taxonomy for the RAG subsystem.

Write-path errors are isolated per record by the synchronizer, read-path
errors degrade to "no context", and only administrative callers ever see
them raised.
"""


class RagError(Exception):
    """Base class for all portfolio RAG errors."""
    pass


class StoreUnavailable(RagError):
    """The vector store or a model backend could not be reached."""

    def __init__(self, operation: str, cause: Exception = None):
        self.operation = operation
        self.cause = cause
        message = f"Backend unavailable during {operation}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class StoreRejected(RagError):
    """The vector store refused a request as invalid. Retrying will not help."""

    def __init__(self, operation: str, cause: Exception = None):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Vector store rejected {operation}: {cause}")


class EmbeddingUnavailable(StoreUnavailable):
    """The embedding service failed or timed out."""
    pass


class ModelUnavailable(StoreUnavailable):
    """The conversational or analysis model failed or timed out."""
    pass


class FormatError(RagError):
    """A record field could not be rendered for indexing."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Field '{field}': {message}")


class EmptyContent(RagError):
    """A record produced no text to embed."""

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"No content to index for {document_id}")


class AnalysisParseError(RagError):
    """The analysis model answered with something that is not usable JSON."""

    def __init__(self, message: str, raw: str = ""):
        self.raw = raw
        super().__init__(message)


class SyncJobError(RagError):
    """A single record's sync pipeline failed."""

    def __init__(self, source_type: str, source_id, state: str, cause: Exception = None):
        self.source_type = source_type
        self.source_id = source_id
        self.state = state
        self.cause = cause
        super().__init__(f"Sync of {source_type}:{source_id} failed while {state}: {cause}")


class UnknownContentType(RagError):
    """A content type is not declared in the indexable type configuration."""

    def __init__(self, content_type: str):
        self.content_type = content_type
        super().__init__(f"Content type '{content_type}' is not configured for indexing")


class RecordNotFound(RagError):
    """The content store has no record with the requested id."""

    def __init__(self, content_type: str, record_id):
        self.content_type = content_type
        self.record_id = record_id
        super().__init__(f"Record {record_id} not found in {content_type}")
