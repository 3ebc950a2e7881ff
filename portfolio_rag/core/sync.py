"""
Index synchronizer: the only writer of the vector index.

Each record goes through its own job (format, embed, upsert). A failing
job is logged and counted; it never stops a batch and never propagates
into the content write that triggered it.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union

from .errors import (
    EmptyContent, FormatError, RecordNotFound, StoreUnavailable, SyncJobError,
)
from .formatter import document_id_for, format_record
from .reconcile import ReconciliationReport, reconcile as run_reconciliation
from .schema import IndexableTypesConfig, LifecycleEvent, SyncStats
from ..util.logging import logger


class JobState(Enum):
    PENDING = "pending"
    FORMATTING = "formatting"
    EMBEDDING = "embedding"
    UPSERTING = "upserting"
    DONE = "done"
    FAILED = "failed"


_STATE_ORDER = {
    JobState.PENDING: 0,
    JobState.FORMATTING: 1,
    JobState.EMBEDDING: 2,
    JobState.UPSERTING: 3,
    JobState.DONE: 4,
    JobState.FAILED: 4,
}


@dataclass
class SyncJob:
    """Transient state of one record's trip into the index."""
    source_type: str
    source_id: Any
    state: JobState = JobState.PENDING
    skipped: bool = False
    error: Optional[str] = None
    started_at: datetime = field(default_factory=datetime.now)

    @property
    def document_id(self) -> str:
        return document_id_for(self.source_type, self.source_id)

    @property
    def is_terminal(self) -> bool:
        return self.state in (JobState.DONE, JobState.FAILED)

    def advance(self, state: JobState) -> None:
        """Move forward. Terminal states are final and nothing moves backward."""
        if self.is_terminal:
            raise ValueError(f"Job {self.document_id} already {self.state.value}")
        if state != JobState.FAILED and _STATE_ORDER[state] <= _STATE_ORDER[self.state]:
            raise ValueError(f"Job {self.document_id} cannot go from {self.state.value} to {state.value}")
        self.state = state


class IndexSynchronizer:
    """Keeps the vector index consistent with content records."""

    def __init__(self, content_store, vector_store, embedding_provider, types_config: IndexableTypesConfig,
                 retry_attempts: int = 2, retry_backoff_sec: float = 0.5):
        self.content_store = content_store
        self.vector_store = vector_store
        self.embedding_provider = embedding_provider
        self.types_config = types_config
        self.retry_attempts = max(1, retry_attempts)
        self.retry_backoff_sec = retry_backoff_sec
        self.last_sync_at: Optional[datetime] = None

    def _with_retry(self, operation: str, func: Callable):
        """Run func, retrying only when the backend is unavailable."""
        for attempt in range(1, self.retry_attempts + 1):
            try:
                return func()
            except StoreUnavailable as e:
                if attempt >= self.retry_attempts:
                    raise
                logger.warning(f"{operation} unavailable (attempt {attempt}/{self.retry_attempts}): {e}")
                if self.retry_backoff_sec > 0:
                    time.sleep(self.retry_backoff_sec * attempt)

    def _run_job(self, content_type: str, record: Dict[str, Any]) -> SyncJob:
        """
        Format, embed and upsert one record.

        Raises:
            SyncJobError: if any step fails; the job is left in FAILED
        """
        schema = self.types_config.schema_for(content_type)
        job = SyncJob(source_type=content_type, source_id=record.get("id"))

        try:
            job.advance(JobState.FORMATTING)
            text, metadata = format_record(record, schema, content_type)
            if not text.strip():
                raise EmptyContent(job.document_id)

            job.advance(JobState.EMBEDDING)
            embedding = self._with_retry("embed", lambda: self.embedding_provider.embed_text(text))

            job.advance(JobState.UPSERTING)
            self._with_retry("upsert", lambda: self.vector_store.upsert(job.document_id, text, metadata, embedding))

            job.advance(JobState.DONE)
        except EmptyContent:
            # Nothing to index; a previously indexed version must not linger
            self._drop_stale_document(job.document_id)
            job.skipped = True
            job.advance(JobState.DONE)
            logger.log_sync_job(content_type, job.source_id, "skipped", {"reason": "empty content"})
            return job
        except (FormatError, StoreUnavailable, ValueError) as e:
            raise self._fail_job(job, e)
        except Exception as e:
            # Model and client libraries raise their own types; still one record
            logger.error(f"Unexpected {type(e).__name__} while syncing {job.document_id}")
            raise self._fail_job(job, e)

        self.last_sync_at = datetime.now()
        logger.log_sync_job(content_type, job.source_id, "done", {"chars": len(text)})
        return job

    def _fail_job(self, job: SyncJob, error: Exception) -> SyncJobError:
        failed_while = job.state.value
        job.error = str(error)
        job.advance(JobState.FAILED)
        logger.log_sync_job(job.source_type, job.source_id, "failed", {"step": failed_while, "error": str(error)})
        return SyncJobError(job.source_type, job.source_id, failed_while, error)

    def _drop_stale_document(self, document_id: str) -> None:
        try:
            self.vector_store.delete(document_id)
        except Exception as e:
            logger.warning(f"Could not remove previous version of {document_id}: {e}")

    # Lifecycle notifications

    def on_record_created(self, content_type: str, record: Dict[str, Any]) -> Optional[SyncJob]:
        """Index a new record of a watched type. Never raises."""
        return self._on_record_written(content_type, record)

    def on_record_updated(self, content_type: str, record: Dict[str, Any]) -> Optional[SyncJob]:
        """Re-index a changed record of a watched type. Never raises."""
        return self._on_record_written(content_type, record)

    def _on_record_written(self, content_type: str, record: Dict[str, Any]) -> Optional[SyncJob]:
        if not self.types_config.is_watched(content_type):
            return None

        try:
            return self._run_job(content_type, record)
        except SyncJobError:
            # Already logged; the content write must still succeed
            return None

    def on_record_deleted(self, content_type: str, record: Dict[str, Any]) -> None:
        """Remove a deleted record's document. Errors are logged, never raised."""
        if not self.types_config.is_watched(content_type):
            return

        document_id = document_id_for(content_type, record.get("id"))
        try:
            self.vector_store.delete(document_id)
            logger.log_sync_job(content_type, record.get("id"), "deleted")
        except Exception as e:
            logger.error(f"Failed to remove {document_id} from the index: {e}")

    def handle_event(self, event: Union[LifecycleEvent, Dict[str, Any]]) -> None:
        """Dispatch a content store notification ({event, type, record})."""
        if isinstance(event, dict):
            event = LifecycleEvent(event=event["event"], type=event["type"], record=event["record"])

        if event.event == "created":
            self.on_record_created(event.type, event.record)
        elif event.event == "updated":
            self.on_record_updated(event.type, event.record)
        elif event.event == "deleted":
            self.on_record_deleted(event.type, event.record)
        else:
            logger.warning(f"Ignoring unknown lifecycle event '{event.event}' for {event.type}")

    # Manual and batch operations

    def sync_one(self, content_type: str, record_id: Any) -> SyncJob:
        """
        Fetch a record fresh from the content store and index it.

        Raises:
            UnknownContentType: if the type is not indexable
            RecordNotFound: if the record does not exist
            SyncJobError: if the job fails
        """
        self.types_config.schema_for(content_type)
        record = self.content_store.find_one(content_type, record_id)
        if record is None:
            raise RecordNotFound(content_type, record_id)
        return self._run_job(content_type, record)

    def sync_type(self, content_type: str) -> SyncStats:
        """Index every record of one type; failures are counted per record."""
        self.types_config.schema_for(content_type)
        records = self.content_store.find_many(content_type)
        stats = SyncStats(total=len(records))

        for record in records:
            try:
                job = self._run_job(content_type, record)
            except SyncJobError as e:
                stats.errors += 1
                stats.failed_ids.append(document_id_for(content_type, e.source_id))
                continue

            if job.skipped:
                stats.skipped += 1
            else:
                stats.synced += 1

        logger.log_sync_batch(content_type, stats.synced, stats.errors, stats.total, stats.skipped)
        return stats

    def sync_all(self) -> SyncStats:
        """Index every record of every indexable type. Runs to completion."""
        stats = SyncStats()
        for content_type in self.types_config.types:
            stats.merge(self.sync_type(content_type))

        logger.log_sync_batch("all", stats.synced, stats.errors, stats.total, stats.skipped)
        return stats

    def remove_document(self, content_type: str, record_id: Any) -> str:
        """
        Force removal of one record's document.

        Raises:
            StoreUnavailable: if the index cannot be reached
        """
        return self.remove_document_by_id(document_id_for(content_type, record_id))

    def remove_document_by_id(self, document_id: str) -> str:
        self.vector_store.delete(document_id)
        logger.log_vector_operation("remove", document_id)
        return document_id

    def reconcile(self, apply: bool = True) -> ReconciliationReport:
        """Detect index drift and, when apply is set, correct it."""
        return run_reconciliation(self, apply=apply)
