"""
Tests for the index synchronizer: lifecycle hooks, manual and batch sync.
"""

import pytest
from unittest.mock import MagicMock

from portfolio_rag.core.errors import (
    EmbeddingUnavailable, RecordNotFound, StoreUnavailable, SyncJobError, UnknownContentType,
)
from portfolio_rag.core.schema import LifecycleEvent
from portfolio_rag.core.sync import IndexSynchronizer, JobState, SyncJob


class TestSyncJob:

    def test_forward_transitions(self):
        job = SyncJob("project", 1)
        for state in (JobState.FORMATTING, JobState.EMBEDDING, JobState.UPSERTING, JobState.DONE):
            job.advance(state)
        assert job.state == JobState.DONE

    def test_never_backward(self):
        job = SyncJob("project", 1)
        job.advance(JobState.EMBEDDING)
        with pytest.raises(ValueError):
            job.advance(JobState.FORMATTING)

    def test_terminal_states_are_final(self):
        job = SyncJob("project", 1)
        job.advance(JobState.FAILED)
        with pytest.raises(ValueError):
            job.advance(JobState.DONE)


class TestLifecycleHooks:

    def test_create_indexes_watched_type(self, content_store, vector_store, synchronizer, sample_project):
        record = content_store.create("project", sample_project)

        state = vector_store.get_index_state()
        assert f"project:{record['id']}" in state
        assert state[f"project:{record['id']}"]["codings_names"] == "Angular, TypeScript"

    def test_unwatched_type_ignored_by_hooks(self, content_store, vector_store, synchronizer):
        content_store.create("coding", {"name": "Angular", "category": "Frontend"})
        assert vector_store.count() == 0

    def test_repeated_updates_keep_one_document(self, content_store, vector_store, synchronizer, sample_project):
        record = content_store.create("project", sample_project)
        for title in ("v2", "v3", "v4"):
            content_store.update("project", record["id"], {"title": title})

        assert vector_store.count() == 1
        hit = vector_store.list_documents()[0]
        assert "title: v4" in hit.text

    def test_delete_removes_document(self, content_store, vector_store, synchronizer, sample_project):
        record = content_store.create("project", sample_project)
        content_store.delete("project", record["id"])

        assert vector_store.count() == 0

    def test_delete_of_never_indexed_record(self, synchronizer, vector_store):
        synchronizer.on_record_deleted("project", {"id": 999})
        assert vector_store.count() == 0

    def test_delete_failure_is_swallowed(self, content_store, embedder, types_config):
        store = MagicMock()
        store.delete.side_effect = StoreUnavailable("delete")
        sync = IndexSynchronizer(content_store, store, embedder, types_config, retry_backoff_sec=0)

        sync.on_record_deleted("project", {"id": 1})  # must not raise

    def test_embedding_failure_never_breaks_content_write(self, content_store, vector_store, types_config):
        embedder = MagicMock()
        embedder.embed_text.side_effect = EmbeddingUnavailable("embed")
        sync = IndexSynchronizer(content_store, vector_store, embedder, types_config, retry_backoff_sec=0)
        content_store.subscribe(sync.handle_event)

        record = content_store.create("project", {"title": "Saved anyway"})

        assert content_store.find_one("project", record["id"]) is not None
        assert vector_store.count() == 0

    def test_handle_event_accepts_plain_dicts(self, synchronizer, vector_store):
        synchronizer.handle_event({"event": "created", "type": "project", "record": {"id": 5, "title": "Dict event"}})
        assert "project:5" in vector_store.get_index_state()

        synchronizer.handle_event(LifecycleEvent(event="deleted", type="project", record={"id": 5}))
        assert vector_store.count() == 0

    def test_empty_record_skipped_and_previous_version_removed(self, synchronizer, vector_store):
        synchronizer.on_record_created("project", {"id": 3, "title": "Has text"})
        job = synchronizer.on_record_updated("project", {"id": 3, "title": ""})

        assert job.skipped
        assert job.state == JobState.DONE
        assert vector_store.count() == 0


class TestManualSync:

    def test_sync_one(self, content_store, synchronizer, vector_store):
        content_store.import_records("project", [{"id": 7, "title": "Bulk imported"}])

        job = synchronizer.sync_one("project", 7)

        assert job.state == JobState.DONE
        assert job.document_id == "project:7"
        assert synchronizer.last_sync_at is not None

    def test_sync_one_missing_record(self, synchronizer):
        with pytest.raises(RecordNotFound):
            synchronizer.sync_one("project", 404)

    def test_sync_one_unknown_type(self, synchronizer):
        with pytest.raises(UnknownContentType):
            synchronizer.sync_one("article", 1)

    def test_sync_one_malformed_record(self, content_store, synchronizer):
        content_store.import_records("project", [{"id": 8, "title": {"weird": {"object": 1}}}])

        with pytest.raises(SyncJobError) as exc_info:
            synchronizer.sync_one("project", 8)
        assert exc_info.value.state == "formatting"

    def test_sync_type_unwatched_types_allowed(self, content_store, synchronizer, vector_store):
        content_store.import_records("coding", [{"id": 1, "name": "Angular"}, {"id": 2, "name": "Python"}])

        stats = synchronizer.sync_type("coding")

        assert stats.as_dict()["synced"] == 2
        assert vector_store.type_counts() == {"coding": 2}


class TestBatchSync:

    def test_partial_failure_isolated(self, content_store, vector_store, synchronizer):
        content_store.import_records("project", [
            {"id": 1, "title": "Good one"},
            {"id": 2, "title": {"broken": {"value": True}}},
            {"id": 3, "title": "Good three"},
        ])

        stats = synchronizer.sync_type("project")

        assert stats.synced == 2
        assert stats.errors == 1
        assert stats.total == 3
        assert stats.failed_ids == ["project:2"]
        assert set(vector_store.get_index_state()) == {"project:1", "project:3"}

    def test_skipped_counted_separately(self, content_store, synchronizer):
        content_store.import_records("project", [{"id": 1, "title": "Text"}, {"id": 2, "link_demo": "https://x"}])

        stats = synchronizer.sync_type("project")

        assert (stats.synced, stats.skipped, stats.errors, stats.total) == (1, 1, 0, 2)

    def test_purge_then_sync_all_restores_count(self, content_store, vector_store, synchronizer, sample_project):
        content_store.create("project", sample_project)
        content_store.create("project", {"title": "Second project"})
        content_store.create("me", {"firstName": "Alex", "lastName": "Martin"})
        content_store.import_records("coding", [{"id": 1, "name": "Angular"}])

        synchronizer.sync_all()
        before = vector_store.count()

        vector_store.purge_all()
        assert vector_store.count() == 0

        stats = synchronizer.sync_all()
        assert vector_store.count() == before == 4
        assert stats.synced == 4

    def test_unexpected_embedder_error_isolated_to_its_record(self, content_store, vector_store, embedder, types_config):
        def embed(text):
            if "Boom" in text:
                raise RuntimeError("model crashed")
            return embedder.embed_text(text)

        crashing = MagicMock()
        crashing.embed_text.side_effect = embed
        sync = IndexSynchronizer(content_store, vector_store, crashing, types_config, retry_backoff_sec=0)
        content_store.import_records("project", [{"id": 1, "title": "Boom"}, {"id": 2, "title": "Fine"}])

        stats = sync.sync_type("project")

        assert (stats.synced, stats.errors) == (1, 1)
        assert stats.failed_ids == ["project:1"]
        assert set(vector_store.get_index_state()) == {"project:2"}

    def test_unexpected_error_fails_job_without_reaching_hooks_caller(self, content_store, vector_store, types_config):
        embedder = MagicMock()
        embedder.embed_text.side_effect = RuntimeError("model crashed")
        sync = IndexSynchronizer(content_store, vector_store, embedder, types_config, retry_backoff_sec=0)

        content_store.import_records("project", [{"id": 1, "title": "Boom"}])

        assert sync.on_record_created("project", {"id": 1, "title": "Boom"}) is None
        with pytest.raises(SyncJobError) as exc_info:
            sync.sync_one("project", 1)

        assert exc_info.value.state == "embedding"
        assert isinstance(exc_info.value.cause, RuntimeError)
        assert embedder.embed_text.call_count == 2

    def test_transient_store_failure_retried(self, content_store, embedder, types_config):
        store = MagicMock()
        store.upsert.side_effect = [StoreUnavailable("upsert"), None]
        sync = IndexSynchronizer(content_store, store, embedder, types_config, retry_attempts=2, retry_backoff_sec=0)
        content_store.import_records("project", [{"id": 1, "title": "Retry me"}])

        job = sync.sync_one("project", 1)

        assert job.state == JobState.DONE
        assert store.upsert.call_count == 2

    def test_persistent_store_failure_fails_job(self, content_store, embedder, types_config):
        store = MagicMock()
        store.upsert.side_effect = StoreUnavailable("upsert")
        sync = IndexSynchronizer(content_store, store, embedder, types_config, retry_attempts=3, retry_backoff_sec=0)
        content_store.import_records("project", [{"id": 1, "title": "Never lands"}])

        with pytest.raises(SyncJobError) as exc_info:
            sync.sync_one("project", 1)

        assert exc_info.value.state == "upserting"
        assert store.upsert.call_count == 3


def test_remove_document(synchronizer, vector_store):
    synchronizer.on_record_created("project", {"id": 1, "title": "x"})
    assert synchronizer.remove_document("project", 1) == "project:1"
    assert vector_store.count() == 0
