"""
Tests for drift detection and reconciliation.
"""

import pytest
from unittest.mock import MagicMock

from portfolio_rag.core.errors import StoreUnavailable
from portfolio_rag.core.reconcile import MISSING, ORPHANED, STALE, apply_findings, detect_drift
from portfolio_rag.core.sync import IndexSynchronizer


@pytest.fixture
def unhooked_sync(content_store, vector_store, embedder, types_config):
    """Synchronizer that is NOT subscribed, so writes drift until reconciled."""
    return IndexSynchronizer(content_store, vector_store, embedder, types_config, retry_backoff_sec=0)


def _orphan(vector_store, document_id, source_type, source_id):
    vector_store.upsert(document_id, "old text", {"source_type": source_type, "source_id": source_id}, [1.0, 0.0])


def test_in_sync_index_has_no_drift(content_store, vector_store, synchronizer, types_config):
    content_store.create("project", {"title": "Indexed"})
    synchronizer.sync_all()

    assert detect_drift(content_store, vector_store, types_config) == []


def test_detects_each_kind(content_store, vector_store, unhooked_sync, types_config):
    content_store.import_records("project", [{"id": 1, "title": "Indexed then edited"}, {"id": 2, "title": "Never indexed"}])
    unhooked_sync.sync_one("project", 1)
    content_store.update("project", 1, {"title": "Edited"})
    _orphan(vector_store, "project:99", "project", "99")
    _orphan(vector_store, "article:3", "article", "3")

    findings = {f.document_id: f for f in detect_drift(content_store, vector_store, types_config)}

    assert findings["project:1"].kind == STALE
    assert findings["project:2"].kind == MISSING
    assert findings["project:99"].kind == ORPHANED
    assert findings["project:99"].details["reason"] == "record_deleted"
    assert findings["article:3"].details["reason"] == "unknown_type"


def test_reconcile_applies_fixes(content_store, vector_store, unhooked_sync):
    content_store.import_records("project", [{"id": 1, "title": "A"}, {"id": 2, "title": "B"}])
    unhooked_sync.sync_one("project", 1)
    content_store.update("project", 1, {"title": "A2"})
    _orphan(vector_store, "article:3", "article", "3")

    report = unhooked_sync.reconcile(apply=True)

    assert report.counts() == {MISSING: 1, STALE: 1, ORPHANED: 1}
    assert (report.resynced, report.removed, report.errors) == (2, 1, 0)
    assert set(vector_store.get_index_state()) == {"project:1", "project:2"}
    documents = {d.document_id: d for d in vector_store.list_documents(source_type="project")}
    assert "title: A2" in documents["project:1"].text
    assert unhooked_sync.reconcile(apply=False).findings == []


def test_dry_run_changes_nothing(content_store, vector_store, unhooked_sync):
    content_store.import_records("project", [{"id": 1, "title": "A"}])

    report = unhooked_sync.reconcile(apply=False)

    assert report.applied is False
    assert report.as_dict()["counts"][MISSING] == 1
    assert vector_store.count() == 0


def test_apply_counts_failures_and_continues():
    synchronizer = MagicMock()
    synchronizer.remove_document_by_id.side_effect = StoreUnavailable("delete")
    findings = [
        MagicMock(kind=ORPHANED, document_id="project:9"),
        MagicMock(kind=MISSING, document_id="project:1", source_type="project", source_id="1"),
    ]

    report = apply_findings(synchronizer, findings)

    assert report.errors == 1
    assert report.resynced == 1
    synchronizer.sync_one.assert_called_once_with("project", "1")
    assert report.findings is findings


def test_records_without_text_are_not_reported_missing(content_store, vector_store, synchronizer, types_config):
    content_store.import_records("project", [{"id": 1, "title": "Real"}, {"id": 2, "link_demo": "https://demo"}])
    synchronizer.sync_all()

    assert detect_drift(content_store, vector_store, types_config) == []

    report = synchronizer.reconcile(apply=True)
    assert report.findings == []
    assert report.resynced == 0


def test_malformed_records_stay_missing(content_store, vector_store, types_config):
    content_store.import_records("project", [{"id": 1, "title": {"nested": {"too": "deep"}}}])

    findings = detect_drift(content_store, vector_store, types_config)

    assert [(f.kind, f.document_id) for f in findings] == [(MISSING, "project:1")]
