"""
Drift detection between the content store and the vector index.

Lifecycle hooks can miss writes (bulk imports, a vector store that was down
during a delete). A reconciliation pass compares both sides and hands the
differences back to the synchronizer, which is the only index writer.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List

from .errors import FormatError
from .formatter import document_id_for, format_record
from .schema import IndexableTypesConfig
from ..util.logging import logger

MISSING = "missing"
STALE = "stale"
ORPHANED = "orphaned"


@dataclass
class DriftFinding:
    """One inconsistency between a content record and its indexed document."""
    kind: str  # missing | stale | orphaned
    document_id: str
    source_type: str
    source_id: str
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ReconciliationReport:
    findings: List[DriftFinding]
    applied: bool = False
    resynced: int = 0
    removed: int = 0
    errors: int = 0

    def counts(self) -> Dict[str, int]:
        counts = {MISSING: 0, STALE: 0, ORPHANED: 0}
        for finding in self.findings:
            counts[finding.kind] += 1
        return counts

    def as_dict(self) -> Dict[str, Any]:
        return {
            "findings": [
                {
                    "kind": f.kind,
                    "document_id": f.document_id,
                    "source_type": f.source_type,
                    "source_id": f.source_id,
                    "details": f.details,
                }
                for f in self.findings
            ],
            "counts": self.counts(),
            "applied": self.applied,
            "resynced": self.resynced,
            "removed": self.removed,
            "errors": self.errors,
        }


def _produces_text(content_store, types_config: IndexableTypesConfig, content_type: str, record_id) -> bool:
    """False for records the synchronizer skips as empty; those never get a document."""
    record = content_store.find_one(content_type, record_id)
    if record is None:
        return False
    try:
        text, _ = format_record(record, types_config.schema_for(content_type), content_type)
    except FormatError:
        # Still missing; re-syncing reports the failure
        return True
    return bool(text.strip())


def detect_drift(content_store, vector_store, types_config: IndexableTypesConfig) -> List[DriftFinding]:
    """
    Compare every indexable type in the content store with the index.

    Returns:
        Findings ordered as missing/stale first (per type), then orphans.

    Raises:
        StoreUnavailable: if the index cannot be read
    """
    index_state = vector_store.get_index_state()
    findings: List[DriftFinding] = []
    live_ids = set()

    for content_type in types_config.types:
        for record_id, updated_at in sorted(content_store.list_ids(content_type).items()):
            document_id = document_id_for(content_type, record_id)
            live_ids.add(document_id)

            metadata = index_state.get(document_id)
            if metadata is None:
                if _produces_text(content_store, types_config, content_type, record_id):
                    findings.append(DriftFinding(MISSING, document_id, content_type, str(record_id)))
                continue

            indexed_version = metadata.get("source_updated_at")
            if updated_at and indexed_version != str(updated_at):
                findings.append(DriftFinding(STALE, document_id, content_type, str(record_id), {
                    "indexed_version": indexed_version,
                    "current_version": str(updated_at),
                }))

    for document_id in sorted(set(index_state) - live_ids):
        metadata = index_state[document_id]
        source_type = str(metadata.get("source_type", ""))
        reason = "unknown_type" if source_type not in types_config.types else "record_deleted"
        findings.append(DriftFinding(ORPHANED, document_id, source_type, str(metadata.get("source_id", "")), {
            "reason": reason,
        }))

    return findings


def apply_findings(synchronizer, findings: List[DriftFinding]) -> ReconciliationReport:
    """Re-sync missing and stale documents, remove orphans. Failures are counted, not raised."""
    report = ReconciliationReport(findings=findings, applied=True)

    for finding in findings:
        try:
            if finding.kind == ORPHANED:
                synchronizer.remove_document_by_id(finding.document_id)
                report.removed += 1
            else:
                synchronizer.sync_one(finding.source_type, finding.source_id)
                report.resynced += 1
        except Exception as e:
            report.errors += 1
            logger.warning(f"Reconciliation of {finding.document_id} ({finding.kind}) failed: {e}")

    return report


def reconcile(synchronizer, apply: bool = True) -> ReconciliationReport:
    """Detect drift and optionally correct it through the synchronizer."""
    findings = detect_drift(synchronizer.content_store, synchronizer.vector_store, synchronizer.types_config)

    if apply and findings:
        report = apply_findings(synchronizer, findings)
    else:
        report = ReconciliationReport(findings=findings)

    logger.log_reconciliation(report.counts(), report.applied, {
        "resynced": report.resynced,
        "removed": report.removed,
        "errors": report.errors,
    })
    return report
