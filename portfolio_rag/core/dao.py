"""
Local content store standing in for the CMS entity API.

Records are JSON documents keyed by (type, id) with their relations already
resolved. Every committed write is followed by a lifecycle notification;
listener failures never undo or fail the write.
"""

import json
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .db import get_db, init_db
from .schema import LifecycleEvent
from ..util.logging import logger

Listener = Callable[[LifecycleEvent], None]


class ContentStore:
    """SQLite-backed find/create/update/delete API over content records."""

    def __init__(self, db_path: str = None):
        self.db_path = db_path
        self._listeners: List[Listener] = []
        init_db(db_path)

    def subscribe(self, listener: Listener) -> None:
        """Register a callback for created/updated/deleted notifications."""
        self._listeners.append(listener)

    def _notify(self, event: str, content_type: str, record: Dict[str, Any]) -> None:
        lifecycle_event = LifecycleEvent(event=event, type=content_type, record=record)
        for listener in self._listeners:
            try:
                listener(lifecycle_event)
            except Exception as e:
                # Listeners should never break content writes
                logger.warning(f"Lifecycle listener failed for {event} {content_type}:{record.get('id')}: {e}")

    @staticmethod
    def _row_to_record(row) -> Dict[str, Any]:
        record_id, data, created_at, updated_at = row
        record = json.loads(data)
        record["id"] = record_id
        record["createdAt"] = created_at
        record["updatedAt"] = updated_at
        return record

    def find_one(self, content_type: str, record_id: int) -> Optional[Dict[str, Any]]:
        """Fetch one record with its relations, or None."""
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT id, data, created_at, updated_at FROM content WHERE type = ? AND id = ?",
                (content_type, int(record_id))
            )
            row = cursor.fetchone()
            return self._row_to_record(row) if row else None

    def find_many(self, content_type: str) -> List[Dict[str, Any]]:
        """Fetch every record of a type, ordered by id."""
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT id, data, created_at, updated_at FROM content WHERE type = ? ORDER BY id",
                (content_type,)
            )
            return [self._row_to_record(row) for row in cursor.fetchall()]

    def list_ids(self, content_type: str) -> Dict[int, str]:
        """Map record id -> updatedAt for a type."""
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT id, updated_at FROM content WHERE type = ?", (content_type,))
            return {row[0]: row[1] for row in cursor.fetchall()}

    def create(self, content_type: str, data: Dict[str, Any], record_id: int = None) -> Dict[str, Any]:
        """Insert a record and notify listeners. Returns the stored record."""
        payload = {k: v for k, v in data.items() if k not in ("id", "createdAt", "updatedAt")}
        now = datetime.now().isoformat()

        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            if record_id is None:
                cursor.execute("SELECT COALESCE(MAX(id), 0) + 1 FROM content WHERE type = ?", (content_type,))
                record_id = cursor.fetchone()[0]
            cursor.execute(
                "INSERT INTO content (type, id, data, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
                (content_type, int(record_id), json.dumps(payload), now, now)
            )
            conn.commit()

        record = self.find_one(content_type, record_id)
        self._notify("created", content_type, record)
        return record

    def update(self, content_type: str, record_id: int, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Merge fields into an existing record and notify listeners."""
        existing = self.find_one(content_type, record_id)
        if existing is None:
            return None

        merged = {k: v for k, v in existing.items() if k not in ("id", "createdAt", "updatedAt")}
        merged.update({k: v for k, v in data.items() if k not in ("id", "createdAt", "updatedAt")})

        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                "UPDATE content SET data = ?, updated_at = ? WHERE type = ? AND id = ?",
                (json.dumps(merged), datetime.now().isoformat(), content_type, int(record_id))
            )
            conn.commit()

        record = self.find_one(content_type, record_id)
        self._notify("updated", content_type, record)
        return record

    def delete(self, content_type: str, record_id: int) -> bool:
        """Delete a record and notify listeners with its last state."""
        existing = self.find_one(content_type, record_id)
        if existing is None:
            return False

        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM content WHERE type = ? AND id = ?", (content_type, int(record_id)))
            conn.commit()

        self._notify("deleted", content_type, existing)
        return True

    def import_records(self, content_type: str, records: List[Dict[str, Any]]) -> int:
        """
        Bulk insert without lifecycle notifications.

        Mirrors a CMS bulk import that bypasses hooks; the index only catches
        up through a full sync or a reconciliation pass.
        """
        now = datetime.now().isoformat()
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            for data in records:
                payload = {k: v for k, v in data.items() if k not in ("id", "createdAt", "updatedAt")}
                cursor.execute(
                    "INSERT OR REPLACE INTO content (type, id, data, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
                    (content_type, int(data["id"]), json.dumps(payload), now, now)
                )
            conn.commit()
        return len(records)

    def count(self, content_type: str = None) -> int:
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            if content_type:
                cursor.execute("SELECT COUNT(*) FROM content WHERE type = ?", (content_type,))
            else:
                cursor.execute("SELECT COUNT(*) FROM content")
            return cursor.fetchone()[0]
