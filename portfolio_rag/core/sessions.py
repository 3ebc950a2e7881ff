"""
Conversation history keyed by session id.

The store owns the history limit; backends only persist messages.
"""

import threading
import uuid
from abc import ABC, abstractmethod
from typing import Dict, List

from .db import get_db, init_db

ROLES = ("user", "assistant")


class ISessionBackend(ABC):
    """Persistence for chat messages."""

    @abstractmethod
    def append(self, session_id: str, role: str, content: str) -> None:
        pass

    @abstractmethod
    def load(self, session_id: str, limit: int) -> List[Dict[str, str]]:
        """Last `limit` messages, oldest first."""
        pass

    @abstractmethod
    def clear(self, session_id: str) -> int:
        """Drop a session's messages. Returns how many were removed."""
        pass


class InMemorySessionBackend(ISessionBackend):
    """Lock-guarded dict; history is lost on restart."""

    def __init__(self):
        self._sessions: Dict[str, List[Dict[str, str]]] = {}
        self._lock = threading.Lock()

    def append(self, session_id: str, role: str, content: str) -> None:
        with self._lock:
            self._sessions.setdefault(session_id, []).append({"role": role, "content": content})

    def load(self, session_id: str, limit: int) -> List[Dict[str, str]]:
        with self._lock:
            messages = self._sessions.get(session_id, [])
            return [dict(m) for m in messages[-limit:]] if limit > 0 else []

    def clear(self, session_id: str) -> int:
        with self._lock:
            return len(self._sessions.pop(session_id, []))


class SQLiteSessionBackend(ISessionBackend):
    """Messages in the chat_messages table."""

    def __init__(self, db_path: str = None):
        self.db_path = db_path
        init_db(db_path)

    def append(self, session_id: str, role: str, content: str) -> None:
        with get_db(self.db_path) as conn:
            conn.execute(
                "INSERT INTO chat_messages (session_id, role, content) VALUES (?, ?, ?)",
                (session_id, role, content)
            )
            conn.commit()

    def load(self, session_id: str, limit: int) -> List[Dict[str, str]]:
        if limit <= 0:
            return []
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT role, content FROM chat_messages WHERE session_id = ? ORDER BY id DESC LIMIT ?",
                (session_id, limit)
            )
            rows = cursor.fetchall()
        return [{"role": role, "content": content} for role, content in reversed(rows)]

    def clear(self, session_id: str) -> int:
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM chat_messages WHERE session_id = ?", (session_id,))
            conn.commit()
            return cursor.rowcount


class SessionStore:
    """Explicit conversation store, one instance per application."""

    def __init__(self, backend: ISessionBackend, history_limit: int = 10):
        self.backend = backend
        self.history_limit = history_limit

    @staticmethod
    def new_session_id() -> str:
        return uuid.uuid4().hex

    def history(self, session_id: str) -> List[Dict[str, str]]:
        return self.backend.load(session_id, self.history_limit)

    def add_message(self, session_id: str, role: str, content: str) -> None:
        if role not in ROLES:
            raise ValueError(f"Invalid role '{role}', expected one of {ROLES}")
        self.backend.append(session_id, role, content)

    def reset(self, session_id: str) -> int:
        return self.backend.clear(session_id)
