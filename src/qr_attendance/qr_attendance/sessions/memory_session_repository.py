from __future__ import annotations

import threading
from datetime import datetime
from typing import Optional, Sequence

from ..core.exceptions import ValidationError
from .model import Session
from .repository import SessionRepository


class InMemorySessionRepository(SessionRepository):
    def __init__(self):
        self._sessions: dict[str, Session] = {}
        self._lock = threading.RLock()

    def add(self, session: Session) -> None:
        with self._lock:
            if session.session_id in self._sessions:
                raise ValidationError("Phiên điểm danh đã tồn tại")
            self._sessions[session.session_id] = session

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(session_id)

    def mark_closed(self, session_id: str, *, closed_at: datetime) -> bool:
        with self._lock:
            current = self._sessions.get(session_id)
            if current is None or not current.is_active:
                return False
            self._sessions[session_id] = current.closed(closed_at)
            return True

    def list_active(self) -> Sequence[Session]:
        with self._lock:
            return [s for s in self._sessions.values() if s.is_active]

    def list_active_ending_before(self, cutoff: datetime) -> Sequence[Session]:
        with self._lock:
            return [s for s in self._sessions.values() if s.is_active and s.window_end < cutoff]
