"""Session registry: sole owner of the attendance session lifecycle."""
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Optional, Sequence

from ..common.clock import Clock, SystemClock
from ..common.datetime_utils import as_utc
from ..common.validators import require_max_length, require_non_empty
from ..core.constants import APP_NAME, MAX_PRINCIPAL_ID_LEN, MAX_SESSION_ID_LEN
from ..core.exceptions import SessionNotFoundError, ValidationError
from .model import Session
from .repository import SessionRepository

_logger = logging.getLogger(f"{APP_NAME}.sessions")


class SessionRegistry:
    def __init__(self, sessions: SessionRepository, *, clock: Clock | None = None):
        self._sessions = sessions
        self._clock = clock or SystemClock()

    def create(
        self,
        owner_id: str,
        window_start: datetime,
        window_end: datetime,
        *,
        session_id: str | None = None,
        now: datetime | None = None,
    ) -> Session:
        owner_id = require_non_empty(owner_id, "Người tạo phiên")
        require_max_length(owner_id, MAX_PRINCIPAL_ID_LEN, "Người tạo phiên")
        window_start = as_utc(window_start)
        window_end = as_utc(window_end)
        if window_end <= window_start:
            raise ValidationError("Thời gian kết thúc phải sau thời gian bắt đầu")

        sid = require_non_empty(session_id, "Mã phiên") if session_id is not None else uuid.uuid4().hex
        require_max_length(sid, MAX_SESSION_ID_LEN, "Mã phiên")
        session = Session(
            session_id=sid,
            owner_id=owner_id,
            created_at=as_utc(now) if now else self._clock.now(),
            window_start=window_start,
            window_end=window_end,
        )
        self._sessions.add(session)
        _logger.info("Session %s created (owner=%s, window=%s..%s)", sid, owner_id, window_start, window_end)
        return session

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def require(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Phiên {session_id!r} không tồn tại")
        return session

    def is_active(self, session_id: str) -> bool:
        session = self._sessions.get(session_id)
        return bool(session and session.is_active)

    def close(self, session_id: str, *, now: datetime | None = None) -> Session:
        """Deactivate a session. Closing an already closed session is a no-op."""
        self.require(session_id)
        closed_at = as_utc(now) if now else self._clock.now()
        if self._sessions.mark_closed(session_id, closed_at=closed_at):
            _logger.info("Session %s closed", session_id)
        return self.require(session_id)

    def close_expired(self, now: datetime | None = None) -> int:
        """Expiry sweep: close every active session whose window has ended."""
        now = as_utc(now) if now else self._clock.now()
        closed = 0
        for session in self._sessions.list_active_ending_before(now):
            if self._sessions.mark_closed(session.session_id, closed_at=now):
                closed += 1
        if closed:
            _logger.info("Expiry sweep closed %d session(s)", closed)
        return closed

    def list_active(self) -> Sequence[Session]:
        return self._sessions.list_active()
