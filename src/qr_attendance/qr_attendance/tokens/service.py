from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta

from ..common.clock import Clock, SystemClock
from ..common.datetime_utils import as_utc
from ..core.constants import APP_NAME, DEFAULT_ROTATION_SECONDS, NONCE_BYTES
from ..core.exceptions import SessionClosedError, SessionNotFoundError, SessionOutsideWindowError
from ..sessions.repository import SessionRepository
from .codec import TokenCodec
from .model import IssuedToken, TokenClaims

_logger = logging.getLogger(f"{APP_NAME}.issuance")


class IssuanceService:
    """Mints QR tokens for live sessions.

    Issuing has no side effects: it reads the session and builds a token, so the
    display can refresh as often as it likes.
    """

    def __init__(
        self,
        sessions: SessionRepository,
        codec: TokenCodec,
        *,
        clock: Clock | None = None,
        rotation_interval: timedelta = timedelta(seconds=DEFAULT_ROTATION_SECONDS),
    ):
        if rotation_interval <= timedelta(0):
            raise ValueError("rotation_interval must be positive")
        self._sessions = sessions
        self._codec = codec
        self._clock = clock or SystemClock()
        self._rotation = rotation_interval

    def issue(self, session_id: str, *, now: datetime | None = None) -> IssuedToken:
        now = as_utc(now) if now else self._clock.now()

        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Phiên {session_id!r} không tồn tại")
        if not session.is_active:
            raise SessionClosedError(f"Phiên {session_id!r} đã đóng")
        if not session.within_window(now):
            raise SessionOutsideWindowError(f"Phiên {session_id!r} không trong khung giờ điểm danh")

        expires_at = min(now + self._rotation, session.window_end)
        nonce = secrets.token_bytes(NONCE_BYTES)
        token = self._codec.encode(session.session_id, now, expires_at, nonce)

        _logger.debug("Issued token for session %s (expires_at=%s)", session.session_id, expires_at.isoformat())
        return IssuedToken(
            token=token,
            expires_at=expires_at,
            claims=TokenClaims(session_id=session.session_id, issued_at=now, expires_at=expires_at, nonce=nonce),
        )
