"""Redemption of scanned QR tokens.

``redeem`` runs its checks in a fixed order and the first failing check decides
the outcome:

1. token decodes and its signature verifies      -> MALFORMED
2. ``now <= expires_at + skew``                  -> EXPIRED
3. session exists / is active                    -> UNKNOWN_SESSION / SESSION_CLOSED
4. ``now`` inside the session window (+/- skew)  -> OUTSIDE_WINDOW
5. atomic insert into the ledger                 -> ALREADY_REDEEMED / ACCEPTED

Rejections are returned as values. Only store failures raise.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from ..common.clock import Clock, SystemClock
from ..common.datetime_utils import as_utc
from ..common.validators import require_max_length, require_non_empty
from ..core.constants import APP_NAME, MAX_PRINCIPAL_ID_LEN
from ..core.enums import RedemptionOutcome
from ..sessions.repository import SessionRepository
from ..tokens.codec import TokenCodec
from ..tokens.model import TokenClaims
from .model import RedemptionResult
from .repository import RedemptionLedger

_logger = logging.getLogger(f"{APP_NAME}.redemption")


class RedemptionService:
    def __init__(
        self,
        codec: TokenCodec,
        sessions: SessionRepository,
        ledger: RedemptionLedger,
        *,
        clock: Clock | None = None,
        record_rejections: bool = False,
    ):
        self._codec = codec
        self._sessions = sessions
        self._ledger = ledger
        self._clock = clock or SystemClock()
        self._record_rejections = bool(record_rejections)

    def redeem(self, token: str, redeemer_id: str, *, now: datetime | None = None) -> RedemptionResult:
        redeemer_id = require_non_empty(redeemer_id, "Người điểm danh")
        require_max_length(redeemer_id, MAX_PRINCIPAL_ID_LEN, "Người điểm danh")
        now = as_utc(now) if now else self._clock.now()
        skew = self._clock.skew_tolerance

        claims = self._codec.decode(token)
        if claims is None:
            return self._reject(RedemptionOutcome.MALFORMED, None, redeemer_id, now)

        if claims.is_expired(now, tolerance=skew):
            return self._reject(RedemptionOutcome.EXPIRED, claims, redeemer_id, now)

        session = self._sessions.get(claims.session_id)
        if session is None:
            return self._reject(RedemptionOutcome.UNKNOWN_SESSION, claims, redeemer_id, now)
        if not session.is_active:
            return self._reject(RedemptionOutcome.SESSION_CLOSED, claims, redeemer_id, now)

        if not session.within_window(now, tolerance=skew):
            return self._reject(RedemptionOutcome.OUTSIDE_WINDOW, claims, redeemer_id, now)

        record = self._ledger.try_insert_accepted(claims.session_id, redeemer_id, now)
        if record is None:
            return self._reject(RedemptionOutcome.ALREADY_REDEEMED, claims, redeemer_id, now)

        _logger.info("Redemption accepted: session=%s redeemer=%s id=%s", claims.session_id, redeemer_id, record.redemption_id)
        return RedemptionResult(outcome=RedemptionOutcome.ACCEPTED, claims=claims, record=record)

    def _reject(
        self,
        outcome: RedemptionOutcome,
        claims: Optional[TokenClaims],
        redeemer_id: str,
        now: datetime,
    ) -> RedemptionResult:
        session_id = claims.session_id if claims is not None else None
        _logger.info(
            "Redemption rejected (%s): session=%s redeemer=%s retryable=%s",
            outcome.value,
            session_id,
            redeemer_id,
            outcome.retryable,
        )

        record = None
        if self._record_rejections and claims is not None:
            record = self._ledger.record_rejected(claims.session_id, redeemer_id, now, outcome)
        return RedemptionResult(outcome=outcome, claims=claims, record=record)
