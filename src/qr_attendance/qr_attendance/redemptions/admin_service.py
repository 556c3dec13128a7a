from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Sequence

from ..audit.model import AuditEntry
from ..audit.repository import AuditLog
from ..common.clock import Clock, SystemClock
from ..common.datetime_utils import as_utc
from ..common.validators import require_non_empty
from ..core.constants import APP_NAME
from ..core.enums import RedemptionOutcome, RedemptionStatus, Role
from ..core.exceptions import AuthorizationError, RedemptionNotFoundError, ValidationError
from ..sessions.repository import SessionRepository
from .model import RedemptionRecord, RedemptionState
from .repository import RedemptionLedger

_logger = logging.getLogger(f"{APP_NAME}.admin")


class RedemptionAdminService:
    """Manual corrections of the attendance ledger.

    Every call goes through ``RedemptionLedger.admin_override`` so the change and
    its audit entry are written together.
    """

    def __init__(
        self,
        ledger: RedemptionLedger,
        sessions: SessionRepository,
        audit: AuditLog,
        *,
        clock: Clock | None = None,
    ):
        self._ledger = ledger
        self._sessions = sessions
        self._audit = audit
        self._clock = clock or SystemClock()

    @staticmethod
    def _require_admin(current_role: Role) -> None:
        if current_role != Role.ADMIN:
            raise AuthorizationError("Bạn không có quyền")

    def _require_record(self, redemption_id: int) -> RedemptionRecord:
        record = self._ledger.get(int(redemption_id))
        if record is None:
            raise RedemptionNotFoundError(f"Không tìm thấy bản ghi #{redemption_id}")
        return record

    def add_redemption(
        self,
        *,
        current_role: Role,
        actor_id: str,
        session_id: str,
        redeemer_id: str,
        reason: str,
        redeemed_at: Optional[datetime] = None,
    ) -> AuditEntry:
        self._require_admin(current_role)
        reason = require_non_empty(reason, "Lý do")
        if self._sessions.get(session_id) is None:
            raise ValidationError("Phiên điểm danh không tồn tại")

        now = self._clock.now()
        entry = self._ledger.admin_override(
            actor_id=actor_id,
            redemption_id=None,
            new_state=RedemptionState(
                session_id=session_id,
                redeemer_id=redeemer_id,
                redeemed_at=as_utc(redeemed_at) if redeemed_at else now,
            ),
            reason=reason,
            now=now,
        )
        _logger.warning(
            "Admin %s added redemption #%s (session=%s redeemer=%s)",
            actor_id, entry.target_redemption_id, session_id, redeemer_id,
        )
        return entry

    def edit_redemption(
        self,
        *,
        current_role: Role,
        actor_id: str,
        redemption_id: int,
        reason: str,
        redeemer_id: Optional[str] = None,
        redeemed_at: Optional[datetime] = None,
        status: Optional[RedemptionStatus] = None,
        rejection_reason: Optional[RedemptionOutcome] = None,
    ) -> AuditEntry:
        self._require_admin(current_role)
        reason = require_non_empty(reason, "Lý do")
        record = self._require_record(redemption_id)

        if redeemer_id is None and redeemed_at is None and status is None and rejection_reason is None:
            raise ValidationError("Vui lòng nhập ít nhất 1 thay đổi")

        entry = self._ledger.admin_override(
            actor_id=actor_id,
            redemption_id=record.redemption_id,
            new_state=RedemptionState(
                session_id=record.session_id,
                redeemer_id=redeemer_id if redeemer_id is not None else record.redeemer_id,
                redeemed_at=as_utc(redeemed_at) if redeemed_at else record.redeemed_at,
                status=status if status is not None else record.status,
                reason=rejection_reason,
            ),
            reason=reason,
            now=self._clock.now(),
        )
        _logger.warning("Admin %s edited redemption #%s", actor_id, record.redemption_id)
        return entry

    def delete_redemption(
        self,
        *,
        current_role: Role,
        actor_id: str,
        redemption_id: int,
        reason: str,
    ) -> AuditEntry:
        self._require_admin(current_role)
        reason = require_non_empty(reason, "Lý do")

        entry = self._ledger.admin_override(
            actor_id=actor_id,
            redemption_id=int(redemption_id),
            new_state=None,
            reason=reason,
            now=self._clock.now(),
        )
        _logger.warning("Admin %s deleted redemption #%s", actor_id, redemption_id)
        return entry

    def history(self, redemption_id: int) -> Sequence[AuditEntry]:
        return self._audit.list_entries(target_redemption_id=int(redemption_id))

    def audit_between(self, *, start: datetime, end: datetime) -> Sequence[AuditEntry]:
        if end < start:
            raise ValidationError("Ngày kết thúc phải >= ngày bắt đầu")
        return self._audit.list_entries(start=start, end=end)
