from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from ..audit.model import AuditEntry
from ..common.datetime_utils import as_utc
from ..common.validators import require_max_length, require_non_empty
from ..core.constants import MAX_PRINCIPAL_ID_LEN, MAX_SESSION_ID_LEN
from ..core.enums import AuditAction, RedemptionOutcome, RedemptionStatus
from ..core.exceptions import ValidationError
from .model import RedemptionRecord, RedemptionState


class RedemptionLedger(Protocol):
    """Port for the redemption store.

    ``try_insert_accepted`` is the only write on the scan path and must be atomic
    per (session_id, redeemer_id).
    """

    def try_insert_accepted(self, session_id: str, redeemer_id: str, timestamp: datetime) -> Optional[RedemptionRecord]:
        """Insert an ACCEPTED record unless one exists for the key. None means it existed."""

        raise NotImplementedError

    def record_rejected(
        self,
        session_id: str,
        redeemer_id: str,
        timestamp: datetime,
        reason: RedemptionOutcome,
    ) -> RedemptionRecord:
        raise NotImplementedError

    def get(self, redemption_id: int) -> Optional[RedemptionRecord]:
        raise NotImplementedError

    def find_accepted(self, session_id: str, redeemer_id: str) -> Optional[RedemptionRecord]:
        raise NotImplementedError

    def list_for_session(
        self,
        session_id: str,
        *,
        status: Optional[RedemptionStatus] = None,
    ) -> Sequence[RedemptionRecord]:
        raise NotImplementedError

    def admin_override(
        self,
        *,
        actor_id: str,
        redemption_id: Optional[int],
        new_state: Optional[RedemptionState],
        reason: str,
        now: datetime,
    ) -> AuditEntry:
        """Create (id None), edit, or delete (state None) a record and audit it as one unit."""

        raise NotImplementedError


def resolve_action(redemption_id: Optional[int], new_state: Optional[RedemptionState]) -> AuditAction:
    if redemption_id is None and new_state is None:
        raise ValidationError("Thiếu bản ghi cần chỉnh sửa")
    if redemption_id is None:
        return AuditAction.CREATE
    if new_state is None:
        return AuditAction.DELETE
    return AuditAction.EDIT


def normalize_state(state: RedemptionState, existing: Optional[RedemptionRecord]) -> RedemptionState:
    """Validate an override target and fill in its reason code."""
    session_id = require_non_empty(state.session_id, "Mã phiên")
    redeemer_id = require_non_empty(state.redeemer_id, "Người điểm danh")
    require_max_length(session_id, MAX_SESSION_ID_LEN, "Mã phiên")
    require_max_length(redeemer_id, MAX_PRINCIPAL_ID_LEN, "Người điểm danh")
    status = RedemptionStatus(state.status)

    if status == RedemptionStatus.ACCEPTED:
        reason = RedemptionOutcome.ACCEPTED
    elif state.reason is not None:
        reason = RedemptionOutcome(state.reason)
    elif existing is not None and existing.status == RedemptionStatus.REJECTED:
        reason = existing.reason
    else:
        raise ValidationError("Bản ghi bị từ chối cần mã lý do")
    if status == RedemptionStatus.REJECTED and reason == RedemptionOutcome.ACCEPTED:
        raise ValidationError("Mã lý do không khớp trạng thái")

    return RedemptionState(
        session_id=session_id,
        redeemer_id=redeemer_id,
        redeemed_at=as_utc(state.redeemed_at),
        status=status,
        reason=reason,
    )
