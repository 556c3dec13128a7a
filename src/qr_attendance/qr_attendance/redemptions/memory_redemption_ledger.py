from __future__ import annotations

import threading
from contextlib import ExitStack, contextmanager
from datetime import datetime
from typing import Iterable, Iterator, Optional, Sequence

from ..audit.model import AuditEntry, NewAuditEntry
from ..audit.repository import AuditLog
from ..common.datetime_utils import as_utc
from ..common.validators import require_non_empty
from ..core.enums import AuditAction, RedemptionOutcome, RedemptionStatus
from ..core.exceptions import RedemptionNotFoundError, ValidationError
from .model import RedemptionRecord, RedemptionState
from .repository import RedemptionLedger, normalize_state, resolve_action

Key = tuple[str, str]


class InMemoryRedemptionLedger(RedemptionLedger):
    """Thread-safe ledger for single-process deployments and tests.

    Accepted-record uniqueness is guarded by lock striping on the
    (session_id, redeemer_id) key, so unrelated keys never contend.
    """

    def __init__(self, audit: AuditLog, *, stripes: int = 64):
        if stripes < 1:
            raise ValueError("stripes must be >= 1")
        self._audit = audit
        self._stripes = [threading.Lock() for _ in range(stripes)]
        self._table_lock = threading.Lock()
        self._records: dict[int, RedemptionRecord] = {}
        self._accepted: dict[Key, int] = {}
        self._next_id = 1

    # -- locking -----------------------------------------------------------
    def _stripe_index(self, key: Key) -> int:
        return hash(key) % len(self._stripes)

    @contextmanager
    def _locked(self, keys: Iterable[Key]) -> Iterator[None]:
        # Fixed acquisition order prevents deadlock when an edit moves a record between keys.
        indexes = sorted({self._stripe_index(k) for k in keys})
        with ExitStack() as stack:
            for i in indexes:
                stack.enter_context(self._stripes[i])
            yield

    def _allocate_id(self) -> int:
        with self._table_lock:
            rid = self._next_id
            self._next_id += 1
            return rid

    def _store(self, record: RedemptionRecord) -> None:
        with self._table_lock:
            self._records[record.redemption_id] = record
            if record.is_accepted:
                self._accepted[record.key] = record.redemption_id

    def _discard(self, record: RedemptionRecord) -> None:
        with self._table_lock:
            self._records.pop(record.redemption_id, None)
            if self._accepted.get(record.key) == record.redemption_id:
                del self._accepted[record.key]

    # -- scan path ---------------------------------------------------------
    def try_insert_accepted(self, session_id: str, redeemer_id: str, timestamp: datetime) -> Optional[RedemptionRecord]:
        key = (session_id, redeemer_id)
        with self._locked([key]):
            with self._table_lock:
                if key in self._accepted:
                    return None
            record = RedemptionRecord(
                redemption_id=self._allocate_id(),
                session_id=session_id,
                redeemer_id=redeemer_id,
                redeemed_at=as_utc(timestamp),
                status=RedemptionStatus.ACCEPTED,
                reason=RedemptionOutcome.ACCEPTED,
            )
            self._store(record)
            return record

    def record_rejected(
        self,
        session_id: str,
        redeemer_id: str,
        timestamp: datetime,
        reason: RedemptionOutcome,
    ) -> RedemptionRecord:
        if reason == RedemptionOutcome.ACCEPTED:
            raise ValueError("record_rejected needs a rejection reason")
        record = RedemptionRecord(
            redemption_id=self._allocate_id(),
            session_id=session_id,
            redeemer_id=redeemer_id,
            redeemed_at=as_utc(timestamp),
            status=RedemptionStatus.REJECTED,
            reason=reason,
        )
        self._store(record)
        return record

    # -- reads -------------------------------------------------------------
    def get(self, redemption_id: int) -> Optional[RedemptionRecord]:
        with self._table_lock:
            return self._records.get(int(redemption_id))

    def find_accepted(self, session_id: str, redeemer_id: str) -> Optional[RedemptionRecord]:
        with self._table_lock:
            rid = self._accepted.get((session_id, redeemer_id))
            return self._records.get(rid) if rid is not None else None

    def list_for_session(
        self,
        session_id: str,
        *,
        status: Optional[RedemptionStatus] = None,
    ) -> Sequence[RedemptionRecord]:
        with self._table_lock:
            items = [r for r in self._records.values() if r.session_id == session_id]
        if status is not None:
            items = [r for r in items if r.status == status]
        return sorted(items, key=lambda r: (r.redeemed_at, r.redemption_id))

    # -- admin path --------------------------------------------------------
    def admin_override(
        self,
        *,
        actor_id: str,
        redemption_id: Optional[int],
        new_state: Optional[RedemptionState],
        reason: str,
        now: datetime,
    ) -> AuditEntry:
        reason = require_non_empty(reason, "Lý do")
        actor_id = require_non_empty(actor_id, "Người thực hiện")
        action = resolve_action(redemption_id, new_state)

        while True:
            existing = None
            keys: list[Key] = []
            if redemption_id is not None:
                existing = self.get(redemption_id)
                if existing is None:
                    raise RedemptionNotFoundError(f"Không tìm thấy bản ghi #{redemption_id}")
                keys.append(existing.key)
            target = normalize_state(new_state, existing) if new_state is not None else None
            if target is not None:
                keys.append(target.key)

            with self._locked(keys):
                if existing is not None and self.get(existing.redemption_id) != existing:
                    # Changed between the unlocked read and acquiring the stripes.
                    continue
                return self._apply_override(actor_id, action, existing, target, reason, as_utc(now))

    def _apply_override(
        self,
        actor_id: str,
        action: AuditAction,
        existing: Optional[RedemptionRecord],
        target: Optional[RedemptionState],
        reason: str,
        now: datetime,
    ) -> AuditEntry:
        updated = None
        if target is not None:
            rid = existing.redemption_id if existing is not None else self._allocate_id()
            updated = RedemptionRecord(
                redemption_id=rid,
                session_id=target.session_id,
                redeemer_id=target.redeemer_id,
                redeemed_at=target.redeemed_at,
                status=target.status,
                reason=target.reason,
            )
            if updated.is_accepted:
                holder = self.find_accepted(*updated.key)
                if holder is not None and holder.redemption_id != rid:
                    raise ValidationError("Người này đã được ghi nhận điểm danh trong phiên")

        target_id = existing.redemption_id if existing is not None else updated.redemption_id
        # Audit first: if the append fails nothing below runs.
        entry = self._audit.append(
            NewAuditEntry(
                actor_id=actor_id,
                action=action,
                target_redemption_id=target_id,
                before=existing.to_snapshot() if existing is not None else None,
                after=updated.to_snapshot() if updated is not None else None,
                reason=reason,
                created_at=now,
            )
        )
        if existing is not None:
            self._discard(existing)
        if updated is not None:
            self._store(updated)
        return entry
