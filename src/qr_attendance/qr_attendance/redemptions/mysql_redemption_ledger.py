from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

import mysql.connector

from ..audit.model import AuditEntry, NewAuditEntry
from ..audit.mysql_audit_log import insert_entry
from ..common.datetime_utils import as_utc
from ..common.validators import require_non_empty
from ..core.enums import AuditAction, RedemptionOutcome, RedemptionStatus
from ..core.exceptions import RedemptionNotFoundError, ValidationError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, from_db_datetime, is_duplicate_key, to_db_datetime
from .model import RedemptionRecord, RedemptionState
from .repository import RedemptionLedger, normalize_state, resolve_action

_COLUMNS = "redemption_id, session_id, redeemer_id, redeemed_at, status, reason"


def _row_to_record(r: dict) -> RedemptionRecord:
    return RedemptionRecord(
        redemption_id=int(r["redemption_id"]),
        session_id=str(r["session_id"]),
        redeemer_id=str(r["redeemer_id"]),
        redeemed_at=from_db_datetime(r["redeemed_at"]),
        status=RedemptionStatus(r["status"]),
        reason=RedemptionOutcome(r["reason"]),
    )


def _guard(status: RedemptionStatus) -> Optional[int]:
    # NULLs never collide in a UNIQUE index, so only ACCEPTED rows are constrained.
    return 1 if status == RedemptionStatus.ACCEPTED else None


class MySQLRedemptionLedger(RedemptionLedger):
    """Ledger backed by the ``redemptions`` table.

    The unique index ``uq_redemption_accepted`` makes the INSERT itself the
    compare-and-set, so concurrent scans from separate processes are safe too.
    """

    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def try_insert_accepted(self, session_id: str, redeemer_id: str, timestamp: datetime) -> Optional[RedemptionRecord]:
        redeemed_at = as_utc(timestamp)
        with db_cursor(self._conn_factory) as (_, cur):
            try:
                cur.execute(
                    """
                    INSERT INTO redemptions(session_id, redeemer_id, redeemed_at, status, reason, accepted_guard)
                    VALUES(%s,%s,%s,%s,%s,1)
                    """,
                    (
                        session_id,
                        redeemer_id,
                        to_db_datetime(redeemed_at),
                        RedemptionStatus.ACCEPTED.value,
                        RedemptionOutcome.ACCEPTED.value,
                    ),
                )
            except mysql.connector.Error as exc:
                if is_duplicate_key(exc):
                    return None
                raise
            return RedemptionRecord(
                redemption_id=int(cur.lastrowid),
                session_id=session_id,
                redeemer_id=redeemer_id,
                redeemed_at=redeemed_at,
                status=RedemptionStatus.ACCEPTED,
                reason=RedemptionOutcome.ACCEPTED,
            )

    def record_rejected(
        self,
        session_id: str,
        redeemer_id: str,
        timestamp: datetime,
        reason: RedemptionOutcome,
    ) -> RedemptionRecord:
        if reason == RedemptionOutcome.ACCEPTED:
            raise ValueError("record_rejected needs a rejection reason")
        redeemed_at = as_utc(timestamp)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO redemptions(session_id, redeemer_id, redeemed_at, status, reason, accepted_guard)
                VALUES(%s,%s,%s,%s,%s,NULL)
                """,
                (session_id, redeemer_id, to_db_datetime(redeemed_at), RedemptionStatus.REJECTED.value, reason.value),
            )
            return RedemptionRecord(
                redemption_id=int(cur.lastrowid),
                session_id=session_id,
                redeemer_id=redeemer_id,
                redeemed_at=redeemed_at,
                status=RedemptionStatus.REJECTED,
                reason=reason,
            )

    def get(self, redemption_id: int) -> Optional[RedemptionRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM redemptions WHERE redemption_id=%s", (int(redemption_id),))
            r = fetchone(cur)
            return _row_to_record(r) if r else None

    def find_accepted(self, session_id: str, redeemer_id: str) -> Optional[RedemptionRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM redemptions
                WHERE session_id=%s AND redeemer_id=%s AND accepted_guard=1
                """,
                (session_id, redeemer_id),
            )
            r = fetchone(cur)
            return _row_to_record(r) if r else None

    def list_for_session(
        self,
        session_id: str,
        *,
        status: Optional[RedemptionStatus] = None,
    ) -> Sequence[RedemptionRecord]:
        clauses = ["session_id=%s"]
        params: list[object] = [session_id]
        if status is not None:
            clauses.append("status=%s")
            params.append(RedemptionStatus(status).value)

        where = " AND ".join(clauses)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_COLUMNS} FROM redemptions WHERE {where} ORDER BY redeemed_at ASC, redemption_id ASC",
                tuple(params),
            )
            return [_row_to_record(r) for r in fetchall(cur)]

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

        # Row change and audit insert share one transaction: both commit or neither does.
        with db_cursor(self._conn_factory) as (_, cur):
            existing = None
            if redemption_id is not None:
                cur.execute(
                    f"SELECT {_COLUMNS} FROM redemptions WHERE redemption_id=%s FOR UPDATE",
                    (int(redemption_id),),
                )
                r = fetchone(cur)
                if not r:
                    raise RedemptionNotFoundError(f"Không tìm thấy bản ghi #{redemption_id}")
                existing = _row_to_record(r)

            target = normalize_state(new_state, existing) if new_state is not None else None
            updated = None
            try:
                if action == AuditAction.CREATE:
                    cur.execute(
                        """
                        INSERT INTO redemptions(session_id, redeemer_id, redeemed_at, status, reason, accepted_guard)
                        VALUES(%s,%s,%s,%s,%s,%s)
                        """,
                        (
                            target.session_id,
                            target.redeemer_id,
                            to_db_datetime(target.redeemed_at),
                            target.status.value,
                            target.reason.value,
                            _guard(target.status),
                        ),
                    )
                    rid = int(cur.lastrowid)
                elif action == AuditAction.EDIT:
                    rid = existing.redemption_id
                    cur.execute(
                        """
                        UPDATE redemptions
                        SET session_id=%s, redeemer_id=%s, redeemed_at=%s, status=%s, reason=%s, accepted_guard=%s
                        WHERE redemption_id=%s
                        """,
                        (
                            target.session_id,
                            target.redeemer_id,
                            to_db_datetime(target.redeemed_at),
                            target.status.value,
                            target.reason.value,
                            _guard(target.status),
                            rid,
                        ),
                    )
                else:
                    rid = existing.redemption_id
                    cur.execute("DELETE FROM redemptions WHERE redemption_id=%s", (rid,))
            except mysql.connector.Error as exc:
                if is_duplicate_key(exc):
                    raise ValidationError("Người này đã được ghi nhận điểm danh trong phiên") from exc
                raise

            if target is not None:
                updated = RedemptionRecord(
                    redemption_id=rid,
                    session_id=target.session_id,
                    redeemer_id=target.redeemer_id,
                    redeemed_at=target.redeemed_at,
                    status=target.status,
                    reason=target.reason,
                )

            return insert_entry(
                cur,
                NewAuditEntry(
                    actor_id=actor_id,
                    action=action,
                    target_redemption_id=rid,
                    before=existing.to_snapshot() if existing is not None else None,
                    after=updated.to_snapshot() if updated is not None else None,
                    reason=reason,
                    created_at=as_utc(now),
                ),
            )
