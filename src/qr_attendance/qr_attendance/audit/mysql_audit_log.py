from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from ..core.enums import AuditAction
from ..database.connection import DatabaseConnection
from ..database.mysql_base import (
    db_cursor,
    dump_json,
    fetchall,
    from_db_datetime,
    load_json,
    to_db_datetime,
)
from .model import AuditEntry, NewAuditEntry, freeze_snapshot
from .repository import AuditLog, validate_entry


def insert_entry(cur, entry: NewAuditEntry) -> AuditEntry:
    """Insert on an open cursor so callers can share the surrounding transaction."""
    validate_entry(entry)
    cur.execute(
        """
        INSERT INTO audit_entries(actor_id, action, target_redemption_id, before_state, after_state, reason, created_at)
        VALUES(%s,%s,%s,%s,%s,%s,%s)
        """,
        (
            entry.actor_id,
            entry.action.value,
            int(entry.target_redemption_id),
            dump_json(dict(entry.before) if entry.before is not None else None),
            dump_json(dict(entry.after) if entry.after is not None else None),
            entry.reason,
            to_db_datetime(entry.created_at),
        ),
    )
    return AuditEntry.from_new(int(cur.lastrowid), entry)


class MySQLAuditLog(AuditLog):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def append(self, entry: NewAuditEntry) -> AuditEntry:
        with db_cursor(self._conn_factory) as (_, cur):
            return insert_entry(cur, entry)

    def list_entries(
        self,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        target_redemption_id: Optional[int] = None,
    ) -> Sequence[AuditEntry]:
        clauses = ["1=1"]
        params: list[object] = []

        if start is not None:
            clauses.append("created_at >= %s")
            params.append(to_db_datetime(start))
        if end is not None:
            clauses.append("created_at <= %s")
            params.append(to_db_datetime(end))
        if target_redemption_id is not None:
            clauses.append("target_redemption_id=%s")
            params.append(int(target_redemption_id))

        where = " AND ".join(clauses)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT entry_id, actor_id, action, target_redemption_id, before_state, after_state, reason, created_at
                FROM audit_entries
                WHERE {where}
                ORDER BY created_at ASC, entry_id ASC
                """,
                tuple(params),
            )
            return [
                AuditEntry(
                    entry_id=int(r["entry_id"]),
                    actor_id=r["actor_id"],
                    action=AuditAction(r["action"]),
                    target_redemption_id=int(r["target_redemption_id"]),
                    before=freeze_snapshot(load_json(r.get("before_state"))),
                    after=freeze_snapshot(load_json(r.get("after_state"))),
                    reason=r["reason"],
                    created_at=from_db_datetime(r["created_at"]),
                )
                for r in fetchall(cur)
            ]
