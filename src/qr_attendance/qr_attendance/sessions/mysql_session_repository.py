from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

import mysql.connector

from ..core.exceptions import ValidationError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, from_db_datetime, is_duplicate_key, to_db_datetime
from .model import Session
from .repository import SessionRepository

_COLUMNS = "session_id, owner_id, created_at, window_start, window_end, is_active, closed_at"


def _row_to_session(r: dict) -> Session:
    return Session(
        session_id=str(r["session_id"]),
        owner_id=str(r["owner_id"]),
        created_at=from_db_datetime(r["created_at"]),
        window_start=from_db_datetime(r["window_start"]),
        window_end=from_db_datetime(r["window_end"]),
        is_active=bool(r["is_active"]),
        closed_at=from_db_datetime(r.get("closed_at")),
    )


class MySQLSessionRepository(SessionRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def add(self, session: Session) -> None:
        with db_cursor(self._conn_factory) as (_, cur):
            try:
                cur.execute(
                    f"""
                    INSERT INTO attendance_sessions({_COLUMNS})
                    VALUES(%s,%s,%s,%s,%s,%s,%s)
                    """,
                    (
                        session.session_id,
                        session.owner_id,
                        to_db_datetime(session.created_at),
                        to_db_datetime(session.window_start),
                        to_db_datetime(session.window_end),
                        1 if session.is_active else 0,
                        to_db_datetime(session.closed_at),
                    ),
                )
            except mysql.connector.Error as exc:
                if is_duplicate_key(exc):
                    raise ValidationError("Phiên điểm danh đã tồn tại") from exc
                raise

    def get(self, session_id: str) -> Optional[Session]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM attendance_sessions WHERE session_id=%s", (session_id,))
            r = fetchone(cur)
            return _row_to_session(r) if r else None

    def mark_closed(self, session_id: str, *, closed_at: datetime) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE attendance_sessions
                SET is_active=0, closed_at=%s
                WHERE session_id=%s AND is_active=1
                """,
                (to_db_datetime(closed_at), session_id),
            )
            return cur.rowcount > 0

    def list_active(self) -> Sequence[Session]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_COLUMNS} FROM attendance_sessions WHERE is_active=1 ORDER BY window_start ASC"
            )
            return [_row_to_session(r) for r in fetchall(cur)]

    def list_active_ending_before(self, cutoff: datetime) -> Sequence[Session]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM attendance_sessions
                WHERE is_active=1 AND window_end < %s
                ORDER BY window_end ASC
                """,
                (to_db_datetime(cutoff),),
            )
            return [_row_to_session(r) for r in fetchall(cur)]
