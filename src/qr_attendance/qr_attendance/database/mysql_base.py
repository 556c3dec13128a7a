from __future__ import annotations

import json
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

import mysql.connector

from ..common.datetime_utils import as_utc
from ..core.exceptions import StoreUnavailableError, ValidationError
from .connection import DatabaseConnection

DUPLICATE_KEY_ERRNO = 1062


@contextmanager
def db_cursor(conn_factory: DatabaseConnection, *, dictionary: bool = True):
    """Yield ``(conn, cur)`` inside one transaction.

    Commits on success, rolls back on any exception. Connection and server
    failures surface as ``StoreUnavailableError`` (retryable); integrity and data
    errors as ``ValidationError``; SQL programming errors propagate unchanged.
    """
    try:
        conn = conn_factory.connect()
    except mysql.connector.Error as exc:
        raise StoreUnavailableError(f"database unreachable: {exc.msg}") from exc
    try:
        cur = conn.cursor(dictionary=dictionary)
        try:
            yield conn, cur
            conn.commit()
        finally:
            cur.close()
    except (mysql.connector.IntegrityError, mysql.connector.DataError) as exc:
        # Constraint and value errors repeat on every retry: they are bad input.
        conn.rollback()
        raise ValidationError(f"Dữ liệu không hợp lệ: {exc.msg}") from exc
    except (mysql.connector.ProgrammingError, mysql.connector.NotSupportedError):
        conn.rollback()
        raise
    except mysql.connector.Error as exc:
        conn.rollback()
        raise StoreUnavailableError(f"database error: {exc.msg}") from exc
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def is_duplicate_key(exc: mysql.connector.Error) -> bool:
    return isinstance(exc, mysql.connector.IntegrityError) and exc.errno == DUPLICATE_KEY_ERRNO


def fetchone(cur) -> Optional[Dict[str, Any]]:
    row = cur.fetchone()
    return row if row else None


def fetchall(cur) -> List[Dict[str, Any]]:
    rows = cur.fetchall()
    return list(rows or [])


def to_db_datetime(value: Optional[datetime]) -> Optional[datetime]:
    """DATETIME(6) columns hold naive UTC."""
    if value is None:
        return None
    return as_utc(value).replace(tzinfo=None)


def from_db_datetime(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return as_utc(value)


def dump_json(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False, sort_keys=True)


def load_json(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        return json.loads(value)
    return value
