from __future__ import annotations

import re
from pathlib import Path

import mysql.connector

from .connection import DBConfig

DEFAULT_SCHEMA_PATH = Path(__file__).resolve().with_name("schema.sql")

_COMMENT = re.compile(r"(?m)^\s*--.*$")
_DB_SELECTION = re.compile(r"(?im)^\s*(CREATE\s+DATABASE|USE)\b[^;]*;")


def schema_statements(schema_path: str | Path = DEFAULT_SCHEMA_PATH) -> list[str]:
    """Table DDL from ``schema.sql`` as individual statements.

    The database itself is created by ``ensure_database_exists`` under the
    configured name, so ``CREATE DATABASE`` / ``USE`` lines are dropped. The
    schema holds no string literals, so splitting on ``;`` is exact.
    """
    sql = Path(schema_path).read_text(encoding="utf-8")
    sql = _DB_SELECTION.sub("", _COMMENT.sub("", sql))
    return [stmt.strip() for stmt in sql.split(";") if stmt.strip()]


def ensure_database_exists(config: DBConfig) -> None:
    conn = mysql.connector.connect(
        host=config.host,
        port=config.port,
        user=config.user,
        password=config.password,
        use_pure=True,
    )
    try:
        cur = conn.cursor()
        cur.execute(
            f"CREATE DATABASE IF NOT EXISTS `{config.database}` CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci;"
        )
        conn.commit()
    finally:
        conn.close()


def apply_schema(config: DBConfig, *, schema_path: str | Path = DEFAULT_SCHEMA_PATH) -> None:
    ensure_database_exists(config)
    statements = schema_statements(schema_path)

    conn = mysql.connector.connect(
        host=config.host,
        port=config.port,
        user=config.user,
        password=config.password,
        database=config.database,
        use_pure=True,
    )
    try:
        cur = conn.cursor()
        for stmt in statements:
            cur.execute(stmt)
        conn.commit()
    finally:
        conn.close()


def list_tables(config: DBConfig) -> list[str]:
    conn = mysql.connector.connect(
        host=config.host,
        port=config.port,
        user=config.user,
        password=config.password,
        database=config.database,
        use_pure=True,
    )
    try:
        cur = conn.cursor()
        cur.execute("SHOW TABLES")
        return [row[0] for row in cur.fetchall()]
    finally:
        conn.close()
