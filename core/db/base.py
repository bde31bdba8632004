"""
Low-level database helpers (Postgres-only).

The notifiers only read the admin app's tables, so connections are opened
per run and closed by the caller.
"""
from __future__ import annotations

import os
from typing import Dict, Iterable, List

try:
    import psycopg
    from psycopg.rows import dict_row
except Exception as exc:  # pragma: no cover - required dependency
    raise RuntimeError("psycopg is required for Postgres") from exc


class ConfigError(RuntimeError):
    """Required configuration is missing or malformed."""


def resolve_database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if not url:
        raise ConfigError("DATABASE_URL must be set for Postgres usage")
    if url.startswith("postgres://") or url.startswith("postgresql://"):
        return url
    raise ConfigError("DATABASE_URL must start with postgres:// or postgresql://")


def _convert_qmarks(sql: str) -> str:
    if "?" not in sql:
        return sql
    return sql.replace("?", "%s")


class _CursorWrapper:
    def __init__(self, cursor):
        self._cursor = cursor

    def execute(self, sql: str, params: Iterable | None = None):
        sql = _convert_qmarks(sql)
        if params is None:
            return self._cursor.execute(sql)
        return self._cursor.execute(sql, params)

    def fetchone(self):
        return self._cursor.fetchone()

    def fetchall(self):
        return self._cursor.fetchall()

    @property
    def rowcount(self):
        return getattr(self._cursor, "rowcount", 0)


class _ConnWrapper:
    def __init__(self, conn):
        self._conn = conn

    def cursor(self):
        return _CursorWrapper(self._conn.cursor())

    def query(self, sql: str, params: Iterable | None = None) -> List[Dict]:
        """Run a SELECT and return its rows as plain dicts."""
        cur = self.cursor()
        cur.execute(sql, params)
        return [dict(r) for r in cur.fetchall()]

    def commit(self):
        return self._conn.commit()

    def close(self):
        return self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


def get_conn(url: str | None = None):
    """
    Return a Postgres DB connection (DATABASE_URL required unless `url` is given).
    """
    conn = psycopg.connect(url or resolve_database_url(), row_factory=dict_row)
    return _ConnWrapper(conn)
