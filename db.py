import os
import sqlite3
from pathlib import Path
from typing import Iterable, Optional

from db_pool import SQLiteConnectionPool

DB_PATH = os.getenv("DB_PATH", "data.db")

_pool = SQLiteConnectionPool(DB_PATH, max_connections=10)
_initialized_path: Optional[str] = None


def configure(path: str) -> None:
    """Point the module at a different database file."""
    global DB_PATH, _pool, _initialized_path
    _pool.close_all()
    DB_PATH = path
    _initialized_path = None
    _pool = SQLiteConnectionPool(DB_PATH, max_connections=10)


def _conn():
    """Return a context manager for acquiring a pooled SQLite connection."""
    return _pool.get_connection()


def _exec(sql: str, params: Iterable = ()):
    with _pool.get_connection() as con:
        cur = con.execute(sql, tuple(params))
        con.commit()
        return cur


def _query(sql: str, params: Iterable = ()) -> list[sqlite3.Row]:
    with _pool.get_connection() as con:
        cur = con.execute(sql, tuple(params))
        return cur.fetchall()


def init():
    global _initialized_path
    if DB_PATH != ":memory:":
        Path(DB_PATH).parent.mkdir(parents=True, exist_ok=True)
    with _conn() as con:
        con.executescript(
            """
            CREATE TABLE IF NOT EXISTS kv_flags (
              namespace   TEXT NOT NULL,
              key         TEXT NOT NULL,
              value       TEXT NOT NULL,
              updated_at  TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
              PRIMARY KEY (namespace, key)
            );
            """
        )
        con.commit()
    _initialized_path = DB_PATH


def _ensure_init() -> None:
    if _initialized_path != DB_PATH:
        init()


def get_flag(namespace: str, key: str) -> Optional[str]:
    _ensure_init()
    rows = _query("SELECT value FROM kv_flags WHERE namespace = ? AND key = ?", (namespace, key))
    return rows[0]["value"] if rows else None


def set_flag(namespace: str, key: str, value: str) -> None:
    _ensure_init()
    _exec(
        """
        INSERT INTO kv_flags(namespace, key, value) VALUES (?,?,?)
        ON CONFLICT(namespace, key) DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP
        """,
        (namespace, key, value),
    )


def delete_flag(namespace: str, key: str) -> bool:
    _ensure_init()
    cur = _exec("DELETE FROM kv_flags WHERE namespace = ? AND key = ?", (namespace, key))
    return cur.rowcount > 0
