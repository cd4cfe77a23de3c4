from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Iterator, List, Optional

from .connection import DatabaseConnection

# Connection pinned by an open ``transaction`` block in the current context.
_active_conn: ContextVar[Optional[Any]] = ContextVar("member_attendance_active_conn", default=None)


@contextmanager
def transaction(conn_factory: DatabaseConnection) -> Iterator[Any]:
    """Run every ``db_cursor`` inside the block on one connection, committed once.

    Nested ``transaction`` blocks join the outer one.
    """
    outer = _active_conn.get()
    if outer is not None:
        yield outer
        return

    conn = conn_factory.connect()
    token = _active_conn.set(conn)
    try:
        conn.start_transaction()
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        _active_conn.reset(token)
        conn.close()


@contextmanager
def db_cursor(conn_factory: DatabaseConnection, *, dictionary: bool = True):
    pinned = _active_conn.get()
    if pinned is not None:
        cur = pinned.cursor(dictionary=dictionary)
        try:
            yield pinned, cur
        finally:
            cur.close()
        return

    conn = conn_factory.connect()
    try:
        cur = conn.cursor(dictionary=dictionary)
        try:
            yield conn, cur
            conn.commit()
        finally:
            cur.close()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def fetchone(cur) -> Optional[Dict[str, Any]]:
    row = cur.fetchone()
    return row if row else None


def fetchall(cur) -> List[Dict[str, Any]]:
    rows = cur.fetchall()
    return list(rows or [])


def to_bool(value: Any) -> bool:
    """MySQL returns TINYINT(1) columns as ints."""
    return bool(int(value)) if value is not None else False
