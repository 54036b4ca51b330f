from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from mysql.connector import errorcode
from mysql.connector.errors import IntegrityError

from .connection import DatabaseConnection


@contextmanager
def db_cursor(conn_factory: DatabaseConnection, *, dictionary: bool = True):
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


def is_duplicate_key(exc: Exception, key_name: Optional[str] = None) -> bool:
    """True if ``exc`` is a unique-index violation (optionally on ``key_name``).

    MySQL reports the violated index in the message:
    ``Duplicate entry '7' for key 'attendance_sessions.uq_sessions_active_class'``.
    """

    if not isinstance(exc, IntegrityError) or exc.errno != errorcode.ER_DUP_ENTRY:
        return False
    if key_name is None:
        return True
    return key_name in (exc.msg or "")


def in_clause(values) -> str:
    """Placeholder list for ``IN (...)`` with one ``%s`` per value."""
    return ",".join(["%s"] * len(values))
