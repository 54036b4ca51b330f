from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from mysql.connector.errors import IntegrityError

from ..core.exceptions import AlreadyActiveError, SessionCodeCollisionError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, is_duplicate_key
from .model import AttendanceSession
from .repository import SessionRepository

_SELECT = """
    SELECT s.session_id, s.class_id, s.teacher_id, s.code, s.start_time, s.end_time,
           s.expires_at, s.is_active, c.name AS class_name
    FROM attendance_sessions s
    JOIN classes c ON c.class_id = s.class_id
"""

# Clearing the derived columns releases the class slot and the join code.
_CLOSE_SET = "is_active=0, active_class_id=NULL, active_code=NULL"


def _to_session(r: dict) -> AttendanceSession:
    return AttendanceSession(
        session_id=int(r["session_id"]),
        class_id=int(r["class_id"]),
        teacher_id=int(r["teacher_id"]),
        code=r["code"],
        start_time=r["start_time"],
        end_time=r.get("end_time"),
        expires_at=r["expires_at"],
        is_active=bool(r["is_active"]),
        class_name=r.get("class_name"),
    )


class MySQLSessionRepository(SessionRepository):
    """Single active session per class is guaranteed by the UNIQUE index on
    ``active_class_id``, which mirrors ``class_id`` only while the stored flag
    is set."""

    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def _one(self, where: str, params: tuple) -> Optional[AttendanceSession]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"{_SELECT} WHERE {where}", params)
            row = fetchone(cur)
            return _to_session(row) if row else None

    def _many(self, where: str, params: tuple) -> Sequence[AttendanceSession]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"{_SELECT} WHERE {where} ORDER BY s.start_time DESC, s.session_id DESC", params)
            return [_to_session(r) for r in fetchall(cur)]

    def get_by_id(self, session_id: int) -> Optional[AttendanceSession]:
        return self._one("s.session_id=%s", (int(session_id),))

    def get_active_for_class(self, class_id: int, now: datetime) -> Optional[AttendanceSession]:
        return self._one("s.class_id=%s AND s.is_active=1 AND s.expires_at > %s", (int(class_id), now))

    def find_active_by_code(self, code: str, now: datetime) -> Optional[AttendanceSession]:
        return self._one("s.active_code=%s AND s.is_active=1 AND s.expires_at > %s", (code, now))

    def code_in_use(self, code: str) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT 1 AS ok FROM attendance_sessions WHERE active_code=%s", (code,))
            return fetchone(cur) is not None

    def create_session(
        self,
        *,
        class_id: int,
        teacher_id: int,
        code: str,
        start_time: datetime,
        expires_at: datetime,
    ) -> int:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    f"""
                    UPDATE attendance_sessions
                    SET {_CLOSE_SET}, end_time=expires_at
                    WHERE class_id=%s AND is_active=1 AND expires_at <= %s
                    """,
                    (int(class_id), start_time),
                )
                cur.execute(
                    """
                    INSERT INTO attendance_sessions(
                        class_id, teacher_id, code, start_time, expires_at, is_active, active_class_id, active_code
                    )
                    VALUES(%s,%s,%s,%s,%s,1,%s,%s)
                    """,
                    (int(class_id), int(teacher_id), code, start_time, expires_at, int(class_id), code),
                )
                return int(cur.lastrowid)
        except IntegrityError as exc:
            if is_duplicate_key(exc, "uq_sessions_active_class"):
                raise AlreadyActiveError("There is already an active session for this class") from exc
            if is_duplicate_key(exc, "uq_sessions_active_code"):
                raise SessionCodeCollisionError(code) from exc
            raise

    def deactivate(self, session_id: int, *, end_time: datetime) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"UPDATE attendance_sessions SET {_CLOSE_SET}, end_time=%s WHERE session_id=%s AND is_active=1",
                (end_time, int(session_id)),
            )
            return cur.rowcount > 0

    def expire_stale(self, now: datetime) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"UPDATE attendance_sessions SET {_CLOSE_SET}, end_time=expires_at WHERE is_active=1 AND expires_at <= %s",
                (now,),
            )
            return int(cur.rowcount)

    def list_active_for_student(self, student_id: int, now: datetime) -> Sequence[AttendanceSession]:
        return self._many(
            """
            s.is_active=1 AND s.expires_at > %s
            AND EXISTS (
                SELECT 1 FROM class_enrollments e
                WHERE e.class_id = s.class_id AND e.student_id=%s
            )
            """,
            (now, int(student_id)),
        )

    def list_active_for_teacher(self, teacher_id: int, now: datetime) -> Sequence[AttendanceSession]:
        return self._many("s.teacher_id=%s AND s.is_active=1 AND s.expires_at > %s", (int(teacher_id), now))

    def list_active(self, now: datetime) -> Sequence[AttendanceSession]:
        return self._many("s.is_active=1 AND s.expires_at > %s", (now,))

    def list_for_teacher(self, teacher_id: int) -> Sequence[AttendanceSession]:
        return self._many("s.teacher_id=%s", (int(teacher_id),))

    def list_for_class(
        self,
        class_id: int,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Sequence[AttendanceSession]:
        clauses = ["s.class_id=%s"]
        params: list[object] = [int(class_id)]
        if start is not None:
            clauses.append("s.start_time >= %s")
            params.append(start)
        if end is not None:
            clauses.append("s.start_time <= %s")
            params.append(end)
        return self._many(" AND ".join(clauses), tuple(params))

    def list_started_between(self, start: datetime, end: datetime) -> Sequence[AttendanceSession]:
        return self._many("s.start_time >= %s AND s.start_time <= %s", (start, end))
