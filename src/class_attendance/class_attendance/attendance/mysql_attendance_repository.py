from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from mysql.connector.errors import IntegrityError

from ..core.enums import AttendanceStatus
from ..core.exceptions import DuplicateMarkError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, in_clause, is_duplicate_key
from .model import AttendanceRecord, AttendanceReportRow, HistoryRow
from .repository import AttendanceRepository

_COLUMNS = "attendance_id, session_id, student_id, status, marked_at, notes"


def _to_record(r: dict) -> AttendanceRecord:
    return AttendanceRecord(
        attendance_id=int(r["attendance_id"]),
        session_id=int(r["session_id"]),
        student_id=int(r["student_id"]),
        status=AttendanceStatus(r["status"]),
        marked_at=r["marked_at"],
        notes=r.get("notes"),
    )


class MySQLAttendanceRepository(AttendanceRepository):
    """One record per (session, student) is guaranteed by the UNIQUE index
    ``uq_attendance_session_student``."""

    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_for_session_and_student(self, session_id: int, student_id: int) -> Optional[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_COLUMNS} FROM attendance_records WHERE session_id=%s AND student_id=%s",
                (int(session_id), int(student_id)),
            )
            r = fetchone(cur)
            return _to_record(r) if r else None

    def create_record(
        self,
        *,
        session_id: int,
        student_id: int,
        status: AttendanceStatus,
        marked_at: datetime,
        notes: Optional[str] = None,
    ) -> int:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    """
                    INSERT INTO attendance_records(session_id, student_id, status, marked_at, notes)
                    VALUES(%s,%s,%s,%s,%s)
                    """,
                    (int(session_id), int(student_id), status.value, marked_at, notes),
                )
                return int(cur.lastrowid)
        except IntegrityError as exc:
            if is_duplicate_key(exc, "uq_attendance_session_student"):
                raise DuplicateMarkError("Attendance already marked for this session") from exc
            raise

    def list_for_session(self, session_id: int) -> Sequence[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_COLUMNS} FROM attendance_records WHERE session_id=%s ORDER BY marked_at, attendance_id",
                (int(session_id),),
            )
            return [_to_record(r) for r in fetchall(cur)]

    def list_for_sessions(self, session_ids: Sequence[int]) -> Sequence[AttendanceRecord]:
        ids = [int(x) for x in session_ids]
        if not ids:
            return []
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM attendance_records
                WHERE session_id IN ({in_clause(ids)})
                ORDER BY session_id, marked_at
                """,
                tuple(ids),
            )
            return [_to_record(r) for r in fetchall(cur)]

    def history_for_student(
        self,
        student_id: int,
        *,
        class_id: Optional[int] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Sequence[HistoryRow]:
        clauses = ["ar.student_id=%s"]
        params: list[object] = [int(student_id)]
        if class_id is not None:
            clauses.append("s.class_id=%s")
            params.append(int(class_id))
        params.extend([int(limit), int(offset)])

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT ar.attendance_id, ar.session_id, ar.status, ar.marked_at, ar.notes,
                       s.code AS session_code, s.start_time AS session_start,
                       c.class_id, c.name AS class_name
                FROM attendance_records ar
                JOIN attendance_sessions s ON s.session_id = ar.session_id
                JOIN classes c ON c.class_id = s.class_id
                WHERE {" AND ".join(clauses)}
                ORDER BY ar.marked_at DESC, ar.attendance_id DESC
                LIMIT %s OFFSET %s
                """,
                tuple(params),
            )
            return [
                HistoryRow(
                    attendance_id=int(r["attendance_id"]),
                    session_id=int(r["session_id"]),
                    session_code=r["session_code"],
                    class_id=int(r["class_id"]),
                    class_name=r["class_name"],
                    status=AttendanceStatus(r["status"]),
                    marked_at=r["marked_at"],
                    session_start=r["session_start"],
                    notes=r.get("notes"),
                )
                for r in fetchall(cur)
            ]

    def get_report_rows(
        self,
        *,
        class_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Sequence[AttendanceReportRow]:
        clauses = ["s.class_id=%s"]
        params: list[object] = [int(class_id)]
        if start is not None:
            clauses.append("s.start_time >= %s")
            params.append(start)
        if end is not None:
            clauses.append("s.start_time <= %s")
            params.append(end)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT u.user_id AS student_id, u.full_name, u.email,
                       c.class_id, c.name AS class_name,
                       s.session_id, s.code AS session_code, s.start_time AS session_start,
                       ar.status, ar.marked_at, ar.notes
                FROM attendance_records ar
                JOIN attendance_sessions s ON s.session_id = ar.session_id
                JOIN classes c ON c.class_id = s.class_id
                JOIN users u ON u.user_id = ar.student_id
                WHERE {" AND ".join(clauses)}
                ORDER BY s.start_time, u.full_name
                """,
                tuple(params),
            )
            return [
                AttendanceReportRow(
                    student_id=int(r["student_id"]),
                    full_name=r["full_name"],
                    email=r["email"],
                    class_id=int(r["class_id"]),
                    class_name=r["class_name"],
                    session_id=int(r["session_id"]),
                    session_code=r["session_code"],
                    session_start=r["session_start"],
                    status=AttendanceStatus(r["status"]),
                    marked_at=r["marked_at"],
                    notes=r.get("notes"),
                )
                for r in fetchall(cur)
            ]
