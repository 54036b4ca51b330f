from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..core.enums import AttendanceStatus
from ..sessions.model import AttendanceSession
from ..users.model import User


@dataclass(frozen=True)
class AttendanceRecord:
    """Domain entity: one student's attendance in one session.

    Immutable once created; at most one per (session, student).
    """

    attendance_id: int
    session_id: int
    student_id: int
    status: AttendanceStatus
    marked_at: datetime
    notes: Optional[str] = None


@dataclass(frozen=True)
class MarkResult:
    """A freshly created record joined with its session for display."""

    record: AttendanceRecord
    session: AttendanceSession
    minutes_late: int


@dataclass(frozen=True)
class HistoryRow:
    """Read-model for a student's history (record joined with session/class)."""

    attendance_id: int
    session_id: int
    session_code: str
    class_id: int
    class_name: str
    status: AttendanceStatus
    marked_at: datetime
    session_start: datetime
    notes: Optional[str] = None


@dataclass(frozen=True)
class RosterEntry:
    student: User
    record: Optional[AttendanceRecord] = None

    @property
    def status(self) -> AttendanceStatus:
        # No record means the student never showed up.
        return self.record.status if self.record else AttendanceStatus.ABSENT


@dataclass(frozen=True)
class AttendanceReportRow:
    """Read-model for report/CSV export (optimized for the query)."""

    student_id: int
    full_name: str
    email: str
    class_id: int
    class_name: str
    session_id: int
    session_code: str
    session_start: datetime
    status: AttendanceStatus
    marked_at: datetime
    notes: Optional[str] = None
