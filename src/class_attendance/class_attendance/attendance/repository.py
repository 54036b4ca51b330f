from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from ..core.enums import AttendanceStatus
from .model import AttendanceRecord, AttendanceReportRow, HistoryRow


class AttendanceRepository(Protocol):
    def get_for_session_and_student(self, session_id: int, student_id: int) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def create_record(
        self,
        *,
        session_id: int,
        student_id: int,
        status: AttendanceStatus,
        marked_at: datetime,
        notes: Optional[str] = None,
    ) -> int:
        """Insert a record; raises DuplicateMarkError when the
        (session_id, student_id) pair already exists."""

        raise NotImplementedError

    def list_for_session(self, session_id: int) -> Sequence[AttendanceRecord]:
        raise NotImplementedError

    def list_for_sessions(self, session_ids: Sequence[int]) -> Sequence[AttendanceRecord]:
        raise NotImplementedError

    def history_for_student(
        self,
        student_id: int,
        *,
        class_id: Optional[int] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Sequence[HistoryRow]:
        """Newest first."""

        raise NotImplementedError

    def get_report_rows(
        self,
        *,
        class_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Sequence[AttendanceReportRow]:
        raise NotImplementedError
