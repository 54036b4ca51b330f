from __future__ import annotations

import csv
import io
from collections import Counter, defaultdict
from datetime import date, datetime, timedelta
from typing import Optional, Sequence

from ..attendance.model import HistoryRow
from ..attendance.repository import AttendanceRepository
from ..classes.repository import ClassRepository
from ..common.datetime_utils import end_of_day, now_utc, start_of_day
from ..core.constants import DASHBOARD_TREND_DAYS, DEFAULT_HISTORY_LIMIT, MAX_HISTORY_LIMIT
from ..core.enums import Role
from ..core.exceptions import NotFoundError, ValidationError
from ..sessions.repository import SessionRepository
from ..users.repository import UserRepository
from .model import (
    AttendanceTally,
    ClassAttendanceRate,
    DailyAttendance,
    DashboardStats,
    ReportData,
    StudentClassSummary,
)

CSV_FIELDS = [
    "session_date",
    "session_time",
    "session_code",
    "class_name",
    "student_id",
    "full_name",
    "email",
    "status",
    "marked_at",
    "notes",
]


class ReportService:
    """Read-side aggregation over sessions and attendance records."""

    def __init__(
        self,
        attendance: AttendanceRepository,
        sessions: SessionRepository,
        classes: ClassRepository,
        users: UserRepository,
        *,
        count_late_as_attended: bool = True,
    ):
        self._attendance = attendance
        self._sessions = sessions
        self._classes = classes
        self._users = users
        self._count_late = bool(count_late_as_attended)

    @property
    def count_late_as_attended(self) -> bool:
        return self._count_late

    def _require_class(self, class_id: int):
        cls = self._classes.get_by_id(int(class_id))
        if not cls:
            raise NotFoundError("Class not found")
        return cls

    @staticmethod
    def _bounds(start: Optional[date], end: Optional[date]):
        if start and end and start > end:
            raise ValidationError("start must not be after end")
        return (start_of_day(start) if start else None, end_of_day(end) if end else None)

    def class_attendance_rate(
        self,
        class_id: int,
        *,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> ClassAttendanceRate:
        """Count records by status across the class's sessions in range.

        A session belongs to the range when its start date falls inside
        [start, end], both ends inclusive and optional.
        """

        cls = self._require_class(class_id)
        lo, hi = self._bounds(start, end)
        sessions = self._sessions.list_for_class(cls.class_id, start=lo, end=hi)
        records = self._attendance.list_for_sessions([s.session_id for s in sessions])

        tally = AttendanceTally.of(r.status for r in records)
        return ClassAttendanceRate(
            class_id=cls.class_id,
            sessions=len(sessions),
            tally=tally,
            rate=tally.rate(count_late_as_attended=self._count_late),
        )

    def student_attendance_history(
        self,
        student_id: int,
        *,
        class_id: Optional[int] = None,
        limit: int = DEFAULT_HISTORY_LIMIT,
        offset: int = 0,
    ) -> Sequence[HistoryRow]:
        limit = max(1, min(int(limit), MAX_HISTORY_LIMIT))
        offset = max(0, int(offset))
        return self._attendance.history_for_student(int(student_id), class_id=class_id, limit=limit, offset=offset)

    def student_summary(self, student_id: int, *, teacher_id: Optional[int] = None) -> Sequence[StudentClassSummary]:
        """Per-class tally for one student; ``teacher_id`` keeps only that teacher's classes."""

        student_id = int(student_id)
        out: list[StudentClassSummary] = []
        for cls in self._classes.list_for_student(student_id):
            if teacher_id is not None and cls.teacher_id != int(teacher_id):
                continue
            sessions = self._sessions.list_for_class(cls.class_id)
            records = self._attendance.list_for_sessions([s.session_id for s in sessions])
            tally = AttendanceTally.of(r.status for r in records if r.student_id == student_id)
            out.append(
                StudentClassSummary(
                    class_id=cls.class_id,
                    class_name=cls.name,
                    sessions=len(sessions),
                    tally=tally,
                    rate=tally.rate(count_late_as_attended=self._count_late),
                    teacher_id=cls.teacher_id,
                )
            )
        out.sort(key=lambda x: x.class_name.lower())
        return out

    def dashboard(self, *, now: Optional[datetime] = None, days: int = DASHBOARD_TREND_DAYS) -> DashboardStats:
        """Directory counts plus a per-day attendance trend ending today (UTC).

        Only active accounts are counted. A day's figures cover the sessions
        that started on it.
        """

        now = now or now_utc()
        days = max(1, int(days))
        today = now.date()
        first = today - timedelta(days=days - 1)

        sessions = self._sessions.list_started_between(start_of_day(first), end_of_day(today))
        day_of = {s.session_id: s.start_time.date() for s in sessions}
        sessions_per_day = Counter(day_of.values())
        statuses: dict[date, list] = defaultdict(list)
        for r in self._attendance.list_for_sessions(list(day_of)):
            statuses[day_of[r.session_id]].append(r.status)

        trend = []
        for i in range(days):
            day = first + timedelta(days=i)
            tally = AttendanceTally.of(statuses.get(day, ()))
            trend.append(
                DailyAttendance(
                    day=day,
                    sessions=sessions_per_day.get(day, 0),
                    tally=tally,
                    rate=tally.rate(count_late_as_attended=self._count_late),
                )
            )

        users = [u for u in self._users.list_users() if u.is_active]
        classes = self._classes.list_all()
        open_sessions = [s for s in self._sessions.list_active(now) if s.is_effectively_active(now)]
        return DashboardStats(
            total_students=sum(1 for u in users if u.role == Role.STUDENT),
            total_teachers=sum(1 for u in users if u.role == Role.TEACHER),
            total_classes=len(classes),
            active_classes=sum(1 for c in classes if c.is_active),
            active_sessions=len(open_sessions),
            trend=trend,
        )

    def build_class_report(
        self,
        class_id: int,
        *,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> ReportData:
        cls = self._require_class(class_id)
        lo, hi = self._bounds(start, end)
        query_rows = self._attendance.get_report_rows(class_id=cls.class_id, start=lo, end=hi)

        out_rows: list[dict] = []
        per_student: dict[int, dict] = {}
        for r in query_rows:
            out_rows.append(
                {
                    "session_date": r.session_start.strftime("%Y-%m-%d"),
                    "session_time": r.session_start.strftime("%H:%M"),
                    "session_code": r.session_code,
                    "class_name": r.class_name,
                    "student_id": r.student_id,
                    "full_name": r.full_name,
                    "email": r.email,
                    "status": r.status.value,
                    "marked_at": r.marked_at.strftime("%Y-%m-%d %H:%M:%S"),
                    "notes": r.notes or "",
                }
            )
            s = per_student.setdefault(
                r.student_id,
                {"student_id": r.student_id, "full_name": r.full_name, "email": r.email, "statuses": []},
            )
            s["statuses"].append(r.status)

        summary = []
        for s in per_student.values():
            tally = AttendanceTally.of(s["statuses"])
            summary.append(
                {
                    "student_id": s["student_id"],
                    "full_name": s["full_name"],
                    "email": s["email"],
                    "present_count": tally.present,
                    "late_count": tally.late,
                    "absent_count": tally.absent,
                    "excused_count": tally.excused,
                    "rate": round(tally.rate(count_late_as_attended=self._count_late), 4),
                }
            )
        summary.sort(key=lambda x: x["full_name"].lower())
        return ReportData(rows=out_rows, summary=summary)

    def export_class_csv(
        self,
        class_id: int,
        *,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> bytes:
        """CSV bytes encoded as utf-8-sig."""

        data = self.build_class_report(class_id, start=start, end=end)
        out = io.StringIO()
        writer = csv.DictWriter(out, fieldnames=CSV_FIELDS)
        writer.writeheader()
        for row in data.rows:
            writer.writerow(row)
        return out.getvalue().encode("utf-8-sig")
