from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

from ..core.enums import AttendanceStatus


@dataclass(frozen=True)
class AttendanceTally:
    present: int = 0
    late: int = 0
    absent: int = 0
    excused: int = 0

    @classmethod
    def of(cls, statuses: Iterable[AttendanceStatus]) -> "AttendanceTally":
        counts = {s: 0 for s in AttendanceStatus}
        for status in statuses:
            counts[status] += 1
        return cls(
            present=counts[AttendanceStatus.PRESENT],
            late=counts[AttendanceStatus.LATE],
            absent=counts[AttendanceStatus.ABSENT],
            excused=counts[AttendanceStatus.EXCUSED],
        )

    def rate(self, *, count_late_as_attended: bool = True) -> float:
        """Attended share of PRESENT + LATE + ABSENT records.

        EXCUSED records are left out of the denominator. An empty
        denominator yields 0.0.
        """

        denominator = self.present + self.late + self.absent
        if denominator == 0:
            return 0.0
        attended = self.present + (self.late if count_late_as_attended else 0)
        return attended / denominator


@dataclass(frozen=True)
class ClassAttendanceRate:
    class_id: int
    sessions: int
    tally: AttendanceTally
    rate: float

    def to_dict(self) -> dict:
        return {
            "class_id": self.class_id,
            "sessions": self.sessions,
            "present_count": self.tally.present,
            "late_count": self.tally.late,
            "absent_count": self.tally.absent,
            "excused_count": self.tally.excused,
            "rate": round(self.rate, 4),
        }


@dataclass(frozen=True)
class StudentClassSummary:
    class_id: int
    class_name: str
    sessions: int
    tally: AttendanceTally
    rate: float
    teacher_id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "class_id": self.class_id,
            "class_name": self.class_name,
            "sessions": self.sessions,
            "present_count": self.tally.present,
            "late_count": self.tally.late,
            "absent_count": self.tally.absent,
            "excused_count": self.tally.excused,
            "rate": round(self.rate, 4),
        }


@dataclass(frozen=True)
class ReportData:
    rows: list[dict]
    summary: list[dict]


@dataclass(frozen=True)
class DailyAttendance:
    day: date
    sessions: int
    tally: AttendanceTally
    rate: float

    def to_dict(self) -> dict:
        return {
            "date": self.day.isoformat(),
            "sessions": self.sessions,
            "present_count": self.tally.present,
            "late_count": self.tally.late,
            "absent_count": self.tally.absent,
            "excused_count": self.tally.excused,
            "rate": round(self.rate, 4),
        }


@dataclass(frozen=True)
class DashboardStats:
    """Admin overview; ``trend`` runs oldest day first and ends with today."""

    total_students: int
    total_teachers: int
    total_classes: int
    active_classes: int
    active_sessions: int
    trend: list[DailyAttendance]

    @property
    def today(self) -> DailyAttendance:
        return self.trend[-1]

    def to_dict(self) -> dict:
        return {
            "total_students": self.total_students,
            "total_teachers": self.total_teachers,
            "total_classes": self.total_classes,
            "active_classes": self.active_classes,
            "active_sessions": self.active_sessions,
            "today": self.today.to_dict(),
            "attendance_trend": [d.to_dict() for d in self.trend],
        }
