from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """User roles used for authorization."""

    ADMIN = "ADMIN"
    TEACHER = "TEACHER"
    STUDENT = "STUDENT"


class AttendanceStatus(str, Enum):
    """Attendance status stored on each record."""

    PRESENT = "PRESENT"
    LATE = "LATE"
    ABSENT = "ABSENT"
    EXCUSED = "EXCUSED"


# Statuses only set by teachers/admins, never by a student's own mark.
ADMINISTRATIVE_STATUSES = frozenset({AttendanceStatus.ABSENT, AttendanceStatus.EXCUSED})
