from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..core.enums import Role


@dataclass(frozen=True)
class AttendanceSession:
    """Domain entity: a bounded window in which students mark attendance.

    ``is_active`` is the stored flag. It can stay true after ``expires_at``
    until the session is stopped or swept, so reads must go through
    :meth:`is_effectively_active`.
    """

    session_id: int
    class_id: int
    teacher_id: int
    code: str
    start_time: datetime
    expires_at: datetime
    is_active: bool
    end_time: Optional[datetime] = None
    class_name: Optional[str] = None

    def is_effectively_active(self, now: datetime) -> bool:
        return self.is_active and self.expires_at > now


def is_effectively_active(session: Optional[AttendanceSession], now: datetime) -> bool:
    return session is not None and session.is_effectively_active(now)


def can_manage(session: AttendanceSession, *, actor_id: int, actor_role: Role) -> bool:
    """Admins manage every session, teachers only the ones they started."""

    if actor_role == Role.ADMIN:
        return True
    return actor_role == Role.TEACHER and session.teacher_id == int(actor_id)
