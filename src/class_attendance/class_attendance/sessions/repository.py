from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from .model import AttendanceSession


class SessionRepository(Protocol):
    def get_by_id(self, session_id: int) -> Optional[AttendanceSession]:
        raise NotImplementedError

    def get_active_for_class(self, class_id: int, now: datetime) -> Optional[AttendanceSession]:
        """Effective-active session of a class (stored flag set and unexpired)."""

        raise NotImplementedError

    def find_active_by_code(self, code: str, now: datetime) -> Optional[AttendanceSession]:
        raise NotImplementedError

    def code_in_use(self, code: str) -> bool:
        """True if a session with a set stored flag already holds ``code``."""

        raise NotImplementedError

    def create_session(
        self,
        *,
        class_id: int,
        teacher_id: int,
        code: str,
        start_time: datetime,
        expires_at: datetime,
    ) -> int:
        """Sweep the class's expired sessions and insert a new active one.

        Must be atomic against concurrent starts: raises AlreadyActiveError if
        another active session of the class exists, SessionCodeCollisionError
        if ``code`` is held by another active session.
        """

        raise NotImplementedError

    def deactivate(self, session_id: int, *, end_time: datetime) -> bool:
        """Clear the stored flag; False if it was already cleared."""

        raise NotImplementedError

    def expire_stale(self, now: datetime) -> int:
        raise NotImplementedError

    def list_active_for_student(self, student_id: int, now: datetime) -> Sequence[AttendanceSession]:
        raise NotImplementedError

    def list_active_for_teacher(self, teacher_id: int, now: datetime) -> Sequence[AttendanceSession]:
        raise NotImplementedError

    def list_active(self, now: datetime) -> Sequence[AttendanceSession]:
        raise NotImplementedError

    def list_for_teacher(self, teacher_id: int) -> Sequence[AttendanceSession]:
        raise NotImplementedError

    def list_for_class(
        self,
        class_id: int,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Sequence[AttendanceSession]:
        """Sessions of a class whose start_time lies in [start, end]."""

        raise NotImplementedError

    def list_started_between(self, start: datetime, end: datetime) -> Sequence[AttendanceSession]:
        """Sessions of every class whose start_time lies in [start, end]."""

        raise NotImplementedError
