from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional, Sequence

from ..classes.repository import ClassRepository
from ..common.datetime_utils import now_utc
from ..common.validators import require_positive_int
from ..core.constants import (
    DEFAULT_SESSION_CODE_BYTES,
    DEFAULT_SESSION_WINDOW_MINUTES,
    SESSION_CODE_ATTEMPTS,
)
from ..core.enums import Role
from ..core.exceptions import (
    AlreadyActiveError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    SessionCodeCollisionError,
    ValidationError,
)
from .codes import generate_session_code, normalize_session_code
from .model import AttendanceSession, can_manage, is_effectively_active
from .qr import render_code_png
from .repository import SessionRepository

logger = logging.getLogger(__name__)


class SessionService:
    """Session lifecycle: open, query and close attendance windows.

    Expiry is lazy: there is no timer, a session counts as open only while its
    stored flag is set and ``expires_at`` lies in the future.
    """

    def __init__(
        self,
        sessions: SessionRepository,
        classes: ClassRepository,
        *,
        window_minutes: int = DEFAULT_SESSION_WINDOW_MINUTES,
        code_bytes: int = DEFAULT_SESSION_CODE_BYTES,
    ):
        if int(window_minutes) <= 0:
            raise ValueError("window_minutes must be positive")
        self._sessions = sessions
        self._classes = classes
        self._window = timedelta(minutes=int(window_minutes))
        self._code_bytes = int(code_bytes)

    @property
    def window(self) -> timedelta:
        return self._window

    def _require_session(self, session_id: int) -> AttendanceSession:
        s = self._sessions.get_by_id(require_positive_int(session_id, "session_id"))
        if not s:
            raise NotFoundError("Session not found")
        return s

    def _require_manager(self, *, actor_id: int, actor_role: Role, session: AttendanceSession) -> None:
        if not can_manage(session, actor_id=actor_id, actor_role=actor_role):
            raise ForbiddenError("You do not own this session")

    def start_session(self, *, teacher_id: int, class_id: int, now: Optional[datetime] = None) -> AttendanceSession:
        now = now or now_utc()

        cls = self._classes.get_by_id(require_positive_int(class_id, "class_id"))
        if not cls:
            raise NotFoundError("Class not found")
        if not cls.is_owned_by(teacher_id):
            raise ForbiddenError("You do not own this class")
        if not cls.is_active:
            raise InvalidStateError("Class is archived")

        if self._sessions.get_active_for_class(cls.class_id, now):
            raise AlreadyActiveError("There is already an active session for this class")

        expires_at = now + self._window
        for _ in range(SESSION_CODE_ATTEMPTS):
            code = generate_session_code(self._code_bytes)
            if self._sessions.code_in_use(code):
                continue
            try:
                session_id = self._sessions.create_session(
                    class_id=cls.class_id,
                    teacher_id=int(teacher_id),
                    code=code,
                    start_time=now,
                    expires_at=expires_at,
                )
            except SessionCodeCollisionError:
                continue

            logger.info(
                "Teacher %s started session %s (code %s) for class %s, expires %s",
                teacher_id, session_id, code, cls.class_id, expires_at.isoformat(),
            )
            return self._require_session(session_id)

        raise RuntimeError("Could not allocate a unique session code")

    def stop_session(
        self,
        *,
        actor_id: int,
        actor_role: Role,
        session_id: int,
        now: Optional[datetime] = None,
    ) -> AttendanceSession:
        """Close a session whose stored flag is still set.

        A session that already ran past its expiry records ``expires_at`` as
        its end time.
        """

        now = now or now_utc()
        s = self._require_session(session_id)
        self._require_manager(actor_id=actor_id, actor_role=actor_role, session=s)

        if not s.is_active:
            raise InvalidStateError("Session is already stopped")

        end_time = min(now, s.expires_at)
        if not self._sessions.deactivate(s.session_id, end_time=end_time):
            raise InvalidStateError("Session is already stopped")

        logger.info("User %s stopped session %s", actor_id, s.session_id)
        return self._require_session(s.session_id)

    def get_active_session(self, class_id: int, *, now: Optional[datetime] = None) -> Optional[AttendanceSession]:
        now = now or now_utc()
        s = self._sessions.get_active_for_class(int(class_id), now)
        return s if is_effectively_active(s, now) else None

    def list_active_sessions_for_student(
        self, student_id: int, *, now: Optional[datetime] = None
    ) -> Sequence[AttendanceSession]:
        now = now or now_utc()
        items = [s for s in self._sessions.list_active_for_student(int(student_id), now) if s.is_effectively_active(now)]
        items.sort(key=lambda s: s.start_time, reverse=True)
        return items

    def list_active_sessions(
        self, *, actor_id: int, actor_role: Role, now: Optional[datetime] = None
    ) -> Sequence[AttendanceSession]:
        now = now or now_utc()
        if actor_role == Role.STUDENT:
            return self.list_active_sessions_for_student(actor_id, now=now)

        if actor_role == Role.TEACHER:
            items = self._sessions.list_active_for_teacher(int(actor_id), now)
        else:
            items = self._sessions.list_active(now)
        items = [s for s in items if s.is_effectively_active(now)]
        items.sort(key=lambda s: s.start_time, reverse=True)
        return items

    def list_teacher_sessions(self, teacher_id: int) -> Sequence[AttendanceSession]:
        return self._sessions.list_for_teacher(int(teacher_id))

    def get_session(self, *, actor_id: int, actor_role: Role, session_id: int) -> AttendanceSession:
        s = self._require_session(session_id)
        if actor_role == Role.STUDENT:
            if not self._classes.is_enrolled(s.class_id, int(actor_id)):
                raise ForbiddenError("You are not enrolled in this class")
            return s
        self._require_manager(actor_id=actor_id, actor_role=actor_role, session=s)
        return s

    def find_active_by_code(self, code: str, *, now: Optional[datetime] = None) -> Optional[AttendanceSession]:
        now = now or now_utc()
        code = normalize_session_code(code)
        if not code:
            raise ValidationError("Session code is required")
        s = self._sessions.find_active_by_code(code, now)
        return s if is_effectively_active(s, now) else None

    def expire_stale_sessions(self, *, now: Optional[datetime] = None) -> int:
        """Housekeeping sweep: clear the stored flag of expired sessions."""

        count = self._sessions.expire_stale(now or now_utc())
        if count:
            logger.info("Expired %s stale session(s)", count)
        return count

    def session_qr_png(
        self, *, actor_id: int, actor_role: Role, session_id: int, now: Optional[datetime] = None
    ) -> bytes:
        now = now or now_utc()
        s = self._require_session(session_id)
        self._require_manager(actor_id=actor_id, actor_role=actor_role, session=s)
        if not s.is_effectively_active(now):
            raise InvalidStateError("Session is not active")
        return render_code_png(s.code)
