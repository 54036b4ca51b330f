from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Sequence

from ..classes.repository import ClassRepository
from ..common.datetime_utils import now_utc, whole_minutes_between
from ..common.validators import optional_text, require_biometric_token, require_positive_int
from ..core.constants import DEFAULT_LATE_THRESHOLD_MINUTES, MAX_NOTES_LENGTH
from ..core.enums import ADMINISTRATIVE_STATUSES, AttendanceStatus, Role
from ..core.exceptions import (
    DuplicateMarkError,
    ForbiddenError,
    InvalidStateError,
    NotEnrolledError,
    NotFoundError,
    SessionExpiredError,
    ValidationError,
)
from ..sessions.codes import normalize_session_code
from ..sessions.model import AttendanceSession, can_manage
from ..sessions.repository import SessionRepository
from .factory import AttendanceStrategyFactory
from .model import AttendanceRecord, MarkResult, RosterEntry
from .repository import AttendanceRepository

logger = logging.getLogger(__name__)


class AttendanceService:
    def __init__(
        self,
        attendance: AttendanceRepository,
        sessions: SessionRepository,
        classes: ClassRepository,
        *,
        strategy_factory: AttendanceStrategyFactory | None = None,
        late_threshold_minutes: int = DEFAULT_LATE_THRESHOLD_MINUTES,
    ):
        self._attendance = attendance
        self._sessions = sessions
        self._classes = classes
        self._factory = strategy_factory or AttendanceStrategyFactory()
        self._threshold = int(late_threshold_minutes)

    def _require_session(self, session_id: int) -> AttendanceSession:
        s = self._sessions.get_by_id(require_positive_int(session_id, "session_id"))
        if not s:
            raise NotFoundError("Session not found")
        return s

    def _require_manager(self, *, actor_id: int, actor_role: Role, session: AttendanceSession) -> None:
        if not can_manage(session, actor_id=actor_id, actor_role=actor_role):
            raise ForbiddenError("You do not own this session")

    def _load_record(self, attendance_id: int, *, session_id: int, student_id: int) -> AttendanceRecord:
        record = self._attendance.get_for_session_and_student(session_id, student_id)
        if not record or record.attendance_id != attendance_id:
            raise RuntimeError(f"Attendance record {attendance_id} vanished after insert")
        return record

    def mark_attendance(
        self,
        *,
        student_id: int,
        session_id: int,
        biometric_token: str,
        now: Optional[datetime] = None,
    ) -> MarkResult:
        """Record the caller's presence in an open session.

        Checks run in a fixed order and stop at the first failure: session
        exists, session is open, student is enrolled, no earlier mark, token
        is well formed. The status is PRESENT up to the lateness threshold
        and LATE after it.
        """

        now = now or now_utc()
        student_id = int(student_id)

        session = self._require_session(session_id)
        if not session.is_effectively_active(now):
            raise SessionExpiredError("Session has expired or has been stopped")

        if not self._classes.is_enrolled(session.class_id, student_id):
            raise NotEnrolledError("You are not enrolled in this class")

        if self._attendance.get_for_session_and_student(session.session_id, student_id):
            raise DuplicateMarkError("Attendance already marked for this session")

        require_biometric_token(biometric_token)

        minutes_late = whole_minutes_between(session.start_time, now)
        strategy = self._factory.for_mark(minutes_late=minutes_late, threshold_minutes=self._threshold)
        decision = strategy.decide_mark(minutes_late=minutes_late)

        # The unique (session_id, student_id) index settles concurrent marks.
        attendance_id = self._attendance.create_record(
            session_id=session.session_id,
            student_id=student_id,
            status=decision.status,
            marked_at=now,
            notes=decision.note,
        )
        record = self._load_record(attendance_id, session_id=session.session_id, student_id=student_id)

        logger.info(
            "Student %s marked %s in session %s (%s min after start)",
            student_id, record.status.value, session.session_id, minutes_late,
        )
        return MarkResult(record=record, session=session, minutes_late=minutes_late)

    def mark_attendance_by_code(
        self,
        *,
        student_id: int,
        code: str,
        biometric_token: str,
        now: Optional[datetime] = None,
    ) -> MarkResult:
        now = now or now_utc()
        normalized = normalize_session_code(code)
        if not normalized:
            raise ValidationError("Session code is required")

        session = self._sessions.find_active_by_code(normalized, now)
        if not session or not session.is_effectively_active(now):
            raise NotFoundError("No active session with this code")

        return self.mark_attendance(
            student_id=student_id,
            session_id=session.session_id,
            biometric_token=biometric_token,
            now=now,
        )

    def set_administrative_status(
        self,
        *,
        actor_id: int,
        actor_role: Role,
        session_id: int,
        student_id: int,
        status: AttendanceStatus,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AttendanceRecord:
        """Record ABSENT or EXCUSED for a student who has no record yet."""

        now = now or now_utc()
        if status not in ADMINISTRATIVE_STATUSES:
            raise ValidationError("Only ABSENT or EXCUSED can be set administratively")

        session = self._require_session(session_id)
        self._require_manager(actor_id=actor_id, actor_role=actor_role, session=session)

        student_id = require_positive_int(student_id, "student_id")
        if not self._classes.is_enrolled(session.class_id, student_id):
            raise NotEnrolledError("Student is not enrolled in this class")
        if self._attendance.get_for_session_and_student(session.session_id, student_id):
            raise DuplicateMarkError("Attendance already recorded for this student")

        notes = optional_text(notes, "notes")
        if notes and len(notes) > MAX_NOTES_LENGTH:
            raise ValidationError(f"notes must be at most {MAX_NOTES_LENGTH} characters")
        attendance_id = self._attendance.create_record(
            session_id=session.session_id,
            student_id=student_id,
            status=status,
            marked_at=now,
            notes=notes,
        )
        logger.info(
            "User %s set %s for student %s in session %s",
            actor_id, status.value, student_id, session.session_id,
        )
        return self._load_record(attendance_id, session_id=session.session_id, student_id=student_id)

    def record_absentees(
        self,
        *,
        actor_id: int,
        actor_role: Role,
        session_id: int,
        now: Optional[datetime] = None,
    ) -> int:
        """Write ABSENT for every enrolled student without a record.

        Only allowed once the session is closed; returns the number created.
        """

        now = now or now_utc()
        session = self._require_session(session_id)
        self._require_manager(actor_id=actor_id, actor_role=actor_role, session=session)
        if session.is_effectively_active(now):
            raise InvalidStateError("Session is still open")

        marked = {r.student_id for r in self._attendance.list_for_session(session.session_id)}
        created = 0
        for student in self._classes.list_students(session.class_id):
            if student.user_id in marked:
                continue
            try:
                self._attendance.create_record(
                    session_id=session.session_id,
                    student_id=student.user_id,
                    status=AttendanceStatus.ABSENT,
                    marked_at=now,
                    notes="Recorded absent after session closed",
                )
            except DuplicateMarkError:
                # Marked concurrently; the existing record wins.
                continue
            created += 1

        if created:
            logger.info("Recorded %s absentee(s) for session %s", created, session.session_id)
        return created

    def session_roster(self, *, actor_id: int, actor_role: Role, session_id: int) -> Sequence[RosterEntry]:
        session = self._require_session(session_id)
        self._require_manager(actor_id=actor_id, actor_role=actor_role, session=session)

        by_student = {r.student_id: r for r in self._attendance.list_for_session(session.session_id)}
        students = sorted(self._classes.list_students(session.class_id), key=lambda u: u.full_name.lower())
        return [RosterEntry(student=u, record=by_student.get(u.user_id)) for u in students]

