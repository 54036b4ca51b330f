from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .attendance.factory import AttendanceStrategyFactory
from .attendance.mysql_attendance_repository import MySQLAttendanceRepository
from .attendance.repository import AttendanceRepository
from .attendance.service import AttendanceService
from .classes.mysql_class_repository import MySQLClassRepository
from .classes.repository import ClassRepository
from .classes.service import ClassService
from .core.constants import (
    DEFAULT_LATE_THRESHOLD_MINUTES,
    DEFAULT_SESSION_CODE_BYTES,
    DEFAULT_SESSION_WINDOW_MINUTES,
)
from .database.connection import DBConfig, DatabaseConnection
from .reports.service import ReportService
from .sessions.mysql_session_repository import MySQLSessionRepository
from .sessions.repository import SessionRepository
from .sessions.service import SessionService
from .users.mysql_user_repository import MySQLUserRepository
from .users.repository import UserRepository
from .users.service import AuthService, UserService


@dataclass(frozen=True)
class AttendanceRules:
    session_window_minutes: int = DEFAULT_SESSION_WINDOW_MINUTES
    late_threshold_minutes: int = DEFAULT_LATE_THRESHOLD_MINUTES
    count_late_as_attended: bool = True
    session_code_bytes: int = DEFAULT_SESSION_CODE_BYTES

    @classmethod
    def from_settings(cls, settings) -> "AttendanceRules":
        return cls(
            session_window_minutes=int(getattr(settings, "SESSION_WINDOW_MINUTES", DEFAULT_SESSION_WINDOW_MINUTES)),
            late_threshold_minutes=int(getattr(settings, "LATE_THRESHOLD_MINUTES", DEFAULT_LATE_THRESHOLD_MINUTES)),
            count_late_as_attended=bool(getattr(settings, "COUNT_LATE_AS_ATTENDED", True)),
            session_code_bytes=int(getattr(settings, "SESSION_CODE_BYTES", DEFAULT_SESSION_CODE_BYTES)),
        )


@dataclass(frozen=True)
class Container:
    conn: Optional[DatabaseConnection]

    users_repo: UserRepository
    classes_repo: ClassRepository
    sessions_repo: SessionRepository
    attendance_repo: AttendanceRepository

    auth_service: AuthService
    user_service: UserService
    class_service: ClassService
    session_service: SessionService
    attendance_service: AttendanceService
    report_service: ReportService


def wire_services(
    *,
    users_repo: UserRepository,
    classes_repo: ClassRepository,
    sessions_repo: SessionRepository,
    attendance_repo: AttendanceRepository,
    rules: Optional[AttendanceRules] = None,
    conn: Optional[DatabaseConnection] = None,
) -> Container:
    """Build every service on top of the given repositories."""

    rules = rules or AttendanceRules()
    return Container(
        conn=conn,
        users_repo=users_repo,
        classes_repo=classes_repo,
        sessions_repo=sessions_repo,
        attendance_repo=attendance_repo,
        auth_service=AuthService(users_repo),
        user_service=UserService(users_repo),
        class_service=ClassService(classes_repo, users_repo),
        session_service=SessionService(
            sessions_repo,
            classes_repo,
            window_minutes=rules.session_window_minutes,
            code_bytes=rules.session_code_bytes,
        ),
        attendance_service=AttendanceService(
            attendance_repo,
            sessions_repo,
            classes_repo,
            strategy_factory=AttendanceStrategyFactory(),
            late_threshold_minutes=rules.late_threshold_minutes,
        ),
        report_service=ReportService(
            attendance_repo,
            sessions_repo,
            classes_repo,
            users_repo,
            count_late_as_attended=rules.count_late_as_attended,
        ),
    )


def build_container(*, db_config: dict, rules: Optional[AttendanceRules] = None) -> Container:
    conn = DatabaseConnection(DBConfig.from_mapping(db_config))

    return wire_services(
        users_repo=MySQLUserRepository(conn),
        classes_repo=MySQLClassRepository(conn),
        sessions_repo=MySQLSessionRepository(conn),
        attendance_repo=MySQLAttendanceRepository(conn),
        rules=rules,
        conn=conn,
    )
