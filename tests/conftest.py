from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime
from typing import Optional

import pytest
from werkzeug.security import generate_password_hash

from class_attendance.attendance.model import AttendanceRecord, AttendanceReportRow, HistoryRow
from class_attendance.classes.model import ClassEntity
from class_attendance.container import AttendanceRules, wire_services
from class_attendance.core.enums import AttendanceStatus, Role
from class_attendance.core.exceptions import (
    AlreadyActiveError,
    AlreadyEnrolledError,
    DuplicateMarkError,
    SessionCodeCollisionError,
    ValidationError,
)
from class_attendance.sessions.model import AttendanceSession
from class_attendance.users.model import User

# Cheap hash so the suite stays fast.
HASH_METHOD = "pbkdf2:sha256:1000"


class InMemoryUsers:
    def __init__(self):
        self._lock = threading.Lock()
        self._by_id: dict[int, User] = {}
        self._id = 0

    def add(self, full_name: str, email: str, role: Role, *, password: str = "password123", is_active: bool = True) -> User:
        user_id = self.create_user(
            full_name=full_name,
            email=email,
            password_hash=generate_password_hash(password, method=HASH_METHOD),
            role=role,
        )
        if not is_active:
            self.set_active(user_id, is_active=False)
        return self._by_id[user_id]

    def get_by_id(self, user_id: int) -> Optional[User]:
        return self._by_id.get(int(user_id))

    def get_by_email(self, email: str) -> Optional[User]:
        for u in self._by_id.values():
            if u.email == email:
                return u
        return None

    def create_user(self, *, full_name: str, email: str, password_hash: str, role: Role) -> int:
        with self._lock:
            if self.get_by_email(email):
                raise ValidationError("Email is already registered")
            self._id += 1
            self._by_id[self._id] = User(
                user_id=self._id,
                full_name=full_name,
                email=email,
                password_hash=password_hash,
                role=role,
            )
            return self._id

    def set_active(self, user_id: int, *, is_active: bool) -> bool:
        u = self._by_id.get(int(user_id))
        if not u:
            return False
        self._by_id[u.user_id] = replace(u, is_active=is_active)
        return True

    def update_profile(self, user_id: int, *, full_name: str, email: str) -> bool:
        with self._lock:
            other = self.get_by_email(email)
            if other and other.user_id != int(user_id):
                raise ValidationError("Email is already in use by another account")
            u = self._by_id.get(int(user_id))
            if not u:
                return False
            self._by_id[u.user_id] = replace(u, full_name=full_name, email=email)
            return True

    def set_password_hash(self, user_id: int, password_hash: str) -> bool:
        u = self._by_id.get(int(user_id))
        if not u:
            return False
        self._by_id[u.user_id] = replace(u, password_hash=password_hash)
        return True

    def list_users(self, *, role: Optional[Role] = None):
        items = [u for u in self._by_id.values() if role is None or u.role == role]
        return sorted(items, key=lambda u: u.user_id, reverse=True)


class InMemoryClasses:
    def __init__(self, users: InMemoryUsers):
        self._lock = threading.Lock()
        self._users = users
        self._classes: dict[int, ClassEntity] = {}
        self._enrollments: set[tuple[int, int]] = set()
        self._id = 0

    def _hydrate(self, cls: ClassEntity) -> ClassEntity:
        ids = frozenset(s for c, s in self._enrollments if c == cls.class_id)
        return replace(cls, student_ids=ids)

    def add(self, name: str, code: str, teacher: User, *, students=(), is_active: bool = True) -> ClassEntity:
        class_id = self.create_class(name=name, code=code, teacher_id=teacher.user_id)
        for s in students:
            self.add_student(class_id, s.user_id)
        if not is_active:
            self.set_active(class_id, is_active=False)
        return self.get_by_id(class_id)

    def get_by_id(self, class_id: int) -> Optional[ClassEntity]:
        cls = self._classes.get(int(class_id))
        return self._hydrate(cls) if cls else None

    def get_by_code(self, code: str) -> Optional[ClassEntity]:
        for cls in self._classes.values():
            if cls.code == code:
                return self._hydrate(cls)
        return None

    def create_class(self, *, name: str, code: str, teacher_id: int, description: Optional[str] = None) -> int:
        with self._lock:
            if any(c.code == code for c in self._classes.values()):
                raise ValidationError("Class code is already in use")
            self._id += 1
            self._classes[self._id] = ClassEntity(
                class_id=self._id,
                name=name,
                code=code,
                teacher_id=int(teacher_id),
                description=description,
                created_at=datetime(2025, 1, 1, 0, 0, self._id % 60),
            )
            return self._id

    def set_active(self, class_id: int, *, is_active: bool) -> bool:
        cls = self._classes.get(int(class_id))
        if not cls:
            return False
        self._classes[cls.class_id] = replace(cls, is_active=is_active)
        return True

    def update_details(self, class_id: int, *, name: str, description: Optional[str]) -> bool:
        cls = self._classes.get(int(class_id))
        if not cls:
            return False
        self._classes[cls.class_id] = replace(cls, name=name, description=description)
        return True

    def browse_for_student(self, student_id: int, *, search=None, limit: int = 20, offset: int = 0):
        needle = (search or "").lower()
        items = [
            c for c in self.list_all()
            if c.is_active
            and not c.has_student(student_id)
            and (not needle or any(needle in (v or "").lower() for v in (c.name, c.code, c.description)))
        ]
        items.sort(key=lambda c: (c.name, c.class_id))
        return items[offset:offset + limit]

    def list_all(self):
        return [self._hydrate(c) for c in sorted(self._classes.values(), key=lambda c: c.class_id, reverse=True)]

    def list_for_teacher(self, teacher_id: int):
        return [c for c in self.list_all() if c.teacher_id == int(teacher_id)]

    def list_for_student(self, student_id: int):
        return [c for c in self.list_all() if c.has_student(student_id)]

    def is_enrolled(self, class_id: int, student_id: int) -> bool:
        return (int(class_id), int(student_id)) in self._enrollments

    def add_student(self, class_id: int, student_id: int) -> None:
        with self._lock:
            key = (int(class_id), int(student_id))
            if key in self._enrollments:
                raise AlreadyEnrolledError("Student is already enrolled in this class")
            self._enrollments.add(key)

    def remove_student(self, class_id: int, student_id: int) -> bool:
        with self._lock:
            key = (int(class_id), int(student_id))
            if key not in self._enrollments:
                return False
            self._enrollments.discard(key)
            return True

    def list_students(self, class_id: int):
        students = [self._users.get_by_id(s) for c, s in self._enrollments if c == int(class_id)]
        return sorted((u for u in students if u), key=lambda u: u.full_name)


class InMemorySessions:
    """Mirrors the storage constraints: one stored-active session per class
    and per join code, checked under a lock."""

    def __init__(self, classes: InMemoryClasses):
        self._lock = threading.Lock()
        self._classes = classes
        self._sessions: dict[int, AttendanceSession] = {}
        self._id = 0

    def _with_class_name(self, s: AttendanceSession) -> AttendanceSession:
        cls = self._classes.get_by_id(s.class_id)
        return replace(s, class_name=cls.name if cls else None)

    def _newest_first(self, items):
        return sorted((self._with_class_name(s) for s in items), key=lambda s: (s.start_time, s.session_id), reverse=True)

    def put(self, session: AttendanceSession) -> AttendanceSession:
        """Store a prepared session as-is (stale flags included)."""
        with self._lock:
            self._id = max(self._id, session.session_id)
            self._sessions[session.session_id] = session
        return self._with_class_name(session)

    def get_by_id(self, session_id: int) -> Optional[AttendanceSession]:
        s = self._sessions.get(int(session_id))
        return self._with_class_name(s) if s else None

    def get_active_for_class(self, class_id: int, now: datetime) -> Optional[AttendanceSession]:
        for s in self._sessions.values():
            if s.class_id == int(class_id) and s.is_active and s.expires_at > now:
                return self._with_class_name(s)
        return None

    def find_active_by_code(self, code: str, now: datetime) -> Optional[AttendanceSession]:
        for s in self._sessions.values():
            if s.code == code and s.is_active and s.expires_at > now:
                return self._with_class_name(s)
        return None

    def code_in_use(self, code: str) -> bool:
        return any(s.code == code and s.is_active for s in self._sessions.values())

    def create_session(self, *, class_id: int, teacher_id: int, code: str, start_time: datetime, expires_at: datetime) -> int:
        with self._lock:
            for s in list(self._sessions.values()):
                if s.class_id == int(class_id) and s.is_active and s.expires_at <= start_time:
                    self._sessions[s.session_id] = replace(s, is_active=False, end_time=s.expires_at)

            if any(s.class_id == int(class_id) and s.is_active for s in self._sessions.values()):
                raise AlreadyActiveError("There is already an active session for this class")
            if self.code_in_use(code):
                raise SessionCodeCollisionError(code)

            self._id += 1
            self._sessions[self._id] = AttendanceSession(
                session_id=self._id,
                class_id=int(class_id),
                teacher_id=int(teacher_id),
                code=code,
                start_time=start_time,
                expires_at=expires_at,
                is_active=True,
            )
            return self._id

    def deactivate(self, session_id: int, *, end_time: datetime) -> bool:
        with self._lock:
            s = self._sessions.get(int(session_id))
            if not s or not s.is_active:
                return False
            self._sessions[s.session_id] = replace(s, is_active=False, end_time=end_time)
            return True

    def expire_stale(self, now: datetime) -> int:
        with self._lock:
            count = 0
            for s in list(self._sessions.values()):
                if s.is_active and s.expires_at <= now:
                    self._sessions[s.session_id] = replace(s, is_active=False, end_time=s.expires_at)
                    count += 1
            return count

    def list_active_for_student(self, student_id: int, now: datetime):
        return self._newest_first(
            s for s in self._sessions.values()
            if s.is_active and s.expires_at > now and self._classes.is_enrolled(s.class_id, student_id)
        )

    def list_active_for_teacher(self, teacher_id: int, now: datetime):
        return self._newest_first(
            s for s in self._sessions.values() if s.teacher_id == int(teacher_id) and s.is_active and s.expires_at > now
        )

    def list_active(self, now: datetime):
        return self._newest_first(s for s in self._sessions.values() if s.is_active and s.expires_at > now)

    def list_for_teacher(self, teacher_id: int):
        return self._newest_first(s for s in self._sessions.values() if s.teacher_id == int(teacher_id))

    def list_for_class(self, class_id: int, *, start: Optional[datetime] = None, end: Optional[datetime] = None):
        return self._newest_first(
            s for s in self._sessions.values()
            if s.class_id == int(class_id)
            and (start is None or s.start_time >= start)
            and (end is None or s.start_time <= end)
        )

    def list_started_between(self, start: datetime, end: datetime):
        return self._newest_first(s for s in self._sessions.values() if start <= s.start_time <= end)


class InMemoryAttendance:
    """Unique (session_id, student_id) is checked under a lock."""

    def __init__(self, sessions: InMemorySessions, classes: InMemoryClasses, users: InMemoryUsers):
        self._lock = threading.Lock()
        self._sessions = sessions
        self._classes = classes
        self._users = users
        self._records: dict[int, AttendanceRecord] = {}
        self._id = 0

    def get_for_session_and_student(self, session_id: int, student_id: int) -> Optional[AttendanceRecord]:
        for r in self._records.values():
            if r.session_id == int(session_id) and r.student_id == int(student_id):
                return r
        return None

    def create_record(self, *, session_id: int, student_id: int, status: AttendanceStatus, marked_at: datetime, notes=None) -> int:
        with self._lock:
            if self.get_for_session_and_student(session_id, student_id):
                raise DuplicateMarkError("Attendance already marked for this session")
            self._id += 1
            self._records[self._id] = AttendanceRecord(
                attendance_id=self._id,
                session_id=int(session_id),
                student_id=int(student_id),
                status=status,
                marked_at=marked_at,
                notes=notes,
            )
            return self._id

    def list_for_session(self, session_id: int):
        return sorted((r for r in self._records.values() if r.session_id == int(session_id)), key=lambda r: r.marked_at)

    def list_for_sessions(self, session_ids):
        ids = {int(x) for x in session_ids}
        return [r for r in self._records.values() if r.session_id in ids]

    def history_for_student(self, student_id: int, *, class_id=None, limit: int = 50, offset: int = 0):
        rows = []
        for r in self._records.values():
            if r.student_id != int(student_id):
                continue
            s = self._sessions.get_by_id(r.session_id)
            if class_id is not None and s.class_id != int(class_id):
                continue
            rows.append(
                HistoryRow(
                    attendance_id=r.attendance_id,
                    session_id=r.session_id,
                    session_code=s.code,
                    class_id=s.class_id,
                    class_name=s.class_name,
                    status=r.status,
                    marked_at=r.marked_at,
                    session_start=s.start_time,
                    notes=r.notes,
                )
            )
        rows.sort(key=lambda h: (h.marked_at, h.attendance_id), reverse=True)
        return rows[offset:offset + limit]

    def get_report_rows(self, *, class_id: int, start=None, end=None):
        rows = []
        for r in self._records.values():
            s = self._sessions.get_by_id(r.session_id)
            if s.class_id != int(class_id):
                continue
            if (start and s.start_time < start) or (end and s.start_time > end):
                continue
            u = self._users.get_by_id(r.student_id)
            rows.append(
                AttendanceReportRow(
                    student_id=u.user_id,
                    full_name=u.full_name,
                    email=u.email,
                    class_id=s.class_id,
                    class_name=s.class_name,
                    session_id=s.session_id,
                    session_code=s.code,
                    session_start=s.start_time,
                    status=r.status,
                    marked_at=r.marked_at,
                    notes=r.notes,
                )
            )
        rows.sort(key=lambda x: (x.session_start, x.full_name))
        return rows


class World:
    """Repositories plus a small cast: an admin, two teachers, three students
    and a class taught by ``teacher`` with ``alice`` and ``bob`` enrolled."""

    def __init__(self, rules: Optional[AttendanceRules] = None):
        self.users = InMemoryUsers()
        self.classes = InMemoryClasses(self.users)
        self.sessions = InMemorySessions(self.classes)
        self.attendance = InMemoryAttendance(self.sessions, self.classes, self.users)
        self.container = wire_services(
            users_repo=self.users,
            classes_repo=self.classes,
            sessions_repo=self.sessions,
            attendance_repo=self.attendance,
            rules=rules,
        )

        self.admin = self.users.add("Ada Admin", "admin@example.com", Role.ADMIN)
        self.teacher = self.users.add("Tom Teacher", "teacher@example.com", Role.TEACHER)
        self.other_teacher = self.users.add("Olga Other", "other@example.com", Role.TEACHER)
        self.alice = self.users.add("Alice Student", "alice@example.com", Role.STUDENT)
        self.bob = self.users.add("Bob Student", "bob@example.com", Role.STUDENT)
        self.carol = self.users.add("Carol Outsider", "carol@example.com", Role.STUDENT)
        self.course = self.classes.add("Databases", "CS101", self.teacher, students=[self.alice, self.bob])


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2025, 3, 3, 9, 0, 0)


@pytest.fixture
def world() -> World:
    return World()


@pytest.fixture
def app(world, monkeypatch):
    from class_attendance.main import create_app

    monkeypatch.setenv("APP_ENV", "testing")
    flask_app = create_app(container=world.container)
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login_as(client):
    """Put a user into the session cookie without going through /login."""

    def _login(user: User):
        with client.session_transaction() as sess:
            sess["user_id"] = user.user_id
            sess["name"] = user.full_name
            sess["role"] = user.role.value
        return client

    return _login
