from __future__ import annotations

import threading
from datetime import datetime, timedelta

import pytest

from class_attendance.core.enums import Role
from class_attendance.core.exceptions import (
    AlreadyActiveError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from class_attendance.sessions.model import AttendanceSession
from class_attendance.sessions.service import SessionService


def _stale_session(world, fixed_now, *, session_id=90, minutes_ago=45, code="STALE001") -> AttendanceSession:
    start = fixed_now - timedelta(minutes=minutes_ago)
    return world.sessions.put(
        AttendanceSession(
            session_id=session_id,
            class_id=world.course.class_id,
            teacher_id=world.teacher.user_id,
            code=code,
            start_time=start,
            expires_at=start + timedelta(minutes=30),
            is_active=True,
        )
    )


def test_start_session_sets_window_and_code(world, fixed_now):
    svc = world.container.session_service
    s = svc.start_session(teacher_id=world.teacher.user_id, class_id=world.course.class_id, now=fixed_now)

    assert s.start_time == fixed_now
    assert s.expires_at == fixed_now + timedelta(minutes=30)
    assert s.is_active is True
    assert s.end_time is None
    assert len(s.code) == 8 and s.code == s.code.upper()
    assert s.class_name == "Databases"


def test_start_session_rejects_unknown_class(world, fixed_now):
    with pytest.raises(NotFoundError):
        world.container.session_service.start_session(teacher_id=world.teacher.user_id, class_id=999, now=fixed_now)


def test_start_session_rejects_non_owner(world, fixed_now):
    with pytest.raises(ForbiddenError):
        world.container.session_service.start_session(
            teacher_id=world.other_teacher.user_id, class_id=world.course.class_id, now=fixed_now
        )


def test_start_session_rejects_archived_class(world, fixed_now):
    world.classes.set_active(world.course.class_id, is_active=False)
    with pytest.raises(InvalidStateError):
        world.container.session_service.start_session(
            teacher_id=world.teacher.user_id, class_id=world.course.class_id, now=fixed_now
        )


def test_second_start_fails_until_stopped(world, fixed_now):
    svc = world.container.session_service
    first = svc.start_session(teacher_id=world.teacher.user_id, class_id=world.course.class_id, now=fixed_now)

    with pytest.raises(AlreadyActiveError):
        svc.start_session(
            teacher_id=world.teacher.user_id, class_id=world.course.class_id, now=fixed_now + timedelta(minutes=1)
        )

    svc.stop_session(
        actor_id=world.teacher.user_id,
        actor_role=Role.TEACHER,
        session_id=first.session_id,
        now=fixed_now + timedelta(minutes=2),
    )
    second = svc.start_session(
        teacher_id=world.teacher.user_id, class_id=world.course.class_id, now=fixed_now + timedelta(minutes=3)
    )

    assert second.session_id != first.session_id
    assert second.code != first.code


def test_start_after_stale_session_sweeps_it(world, fixed_now):
    stale = _stale_session(world, fixed_now)

    s = world.container.session_service.start_session(
        teacher_id=world.teacher.user_id, class_id=world.course.class_id, now=fixed_now
    )

    old = world.sessions.get_by_id(stale.session_id)
    assert s.session_id != stale.session_id
    assert old.is_active is False
    assert old.end_time == stale.expires_at


def test_stop_session_records_end_time(world, fixed_now):
    svc = world.container.session_service
    s = svc.start_session(teacher_id=world.teacher.user_id, class_id=world.course.class_id, now=fixed_now)

    stopped = svc.stop_session(
        actor_id=world.teacher.user_id,
        actor_role=Role.TEACHER,
        session_id=s.session_id,
        now=fixed_now + timedelta(minutes=10),
    )

    assert stopped.is_active is False
    assert stopped.end_time == fixed_now + timedelta(minutes=10)


def test_stop_session_twice_is_invalid_state(world, fixed_now):
    svc = world.container.session_service
    s = svc.start_session(teacher_id=world.teacher.user_id, class_id=world.course.class_id, now=fixed_now)
    svc.stop_session(actor_id=world.teacher.user_id, actor_role=Role.TEACHER, session_id=s.session_id, now=fixed_now)

    with pytest.raises(InvalidStateError):
        svc.stop_session(actor_id=world.teacher.user_id, actor_role=Role.TEACHER, session_id=s.session_id, now=fixed_now)


def test_stop_session_after_expiry_uses_expiry_as_end_time(world, fixed_now):
    stale = _stale_session(world, fixed_now)

    stopped = world.container.session_service.stop_session(
        actor_id=world.teacher.user_id, actor_role=Role.TEACHER, session_id=stale.session_id, now=fixed_now
    )

    assert stopped.end_time == stale.expires_at


def test_stop_session_permissions(world, fixed_now):
    svc = world.container.session_service
    s = svc.start_session(teacher_id=world.teacher.user_id, class_id=world.course.class_id, now=fixed_now)

    with pytest.raises(ForbiddenError):
        svc.stop_session(
            actor_id=world.other_teacher.user_id, actor_role=Role.TEACHER, session_id=s.session_id, now=fixed_now
        )
    with pytest.raises(NotFoundError):
        svc.stop_session(actor_id=world.teacher.user_id, actor_role=Role.TEACHER, session_id=404, now=fixed_now)

    stopped = svc.stop_session(actor_id=world.admin.user_id, actor_role=Role.ADMIN, session_id=s.session_id, now=fixed_now)
    assert stopped.is_active is False


def test_get_active_session_ignores_stale_flag(world, fixed_now):
    _stale_session(world, fixed_now)

    assert world.container.session_service.get_active_session(world.course.class_id, now=fixed_now) is None


def test_get_active_session_returns_open_session(world, fixed_now):
    svc = world.container.session_service
    s = svc.start_session(teacher_id=world.teacher.user_id, class_id=world.course.class_id, now=fixed_now)

    assert svc.get_active_session(world.course.class_id, now=fixed_now + timedelta(minutes=29)).session_id == s.session_id
    assert svc.get_active_session(world.course.class_id, now=fixed_now + timedelta(minutes=30)) is None


def test_list_active_sessions_for_student_newest_first(world, fixed_now):
    second_course = world.classes.add("Algorithms", "CS201", world.other_teacher, students=[world.alice])
    hidden_course = world.classes.add("Networks", "CS301", world.teacher, students=[world.carol])
    svc = world.container.session_service

    older = svc.start_session(teacher_id=world.teacher.user_id, class_id=world.course.class_id, now=fixed_now)
    newer = svc.start_session(
        teacher_id=world.other_teacher.user_id,
        class_id=second_course.class_id,
        now=fixed_now + timedelta(minutes=5),
    )
    svc.start_session(teacher_id=world.teacher.user_id, class_id=hidden_course.class_id, now=fixed_now)

    items = svc.list_active_sessions_for_student(world.alice.user_id, now=fixed_now + timedelta(minutes=10))
    assert [s.session_id for s in items] == [newer.session_id, older.session_id]

    # The first session expires at +30, the second at +35.
    items = svc.list_active_sessions_for_student(world.alice.user_id, now=fixed_now + timedelta(minutes=31))
    assert [s.session_id for s in items] == [newer.session_id]


def test_list_active_sessions_by_role(world, fixed_now):
    second_course = world.classes.add("Algorithms", "CS201", world.other_teacher)
    svc = world.container.session_service
    mine = svc.start_session(teacher_id=world.teacher.user_id, class_id=world.course.class_id, now=fixed_now)
    theirs = svc.start_session(teacher_id=world.other_teacher.user_id, class_id=second_course.class_id, now=fixed_now)

    teacher_view = svc.list_active_sessions(actor_id=world.teacher.user_id, actor_role=Role.TEACHER, now=fixed_now)
    admin_view = svc.list_active_sessions(actor_id=world.admin.user_id, actor_role=Role.ADMIN, now=fixed_now)

    assert [s.session_id for s in teacher_view] == [mine.session_id]
    assert {s.session_id for s in admin_view} == {mine.session_id, theirs.session_id}


def test_get_session_visibility(world, fixed_now):
    svc = world.container.session_service
    s = svc.start_session(teacher_id=world.teacher.user_id, class_id=world.course.class_id, now=fixed_now)

    assert svc.get_session(actor_id=world.alice.user_id, actor_role=Role.STUDENT, session_id=s.session_id)
    assert svc.get_session(actor_id=world.admin.user_id, actor_role=Role.ADMIN, session_id=s.session_id)
    with pytest.raises(ForbiddenError):
        svc.get_session(actor_id=world.carol.user_id, actor_role=Role.STUDENT, session_id=s.session_id)
    with pytest.raises(ForbiddenError):
        svc.get_session(actor_id=world.other_teacher.user_id, actor_role=Role.TEACHER, session_id=s.session_id)


def test_find_active_by_code_is_case_insensitive(world, fixed_now):
    svc = world.container.session_service
    s = svc.start_session(teacher_id=world.teacher.user_id, class_id=world.course.class_id, now=fixed_now)

    found = svc.find_active_by_code(f"  {s.code.lower()} ", now=fixed_now + timedelta(minutes=1))
    assert found.session_id == s.session_id
    assert svc.find_active_by_code(s.code, now=fixed_now + timedelta(minutes=31)) is None
    with pytest.raises(ValidationError):
        svc.find_active_by_code("   ", now=fixed_now)


def test_code_collision_is_retried(world, fixed_now, monkeypatch):
    _stale_session(world, fixed_now, minutes_ago=5, code="AAAA0001")
    other = world.classes.add("Algorithms", "CS201", world.teacher)
    codes = iter(["AAAA0001", "BBBB0002"])
    monkeypatch.setattr("class_attendance.sessions.service.generate_session_code", lambda n: next(codes))

    s = world.container.session_service.start_session(
        teacher_id=world.teacher.user_id, class_id=other.class_id, now=fixed_now
    )

    assert s.code == "BBBB0002"


def test_code_allocation_gives_up(world, fixed_now, monkeypatch):
    _stale_session(world, fixed_now, minutes_ago=5, code="AAAA0001")
    other = world.classes.add("Algorithms", "CS201", world.teacher)
    monkeypatch.setattr("class_attendance.sessions.service.generate_session_code", lambda n: "AAAA0001")

    with pytest.raises(RuntimeError):
        world.container.session_service.start_session(teacher_id=world.teacher.user_id, class_id=other.class_id, now=fixed_now)


def test_concurrent_starts_only_one_wins(world, fixed_now):
    svc = world.container.session_service
    barrier = threading.Barrier(8)
    results: list[object] = []
    lock = threading.Lock()

    def attempt():
        barrier.wait()
        try:
            s = svc.start_session(teacher_id=world.teacher.user_id, class_id=world.course.class_id, now=fixed_now)
            outcome = s
        except AlreadyActiveError as exc:
            outcome = exc
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=attempt) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    wins = [r for r in results if isinstance(r, AttendanceSession)]
    assert len(results) == 8
    assert len(wins) == 1
    assert all(isinstance(r, AlreadyActiveError) for r in results if r not in wins)


def test_expire_stale_sessions(world, fixed_now):
    _stale_session(world, fixed_now)
    svc = world.container.session_service

    assert svc.expire_stale_sessions(now=fixed_now) == 1
    assert svc.expire_stale_sessions(now=fixed_now) == 0


def test_session_qr_png(world, fixed_now):
    svc = world.container.session_service
    s = svc.start_session(teacher_id=world.teacher.user_id, class_id=world.course.class_id, now=fixed_now)

    png = svc.session_qr_png(actor_id=world.teacher.user_id, actor_role=Role.TEACHER, session_id=s.session_id, now=fixed_now)
    assert png.startswith(b"\x89PNG")

    with pytest.raises(InvalidStateError):
        svc.session_qr_png(
            actor_id=world.teacher.user_id,
            actor_role=Role.TEACHER,
            session_id=s.session_id,
            now=fixed_now + timedelta(hours=1),
        )


def test_window_must_be_positive(world):
    with pytest.raises(ValueError):
        SessionService(world.sessions, world.classes, window_minutes=0)


def test_custom_window(world, fixed_now):
    svc = SessionService(world.sessions, world.classes, window_minutes=10, code_bytes=3)
    s = svc.start_session(teacher_id=world.teacher.user_id, class_id=world.course.class_id, now=fixed_now)

    assert s.expires_at == fixed_now + timedelta(minutes=10)
    assert len(s.code) == 6
    assert isinstance(s.start_time, datetime)


def test_effective_active_predicate(world, fixed_now):
    from class_attendance.sessions.model import is_effectively_active

    stale = _stale_session(world, fixed_now)

    assert is_effectively_active(None, fixed_now) is False
    assert stale.is_active is True
    assert is_effectively_active(stale, fixed_now) is False
    assert is_effectively_active(stale, stale.start_time + timedelta(minutes=1)) is True
