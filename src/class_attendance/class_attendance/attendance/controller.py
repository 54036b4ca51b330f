from __future__ import annotations

from flask import Flask, jsonify

from ..common.web import current_role, current_user_id, iso, json_body, query_int, roles_required
from ..core.constants import DEFAULT_HISTORY_LIMIT
from ..core.enums import AttendanceStatus, Role
from ..core.exceptions import ValidationError
from ..container import Container
from ..sessions.controller import session_json
from .model import AttendanceRecord, HistoryRow, MarkResult, RosterEntry


def record_json(r: AttendanceRecord) -> dict:
    return {
        "id": r.attendance_id,
        "session_id": r.session_id,
        "student_id": r.student_id,
        "status": r.status.value,
        "marked_at": iso(r.marked_at),
        "notes": r.notes,
    }


def mark_json(result: MarkResult) -> dict:
    data = record_json(result.record)
    data["minutes_late"] = result.minutes_late
    data["session"] = session_json(result.session, now=result.record.marked_at)
    return data


def history_json(h: HistoryRow) -> dict:
    return {
        "id": h.attendance_id,
        "session_id": h.session_id,
        "session_code": h.session_code,
        "class_id": h.class_id,
        "class_name": h.class_name,
        "status": h.status.value,
        "marked_at": iso(h.marked_at),
        "session_start": iso(h.session_start),
        "notes": h.notes,
    }


def roster_json(e: RosterEntry) -> dict:
    return {
        "student": e.student.public_dict(),
        "status": e.status.value,
        "record": record_json(e.record) if e.record else None,
    }


def _parse_status(raw) -> AttendanceStatus:
    try:
        return AttendanceStatus(str(raw or "").strip().upper())
    except ValueError:
        raise ValidationError("status must be ABSENT or EXCUSED")


def register(app: Flask, container: Container) -> None:
    @app.route("/api/attendance/mark", methods=["POST"], endpoint="mark_attendance")
    @roles_required(Role.STUDENT)
    def mark_attendance():
        data = json_body()
        result = container.attendance_service.mark_attendance(
            student_id=current_user_id(),
            session_id=data.get("session_id"),
            biometric_token=data.get("biometric_token"),
        )
        return jsonify({"attendance": mark_json(result)}), 201

    @app.route("/api/attendance/mark-by-code", methods=["POST"], endpoint="mark_attendance_by_code")
    @roles_required(Role.STUDENT)
    def mark_attendance_by_code():
        data = json_body()
        result = container.attendance_service.mark_attendance_by_code(
            student_id=current_user_id(),
            code=data.get("code"),
            biometric_token=data.get("biometric_token"),
        )
        return jsonify({"attendance": mark_json(result)}), 201

    @app.route("/api/attendance/history", methods=["GET"], endpoint="attendance_history")
    @roles_required(Role.STUDENT)
    def attendance_history():
        rows = container.report_service.student_attendance_history(
            current_user_id(),
            class_id=query_int("class_id"),
            limit=query_int("limit", DEFAULT_HISTORY_LIMIT),
            offset=query_int("offset", 0),
        )
        return jsonify([history_json(h) for h in rows])

    @app.route("/api/attendance/session/<int:session_id>", methods=["GET"], endpoint="session_roster")
    @roles_required(Role.TEACHER, Role.ADMIN)
    def session_roster(session_id: int):
        entries = container.attendance_service.session_roster(
            actor_id=current_user_id(), actor_role=current_role(), session_id=session_id
        )
        return jsonify([roster_json(e) for e in entries])

    @app.route("/api/attendance/session/<int:session_id>/status", methods=["POST"], endpoint="set_attendance_status")
    @roles_required(Role.TEACHER, Role.ADMIN)
    def set_attendance_status(session_id: int):
        data = json_body()
        record = container.attendance_service.set_administrative_status(
            actor_id=current_user_id(),
            actor_role=current_role(),
            session_id=session_id,
            student_id=data.get("student_id"),
            status=_parse_status(data.get("status")),
            notes=data.get("notes"),
        )
        return jsonify({"attendance": record_json(record)}), 201

    @app.route("/api/attendance/session/<int:session_id>/absentees", methods=["POST"], endpoint="record_absentees")
    @roles_required(Role.TEACHER, Role.ADMIN)
    def record_absentees(session_id: int):
        created = container.attendance_service.record_absentees(
            actor_id=current_user_id(), actor_role=current_role(), session_id=session_id
        )
        return jsonify({"created": created})
