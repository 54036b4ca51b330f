from __future__ import annotations

import io

from flask import Flask, jsonify, send_file

from ..common.datetime_utils import now_utc
from ..common.web import current_role, current_user_id, iso, json_body, login_required, roles_required
from ..core.enums import Role
from ..container import Container
from .model import AttendanceSession


def session_json(s: AttendanceSession, *, now=None) -> dict:
    now = now or now_utc()
    return {
        "id": s.session_id,
        "class_id": s.class_id,
        "class_name": s.class_name,
        "teacher_id": s.teacher_id,
        "code": s.code,
        "start_time": iso(s.start_time),
        "end_time": iso(s.end_time),
        "expires_at": iso(s.expires_at),
        "is_active": s.is_effectively_active(now),
    }


def register(app: Flask, container: Container) -> None:
    @app.route("/api/sessions/start", methods=["POST"], endpoint="start_session")
    @roles_required(Role.TEACHER)
    def start_session():
        data = json_body()
        s = container.session_service.start_session(teacher_id=current_user_id(), class_id=data.get("class_id"))
        return jsonify({"session": session_json(s)}), 201

    @app.route("/api/sessions/<int:session_id>/stop", methods=["PUT"], endpoint="stop_session")
    @roles_required(Role.TEACHER, Role.ADMIN)
    def stop_session(session_id: int):
        container.session_service.stop_session(actor_id=current_user_id(), actor_role=current_role(), session_id=session_id)
        return jsonify({})

    @app.route("/api/sessions/active", methods=["GET"], endpoint="active_sessions")
    @login_required
    def active_sessions():
        items = container.session_service.list_active_sessions(actor_id=current_user_id(), actor_role=current_role())
        return jsonify([session_json(s) for s in items])

    @app.route("/api/sessions/class/<int:class_id>/active", methods=["GET"], endpoint="class_active_session")
    @login_required
    def class_active_session(class_id: int):
        # Access check: enrolled student, owning teacher or admin.
        container.class_service.get_class(actor_id=current_user_id(), actor_role=current_role(), class_id=class_id)
        s = container.session_service.get_active_session(class_id)
        return jsonify({"session": session_json(s) if s else None})

    @app.route("/api/sessions/mine", methods=["GET"], endpoint="teacher_sessions")
    @roles_required(Role.TEACHER)
    def teacher_sessions():
        items = container.session_service.list_teacher_sessions(current_user_id())
        return jsonify([session_json(s) for s in items])

    @app.route("/api/sessions/<int:session_id>", methods=["GET"], endpoint="get_session")
    @login_required
    def get_session(session_id: int):
        s = container.session_service.get_session(actor_id=current_user_id(), actor_role=current_role(), session_id=session_id)
        return jsonify({"session": session_json(s)})

    @app.route("/api/sessions/<int:session_id>/qr", methods=["GET"], endpoint="session_qr")
    @roles_required(Role.TEACHER, Role.ADMIN)
    def session_qr(session_id: int):
        png = container.session_service.session_qr_png(
            actor_id=current_user_id(), actor_role=current_role(), session_id=session_id
        )
        return send_file(io.BytesIO(png), mimetype="image/png")
