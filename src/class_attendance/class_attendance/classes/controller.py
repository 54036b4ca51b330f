from __future__ import annotations

from flask import Flask, jsonify, request

from ..common.web import current_role, current_user_id, iso, json_body, login_required, query_int, roles_required
from ..core.constants import DEFAULT_BROWSE_LIMIT
from ..core.enums import Role
from ..container import Container
from .model import ClassEntity


def class_json(cls: ClassEntity, *, include_students: bool = False) -> dict:
    data = {
        "id": cls.class_id,
        "name": cls.name,
        "code": cls.code,
        "description": cls.description,
        "teacher_id": cls.teacher_id,
        "is_active": cls.is_active,
        "created_at": iso(cls.created_at),
        "student_count": len(cls.student_ids),
    }
    if include_students:
        data["student_ids"] = sorted(cls.student_ids)
    return data


def register(app: Flask, container: Container) -> None:
    @app.route("/api/classes", methods=["GET"], endpoint="list_classes")
    @login_required
    def list_classes():
        classes = container.class_service.list_classes(actor_id=current_user_id(), actor_role=current_role())
        return jsonify([class_json(c) for c in classes])

    @app.route("/api/classes", methods=["POST"], endpoint="create_class")
    @roles_required(Role.ADMIN)
    def create_class():
        data = json_body()
        class_id = container.class_service.create_class(
            current_role=current_role(),
            name=data.get("name", ""),
            code=data.get("code", ""),
            teacher_id=data.get("teacher_id"),
            description=data.get("description"),
        )
        cls = container.class_service.get_class(actor_id=current_user_id(), actor_role=current_role(), class_id=class_id)
        return jsonify({"class": class_json(cls)}), 201

    @app.route("/api/classes/browse", methods=["GET"], endpoint="browse_classes")
    @roles_required(Role.STUDENT)
    def browse_classes():
        classes = container.class_service.browse_classes(
            student_id=current_user_id(),
            search=request.args.get("search"),
            limit=query_int("limit", DEFAULT_BROWSE_LIMIT),
            offset=query_int("offset", 0),
        )
        return jsonify([class_json(c) for c in classes])

    @app.route("/api/classes/<int:class_id>", methods=["PUT"], endpoint="update_class")
    @roles_required(Role.ADMIN, Role.TEACHER)
    def update_class(class_id: int):
        data = json_body()
        cls = container.class_service.update_class(
            actor_id=current_user_id(),
            actor_role=current_role(),
            class_id=class_id,
            name=data.get("name"),
            description=data.get("description"),
        )
        return jsonify({"class": class_json(cls)})

    @app.route("/api/classes/<int:class_id>", methods=["GET"], endpoint="get_class")
    @login_required
    def get_class(class_id: int):
        role = current_role()
        cls = container.class_service.get_class(actor_id=current_user_id(), actor_role=role, class_id=class_id)
        return jsonify({"class": class_json(cls, include_students=role != Role.STUDENT)})

    @app.route("/api/classes/<int:class_id>/students", methods=["GET"], endpoint="class_students")
    @roles_required(Role.ADMIN, Role.TEACHER)
    def class_students(class_id: int):
        students = container.class_service.list_students(
            actor_id=current_user_id(), actor_role=current_role(), class_id=class_id
        )
        return jsonify([s.public_dict() for s in students])

    @app.route("/api/classes/<int:class_id>/students", methods=["POST"], endpoint="enroll_student")
    @roles_required(Role.ADMIN, Role.TEACHER)
    def enroll_student(class_id: int):
        data = json_body()
        container.class_service.enroll_student(
            actor_id=current_user_id(),
            actor_role=current_role(),
            class_id=class_id,
            student_id=data.get("student_id"),
        )
        return jsonify({}), 201

    @app.route("/api/classes/<int:class_id>/students/<int:student_id>", methods=["DELETE"], endpoint="unenroll_student")
    @roles_required(Role.ADMIN, Role.TEACHER)
    def unenroll_student(class_id: int, student_id: int):
        container.class_service.unenroll_student(
            actor_id=current_user_id(),
            actor_role=current_role(),
            class_id=class_id,
            student_id=student_id,
        )
        return jsonify({})

    @app.route("/api/classes/enroll", methods=["POST"], endpoint="self_enroll")
    @roles_required(Role.STUDENT)
    def self_enroll():
        data = json_body()
        cls = container.class_service.self_enroll(student_id=current_user_id(), class_code=data.get("class_code", ""))
        return jsonify({"class": class_json(cls)}), 201

    @app.route("/api/classes/<int:class_id>/archive", methods=["POST"], endpoint="archive_class")
    @roles_required(Role.ADMIN)
    def archive_class(class_id: int):
        container.class_service.archive_class(current_role=current_role(), class_id=class_id)
        return jsonify({})
