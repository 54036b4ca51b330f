from __future__ import annotations

from flask import Flask, jsonify, request, session

from ..common.web import current_role, current_user_id, json_body, login_required, roles_required
from ..core.enums import Role
from ..core.exceptions import ValidationError
from ..container import Container


def _parse_role(value, default: Role) -> Role:
    if value is None or value == "":
        return default
    try:
        return Role(str(value).upper())
    except ValueError:
        raise ValidationError("Unknown role")


def register(app: Flask, container: Container) -> None:
    @app.route("/api/auth/register", methods=["POST"], endpoint="auth_register")
    def auth_register():
        data = json_body()
        user_id = container.user_service.register(
            full_name=data.get("full_name", ""),
            email=data.get("email", ""),
            password=data.get("password", ""),
            role=_parse_role(data.get("role"), Role.STUDENT),
        )
        user = container.user_service.get_user(user_id)
        return jsonify({"user": user.public_dict()}), 201

    @app.route("/api/auth/login", methods=["POST"], endpoint="auth_login")
    def auth_login():
        data = json_body()
        s_user = container.auth_service.authenticate(data.get("email", ""), data.get("password", ""))

        session.clear()
        session.permanent = bool(data.get("remember_me"))
        session["user_id"] = s_user.user_id
        session["name"] = s_user.full_name
        session["role"] = s_user.role.value

        return jsonify({"user": {"id": s_user.user_id, "full_name": s_user.full_name, "role": s_user.role.value}})

    @app.route("/api/auth/logout", methods=["POST"], endpoint="auth_logout")
    def auth_logout():
        session.clear()
        return jsonify({})

    @app.route("/api/auth/me", methods=["GET"], endpoint="auth_me")
    @login_required
    def auth_me():
        user = container.user_service.get_user(current_user_id())
        return jsonify({"user": user.public_dict()})

    @app.route("/api/users/profile", methods=["PUT"], endpoint="update_profile")
    @login_required
    def update_profile():
        data = json_body()
        user = container.user_service.update_profile(
            user_id=current_user_id(),
            full_name=data.get("full_name"),
            email=data.get("email"),
        )
        session["name"] = user.full_name
        return jsonify({"user": user.public_dict()})

    @app.route("/api/users/change-password", methods=["PUT"], endpoint="change_password")
    @login_required
    def change_password():
        data = json_body()
        container.user_service.change_password(
            user_id=current_user_id(),
            current_password=data.get("current_password"),
            new_password=data.get("new_password"),
        )
        return jsonify({})

    @app.route("/api/users", methods=["GET"], endpoint="list_users")
    @roles_required(Role.ADMIN)
    def list_users():
        role_s = request.args.get("role")
        role = _parse_role(role_s, Role.STUDENT) if role_s else None
        users = container.user_service.list_users(current_role=current_role(), role=role)
        return jsonify([u.public_dict() for u in users])

    @app.route("/api/users", methods=["POST"], endpoint="create_user")
    @roles_required(Role.ADMIN)
    def create_user():
        data = json_body()
        user_id = container.user_service.create_account(
            current_role=current_role(),
            full_name=data.get("full_name", ""),
            email=data.get("email", ""),
            password=data.get("password", ""),
            role=_parse_role(data.get("role"), Role.STUDENT),
        )
        return jsonify({"user": container.user_service.get_user(user_id).public_dict()}), 201

    @app.route("/api/users/<int:user_id>/deactivate", methods=["POST"], endpoint="deactivate_user")
    @roles_required(Role.ADMIN)
    def deactivate_user(user_id: int):
        container.user_service.deactivate_user(
            current_role=current_role(),
            current_user_id=current_user_id(),
            user_id=user_id,
        )
        return jsonify({})
