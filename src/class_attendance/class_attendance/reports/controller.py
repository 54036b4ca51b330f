from __future__ import annotations

from flask import Flask, jsonify

from ..common.web import current_role, current_user_id, query_date, roles_required
from ..core.enums import Role
from ..core.exceptions import ForbiddenError
from ..container import Container


def register(app: Flask, container: Container) -> None:
    def _check_class_access(class_id: int) -> None:
        # Teachers see their own classes only; admins see all.
        container.class_service.get_class(actor_id=current_user_id(), actor_role=current_role(), class_id=class_id)

    @app.route("/api/reports/dashboard", methods=["GET"], endpoint="admin_dashboard")
    @roles_required(Role.ADMIN)
    def admin_dashboard():
        return jsonify(container.report_service.dashboard().to_dict())

    @app.route("/api/reports/classes/<int:class_id>/rate", methods=["GET"], endpoint="class_attendance_rate")
    @roles_required(Role.TEACHER, Role.ADMIN)
    def class_attendance_rate(class_id: int):
        _check_class_access(class_id)
        result = container.report_service.class_attendance_rate(
            class_id, start=query_date("start"), end=query_date("end")
        )
        data = result.to_dict()
        data["count_late_as_attended"] = container.report_service.count_late_as_attended
        return jsonify(data)

    @app.route("/api/reports/classes/<int:class_id>/export.csv", methods=["GET"], endpoint="export_class_csv")
    @roles_required(Role.TEACHER, Role.ADMIN)
    def export_class_csv(class_id: int):
        _check_class_access(class_id)
        start = query_date("start")
        end = query_date("end")
        csv_bytes = container.report_service.export_class_csv(class_id, start=start, end=end)

        parts = [f"class_{class_id}"]
        if start:
            parts.append(start.isoformat())
        if end:
            parts.append(end.isoformat())
        filename = "attendance_" + "_".join(parts) + ".csv"
        return app.response_class(
            csv_bytes,
            mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )

    @app.route("/api/reports/students/<int:student_id>/summary", methods=["GET"], endpoint="student_summary")
    @roles_required(Role.STUDENT, Role.TEACHER, Role.ADMIN)
    def student_summary(student_id: int):
        role = current_role()
        teacher_id = None
        if role == Role.STUDENT and student_id != current_user_id():
            raise ForbiddenError("Students can only view their own summary")
        if role == Role.TEACHER:
            teacher_id = current_user_id()

        items = container.report_service.student_summary(student_id, teacher_id=teacher_id)
        return jsonify({"student_id": student_id, "classes": [x.to_dict() for x in items]})
