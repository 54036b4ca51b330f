from __future__ import annotations

import logging
from typing import Optional, Sequence

from ..common.validators import optional_text, require_non_empty, require_positive_int
from ..core.constants import DEFAULT_BROWSE_LIMIT, MAX_BROWSE_LIMIT, MAX_CLASS_NAME_LENGTH
from ..core.enums import Role
from ..core.exceptions import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from ..users.model import User
from ..users.repository import UserRepository
from .model import ClassEntity
from .repository import ClassRepository

logger = logging.getLogger(__name__)


def normalize_code(code: str) -> str:
    return require_non_empty(code, "code").upper()


def _class_name(name: str) -> str:
    name = require_non_empty(name, "name")
    if len(name) > MAX_CLASS_NAME_LENGTH:
        raise ValidationError(f"name must be at most {MAX_CLASS_NAME_LENGTH} characters")
    return name


class ClassService:
    """Use cases around classes and the enrollment registry."""

    def __init__(self, classes: ClassRepository, users: UserRepository):
        self._classes = classes
        self._users = users

    def _require_class(self, class_id: int) -> ClassEntity:
        cls = self._classes.get_by_id(int(class_id))
        if not cls:
            raise NotFoundError("Class not found")
        return cls

    def _require_active_user(self, user_id: int, role: Role, label: str) -> User:
        user = self._users.get_by_id(int(user_id))
        if not user or not user.is_active or user.role != role:
            raise ValidationError(f"Invalid {label} id")
        return user

    def _require_manager(self, *, actor_id: int, actor_role: Role, cls: ClassEntity) -> None:
        if actor_role == Role.ADMIN:
            return
        if actor_role == Role.TEACHER and cls.is_owned_by(actor_id):
            return
        raise ForbiddenError("You do not manage this class")

    def create_class(
        self,
        *,
        current_role: Role,
        name: str,
        code: str,
        teacher_id: int,
        description: Optional[str] = None,
    ) -> int:
        if current_role != Role.ADMIN:
            raise ForbiddenError("Only admins can create classes")

        name = _class_name(name)
        code = normalize_code(code)
        teacher_id = require_positive_int(teacher_id, "teacher_id")
        self._require_active_user(teacher_id, Role.TEACHER, "teacher")

        if self._classes.get_by_code(code):
            raise ValidationError("Class code is already in use")

        description = optional_text(description, "description")
        class_id = self._classes.create_class(name=name, code=code, teacher_id=teacher_id, description=description)
        logger.info("Created class %s (%s) for teacher %s", class_id, code, teacher_id)
        return class_id

    def get_class(self, *, actor_id: int, actor_role: Role, class_id: int) -> ClassEntity:
        cls = self._require_class(class_id)
        if actor_role == Role.STUDENT:
            if not cls.has_student(actor_id):
                raise ForbiddenError("You are not enrolled in this class")
            return cls
        self._require_manager(actor_id=actor_id, actor_role=actor_role, cls=cls)
        return cls

    def list_classes(self, *, actor_id: int, actor_role: Role) -> Sequence[ClassEntity]:
        if actor_role == Role.ADMIN:
            return self._classes.list_all()
        if actor_role == Role.TEACHER:
            return self._classes.list_for_teacher(int(actor_id))
        return self._classes.list_for_student(int(actor_id))

    def update_class(
        self,
        *,
        actor_id: int,
        actor_role: Role,
        class_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> ClassEntity:
        """Rename or re-describe a class.

        ``None`` leaves a field unchanged; an empty description clears it.
        The code and the owning teacher are fixed once created.
        """

        cls = self._require_class(class_id)
        self._require_manager(actor_id=actor_id, actor_role=actor_role, cls=cls)
        if not cls.is_active:
            raise InvalidStateError("Class is archived")
        if name is None and description is None:
            raise ValidationError("Nothing to update")

        new_name = _class_name(name) if name is not None else cls.name
        new_description = optional_text(description, "description") if description is not None else cls.description

        self._classes.update_details(cls.class_id, name=new_name, description=new_description)
        logger.info("User %s updated class %s", actor_id, cls.class_id)
        return self._require_class(cls.class_id)

    def browse_classes(
        self,
        *,
        student_id: int,
        search: Optional[str] = None,
        limit: int = DEFAULT_BROWSE_LIMIT,
        offset: int = 0,
    ) -> Sequence[ClassEntity]:
        """Active classes the student has not joined yet, by name.

        ``search`` matches name, code or description, case-insensitively.
        """

        limit = max(1, min(int(limit), MAX_BROWSE_LIMIT))
        offset = max(0, int(offset))
        return self._classes.browse_for_student(
            int(student_id),
            search=optional_text(search, "search"),
            limit=limit,
            offset=offset,
        )

    def list_students(self, *, actor_id: int, actor_role: Role, class_id: int) -> Sequence[User]:
        cls = self._require_class(class_id)
        self._require_manager(actor_id=actor_id, actor_role=actor_role, cls=cls)
        return self._classes.list_students(cls.class_id)

    def enroll_student(self, *, actor_id: int, actor_role: Role, class_id: int, student_id: int) -> None:
        cls = self._require_class(class_id)
        self._require_manager(actor_id=actor_id, actor_role=actor_role, cls=cls)
        student_id = require_positive_int(student_id, "student_id")
        self._require_active_user(student_id, Role.STUDENT, "student")

        self._classes.add_student(cls.class_id, student_id)
        logger.info("Enrolled student %s in class %s (by user %s)", student_id, cls.class_id, actor_id)

    def self_enroll(self, *, student_id: int, class_code: str) -> ClassEntity:
        cls = self._classes.get_by_code(normalize_code(class_code))
        if not cls or not cls.is_active:
            raise NotFoundError("Class not found or inactive")
        self._require_active_user(student_id, Role.STUDENT, "student")

        self._classes.add_student(cls.class_id, int(student_id))
        logger.info("Student %s enrolled in class %s by code", student_id, cls.class_id)
        return self._require_class(cls.class_id)

    def unenroll_student(self, *, actor_id: int, actor_role: Role, class_id: int, student_id: int) -> None:
        cls = self._require_class(class_id)
        self._require_manager(actor_id=actor_id, actor_role=actor_role, cls=cls)

        if not self._classes.remove_student(cls.class_id, int(student_id)):
            raise NotFoundError("Student is not enrolled in this class")
        logger.info("Removed student %s from class %s (by user %s)", student_id, cls.class_id, actor_id)

    def archive_class(self, *, current_role: Role, class_id: int) -> None:
        if current_role != Role.ADMIN:
            raise ForbiddenError("Only admins can archive classes")

        cls = self._require_class(class_id)
        if not cls.is_active:
            raise InvalidStateError("Class is already archived")
        self._classes.set_active(cls.class_id, is_active=False)
        logger.info("Archived class %s", cls.class_id)
