from __future__ import annotations

from typing import Optional, Protocol, Sequence

from ..users.model import User
from .model import ClassEntity


class ClassRepository(Protocol):
    """Classes plus the enrollment relation between students and classes."""

    def get_by_id(self, class_id: int) -> Optional[ClassEntity]:
        raise NotImplementedError

    def get_by_code(self, code: str) -> Optional[ClassEntity]:
        raise NotImplementedError

    def create_class(self, *, name: str, code: str, teacher_id: int, description: Optional[str] = None) -> int:
        """Insert a class; raises ValidationError when the code is taken."""

        raise NotImplementedError

    def update_details(self, class_id: int, *, name: str, description: Optional[str]) -> bool:
        raise NotImplementedError

    def browse_for_student(
        self,
        student_id: int,
        *,
        search: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Sequence[ClassEntity]:
        """Active classes without ``student_id`` in their enrollment set, by name."""

        raise NotImplementedError

    def set_active(self, class_id: int, *, is_active: bool) -> bool:
        raise NotImplementedError

    def list_all(self) -> Sequence[ClassEntity]:
        raise NotImplementedError

    def list_for_teacher(self, teacher_id: int) -> Sequence[ClassEntity]:
        raise NotImplementedError

    def list_for_student(self, student_id: int) -> Sequence[ClassEntity]:
        raise NotImplementedError

    def is_enrolled(self, class_id: int, student_id: int) -> bool:
        raise NotImplementedError

    def add_student(self, class_id: int, student_id: int) -> None:
        """Raises AlreadyEnrolledError when the pair already exists."""

        raise NotImplementedError

    def remove_student(self, class_id: int, student_id: int) -> bool:
        raise NotImplementedError

    def list_students(self, class_id: int) -> Sequence[User]:
        raise NotImplementedError
