from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, Optional


@dataclass(frozen=True)
class ClassEntity:
    """Domain entity: a class students enroll in and teachers run sessions for.

    ``student_ids`` is the enrollment set; classes are archived
    (``is_active=False``), never deleted.
    """

    class_id: int
    name: str
    code: str
    teacher_id: int
    description: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    student_ids: FrozenSet[int] = field(default_factory=frozenset)

    def is_owned_by(self, teacher_id: int) -> bool:
        return self.teacher_id == int(teacher_id)

    def has_student(self, student_id: int) -> bool:
        return int(student_id) in self.student_ids
