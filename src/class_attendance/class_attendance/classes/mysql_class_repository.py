from __future__ import annotations

from collections import defaultdict
from typing import Optional, Sequence

from mysql.connector.errors import IntegrityError

from ..core.enums import Role
from ..core.exceptions import AlreadyEnrolledError, ValidationError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, in_clause, is_duplicate_key
from ..users.model import User
from .model import ClassEntity
from .repository import ClassRepository

_CLASS_COLUMNS = "c.class_id, c.name, c.code, c.teacher_id, c.description, c.is_active, c.created_at"


class MySQLClassRepository(ClassRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def _hydrate(self, cur, rows: list[dict]) -> list[ClassEntity]:
        if not rows:
            return []

        ids = [int(r["class_id"]) for r in rows]
        cur.execute(
            f"SELECT class_id, student_id FROM class_enrollments WHERE class_id IN ({in_clause(ids)})",
            tuple(ids),
        )
        students: dict[int, set[int]] = defaultdict(set)
        for e in fetchall(cur):
            students[int(e["class_id"])].add(int(e["student_id"]))

        return [
            ClassEntity(
                class_id=int(r["class_id"]),
                name=r["name"],
                code=r["code"],
                teacher_id=int(r["teacher_id"]),
                description=r.get("description"),
                is_active=bool(r.get("is_active", True)),
                created_at=r.get("created_at"),
                student_ids=frozenset(students.get(int(r["class_id"]), ())),
            )
            for r in rows
        ]

    def _select_one(self, where: str, params: tuple) -> Optional[ClassEntity]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_CLASS_COLUMNS} FROM classes c WHERE {where}", params)
            row = fetchone(cur)
            if not row:
                return None
            return self._hydrate(cur, [row])[0]

    def _select_many(self, sql: str, params: tuple = ()) -> Sequence[ClassEntity]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(sql, params)
            return self._hydrate(cur, fetchall(cur))

    def get_by_id(self, class_id: int) -> Optional[ClassEntity]:
        return self._select_one("c.class_id=%s", (int(class_id),))

    def get_by_code(self, code: str) -> Optional[ClassEntity]:
        return self._select_one("c.code=%s", (code,))

    def create_class(self, *, name: str, code: str, teacher_id: int, description: Optional[str] = None) -> int:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    """
                    INSERT INTO classes(name, code, teacher_id, description, is_active)
                    VALUES(%s,%s,%s,%s,1)
                    """,
                    (name, code, int(teacher_id), description),
                )
                return int(cur.lastrowid)
        except IntegrityError as exc:
            if is_duplicate_key(exc, "uq_classes_code"):
                raise ValidationError("Class code is already in use") from exc
            raise

    def update_details(self, class_id: int, *, name: str, description: Optional[str]) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE classes SET name=%s, description=%s WHERE class_id=%s",
                (name, description, int(class_id)),
            )
            return cur.rowcount > 0

    def browse_for_student(
        self,
        student_id: int,
        *,
        search: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Sequence[ClassEntity]:
        where = [
            "c.is_active=1",
            "NOT EXISTS (SELECT 1 FROM class_enrollments e WHERE e.class_id = c.class_id AND e.student_id=%s)",
        ]
        params: list = [int(student_id)]
        if search:
            pattern = f"%{search.lower()}%"
            where.append("(LOWER(c.name) LIKE %s OR LOWER(c.code) LIKE %s OR LOWER(COALESCE(c.description, '')) LIKE %s)")
            params.extend([pattern, pattern, pattern])

        return self._select_many(
            f"""
            SELECT {_CLASS_COLUMNS}
            FROM classes c
            WHERE {" AND ".join(where)}
            ORDER BY c.name ASC, c.class_id ASC
            LIMIT %s OFFSET %s
            """,
            tuple(params + [int(limit), int(offset)]),
        )

    def set_active(self, class_id: int, *, is_active: bool) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("UPDATE classes SET is_active=%s WHERE class_id=%s", (1 if is_active else 0, int(class_id)))
            return cur.rowcount > 0

    def list_all(self) -> Sequence[ClassEntity]:
        return self._select_many(f"SELECT {_CLASS_COLUMNS} FROM classes c ORDER BY c.created_at DESC, c.class_id DESC")

    def list_for_teacher(self, teacher_id: int) -> Sequence[ClassEntity]:
        return self._select_many(
            f"SELECT {_CLASS_COLUMNS} FROM classes c WHERE c.teacher_id=%s ORDER BY c.created_at DESC, c.class_id DESC",
            (int(teacher_id),),
        )

    def list_for_student(self, student_id: int) -> Sequence[ClassEntity]:
        return self._select_many(
            f"""
            SELECT {_CLASS_COLUMNS}
            FROM classes c
            JOIN class_enrollments e ON e.class_id = c.class_id
            WHERE e.student_id=%s
            ORDER BY e.enrolled_at DESC
            """,
            (int(student_id),),
        )

    def is_enrolled(self, class_id: int, student_id: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT 1 AS ok FROM class_enrollments WHERE class_id=%s AND student_id=%s",
                (int(class_id), int(student_id)),
            )
            return fetchone(cur) is not None

    def add_student(self, class_id: int, student_id: int) -> None:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    "INSERT INTO class_enrollments(class_id, student_id) VALUES(%s,%s)",
                    (int(class_id), int(student_id)),
                )
        except IntegrityError as exc:
            if is_duplicate_key(exc):
                raise AlreadyEnrolledError("Student is already enrolled in this class") from exc
            raise

    def remove_student(self, class_id: int, student_id: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "DELETE FROM class_enrollments WHERE class_id=%s AND student_id=%s",
                (int(class_id), int(student_id)),
            )
            return cur.rowcount > 0

    def list_students(self, class_id: int) -> Sequence[User]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT u.user_id, u.full_name, u.email, u.password_hash, u.role, u.is_active
                FROM class_enrollments e
                JOIN users u ON u.user_id = e.student_id
                WHERE e.class_id=%s
                ORDER BY u.full_name ASC
                """,
                (int(class_id),),
            )
            return [
                User(
                    user_id=int(r["user_id"]),
                    full_name=r["full_name"],
                    email=r["email"],
                    password_hash=r["password_hash"],
                    role=Role(r["role"]),
                    is_active=bool(r.get("is_active", True)),
                )
                for r in fetchall(cur)
            ]
