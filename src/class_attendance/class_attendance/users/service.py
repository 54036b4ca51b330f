from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from werkzeug.security import check_password_hash, generate_password_hash

from ..common.validators import require_email, require_min_length, require_non_empty, require_text
from ..core.constants import MIN_PASSWORD_LENGTH
from ..core.enums import Role
from ..core.exceptions import AuthenticationError, ForbiddenError, NotFoundError, ValidationError
from .model import User
from .repository import UserRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionUser:
    """What we store into the Flask session after login."""

    user_id: int
    full_name: str
    role: Role


def _password_matches(password_hash: str, password: str) -> bool:
    try:
        return check_password_hash(password_hash, password)
    except ValueError:
        # e.g. placeholder hashes like 'CHANGE_ME' or corrupted values
        return False


class AuthService:
    """Use case: authenticate user (login)."""

    def __init__(self, users: UserRepository):
        self._users = users

    def authenticate(self, email: str, password: str) -> SessionUser:
        email = require_text(email, "email").strip().lower()
        password = require_text(password, "password")

        user = self._users.get_by_email(email)
        if not user or not user.is_active:
            raise AuthenticationError("Invalid email or password")
        if not _password_matches(user.password_hash, password):
            raise AuthenticationError("Invalid email or password")

        return SessionUser(user_id=user.user_id, full_name=user.full_name, role=user.role)


class UserService:
    """Use case: manage the user directory."""

    def __init__(self, users: UserRepository):
        self._users = users

    def _create(self, *, full_name: str, email: str, password: str, role: Role) -> int:
        full_name = require_non_empty(full_name, "full_name")
        email = require_email(email)
        require_min_length(password, "password", MIN_PASSWORD_LENGTH)

        if self._users.get_by_email(email):
            raise ValidationError("Email is already registered")

        user_id = self._users.create_user(
            full_name=full_name,
            email=email,
            password_hash=generate_password_hash(password),
            role=role,
        )
        logger.info("Created %s account %s (id=%s)", role.value, email, user_id)
        return user_id

    def register(self, *, full_name: str, email: str, password: str, role: Role) -> int:
        """Self-registration; admins are never created this way."""

        if role == Role.ADMIN:
            raise ForbiddenError("Admin accounts cannot be self-registered")
        return self._create(full_name=full_name, email=email, password=password, role=role)

    def create_account(self, *, current_role: Role, full_name: str, email: str, password: str, role: Role) -> int:
        if current_role != Role.ADMIN:
            raise ForbiddenError("Only admins can create accounts")
        return self._create(full_name=full_name, email=email, password=password, role=role)

    def get_user(self, user_id: int) -> User:
        user = self._users.get_by_id(int(user_id))
        if not user:
            raise NotFoundError("User not found")
        return user

    def list_users(self, *, current_role: Role, role: Optional[Role] = None):
        if current_role != Role.ADMIN:
            raise ForbiddenError("Only admins can list users")
        return self._users.list_users(role=role)

    def deactivate_user(self, *, current_role: Role, current_user_id: int, user_id: int) -> None:
        if current_role != Role.ADMIN:
            raise ForbiddenError("Only admins can deactivate users")
        if int(user_id) == int(current_user_id):
            raise ValidationError("You cannot deactivate your own account")

        self.get_user(user_id)
        if not self._users.set_active(int(user_id), is_active=False):
            raise ValidationError("Failed to deactivate user")
        logger.info("Deactivated user %s", user_id)

    def update_profile(self, *, user_id: int, full_name: Optional[str] = None, email: Optional[str] = None) -> User:
        """Change one's own name and/or email; ``None`` leaves a field as is."""

        user = self.get_user(user_id)
        if full_name is None and email is None:
            raise ValidationError("Nothing to update")

        new_name = require_non_empty(full_name, "full_name") if full_name is not None else user.full_name
        new_email = require_email(email) if email is not None else user.email

        if new_email != user.email:
            other = self._users.get_by_email(new_email)
            if other and other.user_id != user.user_id:
                raise ValidationError("Email is already in use by another account")

        self._users.update_profile(user.user_id, full_name=new_name, email=new_email)
        logger.info("User %s updated their profile", user.user_id)
        return self.get_user(user.user_id)

    def change_password(self, *, user_id: int, current_password: str, new_password: str) -> None:
        current_password = require_text(current_password, "current_password")
        new_password = require_text(new_password, "new_password")
        if not current_password or not new_password:
            raise ValidationError("Current password and new password are required")
        require_min_length(new_password, "new_password", MIN_PASSWORD_LENGTH)

        user = self.get_user(user_id)
        if not _password_matches(user.password_hash, current_password):
            raise ValidationError("Current password is incorrect")

        self._users.set_password_hash(user.user_id, generate_password_hash(new_password))
        logger.info("User %s changed their password", user.user_id)
