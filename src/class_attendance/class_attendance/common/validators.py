from __future__ import annotations

from typing import Optional

from ..core.constants import MAX_BIOMETRIC_TOKEN_LENGTH
from ..core.exceptions import InvalidBiometricTokenError, ValidationError


def require_text(value, field_name: str) -> str:
    """``value`` as-is if it is a string; JSON numbers, lists and objects are rejected."""
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a string")
    return value


def require_non_empty(value: str, field_name: str) -> str:
    text = require_text(value, field_name).strip()
    if not text:
        raise ValidationError(f"{field_name} is required")
    return text


def optional_text(value, field_name: str) -> Optional[str]:
    """Stripped text, or None for a missing/blank value."""
    return require_text(value, field_name).strip() or None


def require_min_length(value: str, field_name: str, min_len: int) -> str:
    value = require_text(value, field_name)
    if len(value) < min_len:
        raise ValidationError(f"{field_name} must be at least {min_len} characters")
    return value


def require_positive_int(value, field_name: str) -> int:
    if value is None or value == "":
        raise ValidationError(f"{field_name} is required")
    if isinstance(value, (bool, float)):
        raise ValidationError(f"{field_name} must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be an integer")
    if number <= 0:
        raise ValidationError(f"{field_name} must be positive")
    return number


def require_email(value: str, field_name: str = "email") -> str:
    email = require_non_empty(value, field_name).lower()
    local, _, domain = email.partition("@")
    if not local or "." not in domain or " " in email:
        raise ValidationError(f"{field_name} is not a valid address")
    return email


def require_biometric_token(value) -> str:
    """Check the opaque proof-of-presence token.

    The token is asserted by the device authenticator; only its shape is
    checked here, never its contents.
    """
    if not isinstance(value, str) or not value.strip():
        raise InvalidBiometricTokenError("Biometric authentication required")
    token = value.strip()
    if len(token) > MAX_BIOMETRIC_TOKEN_LENGTH or any(ch.isspace() for ch in token):
        raise InvalidBiometricTokenError("Biometric token is malformed")
    return token
