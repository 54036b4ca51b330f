from __future__ import annotations

import secrets

from ..common.validators import require_text
from ..core.constants import DEFAULT_SESSION_CODE_BYTES


def generate_session_code(num_bytes: int = DEFAULT_SESSION_CODE_BYTES) -> str:
    """Short human-typed join code, e.g. ``'9F3A1C07'``."""
    return secrets.token_hex(int(num_bytes)).upper()


def normalize_session_code(code) -> str:
    """Case-insensitive form of a typed join code; non-strings raise ValidationError."""
    return require_text(code, "code").strip().upper()
