"""
Password hashing for stored users.

Only bcrypt hashes are ever compared; a plaintext value left in the users
collection never matches.
"""

from typing import Any

import bcrypt

from errors import ValidationError

# bcrypt only reads the first 72 bytes and newer releases refuse longer input.
MAX_PASSWORD_BYTES = 72


def _encode(password: str) -> bytes:
    raw = password.encode("utf-8")
    if len(raw) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return raw


def hash_password(password: str) -> str:
    if not password:
        raise ValidationError("Password must not be empty")
    return bcrypt.hashpw(_encode(password), bcrypt.gensalt()).decode()


def verify_password(password: str, password_hash: Any) -> bool:
    if not password or not isinstance(password_hash, str) or not password_hash.startswith("$2"):
        return False
    try:
        return bcrypt.checkpw(_encode(password), password_hash.encode())
    except (ValidationError, ValueError):
        return False
