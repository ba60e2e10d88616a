from __future__ import annotations

import secrets
import string

from passlib.context import CryptContext

from kitchen_pos.core.config import GENERATED_PASSWORD_LENGTH

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

_PASSWORD_ALPHABET = string.ascii_letters + string.digits


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    return _pwd_context.verify(password, password_hash)


def generate_password(length: int = GENERATED_PASSWORD_LENGTH) -> str:
    """Random alphanumeric password handed to newly provisioned owners."""
    if length < 8:
        raise ValueError("generated passwords must be at least 8 characters")
    return "".join(secrets.choice(_PASSWORD_ALPHABET) for _ in range(length))
