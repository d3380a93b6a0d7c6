"""Credential hashing and chat room authorisation."""
from __future__ import annotations

from typing import Optional

from passlib.context import CryptContext

from .models import User, normalize_email

PASSWORD_MIN_LENGTH = 8

_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    if not password:
        raise ValueError("Password must not be empty")
    return _pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    try:
        return _pwd_context.verify(password, hashed)
    except ValueError:
        return False


def is_room_member(
    user: Optional[User],
    junior: Optional[User],
    senior: Optional[User],
) -> bool:
    """Return ``True`` when ``user`` may read and write the pair's chat room.

    The signed-in user must be one of the two participants and the junior must
    currently be assigned to the senior.
    """

    if user is None or junior is None or senior is None:
        return False
    if not junior.is_junior or not senior.is_senior:
        return False
    if normalize_email(user.email) not in {junior.email, senior.email}:
        return False
    return senior.email in junior.assigned_mentors and junior.email in senior.assigned_juniors


__all__ = ["PASSWORD_MIN_LENGTH", "hash_password", "is_room_member", "verify_password"]
