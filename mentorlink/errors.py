"""Exceptions raised by the MentorLink domain layer."""

from __future__ import annotations


class MentorLinkError(Exception):
    """Base class for errors that map onto a plain-text HTTP response."""

    status_code = 400


class ValidationError(MentorLinkError):
    """Raised when submitted data is malformed or not allowed."""


class DuplicateUserError(MentorLinkError):
    """Raised when registering an email address that already exists."""

    status_code = 409


class UserNotFoundError(MentorLinkError):
    """Raised when an email address does not identify a registered user."""

    status_code = 404


class AuthorizationError(MentorLinkError):
    """Raised when the signed-in user may not act on the requested resource."""

    status_code = 403


class MatchingError(MentorLinkError):
    """Raised when an interest selection or edit cannot be applied."""


class StorageError(MentorLinkError):
    """Raised when a collection cannot be written to disk."""

    status_code = 500


__all__ = [
    "AuthorizationError",
    "DuplicateUserError",
    "MatchingError",
    "MentorLinkError",
    "StorageError",
    "UserNotFoundError",
    "ValidationError",
]
