"""JSON-file persistence for users, chat messages and feedback."""
from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, Sequence, TypeVar

from .errors import DuplicateUserError, StorageError
from .models import Feedback, Message, Role, User, normalize_email, utcnow
from .security import hash_password, verify_password

logger = logging.getLogger("mentorlink.database")

USERS_FILE = "users.json"
MESSAGES_FILE = "messages.json"
FEEDBACK_FILE = "feedback.json"

T = TypeVar("T")


def resolve_data_dir(env_value: Optional[str]) -> Path:
    """Resolve the directory holding the JSON collections."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return (Path(__file__).resolve().parent.parent / "data").resolve(strict=False)


def clean_interests(values: Iterable[str]) -> List[str]:
    """Strip, drop blanks and de-duplicate while keeping the submitted order."""

    seen: List[str] = []
    for value in values:
        cleaned = value.strip()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen


class Database:
    """Owns the three record collections and rewrites them wholesale on change.

    Every collection lives in memory and is mirrored to a single JSON array on
    disk. Writes go through a temporary file and ``os.replace`` so a crash never
    leaves a truncated file behind.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.RLock()
        self._users: List[User] = []
        self._messages: List[Message] = []
        self._feedback: List[Feedback] = []

    @property
    def path(self) -> Path:
        return self._path

    def initialize(self) -> None:
        """Create the data directory and load whatever collections exist."""

        self._path.mkdir(parents=True, exist_ok=True)
        with self._lock:
            self._users = self._load_collection(USERS_FILE, User.from_dict)
            self._messages = self._load_collection(MESSAGES_FILE, Message.from_dict)
            self._feedback = self._load_collection(FEEDBACK_FILE, Feedback.from_dict)
            for filename in (USERS_FILE, MESSAGES_FILE, FEEDBACK_FILE):
                if not (self._path / filename).exists():
                    self._write_collection(filename, [])
        logger.info(
            "Loaded %d user(s), %d message(s), %d feedback record(s) from %s",
            len(self._users),
            len(self._messages),
            len(self._feedback),
            self._path,
        )

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def create_user(
        self,
        name: str,
        email: str,
        password: str,
        role: Role,
        interests: Sequence[str] = (),
    ) -> User:
        normalized_email = normalize_email(email)
        if not normalized_email:
            raise ValueError("Email must not be empty")

        user = User(
            name=name.strip() or normalized_email.split("@")[0],
            email=normalized_email,
            password_hash=hash_password(password),
            role=role,
            interests=clean_interests(interests) if role is Role.SENIOR else [],
        )

        with self.users_transaction() as users:
            if any(existing.email == normalized_email for existing in users):
                raise DuplicateUserError("A user with that email already exists")
            users.append(user)

        logger.info("Registered %s %s", role.value, normalized_email)
        return copy.deepcopy(user)

    def get_user(self, email: str) -> Optional[User]:
        normalized_email = normalize_email(email)
        with self._lock:
            for user in self._users:
                if user.email == normalized_email:
                    return copy.deepcopy(user)
        return None

    def list_users(self) -> List[User]:
        """Return a copy of every user in registration order."""

        with self._lock:
            return copy.deepcopy(self._users)

    def authenticate_user(self, email: str, password: str) -> Optional[User]:
        user = self.get_user(email)
        if user is None:
            return None
        if not verify_password(password, user.password_hash):
            return None
        return user

    @contextmanager
    def users_transaction(self) -> Iterator[List[User]]:
        """Yield the live user list; persist it on success, roll back on error."""

        with self._lock:
            snapshot = copy.deepcopy(self._users)
            try:
                yield self._users
                self._write_collection(USERS_FILE, [user.to_dict() for user in self._users])
            except BaseException:
                self._users = snapshot
                raise

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------
    def append_message(self, room: str, sender: str, text: str) -> Message:
        message = Message(room=room, sender=normalize_email(sender), text=text, timestamp=utcnow())
        with self._lock:
            self._messages.append(message)
            try:
                self._write_collection(MESSAGES_FILE, [item.to_dict() for item in self._messages])
            except StorageError:
                self._messages.pop()
                raise
        return message

    def list_messages(self, room: str) -> List[Message]:
        with self._lock:
            return [message for message in self._messages if message.room == room]

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------
    def add_feedback(self, feedback: Feedback) -> Feedback:
        with self._lock:
            self._feedback.append(feedback)
            try:
                self._write_collection(FEEDBACK_FILE, [item.to_dict() for item in self._feedback])
            except StorageError:
                self._feedback.pop()
                raise
        logger.info(
            "Stored feedback for %s from %s (rating %d)",
            feedback.senior_email,
            feedback.junior_email,
            feedback.rating,
        )
        return feedback

    def list_feedback(self) -> List[Feedback]:
        with self._lock:
            return list(self._feedback)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _load_collection(self, filename: str, factory: Callable[[dict], T]) -> List[T]:
        path = self._path / filename
        if not path.exists():
            return []

        try:
            with path.open("r", encoding="utf-8") as handle:
                raw = json.load(handle)
            if not isinstance(raw, list):
                raise ValueError(f"{filename} must contain a JSON array")
            return [factory(item) for item in raw]
        except (ValueError, KeyError, TypeError) as exc:
            quarantined = path.with_name(f"{filename}.corrupt-{utcnow().strftime('%Y%m%d%H%M%S')}")
            os.replace(path, quarantined)
            logger.error(
                "Could not parse %s (%s); moved it to %s and started with an empty collection",
                path,
                exc,
                quarantined,
            )
            return []

    def _write_collection(self, filename: str, records: List[dict]) -> None:
        target = self._path / filename
        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self._path, prefix=f".{filename}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(records, handle, indent=2)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, target)
        except OSError as exc:
            logger.exception("Failed to write %s", target)
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise StorageError(f"Failed to persist {filename}") from exc


__all__ = ["Database", "clean_interests", "resolve_data_dir"]
