"""Domain models for the mentor matching portal."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(value: str) -> str:
    return value.strip().lower()


class Role(str, Enum):
    """The two account types."""

    JUNIOR = "junior"
    SENIOR = "senior"


@dataclass
class User:
    """A registered junior or senior.

    Juniors carry ``assigned_mentors``; seniors carry ``assigned_juniors``.
    """

    name: str
    email: str
    password_hash: str
    role: Role
    interests: List[str] = field(default_factory=list)
    assigned_mentors: List[str] = field(default_factory=list)
    assigned_juniors: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)

    @property
    def is_junior(self) -> bool:
        return self.role is Role.JUNIOR

    @property
    def is_senior(self) -> bool:
        return self.role is Role.SENIOR

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "email": self.email,
            "passwordHash": self.password_hash,
            "role": self.role.value,
            "interests": list(self.interests),
            "assignedMentors": list(self.assigned_mentors),
            "assignedJuniors": list(self.assigned_juniors),
            "createdAt": self.created_at.isoformat(),
        }

    def to_view(self) -> Dict[str, object]:
        """Public representation without credential material."""

        payload = self.to_dict()
        payload.pop("passwordHash")
        return payload

    @staticmethod
    def from_dict(data: Dict[str, object]) -> "User":
        required_fields = {"name", "email", "role"}
        missing = required_fields - data.keys()
        if missing:
            raise ValueError(f"Missing required user fields: {', '.join(sorted(missing))}")

        created_raw = data.get("createdAt")
        return User(
            name=str(data["name"]),
            email=normalize_email(str(data["email"])),
            password_hash=str(data.get("passwordHash") or ""),
            role=Role(str(data["role"])),
            interests=[str(item) for item in data.get("interests") or []],
            assigned_mentors=[str(item) for item in data.get("assignedMentors") or []],
            assigned_juniors=[str(item) for item in data.get("assignedJuniors") or []],
            created_at=datetime.fromisoformat(str(created_raw)) if created_raw else utcnow(),
        )


@dataclass(frozen=True)
class Message:
    """A chat line persisted to the room log."""

    room: str
    sender: str
    text: str
    timestamp: datetime

    def to_dict(self) -> Dict[str, object]:
        return {
            "room": self.room,
            "sender": self.sender,
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
        }

    @staticmethod
    def from_dict(data: Dict[str, object]) -> "Message":
        return Message(
            room=str(data["room"]),
            sender=str(data.get("sender", "")),
            text=str(data.get("text", "")),
            timestamp=datetime.fromisoformat(str(data["timestamp"])),
        )


@dataclass(frozen=True)
class Feedback:
    """A rating left for a mentoring pair."""

    junior_email: str
    senior_email: str
    rating: int
    comments: str
    submitted_by: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, object]:
        return {
            "juniorEmail": self.junior_email,
            "seniorEmail": self.senior_email,
            "rating": self.rating,
            "comments": self.comments,
            "submittedBy": self.submitted_by,
            "createdAt": self.created_at.isoformat(),
        }

    @staticmethod
    def from_dict(data: Dict[str, object]) -> "Feedback":
        created_raw = data.get("createdAt")
        return Feedback(
            junior_email=str(data["juniorEmail"]),
            senior_email=str(data["seniorEmail"]),
            rating=int(data["rating"]),  # type: ignore[arg-type]
            comments=str(data.get("comments") or ""),
            submitted_by=data.get("submittedBy"),  # type: ignore[arg-type]
            created_at=datetime.fromisoformat(str(created_raw)) if created_raw else utcnow(),
        )


__all__ = ["Feedback", "Message", "Role", "User", "normalize_email", "utcnow"]
