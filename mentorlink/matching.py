"""Assign juniors to the first senior covering their chosen interest."""
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import List, Optional

from .database import Database, clean_interests
from .errors import MatchingError, UserNotFoundError
from .models import User, normalize_email
from .notifications import NotificationSink, build_match_notification

logger = logging.getLogger("mentorlink.matching")


@dataclass(frozen=True)
class MatchResult:
    """Outcome of an interest selection."""

    junior: User
    senior: Optional[User]
    queued: bool = False

    @property
    def matched(self) -> bool:
        return self.senior is not None


def _find_user(users: List[User], email: str) -> User:
    for user in users:
        if user.email == email:
            return user
    raise UserNotFoundError(f"No user registered with email {email}")


def _unlink(junior: User, users: List[User]) -> None:
    for mentor_email in junior.assigned_mentors:
        for user in users:
            if user.email == mentor_email and junior.email in user.assigned_juniors:
                user.assigned_juniors.remove(junior.email)
    junior.assigned_mentors.clear()


def _current_mentor_covering(junior: User, users: List[User], interest: str) -> Optional[User]:
    for user in users:
        if (
            user.email in junior.assigned_mentors
            and user.is_senior
            and interest in user.interests
            and junior.email in user.assigned_juniors
        ):
            return user
    return None


class MatchingEngine:
    """Apply interest selections and keep assignment links bidirectional."""

    def __init__(self, database: Database, outbox: NotificationSink, *, public_url: str) -> None:
        self._database = database
        self._outbox = outbox
        self._public_url = public_url

    def select_interest(self, junior_email: str, interest: str) -> MatchResult:
        cleaned = interest.strip()
        if not cleaned:
            raise MatchingError("Interest must not be empty")

        email = normalize_email(junior_email)
        with self._database.users_transaction() as users:
            junior = _find_user(users, email)
            if not junior.is_junior:
                raise MatchingError("Only juniors can select an interest")

            junior.interests = [cleaned]
            current = _current_mentor_covering(junior, users, cleaned)
            if current is not None:
                junior_view = copy.deepcopy(junior)
                current_view = copy.deepcopy(current)
            else:
                _unlink(junior, users)
                senior = next(
                    (user for user in users if user.is_senior and cleaned in user.interests),
                    None,
                )
                if senior is not None:
                    junior.assigned_mentors.append(senior.email)
                    if junior.email not in senior.assigned_juniors:
                        senior.assigned_juniors.append(junior.email)

                junior_view = copy.deepcopy(junior)
                senior_view = copy.deepcopy(senior) if senior is not None else None

        if current is not None:
            logger.info("Junior %s keeps senior %s for '%s'", email, current_view.email, cleaned)
            return MatchResult(junior=junior_view, senior=current_view)

        if senior_view is None:
            logger.info("No senior covers '%s'; %s remains unmatched", cleaned, email)
            return MatchResult(junior=junior_view, senior=None)

        logger.info("Matched junior %s with senior %s on '%s'", email, senior_view.email, cleaned)
        notification = build_match_notification(senior_view, junior_view, cleaned, self._public_url)
        queued = self._outbox.enqueue(notification)
        return MatchResult(junior=junior_view, senior=senior_view, queued=queued)

    def edit_interests(self, senior_email: str, raw_interests: str) -> User:
        interests = clean_interests(raw_interests.split(","))
        email = normalize_email(senior_email)
        with self._database.users_transaction() as users:
            senior = _find_user(users, email)
            if not senior.is_senior:
                raise MatchingError("Only seniors can edit their interests")
            senior.interests = interests
            updated = copy.deepcopy(senior)
        logger.info("Senior %s now covers %s", email, ", ".join(interests) or "nothing")
        return updated

    def matched_users(self, user: User) -> List[User]:
        """Other users sharing at least one interest with ``user``."""

        if not user.interests:
            return []
        wanted = set(user.interests)
        return [
            candidate
            for candidate in self._database.list_users()
            if candidate.email != user.email and wanted.intersection(candidate.interests)
        ]


__all__ = ["MatchResult", "MatchingEngine"]
