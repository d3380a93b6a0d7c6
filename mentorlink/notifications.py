"""Outbound email notifications for newly matched mentors."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Protocol
from urllib.parse import urlencode

import aiosmtplib
import anyio

from .config import MailConfig
from .models import User

logger = logging.getLogger("mentorlink.notifications")

_DEFAULT_BUFFER_SIZE = 100


@dataclass(frozen=True)
class Notification:
    """A single email waiting to be delivered."""

    to: str
    subject: str
    body: str


def build_match_notification(senior: User, junior: User, interest: str, public_url: str) -> Notification:
    """Compose the email sent to a senior when a junior is assigned to them."""

    query = urlencode({"junior": junior.email, "senior": senior.email})
    chat_url = f"{public_url.rstrip('/')}/chat?{query}"
    body = (
        f"Hello {senior.name},\n\n"
        f"{junior.name} ({junior.email}) selected your domain ({interest}) "
        "and has been assigned to you as a mentee.\n\n"
        f"Chat with them here: {chat_url}\n"
    )
    return Notification(
        to=senior.email,
        subject="New Junior Interested in Your Domain",
        body=body,
    )


class NotificationSink(Protocol):
    def enqueue(self, notification: Notification) -> bool: ...


class Mailer:
    """Deliver notifications over SMTP with STARTTLS."""

    def __init__(self, config: MailConfig) -> None:
        self._config = config

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    def build_message(self, notification: Notification) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self._config.from_address or ""
        message["To"] = notification.to
        message["Subject"] = notification.subject
        message.set_content(notification.body)
        return message

    async def send(self, notification: Notification) -> bool:
        if not self.enabled:
            logger.info(
                "Mail credentials are not configured; skipping notification to %s",
                notification.to,
            )
            return False

        try:
            await aiosmtplib.send(
                self.build_message(notification),
                hostname=self._config.host,
                port=self._config.port,
                username=self._config.username,
                password=self._config.password,
                start_tls=True,
            )
        except (aiosmtplib.SMTPException, OSError):
            logger.exception("Email error while notifying %s", notification.to)
            return False

        logger.info("Sent notification to %s", notification.to)
        return True


class NotificationOutbox:
    """Queue notifications on the request path and deliver them in the background."""

    def __init__(self, *, max_buffer_size: int = _DEFAULT_BUFFER_SIZE) -> None:
        self._send_stream, self._receive_stream = anyio.create_memory_object_stream(max_buffer_size)

    def enqueue(self, notification: Notification) -> bool:
        try:
            self._send_stream.send_nowait(notification)
        except anyio.WouldBlock:
            logger.warning("Notification outbox is full; dropping email to %s", notification.to)
            return False
        except (anyio.BrokenResourceError, anyio.ClosedResourceError):
            logger.warning("Notification outbox is closed; dropping email to %s", notification.to)
            return False
        return True

    async def run(self, mailer: Mailer) -> None:
        """Deliver queued notifications until the outbox is closed."""

        async for notification in self._receive_stream:
            try:
                await mailer.send(notification)
            except Exception:
                logger.exception("Notification delivery to %s failed", notification.to)

    def close(self) -> None:
        self._send_stream.close()


__all__ = [
    "Mailer",
    "Notification",
    "NotificationOutbox",
    "NotificationSink",
    "build_match_notification",
]
