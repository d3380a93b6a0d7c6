from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List

import aiosmtplib
import anyio
import pytest

from mentorlink.config import MailConfig
from mentorlink.models import Role, User
from mentorlink.notifications import (
    Mailer,
    Notification,
    NotificationOutbox,
    build_match_notification,
)


def _user(name: str, email: str, role: Role) -> User:
    return User(
        name=name,
        email=email,
        password_hash="",
        role=role,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


class RecordingMailer:
    def __init__(self) -> None:
        self.sent: List[Notification] = []

    async def send(self, notification: Notification) -> bool:
        self.sent.append(notification)
        return True


def test_match_notification_contains_chat_link() -> None:
    senior = _user("Bala", "b@srec.ac.in", Role.SENIOR)
    junior = _user("Asha", "a@srec.ac.in", Role.JUNIOR)

    notification = build_match_notification(senior, junior, "ml", "https://portal.example/")

    assert notification.to == "b@srec.ac.in"
    assert notification.subject == "New Junior Interested in Your Domain"
    assert notification.body.startswith("Hello Bala,")
    assert "https://portal.example/chat?junior=a%40srec.ac.in&senior=b%40srec.ac.in" in notification.body


def test_outbox_delivers_queued_notifications_in_order() -> None:
    outbox = NotificationOutbox()
    mailer = RecordingMailer()
    first = Notification("one@srec.ac.in", "s", "b")
    second = Notification("two@srec.ac.in", "s", "b")

    assert outbox.enqueue(first)
    assert outbox.enqueue(second)
    outbox.close()

    anyio.run(outbox.run, mailer)

    assert mailer.sent == [first, second]


def test_outbox_drops_when_full(caplog: pytest.LogCaptureFixture) -> None:
    outbox = NotificationOutbox(max_buffer_size=1)

    assert outbox.enqueue(Notification("one@srec.ac.in", "s", "b"))
    with caplog.at_level(logging.WARNING, logger="mentorlink.notifications"):
        assert outbox.enqueue(Notification("two@srec.ac.in", "s", "b")) is False
    assert "outbox is full" in caplog.text


def test_outbox_rejects_after_close() -> None:
    outbox = NotificationOutbox()
    outbox.close()
    assert outbox.enqueue(Notification("one@srec.ac.in", "s", "b")) is False


def test_mailer_skips_when_credentials_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fail_send(*args, **kwargs):  # pragma: no cover - must not be called
        raise AssertionError("SMTP should not be contacted")

    monkeypatch.setattr(aiosmtplib, "send", fail_send)
    mailer = Mailer(MailConfig())

    assert mailer.enabled is False
    assert anyio.run(mailer.send, Notification("b@srec.ac.in", "s", "b")) is False


def test_mailer_sends_over_smtp(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = []

    async def fake_send(message, **kwargs):
        calls.append((message, kwargs))
        return ({}, "OK")

    monkeypatch.setattr(aiosmtplib, "send", fake_send)
    mailer = Mailer(MailConfig(username="portal@srec.ac.in", password="app-password"))

    assert anyio.run(mailer.send, Notification("b@srec.ac.in", "Subject", "Body")) is True

    message, kwargs = calls[0]
    assert message["To"] == "b@srec.ac.in"
    assert message["From"] == "portal@srec.ac.in"
    assert kwargs["hostname"] == "smtp.gmail.com"
    assert kwargs["port"] == 587
    assert kwargs["start_tls"] is True


def test_mailer_logs_and_swallows_smtp_failures(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    async def broken_send(message, **kwargs):
        raise aiosmtplib.SMTPException("connection refused")

    monkeypatch.setattr(aiosmtplib, "send", broken_send)
    mailer = Mailer(MailConfig(username="portal@srec.ac.in", password="app-password"))

    with caplog.at_level(logging.ERROR, logger="mentorlink.notifications"):
        assert anyio.run(mailer.send, Notification("b@srec.ac.in", "s", "b")) is False
    assert "Email error" in caplog.text
