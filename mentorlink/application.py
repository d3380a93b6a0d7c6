"""Application factory wiring settings, storage, mail and the portal together."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI

from .config import Settings, load_settings
from .database import Database
from .notifications import Mailer, NotificationOutbox
from .portal import create_app as create_portal_app

logger = logging.getLogger("mentorlink.application")


def create_application(
    *,
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
) -> FastAPI:
    """Create the ASGI application from settings (loaded from the environment by default)."""

    if settings is None:
        settings = load_settings()

    if database is None:
        database = Database(settings.data_dir)
        database.initialize()

    mailer = Mailer(settings.mail)
    if not mailer.enabled:
        logger.warning("EMAIL_USER/EMAIL_PASS are not set; match notifications will not be emailed")

    return create_portal_app(
        database=database,
        settings=settings,
        outbox=NotificationOutbox(),
        mailer=mailer,
    )


__all__ = ["create_application"]
