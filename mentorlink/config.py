"""Configuration management for the MentorLink service."""
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml

from .database import resolve_data_dir

DEFAULT_PORT = 3000
DEFAULT_SMTP_HOST = "smtp.gmail.com"
DEFAULT_SMTP_PORT = 587
DEFAULT_ALLOWED_DOMAINS = ("srec.ac.in",)


def _env_flag(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _split_domains(raw: object) -> Tuple[str, ...]:
    if isinstance(raw, str):
        items = raw.split(",")
    elif isinstance(raw, (list, tuple)):
        items = [str(item) for item in raw]
    else:
        raise ValueError("allowed_email_domains must be a list or a comma-separated string")
    domains = tuple(item.strip().lower().lstrip("@") for item in items if item.strip())
    if not domains:
        raise ValueError("At least one allowed email domain must be configured")
    return domains


@dataclass(frozen=True)
class MailConfig:
    """SMTP settings for outbound notifications."""

    host: str = DEFAULT_SMTP_HOST
    port: int = DEFAULT_SMTP_PORT
    username: Optional[str] = None
    password: Optional[str] = None
    sender: Optional[str] = None

    @property
    def enabled(self) -> bool:
        return bool(self.username and self.password)

    @property
    def from_address(self) -> Optional[str]:
        return self.sender or self.username


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the web service."""

    data_dir: Path
    port: int = DEFAULT_PORT
    session_secret: Optional[str] = None
    session_secure: bool = False
    public_url: str = f"http://localhost:{DEFAULT_PORT}"
    allowed_email_domains: Tuple[str, ...] = DEFAULT_ALLOWED_DOMAINS
    mail: MailConfig = field(default_factory=MailConfig)

    def is_institutional_email(self, email: str) -> bool:
        local, separator, domain = email.strip().lower().rpartition("@")
        return bool(local and separator) and domain in self.allowed_email_domains

    @staticmethod
    def from_dict(data: Dict[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from the parsed YAML document."""

        raw_data_dir = data.get("data_dir")
        if raw_data_dir:
            candidate = Path(str(raw_data_dir)).expanduser()
            if not candidate.is_absolute() and base_path is not None:
                candidate = base_path / candidate
            data_dir = candidate.resolve(strict=False)
        else:
            data_dir = resolve_data_dir(None)

        mail_raw = data.get("mail") or {}
        if not isinstance(mail_raw, dict):
            raise ValueError("The 'mail' section must be a mapping")

        mail = MailConfig(
            host=str(mail_raw.get("host", DEFAULT_SMTP_HOST)),
            port=int(mail_raw.get("port", DEFAULT_SMTP_PORT)),
            username=str(mail_raw["username"]) if mail_raw.get("username") else None,
            password=str(mail_raw["password"]) if mail_raw.get("password") else None,
            sender=str(mail_raw["sender"]) if mail_raw.get("sender") else None,
        )

        port = int(data.get("port", DEFAULT_PORT))
        return Settings(
            data_dir=data_dir,
            port=port,
            session_secret=str(data["session_secret"]) if data.get("session_secret") else None,
            session_secure=bool(data.get("session_secure", False)),
            public_url=str(data.get("public_url", f"http://localhost:{port}")).rstrip("/"),
            allowed_email_domains=_split_domains(
                data.get("allowed_email_domains", list(DEFAULT_ALLOWED_DOMAINS))
            ),
            mail=mail,
        )

    def with_env_overrides(self, environ: Mapping[str, str]) -> "Settings":
        """Apply environment variables on top of the file-based settings."""

        settings = self
        if environ.get("MENTORLINK_DATA_DIR"):
            settings = replace(settings, data_dir=resolve_data_dir(environ["MENTORLINK_DATA_DIR"]))
        if environ.get("PORT"):
            settings = replace(settings, port=int(environ["PORT"]))
        if environ.get("MENTORLINK_SESSION_SECRET"):
            settings = replace(settings, session_secret=environ["MENTORLINK_SESSION_SECRET"])
        if "MENTORLINK_SESSION_SECURE" in environ:
            settings = replace(
                settings, session_secure=_env_flag(environ["MENTORLINK_SESSION_SECURE"])
            )
        if environ.get("MENTORLINK_PUBLIC_URL"):
            settings = replace(settings, public_url=environ["MENTORLINK_PUBLIC_URL"].rstrip("/"))
        if environ.get("MENTORLINK_ALLOWED_DOMAINS"):
            settings = replace(
                settings,
                allowed_email_domains=_split_domains(environ["MENTORLINK_ALLOWED_DOMAINS"]),
            )

        mail = settings.mail
        if environ.get("EMAIL_USER"):
            mail = replace(mail, username=environ["EMAIL_USER"])
        if environ.get("EMAIL_PASS"):
            mail = replace(mail, password=environ["EMAIL_PASS"])
        if environ.get("SMTP_HOST"):
            mail = replace(mail, host=environ["SMTP_HOST"])
        if environ.get("SMTP_PORT"):
            mail = replace(mail, port=int(environ["SMTP_PORT"]))
        return replace(settings, mail=mail)


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the optional YAML configuration file."""
    if env_value:
        candidate = Path(env_value).expanduser().resolve(strict=False)
    else:
        candidate = (Path(__file__).resolve().parent.parent / "config" / "mentorlink.yaml").resolve(strict=False)
    return candidate


def load_settings(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from YAML (when the file exists) and the environment."""
    if environ is None:
        environ = os.environ
    if config_path is None:
        config_path = resolve_config_path(environ.get("MENTORLINK_CONFIG"))

    raw: Dict[str, object] = {}
    if config_path.exists():
        with config_path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
        if not isinstance(raw, dict):
            raise ValueError("Configuration file must contain a mapping at the top level")

    base = Settings.from_dict(raw, base_path=config_path.parent)
    return base.with_env_overrides(environ)


__all__ = ["MailConfig", "Settings", "load_settings", "resolve_config_path"]
