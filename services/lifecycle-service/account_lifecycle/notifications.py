"""Transactional email delivery for token-bearing lifecycle links."""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage

from jinja2 import DictLoader, Environment, StrictUndefined

from .config import Settings
from .domain.contracts import DispatchError

logger = logging.getLogger(__name__)

SUBJECTS = {
    "confirmation": "Confirm your account",
    "password_reset": "Reset your password",
    "unlock": "Unlock your account",
    "invitation": "You have been invited",
}

_TEMPLATES = {
    "confirmation": (
        "Hello {{ name or email }},\n\n"
        "Please confirm your account by following this link:\n{{ url }}\n"
    ),
    "password_reset": (
        "Hello {{ name or email }},\n\n"
        "Someone requested a password reset for your account. Choose a new password here:\n"
        "{{ url }}\n\n"
        "The link is valid for {{ reset_days }} days. If you did not ask for this, ignore this email.\n"
    ),
    "unlock": (
        "Hello {{ name or email }},\n\n"
        "Your account has been locked. Unlock it with this link:\n{{ url }}\n"
    ),
    "invitation": (
        "Hello {{ name or email }},\n\n"
        "You have been invited to create an account. Accept the invitation here:\n{{ url }}\n"
    ),
}

_ENV = Environment(loader=DictLoader(_TEMPLATES), undefined=StrictUndefined, autoescape=False)


class SmtpDispatcher:
    """Renders lifecycle emails and hands them to an SMTP relay."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def render(self, kind: str, recipient: str, url: str, *, name: str | None = None) -> EmailMessage:
        if kind not in _TEMPLATES:
            raise DispatchError(f"unknown notification kind {kind!r}")
        body = _ENV.get_template(kind).render(
            name=name,
            email=recipient,
            url=url,
            reset_days=self._settings.reset_token_expire_days,
        )
        message = EmailMessage()
        message["Subject"] = SUBJECTS[kind]
        message["From"] = self._settings.mail_from
        message["To"] = recipient
        message.set_content(body)
        return message

    def send(self, kind: str, recipient: str, url: str, *, name: str | None = None) -> None:
        """Deliver one notification; relay failures surface as ``DispatchError``."""
        message = self.render(kind, recipient, url, name=name)
        settings = self._settings
        try:
            with smtplib.SMTP(
                settings.smtp_host, settings.smtp_port, timeout=settings.smtp_timeout_seconds
            ) as client:
                if settings.smtp_use_tls:
                    client.starttls()
                if settings.smtp_username:
                    client.login(settings.smtp_username, settings.smtp_password)
                client.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise DispatchError(f"smtp delivery failed: {exc}") from exc
        logger.info("sent %s email to %s", kind, recipient)
