from __future__ import annotations

import dataclasses
import smtplib
from typing import Any

import pytest

from account_lifecycle import notifications
from account_lifecycle.domain.contracts import DispatchError
from account_lifecycle.notifications import SmtpDispatcher


@pytest.fixture
def smtp_settings(settings):
    return dataclasses.replace(
        settings,
        smtp_host="smtp.test",
        smtp_port=587,
        smtp_use_tls=True,
        smtp_username="smtp-user",
        smtp_password="smtp-pass",
        mail_from="accounts@example.com",
    )


def test_send_delivers_rendered_message(monkeypatch, smtp_settings):
    captured: dict[str, Any] = {}

    class DummySMTP:
        def __init__(self, host: str, port: int, timeout: int) -> None:
            captured["host"] = host
            captured["port"] = port

        def __enter__(self) -> "DummySMTP":
            return self

        def __exit__(self, exc_type, exc, tb) -> None:
            return None

        def starttls(self) -> None:
            captured["starttls"] = True

        def login(self, username: str, password: str) -> None:
            captured["login"] = (username, password)

        def send_message(self, msg) -> None:
            captured["message"] = msg

    monkeypatch.setattr(notifications.smtplib, "SMTP", DummySMTP)

    SmtpDispatcher(smtp_settings).send(
        "password_reset", "ada@example.com", "https://accounts.example.com/passwords/abc/edit", name="Ada"
    )

    assert captured["host"] == "smtp.test"
    assert captured["port"] == 587
    assert captured["starttls"] is True
    assert captured["login"] == ("smtp-user", "smtp-pass")
    msg = captured["message"]
    assert msg["To"] == "ada@example.com"
    assert msg["From"] == "accounts@example.com"
    assert msg["Subject"] == "Reset your password"
    body = msg.get_content()
    assert "Hello Ada" in body
    assert "https://accounts.example.com/passwords/abc/edit" in body
    assert "2 days" in body


def test_send_wraps_relay_failures(monkeypatch, smtp_settings):
    def refuse(*args, **kwargs):
        raise smtplib.SMTPConnectError(421, "try later")

    monkeypatch.setattr(notifications.smtplib, "SMTP", refuse)

    with pytest.raises(DispatchError):
        SmtpDispatcher(smtp_settings).send("unlock", "ada@example.com", "https://x/unlocks/t")


def test_render_rejects_unknown_kind(smtp_settings):
    with pytest.raises(DispatchError):
        SmtpDispatcher(smtp_settings).render("newsletter", "ada@example.com", "https://x")


def test_render_falls_back_to_email_without_name(smtp_settings):
    message = SmtpDispatcher(smtp_settings).render(
        "invitation", "bob@example.com", "https://x/invitations/t/edit"
    )

    assert "Hello bob@example.com" in message.get_content()
