from __future__ import annotations

import logging
from dataclasses import dataclass, field

import resend
from flask import Flask, current_app

logger = logging.getLogger(__name__)


class MailError(RuntimeError):
    pass


@dataclass(frozen=True)
class OutgoingEmail:
    sender: str
    to: str
    subject: str
    html: str


class Mailer:
    sender: str

    def send(self, to: str, subject: str, html: str) -> str | None:
        """Send one message. Returns the provider message id when there is one."""
        raise NotImplementedError


@dataclass
class ResendMailer(Mailer):
    api_key: str
    sender: str

    def send(self, to: str, subject: str, html: str) -> str | None:
        if not self.api_key:
            raise MailError("RESEND_API_KEY is not configured.")
        resend.api_key = self.api_key
        try:
            response = resend.Emails.send({"from": self.sender, "to": [to], "subject": subject, "html": html})
        except Exception as e:
            raise MailError(f"Failed to send email to {to}: {e}") from e
        message_id = response.get("id") if isinstance(response, dict) else None
        logger.info("Email sent via Resend to=%s id=%s", to, message_id)
        return message_id


@dataclass
class OutboxMailer(Mailer):
    """Keeps messages in memory. Used for local development and tests."""

    sender: str
    outbox: list[OutgoingEmail] = field(default_factory=list)

    def send(self, to: str, subject: str, html: str) -> str | None:
        self.outbox.append(OutgoingEmail(sender=self.sender, to=to, subject=subject, html=html))
        logger.info("Email queued in outbox to=%s subject=%s", to, subject)
        return None


def mailer_from_config(config: dict) -> Mailer:
    backend = (config.get("EMAIL_BACKEND") or "outbox").strip().lower()
    sender = config.get("EMAIL_FROM") or ""
    if backend == "resend":
        return ResendMailer(api_key=config.get("RESEND_API_KEY") or "", sender=sender)
    return OutboxMailer(sender=sender)


def init_mailer(app: Flask) -> None:
    app.extensions["mailer"] = mailer_from_config(app.config)


def get_mailer() -> Mailer:
    return current_app.extensions["mailer"]
