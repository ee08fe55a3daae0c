"""
Best-effort mail side channel.

Welcome mails carry the generated credential of newly created accounts.
Delivery problems are logged and counted, never raised to the importer.
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from typing import Literal, Mapping

from .errors import NotificationError
from .results import ProvisionedIdentity

logger = logging.getLogger(__name__)

NotificationOutcome = Literal["sent", "failed", "skipped"]


class SMTPMailer:
    """Thin smtplib wrapper configured from ``MAIL_*`` settings."""

    def __init__(
        self,
        server: str,
        port: int = 587,
        *,
        use_tls: bool = True,
        username: str | None = None,
        password: str | None = None,
        sender: str = "no-reply@planivo.com",
        sender_name: str | None = None,
        timeout: int = 10,
    ) -> None:
        self.server = server
        self.port = port
        self.use_tls = use_tls
        self.username = username
        self.password = password
        self.sender = sender
        self.sender_name = sender_name
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: Mapping) -> "SMTPMailer | None":
        """Return a mailer, or None when no ``MAIL_SERVER`` is configured."""

        server = config.get("MAIL_SERVER")
        if not server:
            return None
        return cls(
            server,
            int(config.get("MAIL_PORT") or 587),
            use_tls=bool(config.get("MAIL_USE_TLS", True)),
            username=config.get("MAIL_USERNAME"),
            password=config.get("MAIL_PASSWORD"),
            sender=config.get("MAIL_FROM") or "no-reply@planivo.com",
            sender_name=config.get("MAIL_FROM_NAME"),
            timeout=int(config.get("MAIL_TIMEOUT_SECONDS") or 10),
        )

    def send(self, to: str, subject: str, body: str) -> None:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = formataddr((self.sender_name, self.sender)) if self.sender_name else self.sender
        message["To"] = to
        message.set_content(body)

        try:
            with smtplib.SMTP(self.server, self.port, timeout=self.timeout) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.username and self.password:
                    smtp.login(self.username, self.password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(f"Failed to send mail to {to}: {exc}") from exc


def render_welcome_message(identity: ProvisionedIdentity, *, login_url: str, app_name: str = "Planivo") -> str:
    return (
        f"Hello {identity.full_name},\n\n"
        f"An account has been created for you on {app_name}.\n\n"
        f"Email: {identity.email}\n"
        f"Temporary password: {identity.temporary_password}\n\n"
        f"Sign in at {login_url}. You will be asked to choose a new password "
        "the first time you sign in.\n"
    )


class WelcomeNotifier:
    """Send welcome mails for newly created identities."""

    def __init__(
        self,
        mailer: SMTPMailer | None,
        *,
        login_url: str,
        app_name: str = "Planivo",
        enabled: bool = True,
    ) -> None:
        self.mailer = mailer
        self.login_url = login_url
        self.app_name = app_name
        self.enabled = enabled

    def notify(self, identity: ProvisionedIdentity) -> NotificationOutcome:
        # Reused accounts have no new credential to deliver
        if not self.enabled or self.mailer is None or not identity.created or not identity.temporary_password:
            return "skipped"

        body = render_welcome_message(identity, login_url=self.login_url, app_name=self.app_name)
        try:
            self.mailer.send(identity.email, f"Welcome to {self.app_name}", body)
        except NotificationError as exc:
            logger.warning("Welcome mail for %s failed: %s", identity.email, exc)
            return "failed"
        logger.info("Welcome mail sent to %s", identity.email)
        return "sent"


def send_otp_email(mailer: SMTPMailer | None, email: str, code: str, *, expiry_minutes: int, app_name: str = "Planivo") -> NotificationOutcome:
    """Deliver a one-time passcode; without a mailer the code is only logged at DEBUG."""

    if mailer is None:
        logger.debug("Mail transport not configured; OTP for %s is %s", email, code)
        return "skipped"
    body = (
        f"Your {app_name} verification code is {code}.\n\n"
        f"It expires in {expiry_minutes} minutes. If you did not request it, ignore this message.\n"
    )
    try:
        mailer.send(email, f"{app_name} verification code", body)
    except NotificationError as exc:
        logger.warning("OTP mail for %s failed: %s", email, exc)
        return "failed"
    return "sent"
