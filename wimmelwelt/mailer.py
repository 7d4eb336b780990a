"""
Outgoing e-mail over SMTP, plus an in-memory double for tests.
"""

from __future__ import annotations

import logging
import re
import smtplib
import ssl
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import formatdate
from typing import Iterable, Optional, Protocol, Union

logger = logging.getLogger(__name__)

Recipients = Union[str, Iterable[str], None]


class Mailer(Protocol):
    def send(
        self, to: Recipients, subject: str, text: str, html: Optional[str] = None
    ) -> bool:
        ...


def parse_recipients(recipients: Recipients) -> list[str]:
    if not recipients:
        return []
    if isinstance(recipients, str):
        parts = re.split(r"[,;\s]+", recipients)
    else:
        parts = [str(entry) for entry in recipients]
    return [part.strip() for part in parts if part and part.strip()]


def build_message(
    sender: str, recipients: list[str], subject: str, text: str, html: Optional[str] = None
) -> EmailMessage:
    message = EmailMessage()
    message["From"] = sender
    message["To"] = ", ".join(recipients)
    message["Subject"] = re.sub(r"\r?\n", " ", subject or "")
    message["Date"] = formatdate(usegmt=True)
    message.set_content(text or "")
    if html:
        message.add_alternative(html, subtype="html")
    return message


@dataclass
class SmtpMailer:
    host: Optional[str]
    port: int = 587
    secure: bool = False
    username: Optional[str] = None
    password: Optional[str] = None
    sender: Optional[str] = None
    timeout: float = 10.0

    def __post_init__(self):
        self.sender = self.sender or self.username

    def send(
        self, to: Recipients, subject: str, text: str, html: Optional[str] = None
    ) -> bool:
        recipients = parse_recipients(to)
        if not self.host or not self.sender or not recipients:
            logger.info("Skipping e-mail notification: SMTP not configured or no recipient.")
            return False

        message = build_message(self.sender, recipients, subject, text, html)
        try:
            with self._connect() as smtp:
                if self.username and self.password:
                    smtp.login(self.username, self.password)
                smtp.send_message(message, from_addr=self.sender, to_addrs=recipients)
        except (smtplib.SMTPException, OSError):
            logger.exception("Sending notification e-mail to %s failed", recipients)
            return False
        return True

    def _connect(self) -> smtplib.SMTP:
        context = ssl.create_default_context()
        if self.secure or self.port == 465:
            return smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout, context=context)
        smtp = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        try:
            smtp.ehlo()
            if smtp.has_extn("starttls"):
                smtp.starttls(context=context)
                smtp.ehlo()
        except Exception:
            smtp.close()
            raise
        return smtp


@dataclass
class InMemoryMailer:
    """Test double that records messages instead of sending them."""

    sent: list[EmailMessage] = field(default_factory=list)
    sender: str = "noreply@wimmelwelt.test"

    def send(
        self, to: Recipients, subject: str, text: str, html: Optional[str] = None
    ) -> bool:
        recipients = parse_recipients(to)
        if not recipients:
            return False
        self.sent.append(build_message(self.sender, recipients, subject, text, html))
        return True
