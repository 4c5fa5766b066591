"""Rendering and delivery of change notifications."""
from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import Protocol, Sequence

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .errors import NotificationError
from .models import ChangeClassification, CycleResult

LOGGER = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"

CLASSIFICATION_LABELS = {
    ChangeClassification.NEW: "New investment",
    ChangeClassification.INCREASED: "Increased stake",
    ChangeClassification.REDUCED: "Reduced stake",
    ChangeClassification.EXITED: "Exited position",
}

_environment = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(enabled_extensions=("html",), default_for_string=False),
    trim_blocks=True,
    lstrip_blocks=True,
)
_environment.filters["thousands"] = lambda value: f"{value:,}" if value is not None else "n/a"


@dataclass(frozen=True)
class Notification:
    subject: str
    html: str
    text: str


class Notifier(Protocol):
    def send(self, notification: Notification) -> None:
        ...


def compose_notification(result: CycleResult, entity_name: str) -> Notification:
    """Render the changes and new filings of a cycle into one message."""

    context = {
        "entity_name": entity_name,
        "changes": result.changes,
        "new_filings": result.new_filings,
        "labels": CLASSIFICATION_LABELS,
    }
    if result.changes:
        subject = f"{len(result.changes)} holding change(s) in {entity_name} filings"
    else:
        subject = f"New SEC filings for {entity_name}"
    return Notification(
        subject=subject,
        html=_environment.get_template("notification.html").render(**context),
        text=_environment.get_template("notification.txt").render(**context),
    )


class EmailNotifier:
    """Deliver notifications over SMTP with STARTTLS."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        sender: str,
        recipients: Sequence[str],
        timeout: float = 30.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.recipients = list(recipients)
        self.timeout = timeout

    def _build_message(self, notification: Notification) -> MIMEMultipart:
        message = MIMEMultipart("alternative")
        message["From"] = self.sender
        message["To"] = ", ".join(self.recipients)
        message["Subject"] = notification.subject
        message.attach(MIMEText(notification.text, "plain"))
        message.attach(MIMEText(notification.html, "html"))
        return message

    def send(self, notification: Notification) -> None:
        message = self._build_message(notification)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.starttls()
                server.login(self.username, self.password)
                server.sendmail(self.sender, self.recipients, message.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(f"Failed to send email via {self.host}: {exc}") from exc
        LOGGER.info("Email sent to %s", ", ".join(self.recipients))


class LoggingNotifier:
    """Fallback channel that writes notifications to the log."""

    def send(self, notification: Notification) -> None:
        LOGGER.info("%s\n%s", notification.subject, notification.text)


__all__ = [
    "CLASSIFICATION_LABELS",
    "EmailNotifier",
    "LoggingNotifier",
    "Notification",
    "Notifier",
    "compose_notification",
]
