from __future__ import annotations

import smtplib
from decimal import Decimal

import pytest

from filing_monitor import notifier as notifier_module
from filing_monitor.errors import NotificationError
from filing_monitor.models import (
    ChangeClassification,
    ChangeRecord,
    CycleResult,
    FilingCategory,
    FilingReference,
)
from filing_monitor.notifier import EmailNotifier, LoggingNotifier, Notification, compose_notification

SOURCE = FilingReference(
    FilingCategory.HOLDINGS_REPORT,
    "2024-02-14",
    "https://www.sec.gov/Archives/edgar/data/1045810/000104581024000003/0001045810-24-000003-index.htm",
)


def cycle_result() -> CycleResult:
    return CycleResult(
        categories=[FilingCategory.HOLDINGS_REPORT],
        new_filings=[SOURCE],
        changes=[
            ChangeRecord("ARM HOLDINGS PLC", 1968000, 2000000, Decimal("150300000"), ChangeClassification.INCREASED, SOURCE),
            ChangeRecord("NANO X IMAGING LTD", None, 1000000, Decimal("6400000"), ChangeClassification.NEW, SOURCE),
        ],
    )


def test_composed_message_lists_every_change():
    message = compose_notification(cycle_result(), "NVIDIA")

    assert message.subject == "2 holding change(s) in NVIDIA filings"
    assert "Increased stake: ARM HOLDINGS PLC (13F-HR) 1,968,000 -> 2,000,000 shares" in message.text
    assert "New investment: NANO X IMAGING LTD (13F-HR) 1,000,000 shares" in message.text
    assert SOURCE.document_link in message.html
    assert "<strong>Increased stake</strong>" in message.html


def test_html_escapes_issuer_names():
    result = cycle_result()
    result.changes[0] = ChangeRecord(
        "AT&T <INC>", None, 5, Decimal("1"), ChangeClassification.NEW, SOURCE
    )

    message = compose_notification(result, "NVIDIA")

    assert "AT&amp;T &lt;INC&gt;" in message.html
    assert "AT&T <INC>" in message.text


class FakeSMTP:
    instances: list["FakeSMTP"] = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.calls = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        self.calls.append("starttls")

    def login(self, username, password):
        self.calls.append(("login", username))

    def sendmail(self, sender, recipients, body):
        self.calls.append(("sendmail", sender, tuple(recipients)))


def test_email_notifier_uses_starttls(monkeypatch):
    FakeSMTP.instances = []
    monkeypatch.setattr(notifier_module.smtplib, "SMTP", FakeSMTP)
    email = EmailNotifier("smtp.example.com", 587, "bot", "secret", "bot@example.com", ["a@example.com", "b@example.com"])

    email.send(Notification("subject", "<p>hi</p>", "hi"))

    (server,) = FakeSMTP.instances
    assert server.calls == [
        "starttls",
        ("login", "bot"),
        ("sendmail", "bot@example.com", ("a@example.com", "b@example.com")),
    ]


def test_email_failures_become_notification_errors(monkeypatch):
    def refuse(*args, **kwargs):
        raise smtplib.SMTPConnectError(421, "unavailable")

    monkeypatch.setattr(notifier_module.smtplib, "SMTP", refuse)
    email = EmailNotifier("smtp.example.com", 587, "bot", "secret", "bot@example.com", ["a@example.com"])

    with pytest.raises(NotificationError):
        email.send(Notification("subject", "<p>hi</p>", "hi"))


def test_logging_notifier_writes_message(caplog):
    caplog.set_level("INFO", logger="filing_monitor.notifier")

    LoggingNotifier().send(Notification("Subject line", "<p>x</p>", "body text"))

    assert "Subject line" in caplog.text
    assert "body text" in caplog.text
