import logging
import smtplib

import pytest

from greenlight_api.services.mailer import (
    LoggingMailer,
    MailDeliveryError,
    Mailer,
    MailMessage,
    SMTPMailer,
    build_mailer,
    deliver_with_retry,
    welcome_message,
)

from conftest import make_settings


class FlakyMailer(Mailer):
    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    def deliver(self, message: MailMessage) -> None:
        self.calls += 1
        if self.calls <= self.failures:
            raise smtplib.SMTPServerDisconnected("connection dropped")


def test_retry_until_success():
    mailer = FlakyMailer(failures=2)
    sleeps: list[float] = []

    deliver_with_retry(
        mailer,
        MailMessage(recipient="alice@example.com", subject="hi", body="body"),
        attempts=3,
        delay_seconds=0.5,
        sleep=sleeps.append,
    )

    assert mailer.calls == 3
    assert sleeps == [0.5, 0.5]


def test_retry_gives_up_after_attempts():
    mailer = FlakyMailer(failures=10)
    sleeps: list[float] = []

    with pytest.raises(MailDeliveryError):
        deliver_with_retry(
            mailer,
            MailMessage(recipient="alice@example.com", subject="hi", body="body"),
            attempts=3,
            delay_seconds=0.5,
            sleep=sleeps.append,
        )

    assert mailer.calls == 3
    assert sleeps == [0.5, 0.5]


def test_logging_mailer_never_logs_body(caplog):
    message = welcome_message(recipient="alice@example.com", name="Alice", activation_token="ABCDEFGHIJKLMNOPQRSTUVWXYZ")

    with caplog.at_level(logging.INFO, logger="greenlight_api.mailer"):
        LoggingMailer().deliver(message)

    assert "ABCDEFGHIJKLMNOPQRSTUVWXYZ" not in caplog.text
    assert "alice@example.com" not in caplog.text
    assert "a***@example.com" in caplog.text


def test_welcome_message_carries_activation_token():
    message = welcome_message(recipient="alice@example.com", name="Alice", activation_token="ABCDEFGHIJKLMNOPQRSTUVWXYZ")

    assert message.recipient == "alice@example.com"
    assert '{"token": "ABCDEFGHIJKLMNOPQRSTUVWXYZ"}' in message.body


def test_build_mailer_selects_transport():
    assert isinstance(build_mailer(make_settings()), LoggingMailer)

    mailer = build_mailer(make_settings(smtp_host="smtp.example.com", smtp_timeout_seconds=2))
    assert isinstance(mailer, SMTPMailer)
    assert mailer.host == "smtp.example.com"
    assert mailer.timeout == 2


def test_mailer_interface_cannot_be_instantiated():
    with pytest.raises(TypeError):
        Mailer()
