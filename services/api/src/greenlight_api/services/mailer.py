"""邮件投递服务。

只关心“投递一封邮件，失败抛异常”的能力；重试与后台派发由上层组合：
请求处理中通过生命周期协调器派发 `deliver_with_retry`，停机时会等待其完成。
"""

import logging
import smtplib
import ssl
import time
from collections.abc import Callable
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Protocol

from greenlight_api.core.config import Settings

logger = logging.getLogger("greenlight_api.mailer")


class MailDeliveryError(Exception):
    """邮件多次重试后仍投递失败。"""


@dataclass(frozen=True)
class MailMessage:
    """待投递邮件。"""

    recipient: str
    subject: str
    body: str


def _redact_email(email: str) -> str:
    local, _, domain = email.partition("@")
    if not domain:
        return "***"
    return f"{local[:1]}***@{domain}"


class Mailer(Protocol):
    """邮件投递接口。"""

    def deliver(self, message: MailMessage) -> None:
        """投递一封邮件，失败时抛出异常。"""


class SMTPMailer(Mailer):
    """基于 SMTP 的邮件投递实现。"""

    def __init__(
        self,
        *,
        host: str,
        port: int,
        sender: str,
        username: str | None = None,
        password: str | None = None,
        timeout: float = 5.0,
    ) -> None:
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.timeout = timeout

    def deliver(self, message: MailMessage) -> None:
        email = EmailMessage()
        email["Subject"] = message.subject
        email["From"] = self.sender
        email["To"] = message.recipient
        email.set_content(message.body)

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.username and self.password:
                server.starttls(context=ssl.create_default_context())
                server.login(self.username, self.password)
            server.send_message(email)


class LoggingMailer(Mailer):
    """未配置 SMTP 时使用：只记录收件人与主题，不记录正文（正文含令牌明文）。"""

    def deliver(self, message: MailMessage) -> None:
        logger.info(
            "mail delivery skipped (no smtp host) to=%s subject=%s",
            _redact_email(message.recipient),
            message.subject,
        )


def build_mailer(settings: Settings) -> Mailer:
    """按配置选择投递实现。"""
    if not settings.smtp_host:
        return LoggingMailer()
    return SMTPMailer(
        host=settings.smtp_host,
        port=settings.smtp_port,
        sender=settings.smtp_sender,
        username=settings.smtp_username,
        password=settings.smtp_password,
        timeout=settings.smtp_timeout_seconds,
    )


def deliver_with_retry(
    mailer: Mailer,
    message: MailMessage,
    *,
    attempts: int = 3,
    delay_seconds: float = 0.5,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """按固定间隔重试投递，全部失败后抛出 MailDeliveryError。"""
    last_error: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            mailer.deliver(message)
            logger.info(
                "mail delivered to=%s subject=%s attempt=%s",
                _redact_email(message.recipient),
                message.subject,
                attempt,
            )
            return
        except (smtplib.SMTPException, OSError) as exc:
            last_error = exc
            logger.warning(
                "mail delivery attempt failed to=%s attempt=%s/%s error=%s",
                _redact_email(message.recipient),
                attempt,
                attempts,
                type(exc).__name__,
            )
            if attempt < attempts:
                sleep(delay_seconds)
    raise MailDeliveryError(f"mail delivery failed after {attempts} attempts") from last_error


def welcome_message(*, recipient: str, name: str, activation_token: str) -> MailMessage:
    """注册欢迎邮件，附带激活令牌。"""
    body = (
        f"Hi {name},\n\n"
        "Thanks for signing up for a Greenlight account. We're excited to have you on board!\n\n"
        "Please send a request to the `PUT /v1/users/activated` endpoint with the following JSON "
        "body to activate your account:\n\n"
        f'{{"token": "{activation_token}"}}\n\n'
        "Please note that this is a one-time use token and it will expire in 3 days.\n\n"
        "Thanks,\n\nThe Greenlight Team\n"
    )
    return MailMessage(recipient=recipient, subject="Welcome to Greenlight!", body=body)


def activation_message(*, recipient: str, activation_token: str) -> MailMessage:
    """重新发送激活令牌。"""
    body = (
        "Hi,\n\n"
        "Please send a `PUT /v1/users/activated` request with the following JSON body to "
        "activate your account:\n\n"
        f'{{"token": "{activation_token}"}}\n\n'
        "Please note that this is a one-time use token and it will expire in 3 days.\n\n"
        "Thanks,\n\nThe Greenlight Team\n"
    )
    return MailMessage(recipient=recipient, subject="Activate your Greenlight account", body=body)


def password_reset_message(*, recipient: str, reset_token: str) -> MailMessage:
    """找回密码邮件。"""
    body = (
        "Hi,\n\n"
        "Please send a `PUT /v1/users/password` request with the following JSON body to set "
        "a new password:\n\n"
        f'{{"password": "your new password", "token": "{reset_token}"}}\n\n'
        "Please note that this is a one-time use token and it will expire in 45 minutes.\n\n"
        "Thanks,\n\nThe Greenlight Team\n"
    )
    return MailMessage(recipient=recipient, subject="Reset your Greenlight password", body=body)
