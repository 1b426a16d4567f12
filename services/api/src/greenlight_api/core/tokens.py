"""不透明令牌的生成与指纹计算。

令牌明文只在签发时返回一次，持久化与比对只使用 SHA-256 指纹。
"""

import base64
import hashlib
import hmac
import re
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import StrEnum
from uuid import UUID

# 16 字节随机数经 base32（去掉填充）编码后固定为 26 个字符。
TOKEN_ENTROPY_BYTES = 16
TOKEN_PLAINTEXT_LENGTH = 26
_TOKEN_PATTERN = re.compile(r"^[A-Z2-7]{26}$")


class TokenScope(StrEnum):
    """令牌用途。"""

    ACTIVATION = "activation"  # 账号激活，随欢迎邮件下发。
    AUTHENTICATION = "authentication"  # 接口访问凭据。
    PASSWORD_RESET = "password-reset"  # 找回密码。


SCOPE_TTL: dict[TokenScope, timedelta] = {
    TokenScope.ACTIVATION: timedelta(days=3),
    TokenScope.AUTHENTICATION: timedelta(hours=24),
    TokenScope.PASSWORD_RESET: timedelta(minutes=45),
}


@dataclass(frozen=True)
class IssuedToken:
    """一次签发结果。明文不参与 repr，避免误写入日志。"""

    plaintext: str = field(repr=False)
    fingerprint: bytes = field(repr=False)
    user_id: UUID
    expiry: datetime
    scope: TokenScope


def scope_duration(scope: TokenScope) -> timedelta:
    """返回指定用途令牌的有效期。"""
    return SCOPE_TTL[TokenScope(scope)]


def fingerprint(plaintext: str) -> bytes:
    """计算令牌明文的单向指纹。"""
    return hashlib.sha256(plaintext.encode("utf-8")).digest()


def fingerprints_match(left: bytes, right: bytes) -> bool:
    """常量时间比较两个指纹。"""
    return hmac.compare_digest(left, right)


def looks_like_token(plaintext: str | None) -> bool:
    """判断输入是否符合令牌明文格式，格式不符时无需查库。"""
    return bool(plaintext) and _TOKEN_PATTERN.fullmatch(plaintext) is not None


def generate_token(user_id: UUID, scope: TokenScope, *, now: datetime | None = None) -> IssuedToken:
    """生成新令牌。

    1. 使用 `secrets` 提供的密码学安全随机源。
    2. base32 编码便于人工抄写且可直接放入 URL。
    3. 过期时间 = 当前时间 + 用途对应的有效期。
    """
    scope = TokenScope(scope)
    issued_at = now or datetime.now(timezone.utc)
    raw = secrets.token_bytes(TOKEN_ENTROPY_BYTES)
    plaintext = base64.b32encode(raw).decode("ascii").rstrip("=")
    return IssuedToken(
        plaintext=plaintext,
        fingerprint=fingerprint(plaintext),
        user_id=user_id,
        expiry=issued_at + scope_duration(scope),
        scope=scope,
    )
