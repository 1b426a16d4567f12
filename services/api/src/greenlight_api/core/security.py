"""认证头解析与口令哈希工具。"""

import base64
import binascii
import hashlib
import hmac
import re
import secrets

from greenlight_api.core.errors import AuthenticationFailedError
from greenlight_api.core.tokens import looks_like_token

_BEARER_PATTERN = re.compile(r"^Bearer\s+(\S+)$", flags=re.IGNORECASE)
_PASSWORD_ALGORITHM = "pbkdf2_sha256"


def extract_bearer_token(authorization: str | None) -> str | None:
    """从 Authorization 头中提取 Bearer 令牌。

    判定规则：
    1. 未携带认证头视为匿名访问，返回 None，不属于错误。
    2. 携带认证头但不是 `Bearer <token>` 或令牌格式不合法，直接认证失败。
    """
    if authorization is None or not authorization.strip():
        return None
    matched = _BEARER_PATTERN.match(authorization.strip())
    if not matched:
        raise AuthenticationFailedError()
    token = matched.group(1)
    if not looks_like_token(token):
        raise AuthenticationFailedError()
    return token


def hash_password(password: str, *, iterations: int) -> str:
    """使用 PBKDF2-SHA256 生成口令哈希。"""
    salt = secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    salt_b64 = base64.b64encode(salt).decode("ascii")
    digest_b64 = base64.b64encode(digest).decode("ascii")
    return f"{_PASSWORD_ALGORITHM}${iterations}${salt_b64}${digest_b64}"


def verify_password(password: str, password_hash: str) -> bool:
    """校验口令是否匹配。"""
    try:
        algorithm, iterations_text, salt_b64, expected_digest_b64 = password_hash.split("$", 3)
        if algorithm != _PASSWORD_ALGORITHM:
            return False
        iterations = int(iterations_text)
        salt = base64.b64decode(salt_b64.encode("ascii"))
        expected_digest = base64.b64decode(expected_digest_b64.encode("ascii"))
    except (ValueError, TypeError, binascii.Error):
        return False

    actual_digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return hmac.compare_digest(actual_digest, expected_digest)
