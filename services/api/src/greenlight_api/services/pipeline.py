"""请求准入流水线。

固定顺序：限流 -> 认证 -> 授权 -> 业务处理，任何一环都不可跳过或调换。
每一环失败时直接抛出对应的具体错误，流水线不会把具体错误改写成通用错误。
"""

from collections.abc import MutableMapping
from dataclasses import dataclass
from enum import StrEnum
import logging
from uuid import UUID

from sqlalchemy.orm import Session

from greenlight_api.core.errors import (
    AuthenticationFailedError,
    ForbiddenError,
    RateLimitedError,
    UnauthenticatedError,
)
from greenlight_api.core.rate_limit import RateLimiter
from greenlight_api.core.security import extract_bearer_token
from greenlight_api.core.tokens import TokenScope
from greenlight_api.models.user import ANONYMOUS_USER, AnonymousUser, User
from greenlight_api.services.permissions import require_permission
from greenlight_api.services.tokens import get_user_for_token

logger = logging.getLogger("greenlight_api.pipeline")


class AdmissionOutcome(StrEnum):
    """准入结果。"""

    ADMITTED = "admitted"
    RATE_LIMITED = "rate_limited"
    UNAUTHENTICATED = "unauthenticated"
    UNAUTHORIZED = "unauthorized"


@dataclass(frozen=True)
class Admission:
    """准入通过后交给业务处理的主体。"""

    outcome: AdmissionOutcome
    user: User | AnonymousUser


def outcome_for(exc: Exception) -> AdmissionOutcome:
    """把流水线抛出的错误映射为准入结果。"""
    if isinstance(exc, RateLimitedError):
        return AdmissionOutcome.RATE_LIMITED
    if isinstance(exc, (AuthenticationFailedError, UnauthenticatedError)):
        return AdmissionOutcome.UNAUTHENTICATED
    if isinstance(exc, ForbiddenError):
        return AdmissionOutcome.UNAUTHORIZED
    raise ValueError(f"not an admission error: {type(exc).__name__}")


class RequestPipeline:
    """组合限流器、令牌存储与权限校验。"""

    def __init__(self, limiter: RateLimiter) -> None:
        self.limiter = limiter

    def check_rate_limit(self, client_key: str) -> None:
        """限流检查；限流器关闭时整体放行。"""
        if not self.limiter.enabled:
            return
        decision = self.limiter.allow(client_key)
        if not decision.allowed:
            logger.info("request rate limited client=%s retry_after=%.3f", client_key, decision.retry_after)
            raise RateLimitedError(decision.retry_after)

    def authenticate(self, db: Session, authorization: str | None) -> User | AnonymousUser:
        """解析 Bearer 令牌；未携带认证头时返回匿名用户。"""
        token = extract_bearer_token(authorization)
        if token is None:
            return ANONYMOUS_USER
        return get_user_for_token(db, plaintext=token, scope=TokenScope.AUTHENTICATION)

    def authorize(
        self,
        db: Session,
        user: User | AnonymousUser,
        code: str,
        *,
        cache: MutableMapping[UUID, frozenset[str]] | None = None,
    ) -> User:
        """校验激活状态与权限码。"""
        return require_permission(db, user, code, cache=cache)

    def admit(
        self,
        db: Session,
        *,
        client_key: str,
        authorization: str | None,
        required_permission: str | None = None,
    ) -> Admission:
        """按固定顺序执行全部准入检查。"""
        self.check_rate_limit(client_key)
        user = self.authenticate(db, authorization)
        if required_permission is not None:
            user = self.authorize(db, user, required_permission)
        return Admission(outcome=AdmissionOutcome.ADMITTED, user=user)
