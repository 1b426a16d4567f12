"""令牌存储服务。

令牌以指纹形式落库，同一用户同一用途最多保留一条有效令牌；
认证成功不会续期，过期令牌即使原样提交也永远不可用。
"""

import asyncio
from collections.abc import Callable
from datetime import datetime, timezone
import logging
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from greenlight_api.core.errors import AuthenticationFailedError, ServiceError
from greenlight_api.core.tokens import (
    IssuedToken,
    TokenScope,
    fingerprint,
    fingerprints_match,
    generate_token,
    looks_like_token,
)
from greenlight_api.db.session import storage_errors
from greenlight_api.models.token import Token
from greenlight_api.models.user import User

logger = logging.getLogger("greenlight_api.tokens")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_token(db: Session, *, user_id: UUID, scope: TokenScope, now: datetime | None = None) -> IssuedToken:
    """签发新令牌并作废该用户同用途的旧令牌。

    删除与插入处于同一事务，由调用方提交；返回值中的明文只应交付一次。
    """
    scope = TokenScope(scope)
    issued = generate_token(user_id, scope, now=now)
    with storage_errors():
        db.execute(delete(Token).where(Token.user_id == user_id).where(Token.scope == scope.value))
        db.add(
            Token(
                hash=issued.fingerprint,
                user_id=issued.user_id,
                expiry=issued.expiry,
                scope=issued.scope.value,
            )
        )
        db.flush()
    return issued


def get_user_for_token(
    db: Session,
    *,
    plaintext: str,
    scope: TokenScope,
    now: datetime | None = None,
) -> User:
    """按令牌明文查找所属用户。

    计算指纹后按 (指纹, 用途, 未过期) 查询；任一条件不满足均视为认证失败。
    """
    scope = TokenScope(scope)
    if not looks_like_token(plaintext):
        raise AuthenticationFailedError()

    presented = fingerprint(plaintext)
    stmt = (
        select(User, Token.hash)
        .join(Token, Token.user_id == User.id)
        .where(Token.hash == presented)
        .where(Token.scope == scope.value)
        .where(Token.expiry > (now or _utc_now()))
    )
    with storage_errors():
        row = db.execute(stmt).one_or_none()
    if row is None or not fingerprints_match(row[1], presented):
        raise AuthenticationFailedError()
    return row[0]


def delete_all_for_user(db: Session, *, user_id: UUID, scope: TokenScope) -> int:
    """删除用户指定用途的全部令牌，返回删除条数。"""
    scope = TokenScope(scope)
    with storage_errors():
        result = db.execute(delete(Token).where(Token.user_id == user_id).where(Token.scope == scope.value))
    return result.rowcount or 0


def purge_expired_tokens(db: Session, *, now: datetime | None = None) -> int:
    """清理已过期令牌，返回清理条数。"""
    with storage_errors():
        result = db.execute(delete(Token).where(Token.expiry <= (now or _utc_now())))
    return result.rowcount or 0


def purge_expired_once(session_factory: Callable[[], Session], *, now: datetime | None = None) -> int:
    """在独立会话中清理一次过期令牌并提交。"""
    db = session_factory()
    try:
        purged = purge_expired_tokens(db, now=now)
        db.commit()
    except ServiceError:
        db.rollback()
        raise
    finally:
        db.close()
    if purged:
        logger.info("expired tokens purged count=%s", purged)
    return purged


async def run_token_purger(session_factory: Callable[[], Session], interval: float) -> None:
    """周期性清理过期令牌，直到任务被取消；单次失败只记录，下个周期重试。"""
    while True:
        await asyncio.sleep(interval)
        try:
            await asyncio.to_thread(purge_expired_once, session_factory)
        except ServiceError as exc:
            logger.warning("expired token purge failed code=%s", exc.code)
