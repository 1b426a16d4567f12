"""令牌签发与作废接口。

认证令牌明文只在签发响应中出现一次；激活与重置令牌只通过邮件下发。
重发激活邮件、申请重置口令两个接口无论邮箱是否存在都返回 202，避免泄露注册情况。
"""

import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from greenlight_api.core.config import Settings
from greenlight_api.core.errors import InvalidCredentialsError
from greenlight_api.core.lifecycle import LifecycleCoordinator
from greenlight_api.core.security import verify_password
from greenlight_api.core.tokens import TokenScope
from greenlight_api.db.session import get_db, storage_errors
from greenlight_api.dependencies import get_app_settings, get_authenticated_user, get_coordinator, get_mailer
from greenlight_api.models.user import User
from greenlight_api.schemas.common import ErrorResponse, SuccessResponse
from greenlight_api.schemas.responses import AcceptedData, AuthenticationTokenData, LogoutData
from greenlight_api.schemas.token import AuthenticationTokenRequest, EmailOnlyRequest
from greenlight_api.services.mailer import (
    Mailer,
    MailMessage,
    activation_message,
    deliver_with_retry,
    password_reset_message,
)
from greenlight_api.services.tokens import delete_all_for_user, new_token
from greenlight_api.utils.response import success

logger = logging.getLogger("greenlight_api.tokens")

router = APIRouter(prefix="/tokens", tags=["tokens"])


def _find_user_by_email(db: Session, email: str) -> User | None:
    with storage_errors():
        return db.execute(select(User).where(User.email == email.strip().lower())).scalar_one_or_none()


def _send_later(
    coordinator: LifecycleCoordinator,
    mailer: Mailer,
    settings: Settings,
    message: MailMessage,
    *,
    name: str,
) -> None:
    coordinator.dispatch(
        deliver_with_retry,
        mailer,
        message,
        attempts=settings.mail_max_attempts,
        delay_seconds=settings.mail_retry_delay_seconds,
        name=name,
    )


@router.post(
    "/authentication",
    summary="签发认证令牌",
    description="使用邮箱与口令换取 24 小时有效的认证令牌。",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessResponse[AuthenticationTokenData],
    responses={401: {"model": ErrorResponse}, 422: {"model": ErrorResponse}, 429: {"model": ErrorResponse}},
)
def create_authentication_token(
    payload: AuthenticationTokenRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """校验口令后签发认证令牌。"""
    user = _find_user_by_email(db, payload.email)
    if user is None or not verify_password(payload.password, user.password_hash):
        raise InvalidCredentialsError()

    issued = new_token(db, user_id=user.id, scope=TokenScope.AUTHENTICATION)
    with storage_errors():
        db.commit()

    logger.info("authentication token issued user_id=%s expiry=%s", user.id, issued.expiry.isoformat())
    return success(request, {"token": issued.plaintext, "expiry": issued.expiry})


@router.delete(
    "/authentication",
    summary="登出",
    description="作废当前用户的全部认证令牌。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[LogoutData],
    responses={401: {"model": ErrorResponse}},
)
def revoke_authentication_tokens(
    request: Request,
    user: User = Depends(get_authenticated_user),
    db: Session = Depends(get_db),
):
    """登出。"""
    revoked = delete_all_for_user(db, user_id=user.id, scope=TokenScope.AUTHENTICATION)
    with storage_errors():
        db.commit()
    logger.info("authentication tokens revoked user_id=%s count=%s", user.id, revoked)
    return success(request, {"revoked_tokens": revoked})


@router.post(
    "/activation",
    summary="重发激活邮件",
    description="为未激活账号重新签发激活令牌并发送邮件。",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=SuccessResponse[AcceptedData],
    responses={422: {"model": ErrorResponse}},
)
def resend_activation_token(
    payload: EmailOnlyRequest,
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    coordinator: LifecycleCoordinator = Depends(get_coordinator),
    mailer: Mailer = Depends(get_mailer),
):
    """重发激活令牌。"""
    user = _find_user_by_email(db, payload.email)
    if user is not None and not user.activated:
        issued = new_token(db, user_id=user.id, scope=TokenScope.ACTIVATION)
        with storage_errors():
            db.commit()
        _send_later(
            coordinator,
            mailer,
            settings,
            activation_message(recipient=user.email, activation_token=issued.plaintext),
            name="activation-mail",
        )
    return success(request, {"message": "如果该邮箱对应未激活账号，将收到一封包含激活说明的邮件。"})


@router.post(
    "/password-reset",
    summary="申请重置口令",
    description="为已激活账号签发 45 分钟有效的重置令牌并发送邮件。",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=SuccessResponse[AcceptedData],
    responses={422: {"model": ErrorResponse}},
)
def request_password_reset(
    payload: EmailOnlyRequest,
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    coordinator: LifecycleCoordinator = Depends(get_coordinator),
    mailer: Mailer = Depends(get_mailer),
):
    """申请重置口令。"""
    user = _find_user_by_email(db, payload.email)
    if user is not None and user.activated:
        issued = new_token(db, user_id=user.id, scope=TokenScope.PASSWORD_RESET)
        with storage_errors():
            db.commit()
        _send_later(
            coordinator,
            mailer,
            settings,
            password_reset_message(recipient=user.email, reset_token=issued.plaintext),
            name="password-reset-mail",
        )
    return success(request, {"message": "如果该邮箱对应已激活账号，将收到一封包含重置说明的邮件。"})
