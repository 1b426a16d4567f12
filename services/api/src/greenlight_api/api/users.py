"""用户注册、激活与口令重置接口。"""

import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from greenlight_api.core.config import Settings
from greenlight_api.core.errors import AuthenticationFailedError, ValidationFailedError
from greenlight_api.core.lifecycle import LifecycleCoordinator
from greenlight_api.core.security import hash_password
from greenlight_api.core.tokens import TokenScope
from greenlight_api.db.session import get_db, storage_errors
from greenlight_api.dependencies import get_app_settings, get_coordinator, get_mailer
from greenlight_api.models.user import User
from greenlight_api.schemas.common import ErrorResponse, SuccessResponse
from greenlight_api.schemas.responses import UserData
from greenlight_api.schemas.user import PasswordResetRequest, UserActivateRequest, UserRegisterRequest
from greenlight_api.services.mailer import Mailer, deliver_with_retry, welcome_message
from greenlight_api.services.permissions import DEFAULT_USER_PERMISSIONS, add_for_user
from greenlight_api.services.tokens import delete_all_for_user, get_user_for_token, new_token
from greenlight_api.services.versioning import check_and_apply
from greenlight_api.utils.response import success

logger = logging.getLogger("greenlight_api.users")

router = APIRouter(prefix="/users", tags=["users"])


def _user_data(user: User) -> dict:
    return {
        "id": user.id,
        "created_at": user.created_at,
        "name": user.name,
        "email": user.email,
        "activated": user.activated,
    }


def _duplicate_email() -> ValidationFailedError:
    return ValidationFailedError(
        "该邮箱已被注册。",
        details={"errors": [{"field": "email", "message": "a user with this email address already exists"}]},
    )


def _user_for_submitted_token(db: Session, token: str, scope: TokenScope) -> User:
    """令牌无效时按字段校验失败处理，而不是认证失败。"""
    try:
        return get_user_for_token(db, plaintext=token, scope=scope)
    except AuthenticationFailedError:
        raise ValidationFailedError(
            "令牌无效或已过期。",
            details={"errors": [{"field": "token", "message": "invalid or expired token"}]},
        ) from None


@router.post(
    "",
    summary="注册用户",
    description="创建未激活用户，授予默认权限，并在后台发送包含激活令牌的欢迎邮件。",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessResponse[UserData],
    responses={422: {"model": ErrorResponse}, 429: {"model": ErrorResponse}},
)
def register_user(
    payload: UserRegisterRequest,
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    coordinator: LifecycleCoordinator = Depends(get_coordinator),
    mailer: Mailer = Depends(get_mailer),
):
    """注册用户并派发欢迎邮件。"""
    email = payload.email.strip().lower()
    with storage_errors():
        exists = db.execute(select(User.id).where(User.email == email)).first() is not None
    if exists:
        raise _duplicate_email()

    user = User(
        name=payload.name,
        email=email,
        password_hash=hash_password(payload.password, iterations=settings.password_hash_iterations),
        activated=False,
    )
    try:
        db.add(user)
        db.flush()
    except IntegrityError:
        # 并发注册同一邮箱时由唯一约束兜底。
        db.rollback()
        raise _duplicate_email() from None

    add_for_user(db, user.id, *DEFAULT_USER_PERMISSIONS)
    issued = new_token(db, user_id=user.id, scope=TokenScope.ACTIVATION)
    with storage_errors():
        db.commit()
        db.refresh(user)

    coordinator.dispatch(
        deliver_with_retry,
        mailer,
        welcome_message(recipient=user.email, name=user.name, activation_token=issued.plaintext),
        attempts=settings.mail_max_attempts,
        delay_seconds=settings.mail_retry_delay_seconds,
        name="welcome-mail",
    )
    logger.info("user registered user_id=%s", user.id)
    return success(request, _user_data(user))


@router.put(
    "/activated",
    summary="激活用户",
    description="使用激活令牌激活账号；成功后该用户全部激活令牌失效。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[UserData],
    responses={409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def activate_user(
    payload: UserActivateRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """激活账号。"""
    user = _user_for_submitted_token(db, payload.token, TokenScope.ACTIVATION)
    check_and_apply(
        db,
        User,
        resource_id=user.id,
        presented_version=user.version,
        values={"activated": True},
    )
    delete_all_for_user(db, user_id=user.id, scope=TokenScope.ACTIVATION)
    with storage_errors():
        db.commit()
        db.refresh(user)

    logger.info("user activated user_id=%s", user.id)
    return success(request, _user_data(user))


@router.put(
    "/password",
    summary="重置口令",
    description="使用重置令牌设置新口令；成功后该用户全部重置令牌失效。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[UserData],
    responses={409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def reset_password(
    payload: PasswordResetRequest,
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    """重置口令。"""
    user = _user_for_submitted_token(db, payload.token, TokenScope.PASSWORD_RESET)
    check_and_apply(
        db,
        User,
        resource_id=user.id,
        presented_version=user.version,
        values={"password_hash": hash_password(payload.password, iterations=settings.password_hash_iterations)},
    )
    delete_all_for_user(db, user_id=user.id, scope=TokenScope.PASSWORD_RESET)
    with storage_errors():
        db.commit()
        db.refresh(user)

    logger.info("user password reset user_id=%s", user.id)
    return success(request, _user_data(user))
