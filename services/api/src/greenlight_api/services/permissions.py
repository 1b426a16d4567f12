"""权限校验服务（数据库驱动）。

权限码按用户多对多授予；每次请求读取一次权限集合，
可在单个请求内缓存，但绝不跨请求复用，避免权限变更后仍按旧结果放行。
"""

from collections.abc import Iterable, MutableMapping
from enum import StrEnum
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from greenlight_api.core.errors import ForbiddenError, InactiveAccountError, UnauthenticatedError
from greenlight_api.db.session import storage_errors
from greenlight_api.models.permission import Permission, UserPermission
from greenlight_api.models.user import AnonymousUser, User


class PermissionCode(StrEnum):
    """接口鉴权使用的权限码。"""

    MOVIES_READ = "movies:read"
    MOVIES_WRITE = "movies:write"


# 新注册用户默认授予的权限。
DEFAULT_USER_PERMISSIONS: tuple[str, ...] = (PermissionCode.MOVIES_READ.value,)


def codes_for_user(db: Session, user_id: UUID) -> frozenset[str]:
    """查询用户拥有的全部权限码。"""
    stmt = (
        select(Permission.code)
        .join(UserPermission, UserPermission.permission_id == Permission.id)
        .where(UserPermission.user_id == user_id)
    )
    with storage_errors():
        rows = db.execute(stmt).scalars().all()
    return frozenset(rows)


def seed_permissions(db: Session, codes: Iterable[str]) -> list[Permission]:
    """确保权限点存在，返回对应记录。"""
    wanted = sorted({str(code) for code in codes})
    with storage_errors():
        existing = db.execute(select(Permission).where(Permission.code.in_(wanted))).scalars().all()
        known = {item.code for item in existing}
        created = [Permission(code=code) for code in wanted if code not in known]
        db.add_all(created)
        db.flush()
    return [*existing, *created]


def add_for_user(db: Session, user_id: UUID, *codes: str) -> int:
    """为用户授予权限码，只关联已存在的权限点，已授予的跳过。返回新增条数。"""
    if not codes:
        return 0
    with storage_errors():
        permission_ids = db.execute(select(Permission.id).where(Permission.code.in_(codes))).scalars().all()
        granted = set(
            db.execute(
                select(UserPermission.permission_id)
                .where(UserPermission.user_id == user_id)
                .where(UserPermission.permission_id.in_(permission_ids))
            )
            .scalars()
            .all()
        )
        links = [
            UserPermission(user_id=user_id, permission_id=permission_id)
            for permission_id in permission_ids
            if permission_id not in granted
        ]
        db.add_all(links)
        db.flush()
    return len(links)


def require_authenticated(user: User | AnonymousUser) -> User:
    """要求请求已登录。"""
    if user.is_anonymous:
        raise UnauthenticatedError()
    return user


def require_activated(user: User | AnonymousUser) -> User:
    """要求账号已激活。

    匿名用户返回 403 而不是 401，避免暴露受保护接口的存在性。
    """
    if user.is_anonymous:
        raise ForbiddenError()
    if not user.activated:
        raise InactiveAccountError()
    return user


def require_permission(
    db: Session,
    user: User | AnonymousUser,
    code: str,
    *,
    cache: MutableMapping[UUID, frozenset[str]] | None = None,
) -> User:
    """校验用户拥有指定权限码。

    判定顺序：
    1. 匿名用户 -> 403。
    2. 未激活用户 -> 403（ACCOUNT_NOT_ACTIVATED）。
    3. 权限集合中不含该权限码 -> 403。
    """
    active_user = require_activated(user)
    codes = cache.get(active_user.id) if cache is not None else None
    if codes is None:
        codes = codes_for_user(db, active_user.id)
        if cache is not None:
            cache[active_user.id] = codes
    if str(code) not in codes:
        raise ForbiddenError(details={"required_permission": str(code)})
    return active_user
