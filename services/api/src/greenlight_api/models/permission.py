"""权限模型。"""

from uuid import UUID

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from greenlight_api.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Permission(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """权限点定义。"""

    __tablename__ = "permissions"

    # 权限码（如 movies:read / movies:write），全局唯一。
    code: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)


class UserPermission(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """用户与权限点的多对多关联。"""

    __tablename__ = "users_permissions"
    __table_args__ = (UniqueConstraint("user_id", "permission_id", name="uk_user_permission"),)

    # 用户 ID（逻辑关联 users.id）。
    user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    # 权限点 ID（逻辑关联 permissions.id）。
    permission_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
