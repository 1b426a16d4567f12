"""用户模型。"""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from greenlight_api.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, VersionedMixin


class User(Base, UUIDPrimaryKeyMixin, TimestampMixin, VersionedMixin):
    """注册用户。"""

    __tablename__ = "users"

    # 展示名。
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    # 登录邮箱，系统内全局唯一。
    email: Mapped[str] = mapped_column(String(256), nullable=False, unique=True)
    # 口令哈希，不存明文。
    password_hash: Mapped[str] = mapped_column(String(256), nullable=False)
    # 是否已通过激活令牌完成激活。
    activated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    @property
    def is_anonymous(self) -> bool:
        return False


class AnonymousUser:
    """未携带凭据的请求主体。"""

    id = None
    activated = False

    @property
    def is_anonymous(self) -> bool:
        return True

    def __repr__(self) -> str:
        return "AnonymousUser()"


ANONYMOUS_USER = AnonymousUser()
