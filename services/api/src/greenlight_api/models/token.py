"""令牌模型。"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, LargeBinary, String
from sqlalchemy.orm import Mapped, mapped_column

from greenlight_api.models.base import Base


class Token(Base):
    """令牌指纹记录。

    只保存明文的 SHA-256 指纹，明文在签发后即丢弃。
    """

    __tablename__ = "tokens"

    # 令牌指纹，作为主键直接命中。
    hash: Mapped[bytes] = mapped_column(LargeBinary(32), primary_key=True)
    # 令牌归属用户 ID（逻辑关联 users.id，不声明数据库外键）。
    user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    # 过期时间（UTC）。
    expiry: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # 令牌用途（activation/authentication/password-reset）。
    scope: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
