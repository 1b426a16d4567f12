"""影片模型。"""

from sqlalchemy import JSON, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from greenlight_api.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, VersionedMixin


class Movie(Base, UUIDPrimaryKeyMixin, TimestampMixin, VersionedMixin):
    """影片记录，修改受版本号保护。"""

    __tablename__ = "movies"

    # 片名。
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    # 上映年份。
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    # 片长（分钟）。
    runtime: Mapped[int] = mapped_column(Integer, nullable=False)
    # 类型标签列表。
    genres: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
