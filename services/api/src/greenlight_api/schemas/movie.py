"""影片请求结构与字段校验。"""

from datetime import datetime, timezone

from pydantic import BaseModel, Field, field_validator

MIN_MOVIE_YEAR = 1888
MAX_TITLE_BYTES = 500
MAX_GENRES = 5


def _check_title(value: str) -> str:
    if not value.strip():
        raise ValueError("must be provided")
    if len(value.encode("utf-8")) > MAX_TITLE_BYTES:
        raise ValueError(f"must not be more than {MAX_TITLE_BYTES} bytes long")
    return value


def _check_year(value: int) -> int:
    if value < MIN_MOVIE_YEAR:
        raise ValueError(f"must be greater than or equal to {MIN_MOVIE_YEAR}")
    if value > datetime.now(timezone.utc).year:
        raise ValueError("must not be in the future")
    return value


def _check_genres(value: list[str]) -> list[str]:
    if not value:
        raise ValueError("must contain at least 1 genre")
    if len(value) > MAX_GENRES:
        raise ValueError(f"must not contain more than {MAX_GENRES} genres")
    if len(set(value)) != len(value):
        raise ValueError("must not contain duplicate values")
    return value


class MovieCreateRequest(BaseModel):
    """创建影片请求体。"""

    title: str = Field(description="片名。", examples=["Moana"])
    year: int = Field(description="上映年份。", examples=[2016])
    runtime: int = Field(gt=0, description="片长（分钟）。", examples=[107])
    genres: list[str] = Field(description="类型标签，1 到 5 个且不重复。", examples=[["animation", "adventure"]])

    @field_validator("title")
    @classmethod
    def check_title(cls, value: str) -> str:
        return _check_title(value)

    @field_validator("year")
    @classmethod
    def check_year(cls, value: int) -> int:
        return _check_year(value)

    @field_validator("genres")
    @classmethod
    def check_genres(cls, value: list[str]) -> list[str]:
        return _check_genres(value)


class MovieUpdateRequest(BaseModel):
    """局部更新影片请求体，未出现的字段保持不变。"""

    title: str | None = Field(default=None, description="片名。")
    year: int | None = Field(default=None, description="上映年份。")
    runtime: int | None = Field(default=None, gt=0, description="片长（分钟）。")
    genres: list[str] | None = Field(default=None, description="类型标签。")
    version: int | None = Field(
        default=None,
        ge=1,
        description="客户端读取时的版本号；也可通过 X-Expected-Version 请求头提交。",
    )

    @field_validator("title")
    @classmethod
    def check_title(cls, value: str | None) -> str | None:
        return None if value is None else _check_title(value)

    @field_validator("year")
    @classmethod
    def check_year(cls, value: int | None) -> int | None:
        return None if value is None else _check_year(value)

    @field_validator("genres")
    @classmethod
    def check_genres(cls, value: list[str] | None) -> list[str] | None:
        return None if value is None else _check_genres(value)
