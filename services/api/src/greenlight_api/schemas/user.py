"""用户注册、激活与重置口令请求结构。"""

from pydantic import BaseModel, Field, field_validator

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
TOKEN_PATTERN = r"^[A-Z2-7]{26}$"


def _check_password_bytes(value: str) -> str:
    # PBKDF2 对长度不敏感，但仍限制上限，避免超长口令拖慢哈希。
    if len(value.encode("utf-8")) > 72:
        raise ValueError("must not be more than 72 bytes long")
    return value


class UserRegisterRequest(BaseModel):
    """注册请求体。"""

    name: str = Field(min_length=1, max_length=500, description="展示名。", examples=["Alice Smith"])
    email: str = Field(
        min_length=5,
        max_length=256,
        pattern=EMAIL_PATTERN,
        description="登录邮箱。",
        examples=["alice@example.com"],
    )
    password: str = Field(min_length=8, description="登录口令，8 到 72 字节。", examples=["pa55word"])

    @field_validator("name")
    @classmethod
    def check_name_bytes(cls, value: str) -> str:
        if len(value.encode("utf-8")) > 500:
            raise ValueError("must not be more than 500 bytes long")
        return value

    @field_validator("password")
    @classmethod
    def check_password(cls, value: str) -> str:
        return _check_password_bytes(value)


class UserActivateRequest(BaseModel):
    """激活请求体。"""

    token: str = Field(pattern=TOKEN_PATTERN, description="邮件中收到的激活令牌。")


class PasswordResetRequest(BaseModel):
    """重置口令请求体。"""

    token: str = Field(pattern=TOKEN_PATTERN, description="邮件中收到的重置令牌。")
    password: str = Field(min_length=8, description="新口令，8 到 72 字节。")

    @field_validator("password")
    @classmethod
    def check_password(cls, value: str) -> str:
        return _check_password_bytes(value)
