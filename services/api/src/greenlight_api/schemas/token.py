"""令牌签发相关请求结构。"""

from pydantic import BaseModel, Field

from greenlight_api.schemas.user import EMAIL_PATTERN


class AuthenticationTokenRequest(BaseModel):
    """使用邮箱与口令换取认证令牌。"""

    email: str = Field(min_length=5, max_length=256, pattern=EMAIL_PATTERN, description="登录邮箱。")
    password: str = Field(min_length=8, max_length=256, description="登录口令。")


class EmailOnlyRequest(BaseModel):
    """仅包含邮箱的请求体，用于重发激活邮件与申请重置口令。"""

    email: str = Field(
        min_length=5,
        max_length=256,
        pattern=EMAIL_PATTERN,
        description="账号邮箱。",
        examples=["alice@example.com"],
    )
