"""响应包裹结构的文档模型，用于在线接口文档展示。"""

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class BaseSchema(BaseModel):
    """基础结构，允许直接从 ORM 对象取值。"""

    model_config = ConfigDict(from_attributes=True)


class ErrorBody(BaseSchema):
    """错误主体。"""

    code: str = Field(description="稳定错误码，例如 RATE_LIMITED、EDIT_CONFLICT、ACCOUNT_NOT_ACTIVATED。")
    message: str = Field(description="人类可读错误信息。")
    details: dict[str, Any] = Field(default_factory=dict, description="请求方法、路径以及错误上下文。")


class ErrorResponse(BaseSchema):
    """失败响应。"""

    request_id: str | None = Field(default=None, description="请求追踪 ID，与 X-Request-Id 响应头一致。")
    error: ErrorBody


class SuccessResponse(BaseSchema, Generic[T]):
    """成功响应。"""

    request_id: str | None = Field(default=None, description="请求追踪 ID，与 X-Request-Id 响应头一致。")
    data: T
    meta: dict[str, Any] = Field(default_factory=dict, description="时间戳与处理耗时。")
