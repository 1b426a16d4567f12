"""业务错误类型。

所有错误均继承 HTTPException，由全局异常处理器统一包装为
`{request_id, error: {code, message, details}}` 结构。
错误内容只包含类别与上下文，不得携带令牌明文或口令。
"""

import math
from typing import Any

from fastapi import HTTPException, status


class ServiceError(HTTPException):
    """带稳定错误码的业务异常基类。"""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"
    message: str = "服务器内部错误。"

    def __init__(
        self,
        message: str | None = None,
        *,
        details: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.message = message or type(self).message
        self.details = details or {}
        super().__init__(
            status_code=type(self).status_code,
            detail={"code": self.code, "message": self.message, "details": self.details},
            headers=headers,
        )

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class RateLimitedError(ServiceError):
    """请求超出限流配额（429）。"""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "RATE_LIMITED"
    message = "请求过于频繁，请稍后重试。"

    def __init__(self, retry_after: float) -> None:
        self.retry_after = retry_after
        # Retry-After 只接受整数秒，向上取整避免客户端过早重试。
        header_value = str(max(1, math.ceil(retry_after)))
        super().__init__(
            details={"retry_after_seconds": round(retry_after, 3)},
            headers={"Retry-After": header_value},
        )


class AuthenticationFailedError(ServiceError):
    """令牌无效、过期或格式错误（401）。"""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "INVALID_AUTHENTICATION_TOKEN"
    message = "访问令牌无效或已过期。"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class InvalidCredentialsError(ServiceError):
    """邮箱或口令不正确（401）。"""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "INVALID_CREDENTIALS"
    message = "邮箱或口令不正确。"


class UnauthenticatedError(ServiceError):
    """接口需要登录但未携带凭据（401）。"""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "AUTHENTICATION_REQUIRED"
    message = "该接口需要登录后访问。"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class ForbiddenError(ServiceError):
    """已识别身份但缺少所需权限（403）。"""

    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"
    message = "无权限执行该操作。"


class InactiveAccountError(ForbiddenError):
    """账号尚未激活（403，独立错误码便于前端引导激活）。"""

    code = "ACCOUNT_NOT_ACTIVATED"
    message = "账号尚未激活，请先完成激活。"


class NotFoundError(ServiceError):
    """资源不存在（404）。"""

    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    message = "请求资源不存在。"


class EditConflictError(ServiceError):
    """提交的版本号已过期（409）。"""

    status_code = status.HTTP_409_CONFLICT
    code = "EDIT_CONFLICT"
    message = "资源已被其他请求修改，请重新获取后再试。"


class ValidationFailedError(ServiceError):
    """业务字段校验失败（422）。"""

    status_code = status.HTTP_422_UNPROCESSABLE_CONTENT
    code = "VALIDATION_ERROR"
    message = "请求参数校验失败。"


class OperationTimeoutError(ServiceError):
    """外部依赖操作超过截止时间（504）。"""

    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    code = "TIMEOUT"
    message = "依赖服务响应超时，请稍后重试。"


class InternalError(ServiceError):
    """非预期失败，例如存储不可用（500）。"""


class ServiceUnavailableError(ServiceError):
    """服务正在停机，不再接收新请求（503）。"""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "SERVICE_UNAVAILABLE"
    message = "服务正在停机维护，请稍后重试。"


__all__ = [
    "AuthenticationFailedError",
    "EditConflictError",
    "ForbiddenError",
    "InactiveAccountError",
    "InternalError",
    "InvalidCredentialsError",
    "NotFoundError",
    "OperationTimeoutError",
    "RateLimitedError",
    "ServiceError",
    "ServiceUnavailableError",
    "UnauthenticatedError",
    "ValidationFailedError",
]
