"""应用异常处理注册。

1. ServiceError：保留具体错误码与响应头，不改写为通用错误。
2. 其他 HTTPException（路由不存在、方法不允许等）：按状态码补全错误码。
3. 请求体校验失败：逐字段列出错误。
4. 未捕获异常：记录堆栈，对外只返回通用错误。
"""

import logging

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from greenlight_api.core.errors import InternalError, ServiceError, ValidationFailedError
from greenlight_api.utils.response import error_payload, service_error_response

logger = logging.getLogger("greenlight_api.exceptions")

# 非业务 HTTPException 的默认错误码与提示。
_HTTP_ERROR_DEFAULTS: dict[int, tuple[str, str]] = {
    status.HTTP_400_BAD_REQUEST: ("BAD_REQUEST", "请求参数不合法。"),
    status.HTTP_401_UNAUTHORIZED: ("UNAUTHORIZED", "未登录或访问令牌已失效。"),
    status.HTTP_403_FORBIDDEN: ("FORBIDDEN", "无权限访问该资源。"),
    status.HTTP_404_NOT_FOUND: ("NOT_FOUND", "请求资源不存在。"),
    status.HTTP_405_METHOD_NOT_ALLOWED: ("METHOD_NOT_ALLOWED", "该资源不支持此请求方法。"),
}


async def service_error_handler(request: Request, exc: ServiceError):
    """业务错误：错误码、上下文与响应头原样输出。"""
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("request failed code=%s method=%s path=%s", exc.code, request.method, request.url.path)
    else:
        logger.info("request rejected code=%s method=%s path=%s", exc.code, request.method, request.url.path)
    return service_error_response(request, exc)


async def http_exception_handler(request: Request, exc: HTTPException):
    """框架抛出的协议错误。"""
    code, message = _HTTP_ERROR_DEFAULTS.get(exc.status_code, ("HTTP_ERROR", "请求处理失败。"))
    if isinstance(exc.detail, str) and exc.detail and exc.detail not in {"Not Found", "Method Not Allowed"}:
        message = exc.detail
    return JSONResponse(
        status_code=exc.status_code,
        content=error_payload(request, code=code, message=message),
        headers=exc.headers,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """请求参数校验失败，与业务校验失败使用同一错误码。"""
    errors = [
        {
            "field": ".".join(str(item) for item in err.get("loc", ()) if item not in {"body", "query", "path"}),
            "message": err.get("msg"),
            "type": err.get("type"),
        }
        for err in exc.errors()
    ]
    return service_error_response(request, ValidationFailedError(details={"errors": errors}))


async def unexpected_exception_handler(request: Request, exc: Exception):
    """未捕获异常只记录日志，响应中不暴露内部细节。"""
    logger.exception("unhandled exception method=%s path=%s", request.method, request.url.path)
    return service_error_response(request, InternalError())


def register_exception_handlers(app: FastAPI) -> None:
    """集中注册异常处理器。"""
    app.exception_handler(ServiceError)(service_error_handler)
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(Exception)(unexpected_exception_handler)
