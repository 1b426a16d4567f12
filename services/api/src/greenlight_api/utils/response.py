"""响应包裹结构。

成功：`{request_id, data, meta}`；失败：`{request_id, error: {code, message, details}}`。
"""

from datetime import datetime, timezone
from time import perf_counter
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from greenlight_api.core.errors import ServiceError


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _elapsed_ms(request: Request) -> int | None:
    started_at = getattr(request.state, "request_started_at", None)
    if not isinstance(started_at, float):
        return None
    return int((perf_counter() - started_at) * 1000)


def success(request: Request, data: Any, meta: dict[str, Any] | None = None) -> dict[str, Any]:
    """包装成功响应。"""
    return {
        "request_id": getattr(request.state, "request_id", None),
        "data": data,
        "meta": {"timestamp": _now_iso(), "process_ms": _elapsed_ms(request), **(meta or {})},
    }


def error_payload(
    request: Request,
    *,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """包装错误响应，details 中固定带上请求方法与路径便于排查。"""
    return {
        "request_id": getattr(request.state, "request_id", None),
        "error": {
            "code": code,
            "message": message,
            "details": {
                "method": request.method.upper(),
                "path": request.url.path,
                "timestamp": _now_iso(),
                **(details or {}),
            },
        },
    }


def service_error_response(
    request: Request,
    exc: ServiceError,
    *,
    extra_headers: dict[str, str] | None = None,
) -> JSONResponse:
    """把业务错误转换为响应，保留错误自带的响应头（如 Retry-After）。"""
    headers = {**(exc.headers or {}), **(extra_headers or {})}
    return JSONResponse(
        status_code=exc.status_code,
        content=error_payload(request, code=exc.code, message=exc.message, details=exc.details),
        headers=headers or None,
    )
