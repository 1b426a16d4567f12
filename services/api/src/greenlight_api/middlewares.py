"""应用中间件注册。"""

from time import perf_counter
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from greenlight_api.core.errors import ServiceUnavailableError
from greenlight_api.utils.response import service_error_response


async def request_id_middleware(request: Request, call_next):
    """注入请求追踪 ID，并通过响应头返回。"""
    request.state.request_id = str(uuid.uuid4())
    request.state.request_started_at = perf_counter()
    response = await call_next(request)
    response.headers["X-Request-Id"] = request.state.request_id
    elapsed = perf_counter() - request.state.request_started_at
    response.headers["X-Process-Time-Ms"] = str(round(elapsed * 1000, 2))
    return response


async def in_flight_middleware(request: Request, call_next):
    """登记在途请求；停机排空阶段直接拒绝新请求。"""
    coordinator = request.app.state.coordinator
    try:
        with coordinator.track_request():
            return await call_next(request)
    except ServiceUnavailableError as exc:
        # 路由内的业务异常已由异常处理器转换为响应，能到达这里的只有准入拒绝。
        return service_error_response(request, exc, extra_headers={"Connection": "close"})


def register_middlewares(app: FastAPI, *, trusted_origins: list[str] | None = None) -> None:
    """集中注册中间件。

    后注册的中间件位于外层：请求 ID 最先生成，其次登记在途请求。
    """
    if trusted_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=trusted_origins,
            allow_methods=["OPTIONS", "GET", "POST", "PUT", "PATCH", "DELETE"],
            allow_headers=["Authorization", "Content-Type", "X-Expected-Version"],
        )
    app.middleware("http")(in_flight_middleware)
    app.middleware("http")(request_id_middleware)
