"""运行指标接口。"""

import threading
import time

from fastapi import APIRouter, Depends, Request

from greenlight_api.core.config import Settings
from greenlight_api.core.lifecycle import LifecycleCoordinator
from greenlight_api.db.session import pool_stats
from greenlight_api.dependencies import authenticate_request, get_app_settings, get_coordinator
from greenlight_api.schemas.common import ErrorResponse, SuccessResponse
from greenlight_api.schemas.responses import MetricsData
from greenlight_api.utils.response import success

# 挂载在根路径而非接口前缀下，同样先经过限流与认证。
router = APIRouter(tags=["metrics"], dependencies=[Depends(authenticate_request)])


@router.get(
    "/debug/vars",
    summary="运行指标",
    description="返回版本号、线程数、在途工作数、限流客户端数、连接池状态与当前时间戳。",
    response_model=SuccessResponse[MetricsData],
    responses={429: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
def debug_vars(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    coordinator: LifecycleCoordinator = Depends(get_coordinator),
):
    return success(
        request,
        {
            "version": settings.app_version,
            "threads": threading.active_count(),
            "in_flight": coordinator.in_flight,
            "lifecycle": coordinator.state.value,
            "rate_limited_clients": len(request.app.state.limiter),
            "database": pool_stats(),
            "timestamp": int(time.time()),
        },
    )
