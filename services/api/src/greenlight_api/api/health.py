"""健康检查接口。"""

from fastapi import APIRouter, Depends, Request, status

from greenlight_api.core.config import Settings
from greenlight_api.dependencies import get_app_settings
from greenlight_api.schemas.common import ErrorResponse, SuccessResponse
from greenlight_api.schemas.responses import HealthStatusData
from greenlight_api.utils.response import success

router = APIRouter(tags=["health"])


@router.get(
    "/healthcheck",
    summary="服务状态",
    description="返回服务状态、运行环境与版本号，不校验外部依赖。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[HealthStatusData],
    responses={429: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
def healthcheck(request: Request, settings: Settings = Depends(get_app_settings)):
    """仅表示进程可用。"""
    return success(
        request,
        {"status": "available", "environment": settings.app_env, "version": settings.app_version},
    )
