"""顶层路由注册。"""

from fastapi import APIRouter, Depends

from greenlight_api.dependencies import authenticate_request

from . import health, movies, tokens, users

# 所有接口统一先经过限流与认证（authenticate_request 依赖 enforce_rate_limit），
# 授权由各路由按权限码声明。
api_router = APIRouter(dependencies=[Depends(authenticate_request)])

# 固定注册顺序，便于在线接口文档展示和问题定位。
api_router.include_router(health.router)
api_router.include_router(users.router)
api_router.include_router(tokens.router)
api_router.include_router(movies.router)
