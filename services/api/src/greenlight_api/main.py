"""FastAPI 应用入口点。"""

import asyncio
from contextlib import asynccontextmanager, suppress
import logging

from fastapi import FastAPI

from greenlight_api.api import metrics
from greenlight_api.api.router import api_router
from greenlight_api.core.config import Settings, get_settings
from greenlight_api.core.lifecycle import LifecycleCoordinator
from greenlight_api.core.rate_limit import RateLimiter
from greenlight_api.db.session import SessionLocal, engine
from greenlight_api.exceptions import register_exception_handlers
from greenlight_api.middlewares import register_middlewares
from greenlight_api.services.mailer import build_mailer
from greenlight_api.services.pipeline import RequestPipeline
from greenlight_api.services.tokens import run_token_purger

logger = logging.getLogger("greenlight_api.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """启动空闲桶与过期令牌的清理任务；停机时按顺序释放资源。

    释放顺序：等待在途工作排空 -> 停止清理任务 -> 关闭数据库连接池。
    """
    settings: Settings = app.state.settings
    limiter: RateLimiter = app.state.limiter
    coordinator: LifecycleCoordinator = app.state.coordinator

    sweeper = asyncio.create_task(limiter.run_sweeper(settings.limiter_sweep_interval_seconds))
    purger = asyncio.create_task(
        run_token_purger(app.state.session_factory, settings.token_purge_interval_seconds)
    )
    logger.info("service started env=%s version=%s", settings.app_env, settings.app_version)
    try:
        yield
    finally:
        drained = await coordinator.shutdown_async(settings.shutdown_timeout_seconds)
        for task in (sweeper, purger):
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        engine.dispose()
        logger.info("service stopped drained_cleanly=%s", drained)


def create_app(settings: Settings | None = None) -> FastAPI:
    """创建并配置 FastAPI 应用实例。"""
    settings = settings or get_settings()
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.app_debug,
        lifespan=lifespan,
        description=(
            "影片目录接口。\n\n"
            "所有业务接口统一返回：`{request_id, data, meta}`。\n"
            "每个请求依次经过：限流 -> 认证 -> 授权 -> 业务处理。\n"
            "通过 `Authorization: Bearer <token>` 携带认证令牌。"
        ),
        openapi_tags=[
            {"name": "health", "description": "服务状态。"},
            {"name": "users", "description": "用户注册、激活与口令重置。"},
            {"name": "tokens", "description": "认证令牌签发与作废、激活与重置邮件。"},
            {"name": "movies", "description": "影片增删改查，修改受版本号保护。"},
            {"name": "metrics", "description": "运行指标。"},
        ],
    )

    limiter = RateLimiter(
        rps=settings.limiter_rps,
        burst=settings.limiter_burst,
        enabled=settings.limiter_enabled,
        idle_retention=settings.limiter_idle_retention_seconds,
    )
    app.state.settings = settings
    app.state.limiter = limiter
    app.state.pipeline = RequestPipeline(limiter)
    app.state.coordinator = LifecycleCoordinator()
    app.state.mailer = build_mailer(settings)
    app.state.session_factory = SessionLocal

    register_middlewares(app, trusted_origins=settings.trusted_origins)
    register_exception_handlers(app)
    app.include_router(api_router, prefix=settings.api_prefix)
    app.include_router(metrics.router)
    return app


app = create_app()
