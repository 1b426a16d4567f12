"""进程级服务启动与信号处理。"""

from collections.abc import Iterator
from contextlib import contextmanager
import logging
import math
import signal
import threading

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError
import uvicorn
from uvicorn.server import HANDLED_SIGNALS

from greenlight_api.core.config import Settings, get_settings
from greenlight_api.core.lifecycle import LifecycleCoordinator
from greenlight_api.db.session import check_connection
from greenlight_api.main import create_app

logger = logging.getLogger("greenlight_api.server")


class GracefulServer(uvicorn.Server):
    """收到 SIGINT/SIGTERM 时先切换到 draining，再交由 uvicorn 停止监听。

    第二次 SIGINT 会让 uvicorn 跳过 lifespan 收尾，此时视为强制退出。
    """

    def __init__(self, config: uvicorn.Config, coordinator: LifecycleCoordinator) -> None:
        super().__init__(config)
        self.coordinator = coordinator

    def handle_exit(self, sig, frame) -> None:
        if self.coordinator.begin_drain():
            logger.info("received signal %s, shutting down", sig)
        elif sig == signal.SIGINT and self.should_exit:
            logger.warning("received signal %s again, forcing exit", sig)
        super().handle_exit(sig, frame)

    @contextmanager
    def capture_signals(self) -> Iterator[None]:
        """接管停机信号，结束后恢复原处理函数。

        信号在这里被完整处理，停止后不再向进程重新发送，退出码由 `serve` 决定。
        """
        if threading.current_thread() is not threading.main_thread():
            yield
            return
        previous = {sig: signal.signal(sig, self.handle_exit) for sig in HANDLED_SIGNALS}
        try:
            yield
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)


def serve(settings: Settings | None = None, *, app: FastAPI | None = None) -> int:
    """运行服务直至停机，返回进程退出码。

    1. 数据库不可达：不启动，返回 1。
    2. 干净排空：返回 0。
    3. 超过截止时间或被强制退出：返回 1。
    """
    settings = settings or get_settings()
    app = app or create_app(settings)
    coordinator: LifecycleCoordinator = app.state.coordinator

    try:
        check_connection()
    except SQLAlchemyError:
        logger.exception("database unreachable, refusing to start")
        return 1

    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_config=None,
        timeout_graceful_shutdown=math.ceil(settings.shutdown_timeout_seconds),
    )
    server = GracefulServer(config, coordinator)
    logger.info("starting server addr=%s:%s env=%s", settings.host, settings.port, settings.app_env)
    server.run()

    if server.force_exit:
        logger.error("forced exit, outstanding work abandoned in_flight=%s", coordinator.in_flight)
        return 1
    if coordinator.drained_cleanly is not True:
        return 1
    return 0
