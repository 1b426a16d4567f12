"""进程生命周期协调。

状态流转：running -> draining -> stopped。

1. running：接收新请求，允许派发后台任务。
2. draining：拒绝新请求；已受理请求与后台任务继续执行直至完成。
3. stopped：等待在途计数归零或到达硬性截止时间后进入，不再派发任何任务。

在途计数同时覆盖 HTTP 请求与后台任务，后台任务必须经 `dispatch` 派发，
否则停机时无法等待其完成。
"""

import asyncio
import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from enum import StrEnum
from threading import Condition, Thread
from typing import Any

from greenlight_api.core.errors import ServiceUnavailableError

logger = logging.getLogger("greenlight_api.lifecycle")


class LifecycleState(StrEnum):
    """生命周期状态。"""

    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"


class LifecycleCoordinator:
    """跟踪在途请求与后台任务，并协调优雅停机。"""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._cond = Condition()
        self._in_flight = 0
        self._state = LifecycleState.RUNNING
        self._drain_started_at: float | None = None
        self.drained_cleanly: bool | None = None

    @property
    def state(self) -> LifecycleState:
        with self._cond:
            return self._state

    @property
    def in_flight(self) -> int:
        with self._cond:
            return self._in_flight

    def _acquire(self, *, allow_draining: bool) -> None:
        with self._cond:
            if self._state is LifecycleState.STOPPED:
                raise ServiceUnavailableError()
            if self._state is LifecycleState.DRAINING and not allow_draining:
                raise ServiceUnavailableError()
            self._in_flight += 1

    def _release(self) -> None:
        with self._cond:
            self._in_flight -= 1
            if self._in_flight <= 0:
                self._cond.notify_all()

    @contextmanager
    def track_request(self) -> Iterator[None]:
        """登记一个在途请求，draining 之后的新请求直接拒绝。"""
        self._acquire(allow_draining=False)
        try:
            yield
        finally:
            self._release()

    def dispatch(self, fn: Callable[..., Any], /, *args: Any, name: str | None = None, **kwargs: Any) -> Thread:
        """派发后台任务。

        draining 期间仍允许派发：已受理的请求在收尾阶段可能需要追加任务（例如发送邮件）。
        任务内任何异常都会被捕获并记录，在途计数在 finally 中恰好递减一次。
        """
        task_name = name or getattr(fn, "__name__", "task")
        self._acquire(allow_draining=True)

        def _run() -> None:
            try:
                fn(*args, **kwargs)
            except Exception:
                logger.exception("background task failed name=%s", task_name)
            finally:
                self._release()

        thread = Thread(target=_run, name=f"background-{task_name}", daemon=True)
        try:
            thread.start()
        except RuntimeError:
            # 线程未能启动，_run 不会执行，需在此归还计数。
            self._release()
            raise
        return thread

    def begin_drain(self) -> bool:
        """进入 draining 状态；重复调用无副作用。"""
        with self._cond:
            if self._state is not LifecycleState.RUNNING:
                return False
            self._state = LifecycleState.DRAINING
            self._drain_started_at = self._clock()
            outstanding = self._in_flight
        logger.info("shutdown started, draining in_flight=%s", outstanding)
        return True

    def wait_idle(self, timeout: float | None = None) -> bool:
        """等待在途计数归零，返回是否在超时前归零。"""
        with self._cond:
            return self._cond.wait_for(lambda: self._in_flight <= 0, timeout=timeout)

    def shutdown(self, timeout: float) -> bool:
        """阻塞直至全部在途工作完成或截止时间到达。

        截止时间从进入 draining 的时刻开始计算，返回值表示是否干净排空。
        """
        self.begin_drain()
        with self._cond:
            if self._state is LifecycleState.STOPPED:
                return bool(self.drained_cleanly)
            started_at = self._drain_started_at if self._drain_started_at is not None else self._clock()
            remaining = max(0.0, started_at + timeout - self._clock())
            drained = self._cond.wait_for(lambda: self._in_flight <= 0, timeout=remaining)
            self._state = LifecycleState.STOPPED
            outstanding = self._in_flight
            self.drained_cleanly = drained

        if drained:
            logger.info("shutdown drain completed")
        else:
            logger.error("shutdown deadline exceeded, abandoning outstanding=%s", outstanding)
        return drained

    async def shutdown_async(self, timeout: float) -> bool:
        """在线程中执行 shutdown，避免阻塞事件循环。"""
        return await asyncio.to_thread(self.shutdown, timeout)
