"""数据库会话管理。"""

from collections.abc import Generator, Iterator
from contextlib import contextmanager
import logging
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from greenlight_api.core.config import Settings, get_settings
from greenlight_api.core.errors import InternalError, OperationTimeoutError, ServiceError

logger = logging.getLogger("greenlight_api.db")

# PostgreSQL 语句被 statement_timeout 取消时的 SQLSTATE。
QUERY_CANCELED_SQLSTATE = "57014"


def _connect_args(settings: Settings) -> dict[str, Any]:
    """为 PostgreSQL 连接设置语句级超时，其他方言不做处理。"""
    if not settings.database_url.startswith("postgresql"):
        return {}
    timeout_ms = int(settings.db_operation_timeout_seconds * 1000)
    return {
        "options": f"-c statement_timeout={timeout_ms}",
        "connect_timeout": max(1, int(settings.db_operation_timeout_seconds)),
    }


def _pool_args(settings: Settings) -> dict[str, Any]:
    """连接池容量与复用时长；SQLite 使用单连接池，不接受这些参数。"""
    if settings.database_url.startswith("sqlite"):
        return {}
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_recycle": int(settings.db_pool_recycle),
    }


def build_engine(settings: Settings) -> Engine:
    """按配置创建数据库引擎，开启连接预检查以减少僵尸连接影响。"""
    return create_engine(
        settings.database_url,
        future=True,
        pool_pre_ping=True,
        connect_args=_connect_args(settings),
        **_pool_args(settings),
    )


settings = get_settings()

# 全局数据库引擎。
engine = build_engine(settings)
# 统一会话工厂，路由层通过依赖注入获取短生命周期会话。
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, class_=Session)


def is_statement_timeout(exc: BaseException) -> bool:
    """判断异常是否由语句超时引起。"""
    if not isinstance(exc, OperationalError):
        return False
    original = getattr(exc, "orig", None)
    return getattr(original, "sqlstate", None) == QUERY_CANCELED_SQLSTATE


@contextmanager
def storage_errors() -> Iterator[None]:
    """将存储层异常转换为业务错误类型。

    1. 语句超时 -> OperationTimeoutError。
    2. 其他数据库异常 -> InternalError。
    业务错误原样透传，不做二次包装。
    """
    try:
        yield
    except ServiceError:
        raise
    except SQLAlchemyError as exc:
        if is_statement_timeout(exc):
            logger.warning("database statement exceeded deadline")
            raise OperationTimeoutError() from exc
        logger.exception("database operation failed")
        raise InternalError() from exc


def get_db() -> Generator[Session, None, None]:
    """为每个请求提供独立数据库会话。"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_connection(target: Engine | None = None) -> None:
    """启动前确认数据库可达，连接失败直接抛出异常。"""
    with (target or engine).connect() as conn:
        conn.execute(text("select 1"))


def pool_stats(target: Engine | None = None) -> dict[str, Any]:
    """连接池运行状态，供指标接口展示。"""
    pool = (target or engine).pool
    stats: dict[str, Any] = {"pool": type(pool).__name__, "status": pool.status()}
    for name in ("size", "checkedin", "checkedout", "overflow"):
        method = getattr(pool, name, None)
        if callable(method):
            stats[name] = method()
    return stats
