"""乐观并发控制。

写入以单条条件更新完成：
`UPDATE ... SET ..., version = version + 1 WHERE id = :id AND version = :presented`。
命中 0 行时先做过存在性检查，因此可以区分“版本冲突”与“资源不存在”。
冲突时不做自动重试，由调用方重新读取后自行决定。
"""

import logging
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from greenlight_api.core.errors import EditConflictError, InternalError, NotFoundError
from greenlight_api.db.session import storage_errors

logger = logging.getLogger("greenlight_api.versioning")


def _resource_exists(db: Session, model: type, resource_id: Any) -> bool:
    with storage_errors():
        return db.execute(select(model.id).where(model.id == resource_id)).first() is not None


def check_and_apply(
    db: Session,
    model: type,
    *,
    resource_id: Any,
    presented_version: int,
    values: dict[str, Any],
) -> int:
    """按调用方提交的版本号执行条件更新，返回新版本号。

    `model` 需要具备 `id` 与 `version` 两列。
    """
    if "version" in values:
        raise ValueError("version is managed by check_and_apply and must not be set explicitly")

    if not _resource_exists(db, model, resource_id):
        raise NotFoundError()

    stmt = (
        update(model)
        .where(model.id == resource_id)
        .where(model.version == presented_version)
        .values(**values, version=model.version + 1)
        .execution_options(synchronize_session=False)
    )
    with storage_errors():
        result = db.execute(stmt)
    matched = result.rowcount

    if matched == 1:
        new_version = presented_version + 1
        # 同步会话中已加载对象的状态，避免后续读到旧值。
        instance = db.identity_map.get(db.identity_key(model, resource_id))
        if instance is not None:
            db.expire(instance)
        return new_version

    if matched == 0:
        # 两次访问之间记录可能已被删除。
        if not _resource_exists(db, model, resource_id):
            raise NotFoundError()
        logger.info(
            "edit conflict table=%s id=%s presented_version=%s",
            getattr(model, "__tablename__", model.__name__),
            resource_id,
            presented_version,
        )
        raise EditConflictError(details={"presented_version": presented_version})

    logger.error(
        "conditional update matched unexpected row count table=%s id=%s rows=%s",
        getattr(model, "__tablename__", model.__name__),
        resource_id,
        matched,
    )
    raise InternalError()
