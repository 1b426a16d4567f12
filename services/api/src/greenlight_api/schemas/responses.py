"""接口成功响应 `data` 字段结构定义。

说明：
1. 所有业务接口统一返回 `SuccessResponse[data=...]`。
2. 本文件专注于定义各接口在 `data` 中的业务字段。
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field

from greenlight_api.schemas.common import BaseSchema


class HealthStatusData(BaseSchema):
    """健康检查返回结构。"""

    status: str = Field(description="服务状态，正常为 available。")
    environment: str = Field(description="运行环境标识。")
    version: str = Field(description="服务版本号。")


class MetricsData(BaseSchema):
    """运行指标快照。"""

    version: str = Field(description="服务版本号。")
    threads: int = Field(description="当前存活线程数，含后台任务线程。")
    in_flight: int = Field(description="在途请求与后台任务总数。")
    lifecycle: str = Field(description="生命周期状态。")
    rate_limited_clients: int = Field(description="限流器当前跟踪的客户端数。")
    database: dict[str, Any] = Field(description="连接池状态。")
    timestamp: int = Field(description="Unix 时间戳（秒）。")


class UserData(BaseSchema):
    """用户公开信息，不含口令哈希与版本号。"""

    id: UUID = Field(description="用户 ID。")
    created_at: datetime = Field(description="注册时间。")
    name: str = Field(description="展示名。")
    email: str = Field(description="登录邮箱。")
    activated: bool = Field(description="是否已激活。")


class AuthenticationTokenData(BaseSchema):
    """认证令牌签发结果，明文只在此返回一次。"""

    token: str = Field(description="令牌明文，以 `Authorization: Bearer <token>` 方式携带。")
    expiry: datetime = Field(description="过期时间（UTC）。")


class AcceptedData(BaseSchema):
    """异步受理结果。"""

    message: str = Field(description="受理说明。")


class LogoutData(BaseSchema):
    """登出结果。"""

    revoked_tokens: int = Field(description="本次作废的认证令牌数量。")


class MovieData(BaseSchema):
    """影片详情。"""

    id: UUID = Field(description="影片 ID。")
    created_at: datetime = Field(description="创建时间。")
    title: str = Field(description="片名。")
    year: int = Field(description="上映年份。")
    runtime: int = Field(description="片长（分钟）。")
    genres: list[str] = Field(description="类型标签。")
    version: int = Field(description="当前版本号，修改时需原样提交。")


class DeletedData(BaseSchema):
    """删除结果。"""

    id: UUID = Field(description="被删除资源 ID。")
    deleted: bool = Field(description="是否已删除。")
