"""请求上下文依赖。

职责:
1. 按客户端地址执行限流。
2. 解析 Bearer 令牌并映射为本地 User（未携带凭据时为匿名用户）。
3. 按权限码授权。

三者通过 Depends 串联：授权依赖认证，认证依赖限流，
因此任何路由都无法绕过或调换这一顺序。
"""

from uuid import UUID

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from greenlight_api.core.config import Settings
from greenlight_api.core.lifecycle import LifecycleCoordinator
from greenlight_api.db.session import get_db
from greenlight_api.models.user import AnonymousUser, User
from greenlight_api.services.mailer import Mailer
from greenlight_api.services.permissions import require_authenticated
from greenlight_api.services.pipeline import RequestPipeline


def get_app_settings(request: Request) -> Settings:
    """返回应用实例绑定的配置。"""
    return request.app.state.settings


def get_pipeline(request: Request) -> RequestPipeline:
    """返回应用实例绑定的准入流水线。"""
    return request.app.state.pipeline


def get_coordinator(request: Request) -> LifecycleCoordinator:
    """返回应用实例绑定的生命周期协调器。"""
    return request.app.state.coordinator


def get_mailer(request: Request) -> Mailer:
    """返回应用实例绑定的邮件投递实现。"""
    return request.app.state.mailer


def client_identity(request: Request, settings: Settings) -> str:
    """解析限流使用的客户端标识。

    仅在显式信任代理时读取转发头，否则任何客户端都能伪造地址绕过限流。
    """
    if settings.limiter_trust_proxy_headers:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            first_hop = forwarded.split(",")[0].strip()
            if first_hop:
                return first_hop
        real_ip = request.headers.get("X-Real-IP")
        if real_ip and real_ip.strip():
            return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def enforce_rate_limit(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    pipeline: RequestPipeline = Depends(get_pipeline),
) -> None:
    """准入第一步：限流。"""
    pipeline.check_rate_limit(client_identity(request, settings))


def authenticate_request(
    request: Request,
    _: None = Depends(enforce_rate_limit),
    authorization: str | None = Header(default=None),
    db: Session = Depends(get_db),
    pipeline: RequestPipeline = Depends(get_pipeline),
) -> User | AnonymousUser:
    """准入第二步：认证。结果写入 request.state.user 供后续环节复用。"""
    user = pipeline.authenticate(db, authorization)
    request.state.user = user
    return user


def get_authenticated_user(user: User | AnonymousUser = Depends(authenticate_request)) -> User:
    """仅要求已登录，不校验激活与权限。"""
    return require_authenticated(user)


def requires_permission(code: str):
    """按权限码做路由级授权（准入第三步）。"""

    def _dep(
        request: Request,
        user: User | AnonymousUser = Depends(authenticate_request),
        db: Session = Depends(get_db),
        pipeline: RequestPipeline = Depends(get_pipeline),
    ) -> User:
        # 权限集合只在单个请求内缓存。
        cache: dict[UUID, frozenset[str]] | None = getattr(request.state, "permission_cache", None)
        if cache is None:
            cache = {}
            request.state.permission_cache = cache
        return pipeline.authorize(db, user, code, cache=cache)

    return _dep
