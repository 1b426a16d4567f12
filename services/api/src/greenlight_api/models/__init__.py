"""ORM 模型导出集合。"""

from greenlight_api.models.movie import Movie
from greenlight_api.models.permission import Permission, UserPermission
from greenlight_api.models.token import Token
from greenlight_api.models.user import ANONYMOUS_USER, AnonymousUser, User

__all__ = [
    "ANONYMOUS_USER",
    "AnonymousUser",
    "Movie",
    "Permission",
    "Token",
    "User",
    "UserPermission",
]
