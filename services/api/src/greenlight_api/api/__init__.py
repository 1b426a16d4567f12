"""路由模块导出集合。"""

from . import health, metrics, movies, tokens, users

__all__ = [
    "health",
    "metrics",
    "movies",
    "tokens",
    "users",
]
