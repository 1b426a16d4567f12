"""命令行入口：`python -m greenlight_api`。"""

import argparse
import sys

from greenlight_api.core.config import get_settings
from greenlight_api.core.logging import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="greenlight-api",
        description="Greenlight 影片目录接口服务，其余配置通过 GL_ 前缀环境变量提供。",
    )
    parser.add_argument("--version", action="store_true", help="输出版本号后退出")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    if args.version:
        print(f"Version:\t{settings.app_version}")
        return 0

    # 延迟导入：仅查看版本时不创建应用与数据库引擎。
    from greenlight_api.server import serve

    setup_logging(settings.log_level)
    return serve(settings)


if __name__ == "__main__":
    sys.exit(main())
