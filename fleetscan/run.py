"""
启动脚本：python -m fleetscan.run，或在 fleetscan 目录下执行 python run.py。
监听地址、端口、日志级别取自环境变量（见 config.py）。
"""
import logging
import sys
from pathlib import Path

# 直接运行本文件时，把 fleetscan 的上一级加入路径
_root = Path(__file__).resolve().parent.parent
if str(_root) not in sys.path:
    sys.path.insert(0, str(_root))

import uvicorn

from fleetscan.config import settings


def main():
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    print(f"扫码服务: http://{settings.HOST}:{settings.PORT}  文档: /docs  数据库: {settings.DATABASE_URL}")
    try:
        uvicorn.run(
            "fleetscan.main:app",
            host=settings.HOST,
            port=settings.PORT,
            reload=settings.RELOAD,
            log_level=settings.LOG_LEVEL.lower(),
        )
    except KeyboardInterrupt:
        print("\n服务已停止")
        sys.exit(0)


if __name__ == "__main__":
    main()
