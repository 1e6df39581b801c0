"""日志配置。"""

from __future__ import annotations

import logging

# 第三方库在 DEBUG 级别下输出过多
NOISY_LOGGERS = ("PIL", "uvicorn.access")


def setup_logging(level: int = logging.INFO) -> None:
    """初始化项目日志配置。"""

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(threadName)s] %(levelname)s %(name)s: %(message)s",
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.INFO))
