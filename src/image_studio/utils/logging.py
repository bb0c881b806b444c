"""日志配置。"""

from __future__ import annotations

import logging

NOISY_LOGGERS = ("PIL",)


def setup_logging(level: int = logging.INFO) -> None:
    """初始化项目日志配置，Pillow 插件的调试日志保持在 INFO 以上。"""

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(processName)s] %(levelname)s %(name)s: %(message)s",
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.INFO))
