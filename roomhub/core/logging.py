"""
roomhub.core.logging
~~~~~~~~~~~~~~~~~~~~

日志初始化。Hub 自身的日志与 uvicorn 的访问日志使用同一种行格式::

    2026-01-01 12:00:00 | INFO    | roomhub.services.hub | 参与者加入 | room=ABC123 | ...

业务模块只需 ``logger = get_logger(__name__)``。
"""
from __future__ import annotations

import logging
import sys
from typing import Any

from roomhub.core.config import Settings, settings as default_settings

_LINE_FORMAT: str = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
_TIME_FORMAT: str = "%Y-%m-%d %H:%M:%S"

# 每次代理请求都会产生连接日志，默认压到 WARNING
_NOISY_LOGGERS: tuple[str, ...] = ("httpx", "httpcore")


def setup_logging(settings: Settings | None = None) -> None:
    """配置根 logger。进程启动时调用一次，重复调用会覆盖之前的配置。"""
    settings = settings or default_settings
    logging.basicConfig(
        level=settings.effective_log_level,
        format=_LINE_FORMAT,
        datefmt=_TIME_FORMAT,
        stream=sys.stdout,
        force=True,
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def uvicorn_log_config(settings: Settings | None = None) -> dict[str, Any]:
    """生成传给 ``uvicorn.run(log_config=...)`` 的 dictConfig。"""
    settings = settings or default_settings
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {"format": _LINE_FORMAT, "datefmt": _TIME_FORMAT},
        },
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "uvicorn": {"handlers": ["stdout"], "level": settings.effective_log_level, "propagate": False},
            "uvicorn.access": {"handlers": ["stdout"], "level": settings.effective_log_level, "propagate": False},
        },
    }


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
