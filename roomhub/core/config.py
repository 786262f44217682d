"""
roomhub.core.config
~~~~~~~~~~~~~~~~~~~

Hub 运行参数，基于 pydantic-settings 从环境变量与 ``.env`` 文件读取。

同名参数的来源优先级（高 → 低）:
  1. 进程环境变量
  2. ``.env.{ENVIRONMENT}``
  3. ``.env``
  4. 字段默认值

所有时间参数以毫秒为单位，与线上 JSON 中的时间戳保持一致；
唯一的例外是 ``PROXY_CONNECT_TIMEOUT``（秒），直接交给 httpx。
"""
from __future__ import annotations

import os
from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# 决定额外加载哪个 .env.{env} 文件，必须在 Settings 定义前读取
_ENV_NAME: str = os.getenv("ENVIRONMENT", "dev")

# 连续错过多少次心跳后判定参与者离线
MISSED_HEARTBEATS_BEFORE_OFFLINE: int = 3

_DEFAULT_LOG_LEVELS: dict[str, str] = {
    "dev": "INFO",
    "test": "DEBUG",
    "prod": "WARNING",
}


class Settings(BaseSettings):
    """Hub 配置。每个 ``create_app()`` 可以使用不同的实例。"""

    # ── 应用 ──────────────────────────────────────────────────────────
    PROJECT_NAME: str = Field(default="roomhub", description="OpenAPI 文档中的服务名")
    VERSION: str = Field(default="0.1.0")
    ENVIRONMENT: Literal["dev", "test", "prod"] = Field(default="dev", description="dev / test / prod")

    # ── 监听 ──────────────────────────────────────────────────────────
    HOST: str = Field(default="0.0.0.0", description="局域网内其它设备需要能访问到 Hub")
    PORT: int = Field(default=3000, ge=0, le=65535)
    LOG_LEVEL: str | None = Field(default=None, description="留空时按运行环境推断")

    # ── 心跳 / 存活 ───────────────────────────────────────────────────
    HEALTH_CHECK_INTERVAL_MS: int = Field(
        default=10_000,
        gt=0,
        description="巡检周期，参与者也按此周期上报心跳",
    )
    PARTICIPANT_TIMEOUT_MS: int | None = Field(
        default=None,
        gt=0,
        description="超过该时长未心跳即判定离线；留空为巡检周期的 3 倍",
    )

    # ── SSE ───────────────────────────────────────────────────────────
    SSE_QUEUE_SIZE: int = Field(default=256, gt=0, description="单个订阅者最多积压的事件帧数")

    # ── 代理 ──────────────────────────────────────────────────────────
    PROXY_CONNECT_TIMEOUT: float = Field(
        default=10.0,
        gt=0,
        description="连接参与者推理服务的超时（秒）。生成可能很慢，读取不设超时",
    )

    # ── 房间密码 ──────────────────────────────────────────────────────
    BCRYPT_ROUNDS: int = Field(default=12, ge=4, le=31)

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENV_NAME}", ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @model_validator(mode="after")
    def check_timeout_covers_interval(self) -> Settings:
        if self.PARTICIPANT_TIMEOUT_MS is not None and self.PARTICIPANT_TIMEOUT_MS < self.HEALTH_CHECK_INTERVAL_MS:
            raise ValueError("PARTICIPANT_TIMEOUT_MS must not be shorter than HEALTH_CHECK_INTERVAL_MS")
        return self

    @property
    def is_prod(self) -> bool:
        return self.ENVIRONMENT == "prod"

    @property
    def debug(self) -> bool:
        """FastAPI debug 模式与 uvicorn 热重载只在 dev 环境开启。"""
        return self.ENVIRONMENT == "dev"

    @property
    def reload(self) -> bool:
        return self.debug

    @property
    def effective_log_level(self) -> str:
        if self.LOG_LEVEL:
            return self.LOG_LEVEL.upper()
        return _DEFAULT_LOG_LEVELS.get(self.ENVIRONMENT, "INFO")

    @property
    def participant_timeout_ms(self) -> int:
        if self.PARTICIPANT_TIMEOUT_MS is not None:
            return self.PARTICIPANT_TIMEOUT_MS
        return self.HEALTH_CHECK_INTERVAL_MS * MISSED_HEARTBEATS_BEFORE_OFFLINE


@lru_cache
def get_settings() -> Settings:
    """进程级默认配置（只解析一次 .env）。"""
    return Settings()


settings: Settings = get_settings()
