"""
roomhub.schemas.participant
~~~~~~~~~~~~~~~~~~~~~~~~~~~

参与者相关的 Pydantic 模型与构造工具。

参与者即一个注册到房间的 OpenAI 兼容推理端点（Ollama、LM Studio 等）。
"""
from __future__ import annotations

import uuid
from typing import Literal

from pydantic import BaseModel, Field

from roomhub.schemas.common import CamelModel, now_ms

ParticipantStatus = Literal["online", "busy", "offline"]


class GenerationConfig(BaseModel):
    """默认采样参数，字段名与 OpenAI Chat Completions 请求一致。"""

    temperature: float | None = Field(default=None, ge=0, le=2)
    top_p: float | None = Field(default=None, ge=0, le=1)
    max_tokens: int | None = None
    stop: list[str] | None = None
    frequency_penalty: float | None = Field(default=None, ge=-2, le=2)
    presence_penalty: float | None = Field(default=None, ge=-2, le=2)
    seed: int | None = None


class MachineSpecs(BaseModel):
    """参与者机器的硬件信息，仅用于展示。"""

    gpu: str | None = None
    vram: float | None = None
    ram: float | None = None
    cpu: str | None = None


class ParticipantInfo(CamelModel):
    """房间内的一个参与者。"""

    id: str = Field(..., description="调用方指定的参与者 ID，房间内唯一")
    nickname: str = Field(..., description="昵称")
    model: str = Field(..., description="后端实际模型名")
    endpoint: str = Field(..., description="参与者 OpenAI 兼容服务的根地址")
    specs: MachineSpecs = Field(default_factory=MachineSpecs)
    generation_config: GenerationConfig = Field(default_factory=GenerationConfig, alias="config")
    status: ParticipantStatus = "online"
    joined_at: int = Field(default_factory=now_ms)
    last_seen: int = Field(default_factory=now_ms, description="最近一次心跳时间戳（毫秒）")


class LlmMetrics(CamelModel):
    """一次生成的性能指标。"""

    tokens: int
    latency_first_token_ms: float
    duration_ms: float
    tokens_per_second: float


def create_participant(
    nickname: str,
    model: str,
    endpoint: str,
    specs: MachineSpecs | None = None,
    config: GenerationConfig | None = None,
    participant_id: str | None = None,
) -> ParticipantInfo:
    """构造一个 online 状态的新参与者，未指定 ID 时自动生成。"""
    now = now_ms()
    return ParticipantInfo(
        id=participant_id or uuid.uuid4().hex,
        nickname=nickname,
        model=model,
        endpoint=endpoint,
        specs=specs or MachineSpecs(),
        generation_config=config or GenerationConfig(),
        status="online",
        joined_at=now,
        last_seen=now,
    )


def merge_config(
    base: GenerationConfig,
    overrides: GenerationConfig | dict | None = None,
) -> GenerationConfig:
    """合并采样参数，``overrides`` 中显式设置的字段覆盖 ``base``。"""
    if overrides is None:
        return base.model_copy()
    if isinstance(overrides, dict):
        overrides = GenerationConfig.model_validate(overrides)
    return base.model_copy(update=overrides.model_dump(exclude_unset=True))
