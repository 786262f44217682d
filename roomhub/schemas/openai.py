"""
roomhub.schemas.openai
~~~~~~~~~~~~~~~~~~~~~~

OpenAI 兼容接口的请求/响应模型。

``model`` 字段在 Hub 中被当作参与者选择器使用:
  - ``*`` / ``any``      → 任意在线参与者
  - ``model:<name>``     → 运行指定模型的在线参与者
  - 其它                 → 参与者 ID，未命中再按模型名匹配
"""
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ModelMetadata(BaseModel):
    """模型条目上附带的房间元数据。"""

    nickname: str
    model: str
    endpoint: str


class ModelCard(BaseModel):
    """``/v1/models`` 中的单个条目，每个在线参与者对应一条。"""

    id: str
    object: Literal["model"] = "model"
    created: int = Field(..., description="加入时间（秒级时间戳）")
    owned_by: str
    roomhub: ModelMetadata


class ModelListResponse(BaseModel):
    object: Literal["list"] = "list"
    data: list[ModelCard]


class ChatCompletionRequest(BaseModel):
    """Chat Completions 请求体。未声明的字段原样透传给上游。"""

    model_config = ConfigDict(extra="allow")

    model: str = ""
    messages: list[dict[str, Any]] = Field(default_factory=list)
    stream: bool = False
