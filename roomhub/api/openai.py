"""
roomhub.api.openai
~~~~~~~~~~~~~~~~~~

房间级 OpenAI 兼容接口。任何 OpenAI SDK 把 ``base_url`` 指向
``http://<hub>/rooms/{code}/v1`` 即可使用房间内的所有参与者。

端点:
  - ``GET  /rooms/{code}/v1/models``            → 在线参与者列表
  - ``POST /rooms/{code}/v1/chat/completions``  → 代理到选中的参与者
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from roomhub.api.deps import get_hub
from roomhub.schemas.openai import ChatCompletionRequest, ModelListResponse
from roomhub.services.hub import Hub

router: APIRouter = APIRouter()


@router.get("/rooms/{code}/v1/models", summary="列出可用模型", response_model=ModelListResponse)
async def list_models(code: str, hub: Hub = Depends(get_hub)):
    """每个在线参与者作为一个模型返回，模型 ID 即参与者 ID。"""
    return hub.list_models(code)


@router.post("/rooms/{code}/v1/chat/completions", summary="Chat Completions 代理")
async def chat_completions(code: str, body: ChatCompletionRequest, hub: Hub = Depends(get_hub)):
    """按 ``model`` 选择器选出参与者并转发请求。

    ``stream: true`` 时以 ``text/event-stream`` 逐块透传上游输出，
    否则返回上游的完整 JSON 及其状态码。
    """
    return await hub.proxy_chat_completion(code, body)
