"""
roomhub.api.deps
~~~~~~~~~~~~~~~~

路由层共享依赖。
"""
from fastapi import Request

from roomhub.services.hub import Hub


def get_hub(request: Request) -> Hub:
    """取出 ``create_app()`` 挂载在 ``app.state`` 上的 Hub。"""
    return request.app.state.hub
