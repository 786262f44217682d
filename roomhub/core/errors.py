"""
roomhub.core.errors
~~~~~~~~~~~~~~~~~~~

Hub 业务异常体系。

服务层只抛出 ``HubError`` 子类，由 ``roomhub.main`` 中注册的异常处理器
统一翻译为 ``{"error": "..."}`` 格式的 JSON 应答。
"""
from __future__ import annotations


class HubError(Exception):
    """所有业务异常的基类。

    Attributes:
        message: 返回给客户端的错误描述。
        status_code: 对应的 HTTP 状态码。
    """

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(HubError):
    """请求缺少必填字段或格式错误。"""

    status_code = 400


class AuthError(HubError):
    """房间密码缺失或错误。"""

    status_code = 401


class NotFound(HubError):
    """房间、参与者或路由不存在。"""

    status_code = 404


class NoAvailableParticipant(NotFound):
    """没有任何参与者匹配请求的模型选择器。"""

    def __init__(self, message: str = "No available participant for the requested model") -> None:
        super().__init__(message)


class Unavailable(HubError):
    """目标存在但当前无法提供服务。"""

    status_code = 503


class ParticipantOffline(Unavailable):
    """选中的参与者不处于 online 状态（离线或正忙）。"""

    def __init__(self, message: str = "Participant is offline") -> None:
        super().__init__(message)


class ProxyFailure(HubError):
    """无法连接参与者的推理服务，或上游在传输中途断开。"""

    status_code = 502
