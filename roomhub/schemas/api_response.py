"""
roomhub.schemas.api_response
~~~~~~~~~~~~~~~~~~~~~~~~~~~~

通用应答体。

错误统一返回 ``{"error": "..."}``，无数据的成功操作返回 ``{"success": true}``，
与现有 CLI / 仪表盘客户端保持兼容。
"""
from __future__ import annotations

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """错误应答体。"""

    error: str = Field(..., description="人类可读的错误描述")


class SuccessResponse(BaseModel):
    """无返回数据的成功应答体。"""

    success: bool = Field(default=True, description="操作是否成功")


class HealthResponse(BaseModel):
    """Hub 存活检查应答体。"""

    status: str = Field(default="ok", description="服务状态")
    timestamp: int = Field(..., description="服务端当前时间戳（毫秒）")
