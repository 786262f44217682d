"""
roomhub.schemas.common
~~~~~~~~~~~~~~~~~~~~~~

所有对外 JSON 模型共用的基类与工具。
"""
from __future__ import annotations

import time

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def now_ms() -> int:
    """当前 Unix 时间戳（毫秒）。"""
    return int(time.time() * 1000)


class CamelModel(BaseModel):
    """Python 侧使用 snake_case，序列化到线上时使用 camelCase 键名。"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
