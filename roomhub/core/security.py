"""
roomhub.core.security
~~~~~~~~~~~~~~~~~~~~~

房间密码保护 —— 基于 bcrypt 的加盐慢哈希。

bcrypt 每次哈希自动生成随机盐，且成本因子可调，
即使哈希值泄露也难以离线暴力破解。
"""
from __future__ import annotations

import bcrypt

# bcrypt 只使用密码的前 72 个字节
_BCRYPT_MAX_BYTES: int = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(password: str, rounds: int = 12) -> str:
    """生成密码的 bcrypt 哈希。

    Args:
        password: 明文密码。
        rounds: bcrypt 成本因子。

    Returns:
        ``$2b$...`` 格式的哈希字符串。
    """
    return bcrypt.hashpw(_encode(password), bcrypt.gensalt(rounds=rounds)).decode("ascii")


def verify_password(password: str, hashed: str) -> bool:
    """校验明文密码是否与哈希匹配。哈希格式非法时视为不匹配。"""
    try:
        return bcrypt.checkpw(_encode(password), hashed.encode("ascii"))
    except ValueError:
        return False


class PasswordGuard:
    """房间加入时的密码校验策略。

    - 房间未设置密码 → 任何加入请求都放行（包括未提供密码）
    - 房间设置了密码 → 未提供密码直接拒绝，否则校验哈希
    """

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds

    def hash(self, password: str) -> str:
        return hash_password(password, rounds=self.rounds)

    def verify(self, password: str, hashed: str) -> bool:
        return verify_password(password, hashed)

    def check(self, hashed: str | None, supplied: str | None) -> bool:
        """按房间密码策略判断是否允许加入。

        Args:
            hashed: 房间保存的密码哈希，``None`` 表示未加密。
            supplied: 加入者提供的密码。
        """
        if not hashed:
            return True
        if not supplied:
            return False
        return self.verify(supplied, hashed)
