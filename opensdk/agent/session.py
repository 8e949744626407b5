"""
AgentSession — Agent が生成した開発セッションの情報
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping


class Dialect(enum.Enum):
    """ドライバのプロトコル方言。"""

    W3C = "W3C"
    OSS = "OSS"

    @classmethod
    def parse(cls, value: str) -> Dialect:
        """Agent の応答値から方言を判定する。W3C 以外は旧方言として扱う。"""
        return cls.W3C if str(value).upper() == "W3C" else cls.OSS


@dataclass(frozen=True)
class AgentSession:
    """開発セッション。生成後は変更しない。

    Attributes:
        remote_address: ドライバサーバーのアドレス
        session_id: セッション ID
        dialect: プロトコル方言
        capabilities: Agent が返したケイパビリティ
    """

    remote_address: str
    session_id: str
    dialect: Dialect = Dialect.W3C
    capabilities: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "capabilities", MappingProxyType(dict(self.capabilities))
        )

    @property
    def is_w3c(self) -> bool:
        return self.dialect is Dialect.W3C
