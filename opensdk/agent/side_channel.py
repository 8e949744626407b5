"""
サイドチャネル — Agent との開発用 TCP 接続

セッションの生存期間中だけ保持する補助的な TCP 接続。
プロセス全体のシングルトンではなく、AgentClient ごとに 1 つ所有する。
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)

_PROBE = b"test"


class SideChannel:
    """Agent 開発ソケットへの TCP 接続。"""

    def __init__(self) -> None:
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._address: Optional[tuple[str, int]] = None

    @property
    def address(self) -> Optional[tuple[str, int]]:
        return self._address

    @property
    def is_open(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    async def open(self, host: str, port: int, timeout: float = 10.0) -> None:
        """ソケットを接続する。既に接続済みなら何もしない。

        Raises:
            OSError: 接続できなかった場合
            asyncio.TimeoutError: タイムアウトした場合
        """
        if self.is_open:
            logger.debug("サイドチャネルは既に接続済みです: %s", self._address)
            return

        self._reader, self._writer = await asyncio.wait_for(
            asyncio.open_connection(host, port), timeout=timeout,
        )
        self._address = (host, port)
        logger.debug("サイドチャネルに接続しました: %s:%d", host, port)

    async def is_connected(self) -> bool:
        """プローブを書き込んで接続状態を確認する。"""
        if not self.is_open:
            return False
        assert self._writer is not None
        try:
            self._writer.write(_PROBE)
            await self._writer.drain()
            return True
        except (ConnectionError, OSError) as exc:
            logger.error("サイドチャネルが切断されています: %s", exc)
            return False

    async def close(self) -> None:
        """ソケットを閉じる。閉じ済みなら何もしない。"""
        writer = self._writer
        if writer is None:
            return

        self._writer = None
        self._reader = None
        writer.close()
        try:
            await writer.wait_closed()
        except (ConnectionError, OSError) as exc:
            logger.debug("サイドチャネルのクローズ中にエラー: %s", exc)
        logger.debug("サイドチャネルを閉じました: %s", self._address)
