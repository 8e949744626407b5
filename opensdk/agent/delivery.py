"""
レポート送信キュー — Agent へのレポートを順序通りに非同期送信する

push() は即座に戻り、単一のワーカータスクがアイテムを FIFO で取り出して
Agent へ POST する。送信に失敗したアイテムはログに記録して破棄する（再送しない）。
drain() はキューが空になり、送信中の POST もなくなるまで待機する。
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

# ログに出すペイロードの最大長
_LOG_PAYLOAD_LIMIT = 256


@dataclass(frozen=True)
class QueueItem:
    """送信待ちのレポート。

    Attributes:
        payload: JSON ペイロード
        url: 送信先 URL
        token: 認証トークン
        endpoint: エンドポイント種別（ログ用）
    """

    payload: Any
    url: str
    token: Optional[str]
    endpoint: str


class ReportQueue:
    """並行度 1 の順序保証付き送信キュー。"""

    def __init__(self, http: httpx.AsyncClient) -> None:
        """ReportQueue を初期化する。

        Args:
            http: POST に使用する HTTP クライアント
        """
        self._http = http
        self._queue: asyncio.Queue[QueueItem] = asyncio.Queue()
        self._worker: Optional[asyncio.Task[None]] = None
        self._pending = 0
        self._delivered = 0
        self._failed = 0

    # -------------------------------------------------------------------
    # パブリック API
    # -------------------------------------------------------------------

    @property
    def pending(self) -> int:
        """未処理（送信中を含む）のアイテム数。"""
        return self._pending

    @property
    def delivered(self) -> int:
        return self._delivered

    @property
    def failed(self) -> int:
        return self._failed

    def push(self, item: QueueItem) -> None:
        """アイテムを追加する。送信完了は待たない。"""
        self._queue.put_nowait(item)
        self._pending += 1
        self._ensure_worker()

    async def drain(self) -> None:
        """キューが空になり送信中の POST もなくなるまで待機する。"""
        if self.pending:
            logger.debug("レポートキューの送信完了を待機しています（残り %d 件）", self.pending)
            self._ensure_worker()
        await self._queue.join()

    async def close(self) -> None:
        """キューを排出してからワーカーを停止する。"""
        await self.drain()
        worker, self._worker = self._worker, None
        if worker is not None and not worker.done():
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass

    # -------------------------------------------------------------------
    # ワーカー
    # -------------------------------------------------------------------

    def _ensure_worker(self) -> None:
        if self._worker is not None and not self._worker.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # イベントループ外からの push は次の push / drain で送信する
            return
        self._worker = loop.create_task(self._run(), name="opensdk-report-queue")

    async def _run(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                await self._send(item)
            except Exception:
                self._failed += 1
                logger.exception("レポート送信中に予期しないエラーが発生しました: %s", item.url)
            finally:
                self._pending -= 1
                self._queue.task_done()

    async def _send(self, item: QueueItem) -> None:
        body = json.dumps(item.payload, default=str)
        if len(body) > _LOG_PAYLOAD_LIMIT:
            body = f"{body[:_LOG_PAYLOAD_LIMIT]}..."
        logger.debug("Agent へ POST します: %s\n%s", item.endpoint, body)

        headers = {"Authorization": item.token} if item.token else {}
        try:
            response = await self._http.post(item.url, json=item.payload, headers=headers)
        except httpx.HTTPError as exc:
            self._failed += 1
            logger.error("%s へのレポート送信に失敗しました: %s", item.url, exc)
            return

        if response.is_success:
            self._delivered += 1
            return

        self._failed += 1
        logger.error(
            "%s へのレポート送信がエラーを返しました: %d %s",
            item.url, response.status_code, agent_error_message(response),
        )


def agent_error_message(response: httpx.Response) -> str:
    """Agent のエラー応答からメッセージを取り出す。"""
    try:
        data = response.json()
    except ValueError:
        return response.text
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return response.text
