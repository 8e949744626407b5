"""
待機戦略 — 条件が満たされるまでポーリングする

ポーリング中に発行されたコマンドは待機ループのコマンドとして扱われ、
毎回レポートされることはない（最後の 1 件だけがループ後にレポートされる）。
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, TypeVar

from .context import wait_loop

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def wait_until(
    condition: Callable[[], Awaitable[T]],
    timeout: int = 5000,
    poll_interval: int = 100,
    message: str = "",
) -> T:
    """condition() が真値を返すまで待機する。

    ポーリング間隔ごとに condition() を呼び、真値が返ればその値を返す。
    condition() が送出した例外は「未達」として扱い、ポーリングを続ける。

    Args:
        condition: 判定用のコルーチン関数
        timeout: タイムアウト（ミリ秒、デフォルト: 5000）
        poll_interval: ポーリング間隔（ミリ秒、デフォルト: 100）
        message: タイムアウト時のエラーメッセージに付加する説明

    Returns:
        condition() が返した真値

    Raises:
        TimeoutError: タイムアウト時間内に条件が満たされなかった場合
    """
    start = time.perf_counter()
    deadline_sec = timeout / 1000.0
    last_error: Exception | None = None

    with wait_loop():
        while True:
            try:
                value = await condition()
                if value:
                    logger.debug(
                        "条件が満たされました（%.0fms 経過）",
                        (time.perf_counter() - start) * 1000,
                    )
                    return value
            except Exception as exc:
                last_error = exc
                logger.debug("条件の判定中にエラー: %s", exc)

            if time.perf_counter() - start >= deadline_sec:
                detail = f": {message}" if message else ""
                raise TimeoutError(
                    f"条件が {timeout}ms 以内に満たされませんでした{detail}"
                ) from last_error

            await asyncio.sleep(poll_interval / 1000.0)
