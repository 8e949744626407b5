"""
実行コンテキスト — テスト名の推定と待機ループ・マーカー

テスト名・プロジェクト名・ジョブ名を環境変数から推定する。
また、ポーリング待機中に発行されたコマンドを識別するための
明示的なマーカー（ContextVar）を提供する。

環境変数一覧:
  TP_TEST_NAME    : 現在のテスト名
  TP_PROJECT_NAME : プロジェクト名
  TP_JOB_NAME     : ジョブ名
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Callable, Iterator

UNNAMED_TEST = "Unnamed Test"
UNNAMED_PROJECT = "Unnamed Project"
UNNAMED_JOB = "Unnamed Job"

TestNameProvider = Callable[[], str]


# ---------------------------------------------------------------------------
# 名前の推定
# ---------------------------------------------------------------------------

def infer_test_name() -> str:
    """現在のテスト名を推定する。"""
    return os.environ.get("TP_TEST_NAME") or UNNAMED_TEST


def infer_project_name() -> str:
    """プロジェクト名を推定する。"""
    return os.environ.get("TP_PROJECT_NAME") or UNNAMED_PROJECT


def infer_job_name() -> str:
    """ジョブ名を推定する。"""
    return os.environ.get("TP_JOB_NAME") or UNNAMED_JOB


# ---------------------------------------------------------------------------
# 待機ループ・マーカー
# ---------------------------------------------------------------------------

_wait_depth: ContextVar[int] = ContextVar("opensdk_wait_depth", default=0)


@contextmanager
def wait_loop() -> Iterator[None]:
    """ブロック内で発行されたコマンドを待機ループのコマンドとして扱う。

    ネスト可能。asyncio タスクごとに独立して管理される。

    使用例::

        with wait_loop():
            while not await driver.execute("isElementDisplayed", ...):
                await asyncio.sleep(0.1)
    """
    token = _wait_depth.set(_wait_depth.get() + 1)
    try:
        yield
    finally:
        _wait_depth.reset(token)


def in_wait_loop() -> bool:
    """現在のコンテキストが待機ループ内かどうかを返す。"""
    return _wait_depth.get() > 0
