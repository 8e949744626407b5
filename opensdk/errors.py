"""
例外定義 — SDK が送出するエラーの分類

主な構成:
  - SdkError: 全 SDK 例外の基底クラス
  - ConfigurationError: 設定エラー（セッション開始前に同期的に送出）
  - SessionNotCreatedError: Agent とのセッション確立失敗
  - WebDriverError / NoSuchElementError: プロトコルレベルのコマンドエラー

レポート送信の失敗やリダクション用の属性照会の失敗は例外として
呼び出し元へ伝播させない（ログ出力のみ）。
"""

from __future__ import annotations

from typing import Optional


class SdkError(Exception):
    """SDK 例外の基底クラス。"""


# ---------------------------------------------------------------------------
# 設定エラー
# ---------------------------------------------------------------------------

class ConfigurationError(SdkError):
    """設定値が不正な場合のエラー。"""


class InvalidTokenError(ConfigurationError):
    """開発者トークンが未設定または空の場合のエラー。"""


class InvalidArgumentError(ConfigurationError):
    """プロジェクト名・ジョブ名などの引数が不正な場合のエラー。"""


# ---------------------------------------------------------------------------
# セッションエラー
# ---------------------------------------------------------------------------

class SessionNotCreatedError(SdkError):
    """Agent とのセッションを確立できなかった場合のエラー。"""


# ---------------------------------------------------------------------------
# コマンドエラー
# ---------------------------------------------------------------------------

class WebDriverError(SdkError):
    """レスポンス内のエラーペイロードから生成されるコマンドエラー。

    Attributes:
        error: プロトコルのエラーコード（"no such element" 等）
        command_name: 失敗したコマンド名
    """

    def __init__(
        self,
        message: str,
        *,
        error: str = "unknown error",
        command_name: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error = error
        self.command_name = command_name


class NoSuchElementError(WebDriverError):
    """要素が見つからなかった場合のエラー。"""


__all__ = [
    "ConfigurationError",
    "InvalidArgumentError",
    "InvalidTokenError",
    "NoSuchElementError",
    "SdkError",
    "SessionNotCreatedError",
    "WebDriverError",
]
