"""
リダクション — パスワード入力値をレポートから除去する

キー入力系コマンドの対象要素がパスワード / セキュアテキスト入力欄かどうかを
プラットフォームごとのヒューリスティクスで判定し、該当する場合は
レポート用パラメータの入力値を固定のマスクに置き換える。

判定ルール:
  - Android ネイティブアプリ（platformName=android かつ browserName なし）:
    属性 "password" が "true"
  - それ以外（Web / iOS）:
    属性 "type" が "password" または "XCUIElementTypeSecureTextField"

属性の照会に失敗した場合は「秘匿対象ではない」とみなす（フェイルオープン）。
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Mapping

from .commands import Command

logger = logging.getLogger(__name__)

MASKED_TEXT = "***"
MASKED_KEYS = ["*", "*", "*"]

_SECURE_TYPES = ("password", "XCUIElementTypeSecureTextField")

# (element_id, attribute_name) → 属性値
AttributeQuery = Callable[[str, str], Awaitable[Any]]


class RedactionEngine:
    """キー入力コマンドのパラメータをマスクするエンジン。

    属性の照会はドライバ経由のサイドチャネルで行う（照会コマンド自体は報告しない）。
    """

    def __init__(
        self,
        query_attribute: AttributeQuery,
        capabilities: Mapping[str, Any],
    ) -> None:
        """RedactionEngine を初期化する。

        Args:
            query_attribute: 要素属性を取得するコルーチン関数
            capabilities: セッションのケイパビリティ（プラットフォーム判定用）
        """
        self._query_attribute = query_attribute
        self._capabilities = capabilities

    async def redact(self, command: Command) -> Command:
        """必要に応じて入力値をマスクしたコマンドを返す。

        引数のコマンドは変更せず、マスクはコピーに対して行う。
        キー入力系以外のコマンドはそのまま返す。

        Args:
            command: レポート対象のコマンド

        Returns:
            マスク済み（または元のままの）コマンド
        """
        if not command.descriptor.redactable:
            return command

        element_id = command.element_id or command.get_parameter("id")
        if not element_id:
            return command

        if not await self.redaction_required(str(element_id)):
            return command

        redacted = command.snapshot()
        redacted.set_parameter("text", MASKED_TEXT)
        redacted.set_parameter("value", list(MASKED_KEYS))
        logger.debug("要素 %s への入力値をマスクしました", element_id)
        return redacted

    async def redaction_required(self, element_id: str) -> bool:
        """要素がパスワード入力欄かどうかを判定する。"""
        platform = str(self._capabilities.get("platformName") or "").lower()
        browser = self._capabilities.get("browserName")

        if platform == "android" and not browser:
            value = await self._safe_query(element_id, "password")
            return isinstance(value, str) and value.lower() == "true"

        value = await self._safe_query(element_id, "type")
        return isinstance(value, str) and value in _SECURE_TYPES

    async def _safe_query(self, element_id: str, name: str) -> Any:
        # 照会失敗はフェイルオープン（秘匿対象外）
        try:
            return await self._query_attribute(element_id, name)
        except Exception as exc:
            logger.warning(
                "要素 %s の属性 '%s' を取得できませんでした（マスクしません）: %s",
                element_id, name, exc,
            )
            return None
