"""
Reporter — アプリケーションコードから呼び出す明示的なレポート API

主な機能:
  - step(): ステップレポートの送信（スクリーンショット添付可）
  - test(): テストレポートの送信

3 つの独立したスイッチを持つ:
  - disable_reports: 全レポートを無効化
  - disable_command_reports: ドライバコマンドの自動レポートを無効化
  - disable_test_auto_reports: テストの自動レポートを無効化
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

from .context import TestNameProvider, infer_test_name
from .messages import CustomTestReport, StepReport

if TYPE_CHECKING:
    from .agent.client import AgentClient

logger = logging.getLogger(__name__)

ScreenshotFn = Callable[[], Awaitable[Any]]


class Reporter:
    """ステップ・テストの明示的なレポートを Agent へ送る。"""

    def __init__(
        self,
        agent_client: AgentClient,
        screenshot: ScreenshotFn,
        *,
        on_activity: Optional[Callable[[], None]] = None,
        test_name_provider: TestNameProvider = infer_test_name,
        disable_reports: bool = False,
        disable_auto_reports: bool = False,
    ) -> None:
        """Reporter を初期化する。

        Args:
            agent_client: レポートの投入先
            screenshot: スクリーンショットを取得するコルーチン関数
            on_activity: step() の前に呼ぶフック（テスト境界の判定用）
            test_name_provider: test() で名前省略時に使うテスト名の推定関数
            disable_reports: 全レポートを無効化するか
            disable_auto_reports: テスト・コマンドの自動レポートを無効化するか
        """
        self._agent_client = agent_client
        self._screenshot = screenshot
        self._on_activity = on_activity
        self._test_name_provider = test_name_provider

        self.disable_reports = disable_reports
        self.disable_command_reports = disable_auto_reports
        self.disable_test_auto_reports = disable_auto_reports

    @property
    def command_reports_enabled(self) -> bool:
        """ドライバコマンドを自動レポートする状態かどうか。"""
        return not (self.disable_reports or self.disable_command_reports)

    async def step(
        self,
        description: str,
        message: Optional[str] = None,
        passed: bool = True,
        screenshot: bool = False,
    ) -> None:
        """ステップレポートを送信する。

        Args:
            description: ステップの説明
            message: 付随メッセージ
            passed: 成否
            screenshot: True でスクリーンショットを添付する
        """
        if self._on_activity is not None:
            self._on_activity()

        if self.disable_reports:
            logger.debug("Step %s %s", description, "passed" if passed else "failed")
            return

        screenshot_data: Optional[str] = None
        if screenshot:
            screenshot_data = await self._take_screenshot()

        self._agent_client.report_step(
            StepReport(
                description=description,
                message=message,
                passed=passed,
                screenshot=screenshot_data,
            )
        )

    def test(
        self,
        name: Optional[str] = None,
        passed: bool = True,
        message: Optional[str] = None,
    ) -> None:
        """テストレポートを送信する。

        Args:
            name: テスト名（省略時は推定値）
            passed: 成否
            message: 付随メッセージ
        """
        if self.disable_reports:
            logger.debug("Test %s - [%s]", name, "Passed" if passed else "Failed")
            return

        test_name = name if name is not None else self._test_name_provider()
        self._agent_client.report_test(CustomTestReport(test_name, passed, message))

    async def _take_screenshot(self) -> Optional[str]:
        # スクリーンショット取得コマンド自体はレポートしない
        previous = self.disable_command_reports
        self.disable_command_reports = True
        try:
            data = await self._screenshot()
        except Exception as exc:
            logger.warning("ステップ用のスクリーンショットを取得できませんでした: %s", exc)
            return None
        finally:
            self.disable_command_reports = previous
        return data if isinstance(data, str) else None
