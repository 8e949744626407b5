"""
ステップ設定 — コマンド実行前後の挙動を制御する設定値

インターセプタが各コマンドの実行前後に参照する。
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


class SleepTimingType(enum.Enum):
    """スリープのタイミング。"""

    NONE = "None"
    BEFORE = "Before"
    AFTER = "After"


class ScreenshotCondition(enum.Enum):
    """スクリーンショットを添付する条件。"""

    FAILURE = "Failure"
    SUCCESS = "Success"
    ALWAYS = "Always"
    NEVER = "Never"


@dataclass
class StepSettings:
    """コマンド単位の実行設定。

    Attributes:
        sleep_time: スリープ時間（ミリ秒）
        sleep_timing_type: スリープのタイミング（コマンド実行前 / 後）
        timeout: 暗黙的待機のタイムアウト（ミリ秒）。0 以下で変更しない
        invert_result: True でコマンドの成否を反転してレポートする
        screenshot_condition: スクリーンショットを添付する条件
    """

    sleep_time: int = 0
    sleep_timing_type: SleepTimingType = SleepTimingType.NONE
    timeout: int = -1
    invert_result: bool = False
    screenshot_condition: ScreenshotCondition = ScreenshotCondition.FAILURE

    def resolve_passed(self, passed: bool) -> bool:
        """invert_result を考慮したレポート上の成否を返す。"""
        return not passed if self.invert_result else passed

    def should_take_screenshot(self, passed: bool) -> bool:
        """実際の実行結果に対してスクリーンショットが必要かを判定する。

        Args:
            passed: 反転前の実行結果
        """
        condition = self.screenshot_condition
        if condition is ScreenshotCondition.ALWAYS:
            return True
        if condition is ScreenshotCondition.FAILURE:
            return not passed
        if condition is ScreenshotCondition.SUCCESS:
            return passed
        return False

    def sleep_seconds(self, timing: SleepTimingType) -> float:
        """指定タイミングで必要なスリープ秒数を返す（不要なら 0）。"""
        if self.sleep_time <= 0 or self.sleep_timing_type is not timing:
            return 0.0
        return self.sleep_time / 1000.0
