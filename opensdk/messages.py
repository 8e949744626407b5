"""
メッセージ定義 — Agent と送受信するペイロード

主な構成:
  - CustomTestReport / StepReport / DriverCommandReport: レポートのペイロード
  - ReportSettings: レポート設定（プロジェクト名・ジョブ名等）
  - SessionRequest / SessionResponse: セッション開始の要求・応答
"""

from __future__ import annotations

import base64
import enum
import json
import uuid
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .commands import Command
from .config import INTERNAL_CAPABILITY_PREFIX


# ---------------------------------------------------------------------------
# レポートのペイロード
# ---------------------------------------------------------------------------

@dataclass
class CustomTestReport:
    """テスト 1 件分のレポート。

    Attributes:
        name: テスト名
        passed: 成否
        message: 付随メッセージ
    """

    name: str
    passed: bool = True
    message: Optional[str] = None

    def to_json(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "passed": self.passed,
            "message": self.message,
        }


@dataclass
class StepReport:
    """ステップ 1 件分のレポート。guid は生成時に採番される。"""

    description: str
    message: Optional[str] = None
    passed: bool = True
    screenshot: Optional[str] = None
    guid: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_json(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "guid": self.guid,
            "description": self.description,
            "message": self.message,
            "passed": self.passed,
        }
        if self.screenshot:
            payload["screenshot"] = self.screenshot
        return payload


@dataclass
class DriverCommandReport:
    """ドライバコマンド 1 件分のレポート。

    Attributes:
        command: 実行したコマンド（リダクション済み）
        result: コマンドの結果（任意の値）
        passed: 成否（invert_result 適用後）
        screenshot: Base64 エンコードされたスクリーンショット
    """

    command: Command
    result: Any = None
    passed: bool = True
    screenshot: Optional[str] = None

    @property
    def command_name(self) -> str:
        return self.command.name

    def to_json(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "commandName": self.command.name,
            "commandParameters": json_safe(self.command.report_parameters()),
            "result": json_safe(self.result),
            "passed": self.passed,
        }
        # スクリーンショットは指定時のみ含める
        if self.screenshot:
            payload["screenshot"] = self.screenshot
        return payload


# ---------------------------------------------------------------------------
# JSON 互換への変換
# ---------------------------------------------------------------------------

def _json_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    return str(value)


def json_safe(value: Any) -> Any:
    """値を JSON 互換に変換する。

    bytes は Base64 文字列に、その他の変換できない値は str() にする。
    """
    return json.loads(json.dumps(value, default=_json_default))


# ---------------------------------------------------------------------------
# レポート設定
# ---------------------------------------------------------------------------

class ReportType(str, enum.Enum):
    """レポートの出力先。"""

    CLOUD_AND_LOCAL = "CLOUD_AND_LOCAL"
    LOCAL = "LOCAL"
    CLOUD_ONLY = "CLOUD_ONLY"


class ReportSettings(BaseModel):
    """Agent に送るレポート設定。"""

    projectName: str = Field(..., description="プロジェクト名")
    jobName: str = Field(..., description="ジョブ名")
    reportType: ReportType = Field(default=ReportType.CLOUD_AND_LOCAL, description="出力先")
    reportName: str = Field(default="", description="ローカルレポートのファイル名")
    reportPath: str = Field(default="", description="ローカルレポートの出力先")

    @field_validator("projectName", "jobName")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("空の名前は指定できません")
        return v


# ---------------------------------------------------------------------------
# セッション要求・応答
# ---------------------------------------------------------------------------

def sanitize_capabilities(capabilities: Mapping[str, Any]) -> dict[str, Any]:
    """SDK 内部用（_tp で始まる）キーを除いたケイパビリティを返す。"""
    return {
        key: value
        for key, value in capabilities.items()
        if not key.startswith(INTERNAL_CAPABILITY_PREFIX)
    }


class SessionRequest(BaseModel):
    """セッション開始要求。"""

    language: str = "Python"
    sdkVersion: str
    capabilities: dict[str, Any] = Field(default_factory=dict)
    projectName: str
    jobName: str
    reportType: ReportType = ReportType.CLOUD_AND_LOCAL
    reportName: str = ""
    reportPath: str = ""

    @classmethod
    def build(
        cls,
        settings: ReportSettings,
        capabilities: Mapping[str, Any],
        sdk_version: str,
    ) -> SessionRequest:
        return cls(
            sdkVersion=sdk_version,
            capabilities=sanitize_capabilities(capabilities),
            projectName=settings.projectName,
            jobName=settings.jobName,
            reportType=settings.reportType,
            reportName=settings.reportName,
            reportPath=settings.reportPath,
        )

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class SessionResponse(BaseModel):
    """セッション開始応答。未知のフィールドは無視する。"""

    model_config = ConfigDict(extra="ignore")

    devSocketPort: int
    serverAddress: str
    sessionId: str
    dialect: str = "W3C"
    capabilities: dict[str, Any] = Field(default_factory=dict)
    agentVersion: Optional[str] = None
