"""
opensdk — 自動化ドライバのコマンドを Agent へレポートする SDK

主な構成:
  - ReportingDriver: 自動化クライアントにレポート機能を合成したドライバ
  - CommandInterceptor: コマンド実行の仲介とレポート生成
  - AgentClient: Agent とのセッション管理とレポート送信
  - Reporter: ステップ・テストの明示的なレポート API
"""

from __future__ import annotations

__version__ = "1.0.0"

from .agent.client import AgentClient
from .agent.session import AgentSession, Dialect
from .client import AutomationClient
from .commands import Command, CommandName, classify
from .config import SdkConfig, load_config_from_env
from .context import wait_loop
from .driver import ElementHandle, ReportingDriver
from .errors import (
    ConfigurationError,
    InvalidArgumentError,
    InvalidTokenError,
    NoSuchElementError,
    SdkError,
    SessionNotCreatedError,
    WebDriverError,
)
from .interceptor import CommandInterceptor
from .reporter import Reporter
from .settings import ScreenshotCondition, SleepTimingType, StepSettings
from .waits import wait_until

__all__ = [
    "AgentClient",
    "AgentSession",
    "AutomationClient",
    "Command",
    "CommandInterceptor",
    "CommandName",
    "ConfigurationError",
    "Dialect",
    "ElementHandle",
    "InvalidArgumentError",
    "InvalidTokenError",
    "NoSuchElementError",
    "Reporter",
    "ReportingDriver",
    "ScreenshotCondition",
    "SdkConfig",
    "SessionNotCreatedError",
    "SdkError",
    "SleepTimingType",
    "StepSettings",
    "WebDriverError",
    "__version__",
    "classify",
    "load_config_from_env",
    "wait_loop",
    "wait_until",
]
