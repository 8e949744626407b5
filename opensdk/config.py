"""
SDK 設定 — 環境変数・ケイパビリティからの設定読み込み

ケイパビリティ > 環境変数 > デフォルト値 の優先順位で適用される。

環境変数一覧:
  TP_AGENT_URL            : Agent のベース URL（デフォルト: http://127.0.0.1:8585）
  TP_DEV_TOKEN            : 開発者トークン
  TP_SDK_VERSION          : セッション要求に含める SDK バージョン
  TP_DISABLE_AUTO_REPORTS : テスト・コマンドの自動レポートを無効化（true/false）
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from . import __version__

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# 環境変数キー定数
# ---------------------------------------------------------------------------

_ENV_AGENT_URL = "TP_AGENT_URL"
_ENV_DEV_TOKEN = "TP_DEV_TOKEN"
_ENV_SDK_VERSION = "TP_SDK_VERSION"
_ENV_DISABLE_AUTO_REPORTS = "TP_DISABLE_AUTO_REPORTS"

DEFAULT_AGENT_URL = "http://127.0.0.1:8585"


# ---------------------------------------------------------------------------
# SDK 固有のケイパビリティキー（Agent へは送信しない）
# ---------------------------------------------------------------------------

INTERNAL_CAPABILITY_PREFIX = "_tp"


class CapabilityKey:
    """SDK 固有のケイパビリティキー。"""

    DEV_TOKEN = "_tpDevToken"
    REMOTE_AGENT_ADDRESS = "_tpRemoteAgentAddress"
    PROJECT_NAME = "_tpProjectName"
    JOB_NAME = "_tpJobName"
    REPORT_TYPE = "_tpReportType"
    REPORT_NAME = "_tpReportName"
    REPORT_PATH = "_tpReportPath"
    DISABLE_REPORTS = "_tpDisableReports"


# ---------------------------------------------------------------------------
# 設定データクラス
# ---------------------------------------------------------------------------

@dataclass
class SdkConfig:
    """SDK の実行時設定。

    Attributes:
        agent_url: Agent のベース URL
        dev_token: 開発者トークン（未設定時は None）
        sdk_version: セッション要求に含める SDK バージョン
        disable_auto_reports: テスト・コマンドの自動レポートを無効化するか
    """

    agent_url: str = DEFAULT_AGENT_URL
    dev_token: Optional[str] = None
    sdk_version: str = __version__
    disable_auto_reports: bool = False

    def __repr__(self) -> str:
        return (
            f"SdkConfig(agent_url={self.agent_url!r}, "
            f"dev_token={mask_token(self.dev_token)!r}, "
            f"sdk_version={self.sdk_version!r}, "
            f"disable_auto_reports={self.disable_auto_reports!r})"
        )

    def with_capabilities(self, capabilities: Mapping[str, Any]) -> SdkConfig:
        """ケイパビリティで上書きした設定のコピーを返す。

        Args:
            capabilities: 要求ケイパビリティ

        Returns:
            トークン・Agent アドレスをケイパビリティで上書きした設定
        """
        token = capabilities.get(CapabilityKey.DEV_TOKEN)
        address = capabilities.get(CapabilityKey.REMOTE_AGENT_ADDRESS)
        return SdkConfig(
            agent_url=normalize_agent_url(address) if address else self.agent_url,
            dev_token=token if token is not None else self.dev_token,
            sdk_version=self.sdk_version,
            disable_auto_reports=self.disable_auto_reports,
        )


# ---------------------------------------------------------------------------
# 環境変数からの読み込み
# ---------------------------------------------------------------------------

def _parse_bool(value: str) -> bool:
    """文字列を bool に変換する。

    Args:
        value: "true", "1", "yes" → True、それ以外 → False

    Returns:
        変換結果
    """
    return value.lower() in ("true", "1", "yes")


def normalize_agent_url(address: str) -> str:
    """Agent アドレスを正規化する。

    DNS 解決による遅延を避けるため localhost は 127.0.0.1 に置換する。
    末尾のスラッシュは取り除く。
    """
    return address.replace("localhost", "127.0.0.1").rstrip("/")


def mask_token(token: Optional[str]) -> str:
    """ログ・表示用にトークンをマスクする。"""
    if not token:
        return "<unset>"
    if len(token) <= 4:
        return "***"
    return f"{token[:4]}***"


def load_config_from_env() -> SdkConfig:
    """環境変数から SdkConfig を生成する。

    設定されていない環境変数はデフォルト値を使用する。
    トークン未設定はここではエラーにしない（セッション開始時に検証する）。

    Returns:
        環境変数から読み込んだ設定
    """
    config = SdkConfig()

    address = os.environ.get(_ENV_AGENT_URL)
    if address:
        config.agent_url = normalize_agent_url(address)
    else:
        logger.info(
            "%s が未設定のため Agent アドレスに %s を使用します",
            _ENV_AGENT_URL, DEFAULT_AGENT_URL,
        )

    token = os.environ.get(_ENV_DEV_TOKEN)
    if token:
        config.dev_token = token

    version = os.environ.get(_ENV_SDK_VERSION)
    if version:
        config.sdk_version = version

    if _ENV_DISABLE_AUTO_REPORTS in os.environ:
        config.disable_auto_reports = _parse_bool(os.environ[_ENV_DISABLE_AUTO_REPORTS])

    logger.debug("設定を読み込みました: %r", config)
    return config
