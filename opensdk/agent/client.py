"""
AgentClient — Agent との開発セッション管理とレポート送信

主な機能:
  - start_session(): セッション開始要求の送信、応答の解析、サイドチャネルの接続
  - quit_session(): レポートキューの排出とサイドチャネルの切断（冪等）
  - report_test() / report_step() / report_driver_command(): レポートのキュー投入

レポート投入は送信完了を待たない。送信の完了は quit_session() の排出でのみ保証する。
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any, Mapping, Optional
from urllib.parse import urlparse

import httpx
from pydantic import ValidationError

from ..config import CapabilityKey, SdkConfig, load_config_from_env
from ..context import infer_job_name, infer_project_name
from ..errors import InvalidArgumentError, InvalidTokenError, SessionNotCreatedError
from ..messages import (
    CustomTestReport,
    DriverCommandReport,
    ReportSettings,
    SessionRequest,
    SessionResponse,
    StepReport,
)
from .delivery import QueueItem, ReportQueue, agent_error_message
from .session import AgentSession, Dialect
from .side_channel import SideChannel

logger = logging.getLogger(__name__)


class Endpoint(str, enum.Enum):
    """Agent の REST エンドポイント。"""

    DEVELOPMENT_SESSION = "/api/development/session"
    REPORT_TEST = "/api/development/report/test"
    REPORT_STEP = "/api/development/report/step"
    REPORT_DRIVER_COMMAND = "/api/development/report/command"


class AgentClient:
    """Agent との関係を一元管理するクライアント。

    セッションごとに 1 インスタンスを生成し、HTTP クライアント・
    レポートキュー・サイドチャネルを排他的に所有する。
    """

    def __init__(
        self,
        capabilities: Mapping[str, Any],
        config: Optional[SdkConfig] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """AgentClient を初期化する。

        Args:
            capabilities: 要求ケイパビリティ（_tp キーで SDK 設定を上書き可）
            config: SDK 設定（None で環境変数から読み込み）
            transport: HTTP トランスポート（テスト用の差し替え）

        Raises:
            InvalidArgumentError: プロジェクト名・ジョブ名・レポート種別が不正な場合
        """
        self.capabilities: dict[str, Any] = dict(capabilities)
        self.config = (config or load_config_from_env()).with_capabilities(self.capabilities)
        self.report_settings = self._build_report_settings(self.capabilities)

        self.agent_version: Optional[str] = None
        self.agent_session: Optional[AgentSession] = None

        self._http = httpx.AsyncClient(transport=transport)
        self._queue = ReportQueue(self._http)
        self._side_channel = SideChannel()
        self._closed = False

    # -------------------------------------------------------------------
    # プロパティ
    # -------------------------------------------------------------------

    @property
    def remote_address(self) -> str:
        return self.config.agent_url

    @property
    def token(self) -> Optional[str]:
        return self.config.dev_token

    @property
    def queue(self) -> ReportQueue:
        return self._queue

    @property
    def side_channel(self) -> SideChannel:
        return self._side_channel

    @property
    def is_closed(self) -> bool:
        return self._closed

    # -------------------------------------------------------------------
    # セッション管理
    # -------------------------------------------------------------------

    async def start_session(self) -> SessionResponse:
        """Agent に開発セッションの開始を要求する。

        Returns:
            Agent のセッション応答

        Raises:
            InvalidTokenError: 開発者トークンが未設定の場合（HTTP 要求前に送出）
            SessionNotCreatedError: 接続失敗・エラー応答・不正な応答の場合
        """
        if not self.token:
            logger.error(
                "開発者トークンが見つかりません。TP_DEV_TOKEN 環境変数を設定してください"
            )
            raise InvalidTokenError("開発者トークンが設定されていません（TP_DEV_TOKEN）")

        request = SessionRequest.build(
            self.report_settings, self.capabilities, self.config.sdk_version,
        )
        url = f"{self.remote_address}{Endpoint.DEVELOPMENT_SESSION.value}"

        try:
            response = await self._http.post(
                url, json=request.to_json(), headers={"Authorization": self.token},
            )
            response.raise_for_status()
            session_response = SessionResponse.model_validate(response.json())
        except httpx.ConnectError as exc:
            message = (
                f"Agent ({self.remote_address}) に接続できませんでした。"
                "Agent が起動していることを確認して再実行してください。"
            )
            logger.error(message)
            raise SessionNotCreatedError(f"{message}: {exc}") from exc
        except httpx.HTTPStatusError as exc:
            message = f"{exc}: {agent_error_message(exc.response)}"
            logger.error("セッションの開始に失敗しました: %s", message)
            raise SessionNotCreatedError(message) from exc
        except httpx.HTTPError as exc:
            logger.error("セッションの開始に失敗しました: %s", exc)
            raise SessionNotCreatedError(str(exc)) from exc
        except (ValueError, ValidationError) as exc:
            logger.error("Agent の応答が不正です: %s", exc)
            raise SessionNotCreatedError(f"Agent の応答が不正です: {exc}") from exc

        self.agent_version = session_response.agentVersion
        self.agent_session = AgentSession(
            remote_address=session_response.serverAddress,
            session_id=session_response.sessionId,
            dialect=Dialect.parse(session_response.dialect),
            capabilities=session_response.capabilities,
        )

        host = urlparse(self.remote_address).hostname or "127.0.0.1"
        try:
            await self._side_channel.open(host, session_response.devSocketPort)
        except (OSError, asyncio.TimeoutError) as exc:
            logger.error("サイドチャネルに接続できませんでした: %s", exc)
            raise SessionNotCreatedError(
                f"Agent の開発ソケット {host}:{session_response.devSocketPort} "
                f"に接続できませんでした: {exc}"
            ) from exc

        logger.info("開発セッション %s を開始しました", session_response.sessionId)
        return session_response

    async def quit_session(self) -> None:
        """レポートキューを排出してからサイドチャネルを閉じる。

        2 回目以降の呼び出しは何もしない。
        """
        if self._closed:
            return
        self._closed = True

        await self._queue.close()

        logger.debug("開発セッションを終了します")
        await self._side_channel.close()
        await self._http.aclose()
        logger.info(
            "開発セッションを終了しました（送信 %d 件 / 失敗 %d 件）",
            self._queue.delivered, self._queue.failed,
        )

    # -------------------------------------------------------------------
    # レポート投入
    # -------------------------------------------------------------------

    def report_test(self, report: CustomTestReport) -> None:
        """テストレポートをキューに投入する。"""
        self._push(Endpoint.REPORT_TEST, report.to_json())

    def report_step(self, report: StepReport) -> None:
        """ステップレポートをキューに投入する。"""
        self._push(Endpoint.REPORT_STEP, report.to_json())

    def report_driver_command(self, report: DriverCommandReport) -> None:
        """ドライバコマンドレポートをキューに投入する。"""
        self._push(Endpoint.REPORT_DRIVER_COMMAND, report.to_json())

    def _push(self, endpoint: Endpoint, payload: dict[str, Any]) -> None:
        if self._closed:
            logger.warning("終了済みのセッションへのレポートを破棄しました: %s", endpoint.value)
            return
        self._queue.push(
            QueueItem(
                payload=payload,
                url=f"{self.remote_address}{endpoint.value}",
                token=self.token,
                endpoint=endpoint.value,
            )
        )

    # -------------------------------------------------------------------
    # 内部ヘルパー
    # -------------------------------------------------------------------

    @staticmethod
    def _build_report_settings(capabilities: Mapping[str, Any]) -> ReportSettings:
        """ケイパビリティと推定値からレポート設定を組み立てる。"""
        project = capabilities.get(CapabilityKey.PROJECT_NAME)
        job = capabilities.get(CapabilityKey.JOB_NAME)
        fields: dict[str, Any] = {
            "projectName": infer_project_name() if project is None else project,
            "jobName": infer_job_name() if job is None else job,
            "reportName": capabilities.get(CapabilityKey.REPORT_NAME) or "",
            "reportPath": capabilities.get(CapabilityKey.REPORT_PATH) or "",
        }
        report_type = capabilities.get(CapabilityKey.REPORT_TYPE)
        if report_type:
            fields["reportType"] = report_type
        try:
            return ReportSettings(**fields)
        except ValidationError as exc:
            raise InvalidArgumentError(f"レポート設定が不正です: {exc}") from exc

