"""
テスト共通フィクスチャ定義

全テストモジュールで共有するフィクスチャとデータ生成器を提供する。
実際の Agent やブラウザは使用せず、以下で代替する:
  - FakeAutomationClient: 発行されたコマンドを記録する自動化クライアント
  - AgentRecorder: httpx.MockTransport で Agent の REST API を模倣する
  - dev_socket: asyncio.start_server による Agent 開発ソケット
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import httpx
import pytest

from opensdk.agent.client import AgentClient
from opensdk.commands import Command
from opensdk.config import SdkConfig
from opensdk.interceptor import CommandInterceptor


# ---------------------------------------------------------------------------
# 環境変数の分離
# ---------------------------------------------------------------------------

_TP_ENV_VARS = (
    "TP_AGENT_URL",
    "TP_DEV_TOKEN",
    "TP_SDK_VERSION",
    "TP_DISABLE_AUTO_REPORTS",
    "TP_TEST_NAME",
    "TP_PROJECT_NAME",
    "TP_JOB_NAME",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """実行環境の TP_* 環境変数がテストに影響しないようにする。"""
    for name in _TP_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


# ---------------------------------------------------------------------------
# 自動化クライアントのフェイク
# ---------------------------------------------------------------------------

SCREENSHOT_DATA = "c2NyZWVuc2hvdA=="


class FakeAutomationClient:
    """発行されたコマンドを記録するフェイククライアント。

    responses にはコマンド名ごとに以下のいずれかを設定する:
      - 値: そのまま返す
      - 例外インスタンス: 送出する
      - 呼び出し可能オブジェクト: command を渡して戻り値を返す
    """

    def __init__(self) -> None:
        self.commands: list[Command] = []
        self.responses: dict[str, Any] = {"screenshot": SCREENSHOT_DATA}
        self.attached = None

    def attach(self, session) -> None:
        self.attached = session

    async def execute(self, command: Command) -> Any:
        self.commands.append(command)
        handler = self.responses.get(command.name)
        if isinstance(handler, BaseException):
            raise handler
        if callable(handler):
            return handler(command)
        return handler

    def names(self) -> list[str]:
        return [c.name for c in self.commands]


# ---------------------------------------------------------------------------
# Agent REST API のフェイク
# ---------------------------------------------------------------------------

@dataclass
class RecordedRequest:
    """Agent が受け取った要求 1 件。"""

    path: str
    body: Any
    authorization: Optional[str]


@dataclass
class AgentRecorder:
    """httpx.MockTransport で Agent の REST API を模倣する。

    Attributes:
        session_response: セッション開始要求に返す JSON
        session_status: セッション開始要求に返すステータスコード
        fail_paths: 500 を返すレポートのパス
        requests: 受け取った要求（受信順）
    """

    session_response: dict[str, Any] = field(default_factory=lambda: {
        "devSocketPort": 0,
        "serverAddress": "http://127.0.0.1:4444/wd/hub",
        "sessionId": "session-1",
        "dialect": "W3C",
        "capabilities": {"browserName": "chrome"},
        "agentVersion": "3.4.0",
    })
    session_status: int = 200
    fail_paths: set[str] = field(default_factory=set)
    requests: list[RecordedRequest] = field(default_factory=list)
    on_request: Optional[Callable[[httpx.Request], None]] = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.on_request is not None:
            self.on_request(request)
        body = json.loads(request.content) if request.content else None
        self.requests.append(
            RecordedRequest(request.url.path, body, request.headers.get("authorization"))
        )
        if request.url.path == "/api/development/session":
            return httpx.Response(self.session_status, json=self.session_response)
        if request.url.path in self.fail_paths:
            return httpx.Response(500, json={"message": "レポートを保存できません"})
        return httpx.Response(200, json={})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def paths(self) -> list[str]:
        return [r.path for r in self.requests]

    def bodies(self, kind: str) -> list[Any]:
        """指定種別（test / step / command）のレポート本文を返す。"""
        path = f"/api/development/report/{kind}"
        return [r.body for r in self.requests if r.path == path]


@pytest.fixture
def recorder() -> AgentRecorder:
    return AgentRecorder()


@pytest.fixture
def sdk_config() -> SdkConfig:
    """トークン設定済みの SDK 設定。"""
    return SdkConfig(agent_url="http://127.0.0.1:8585", dev_token="test-token")


@pytest.fixture
def fake_client() -> FakeAutomationClient:
    return FakeAutomationClient()


@pytest.fixture
def make_agent(recorder: AgentRecorder, sdk_config: SdkConfig):
    """AgentClient を生成するファクトリ。"""

    def _make(capabilities: Optional[dict[str, Any]] = None, config: Optional[SdkConfig] = None) -> AgentClient:
        return AgentClient(
            capabilities or {"browserName": "chrome"},
            config or sdk_config,
            transport=recorder.transport,
        )

    return _make


@pytest.fixture
def make_interceptor(make_agent, fake_client: FakeAutomationClient):
    """CommandInterceptor を生成するファクトリ。"""

    def _make(
        capabilities: Optional[dict[str, Any]] = None,
        test_name: Callable[[], str] = lambda: "test_login",
        config: Optional[SdkConfig] = None,
        **kwargs: Any,
    ) -> CommandInterceptor:
        agent = make_agent(capabilities, config)
        return CommandInterceptor(fake_client, agent, test_name_provider=test_name, **kwargs)

    return _make


# ---------------------------------------------------------------------------
# Agent 開発ソケット
# ---------------------------------------------------------------------------

@dataclass
class DevSocketServer:
    """テスト用の開発ソケットサーバー。"""

    port: int
    received: list[bytes] = field(default_factory=list)

    async def wait_for(self, data: bytes, timeout: float = 2.0) -> bool:
        """指定データを受信するまで待つ。"""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            if data in b"".join(self.received):
                return True
            await asyncio.sleep(0.01)
        return False


@pytest.fixture
async def dev_socket():
    """127.0.0.1 の空きポートで待ち受ける開発ソケット。"""
    writers: list[asyncio.StreamWriter] = []
    received: list[bytes] = []

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        writers.append(writer)
        try:
            while True:
                data = await reader.read(1024)
                if not data:
                    break
                received.append(data)
        except ConnectionError:
            pass
        finally:
            writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    yield DevSocketServer(port=port, received=received)

    for writer in writers:
        writer.close()
    server.close()
    await server.wait_closed()


@pytest.fixture
async def closed_port() -> int:
    """待ち受けていないポート番号。"""
    server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    server.close()
    await server.wait_closed()
    return port


