"""
ReportingDriver — 自動化クライアントにレポート機能を合成したドライバ

任意の AutomationClient と AgentClient を組み合わせ、全コマンドを
CommandInterceptor 経由で実行する。ブラウザ種別ごとのサブクラスは不要。

使用例::

    async with ReportingDriver(client, {"browserName": "chrome"}) as driver:
        await driver.get("https://example.com")
        element = await driver.find_element("css selector", "#login")
        await element.click()
        await driver.report.step("ログイン画面を開いた", screenshot=True)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import fields, replace
from typing import Any, AsyncIterator, Mapping, Optional

import httpx

from .agent.client import AgentClient
from .agent.session import AgentSession
from .client import AutomationClient
from .commands import Command, CommandName
from .config import SdkConfig
from .context import TestNameProvider, infer_test_name
from .interceptor import CommandInterceptor
from .reporter import Reporter
from .settings import StepSettings

logger = logging.getLogger(__name__)

# W3C のレスポンスで要素 ID を保持するキー
_W3C_ELEMENT_KEY = "element-6066-11e4-a52e-4f735466cecf"


class ElementHandle:
    """取得済みの要素に対する操作。"""

    def __init__(self, driver: ReportingDriver, element_id: str) -> None:
        self._driver = driver
        self.element_id = element_id

    def __repr__(self) -> str:
        return f"ElementHandle({self.element_id!r})"

    async def execute(self, name: str | CommandName, parameters: Optional[Mapping[str, Any]] = None) -> Any:
        return await self._driver.interceptor.execute_element(self.element_id, name, parameters)

    async def click(self) -> Any:
        return await self.execute(CommandName.CLICK_ELEMENT)

    async def clear(self) -> Any:
        return await self.execute(CommandName.CLEAR_ELEMENT)

    async def send_keys(self, text: str) -> Any:
        return await self.execute(
            CommandName.SEND_KEYS_TO_ELEMENT, {"text": text, "value": list(text)},
        )

    async def get_attribute(self, name: str) -> Any:
        return await self.execute(CommandName.GET_ELEMENT_ATTRIBUTE, {"name": name})

    async def get_text(self) -> Any:
        return await self.execute(CommandName.GET_ELEMENT_TEXT)

    async def is_displayed(self) -> Any:
        return await self.execute(CommandName.IS_ELEMENT_DISPLAYED)


class ReportingDriver:
    """レポート機能付きのドライバ。"""

    def __init__(
        self,
        client: AutomationClient,
        capabilities: Mapping[str, Any],
        *,
        config: Optional[SdkConfig] = None,
        test_name_provider: TestNameProvider = infer_test_name,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """ReportingDriver を初期化する。

        Args:
            client: 下位の自動化クライアント
            capabilities: 要求ケイパビリティ
            config: SDK 設定（None で環境変数から読み込み）
            test_name_provider: 現在のテスト名を返す関数
            transport: Agent 通信用の HTTP トランスポート（テスト用の差し替え）

        Raises:
            InvalidArgumentError: レポート設定が不正な場合
        """
        self._client = client
        self.agent_client = AgentClient(capabilities, config, transport=transport)
        self.interceptor = CommandInterceptor(
            client, self.agent_client, test_name_provider=test_name_provider,
        )
        self._session: Optional[AgentSession] = None
        self._quit = False

    async def __aenter__(self) -> ReportingDriver:
        try:
            await self.start()
        except Exception:
            # 開始に失敗した場合は __aexit__ が呼ばれないため、ここで閉じる
            await self.agent_client.quit_session()
            raise
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.quit()

    # -------------------------------------------------------------------
    # プロパティ
    # -------------------------------------------------------------------

    @property
    def session(self) -> Optional[AgentSession]:
        return self._session

    @property
    def session_id(self) -> str:
        return self._session.session_id if self._session is not None else ""

    @property
    def report(self) -> Reporter:
        """明示的なレポート API。"""
        return self.interceptor.reporter

    @property
    def step_settings(self) -> StepSettings:
        return self.interceptor.settings

    @step_settings.setter
    def step_settings(self, settings: StepSettings) -> None:
        self.interceptor.settings = settings

    @asynccontextmanager
    async def using_settings(self, **overrides: Any) -> AsyncIterator[StepSettings]:
        """ブロック内だけステップ設定を上書きする。

        使用例::

            async with driver.using_settings(invert_result=True):
                await driver.find_element("css selector", "#gone")
        """
        names = {f.name for f in fields(StepSettings)}
        unknown = set(overrides) - names
        if unknown:
            raise TypeError(f"不明なステップ設定です: {', '.join(sorted(unknown))}")

        previous = self.interceptor.settings
        self.interceptor.settings = replace(previous, **overrides)
        try:
            yield self.interceptor.settings
        finally:
            self.interceptor.settings = previous

    # -------------------------------------------------------------------
    # セッション
    # -------------------------------------------------------------------

    async def start(self) -> AgentSession:
        """Agent 経由でセッションを開始し、クライアントの接続先を切り替える。

        Raises:
            InvalidTokenError: 開発者トークンが未設定の場合
            SessionNotCreatedError: セッションを開始できなかった場合
        """
        command = Command.create(
            CommandName.NEW_SESSION,
            {"desiredCapabilities": dict(self.agent_client.capabilities)},
        )
        self._session = await self.interceptor.execute(command, self._open_session)
        return self._session

    async def _open_session(self, command: Command) -> AgentSession:
        await self.agent_client.start_session()
        session = self.agent_client.agent_session
        assert session is not None
        logger.debug("WebDriver のアドレス: %s", session.remote_address)
        self._client.attach(session)
        return session

    async def quit(self) -> None:
        """最後のテストをレポートし、キューを排出してからセッションを終了する。"""
        if self._quit:
            return
        self._quit = True
        await self.interceptor.execute(
            Command.create(CommandName.QUIT, {"sessionId": self.session_id}),
        )

    # -------------------------------------------------------------------
    # コマンド
    # -------------------------------------------------------------------

    async def execute(
        self,
        name: str | CommandName,
        parameters: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """任意のコマンドを実行する。"""
        return await self.interceptor.execute(Command.create(name, parameters))

    def element(self, element_id: str) -> ElementHandle:
        return ElementHandle(self, element_id)

    async def get(self, url: str) -> Any:
        return await self.execute(CommandName.GET, {"url": url})

    async def get_title(self) -> Any:
        return await self.execute(CommandName.GET_TITLE)

    async def find_element(self, using: str, value: str) -> ElementHandle:
        """要素を検索して ElementHandle を返す。"""
        result = await self.execute(CommandName.FIND_ELEMENT, {"using": using, "value": value})
        return ElementHandle(self, _element_id(result))

    async def take_screenshot(self) -> Any:
        return await self.execute(CommandName.SCREENSHOT)


def _element_id(result: Any) -> str:
    """findElement の結果から要素 ID を取り出す。"""
    if isinstance(result, Mapping):
        for key in (_W3C_ELEMENT_KEY, "ELEMENT"):
            if key in result:
                return str(result[key])
    return str(result)
