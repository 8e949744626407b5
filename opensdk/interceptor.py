"""
CommandInterceptor — ドライバコマンドの実行を仲介し、結果をレポートする

下位の自動化クライアントへ送られる全コマンドを透過的に仲介する。
呼び出し元から見える戻り値・例外は変えずに、外部から見えるコマンド 1 回につき
0 または 1 件の DriverCommandReport を生成してレポートキューへ投入する。

処理の流れ（報告対象コマンド）:
  1. テスト名の変化を検出し、前のテストのレポートを送信
  2. タイムアウト設定コマンドの発行、実行前スリープ
  3. コマンド実行（成功結果 or 例外を捕捉）
  4. 実行後スリープ
  5. レスポンス内のエラーペイロードを検出したら型付きの例外に変換
  6. リダクション → スクリーンショット判定 → レポート生成 → キュー投入

待機ループ内（context.wait_loop()）のコマンドは即座にレポートせず、
最後の 1 件だけを保持して、次の通常コマンドまたはセッション終了時にまとめて送る。

レポート処理の失敗は呼び出し元のコマンドを失敗させない（ログ出力のみ）。
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Mapping, Optional

from .commands import NON_REPORTED_COMMANDS, Command, CommandName
from .config import CapabilityKey
from .context import UNNAMED_TEST, TestNameProvider, in_wait_loop, infer_test_name
from .errors import NoSuchElementError, WebDriverError
from .messages import CustomTestReport, DriverCommandReport
from .redaction import RedactionEngine
from .reporter import Reporter
from .settings import SleepTimingType, StepSettings

if TYPE_CHECKING:
    from .agent.client import AgentClient
    from .agent.session import AgentSession
    from .client import AutomationClient

logger = logging.getLogger(__name__)

Runner = Callable[[Command], Awaitable[Any]]


# ---------------------------------------------------------------------------
# 実行中の呼び出し
# ---------------------------------------------------------------------------

@dataclass
class Invocation:
    """実行中のコマンド呼び出し 1 件。

    Attributes:
        invocation_id: 呼び出しごとに採番される ID
        command: 実行中のコマンド
        done: 実行とレポート投入が完了したら結果が設定される Future
    """

    invocation_id: str
    command: Command
    done: asyncio.Future[None] = field(repr=False)

    @property
    def element_id(self) -> Optional[str]:
        return self.command.element_id


# ---------------------------------------------------------------------------
# CommandInterceptor 本体
# ---------------------------------------------------------------------------

class CommandInterceptor:
    """ドライバコマンドの実行とレポートを仲介するクラス。

    使用例::

        interceptor = CommandInterceptor(client, agent_client)
        value = await interceptor.execute(Command.create("get", {"url": url}))
    """

    def __init__(
        self,
        client: AutomationClient,
        agent_client: AgentClient,
        *,
        settings: Optional[StepSettings] = None,
        test_name_provider: TestNameProvider = infer_test_name,
        disable_redaction: bool = False,
    ) -> None:
        """CommandInterceptor を初期化する。

        Args:
            client: 下位の自動化クライアント
            agent_client: レポートの投入先
            settings: 初期のステップ設定
            test_name_provider: 現在のテスト名を返す関数
            disable_redaction: True で入力値のリダクションを行わない
        """
        self._client = client
        self._agent_client = agent_client
        self._test_name_provider = test_name_provider

        self.settings = settings or StepSettings()
        self.disable_redaction = disable_redaction
        self.latest_known_test_name = ""
        self.excluded_test_names: set[str] = set()

        self._stashed: Optional[DriverCommandReport] = None
        self._inflight: dict[str, Invocation] = {}
        self._redaction = RedactionEngine(self._query_attribute, agent_client.capabilities)

        self.reporter = Reporter(
            agent_client,
            self._screenshot_via_pipeline,
            on_activity=self.sync_test_name,
            test_name_provider=test_name_provider,
            disable_reports=bool(agent_client.capabilities.get(CapabilityKey.DISABLE_REPORTS)),
            disable_auto_reports=agent_client.config.disable_auto_reports,
        )

    # -------------------------------------------------------------------
    # プロパティ
    # -------------------------------------------------------------------

    @property
    def session(self) -> Optional[AgentSession]:
        return self._agent_client.agent_session

    @property
    def session_id(self) -> str:
        session = self.session
        return session.session_id if session is not None else ""

    @property
    def stashed(self) -> Optional[DriverCommandReport]:
        """待機ループから保持中のレポート。"""
        return self._stashed

    @property
    def inflight(self) -> list[Invocation]:
        """実行中の呼び出し一覧。"""
        return list(self._inflight.values())

    # -------------------------------------------------------------------
    # パブリック API
    # -------------------------------------------------------------------

    async def execute(
        self,
        command: Command,
        run: Optional[Runner] = None,
        *,
        skip_reporting: bool = False,
        apply_step_settings: bool = True,
    ) -> Any:
        """コマンドを実行し、必要に応じてレポートする。

        Args:
            command: 実行するコマンド
            run: 実際の実行関数（省略時は下位クライアントの execute）
            skip_reporting: True でこの呼び出しをレポートしない
            apply_step_settings: False でタイムアウト設定とスリープを行わない

        Returns:
            下位クライアントが返した値（そのまま）

        Raises:
            WebDriverError: レスポンスにエラーペイロードが含まれていた場合
            Exception: 下位クライアントが送出した例外（そのまま）
        """
        runner = run or self._client.execute

        if command.name == CommandName.QUIT.value:
            return await self._quit(command, runner)
        if command.name in NON_REPORTED_COMMANDS:
            return await runner(command)

        # テスト名が変わっていれば前のテストを閉じる
        self.sync_test_name()

        invocation = self._begin(command)
        try:
            return await self._run_and_report(
                command, runner, skip_reporting, apply_step_settings,
            )
        finally:
            self._finish(invocation)

    async def execute_element(
        self,
        element_id: str,
        name: str | CommandName,
        parameters: Optional[Mapping[str, Any]] = None,
        run: Optional[Runner] = None,
    ) -> Any:
        """取得済みの要素に対するコマンドを実行する。

        要素 ID を "id" パラメータとして付与する。
        """
        command = Command.create(name, parameters, element_id=element_id)
        if command.name == CommandName.SEND_KEYS_TO_ELEMENT.value:
            text = command.get_parameter("text")
            if text is not None and "value" not in command.parameters:
                command.set_parameter("value", list(str(text)))
        return await self.execute(command, run)

    def sync_test_name(self) -> None:
        """現在のテスト名を確認し、変化していれば前のテストをレポートする。"""
        current = self._test_name_provider()
        if (
            not self.reporter.disable_test_auto_reports
            and self.latest_known_test_name
            and self.latest_known_test_name != current
        ):
            self.flush_stashed()
            self.report_test()
        self.latest_known_test_name = current

    def report_test(self) -> None:
        """直近のテスト名でテストレポートを送信する。"""
        name = self.latest_known_test_name
        # 名前が推定できたテストのみレポートする
        if not name or name == UNNAMED_TEST:
            return
        if self.reporter.disable_reports:
            logger.debug("Test %s - [Passed]", name)
            return
        if name in self.excluded_test_names:
            logger.debug("Test %s - 除外対象のためレポートしません", name)
            return
        self._agent_client.report_test(CustomTestReport(name, True))

    def flush_stashed(self) -> None:
        """待機ループから保持中のレポートを送信する。"""
        stashed, self._stashed = self._stashed, None
        if stashed is None:
            return
        logger.debug("待機ループのコマンドをレポートします: %s", stashed.command_name)
        self._agent_client.report_driver_command(stashed)

    async def take_screenshot(self) -> Optional[str]:
        """レポートせずにスクリーンショットを取得する（Base64）。"""
        command = Command.create(CommandName.SCREENSHOT, {"sessionId": self.session_id})
        value = await self._client.execute(command)
        return value if isinstance(value, str) else None

    # -------------------------------------------------------------------
    # 実行
    # -------------------------------------------------------------------

    async def _run_and_report(
        self,
        command: Command,
        runner: Runner,
        skip_reporting: bool,
        apply_step_settings: bool = True,
    ) -> Any:
        report_command = command.snapshot()
        auto_report = not skip_reporting and command.descriptor.reportable

        if apply_step_settings:
            await self._apply_timeout()
            await self._sleep(SleepTimingType.BEFORE, command)

        try:
            response = await runner(command)
        except Exception as exc:
            if auto_report:
                await self._report_command(report_command, str(exc), passed=False)
            raise

        if apply_step_settings:
            await self._sleep(SleepTimingType.AFTER, command)

        error = self._extract_error(command, response)
        if error is not None:
            if auto_report:
                await self._report_command(
                    report_command, response, passed=False, error_payload=True,
                )
            raise error

        if auto_report:
            await self._report_command(report_command, response, passed=True)
        return response

    async def _quit(self, command: Command, runner: Runner) -> Any:
        # 並行中の要素コマンドのレポート投入を待つ
        await self._await_inflight()
        self.flush_stashed()
        if not self.reporter.disable_test_auto_reports:
            self.report_test()
        await self._agent_client.quit_session()
        return await runner(command)

    async def _apply_timeout(self) -> None:
        timeout = self.settings.timeout
        if timeout <= 0:
            return
        session = self.session
        if session is None or session.is_w3c:
            command = Command.create(CommandName.SET_TIMEOUT, {"implicit": timeout})
        else:
            command = Command.create(CommandName.IMPLICITLY_WAIT, {"ms": timeout})
        command.set_parameter("sessionId", self.session_id)
        await self._client.execute(command)

    async def _sleep(self, timing: SleepTimingType, command: Command) -> None:
        seconds = self.settings.sleep_seconds(timing)
        if seconds <= 0:
            return
        logger.debug(
            "%s の実行%sに %d ミリ秒スリープします",
            command.name, "前" if timing is SleepTimingType.BEFORE else "後",
            self.settings.sleep_time,
        )
        await asyncio.sleep(seconds)

    # -------------------------------------------------------------------
    # レポート
    # -------------------------------------------------------------------

    async def _report_command(
        self, command: Command, result: Any, *, passed: bool, error_payload: bool = False,
    ) -> None:
        if not self.reporter.command_reports_enabled:
            return
        try:
            if not self.disable_redaction:
                command = await self._redaction.redact(command)

            if error_payload:
                # エラーメッセージはマスク済みのパラメータから組み立てる
                error = self._extract_error(command, result)
                result = error.message if error is not None else result

            report = DriverCommandReport(
                command=command,
                result=result,
                passed=self.settings.resolve_passed(passed),
            )

            if in_wait_loop():
                # 待機ループ中は最新の 1 件だけ保持する
                self._stashed = report
                logger.debug("待機ループのコマンドを保持しました: %s", command.name)
                return

            if self.settings.should_take_screenshot(passed):
                report.screenshot = await self._capture_screenshot()

            self.flush_stashed()
            self._agent_client.report_driver_command(report)
        except Exception:
            logger.exception("コマンド %s のレポートに失敗しました", command.name)

    async def _capture_screenshot(self) -> Optional[str]:
        try:
            return await self.take_screenshot()
        except Exception as exc:
            logger.warning("スクリーンショットを取得できませんでした: %s", exc)
            return None

    async def _screenshot_via_pipeline(self) -> Any:
        command = Command.create(CommandName.SCREENSHOT, {"sessionId": self.session_id})
        return await self.execute(command, apply_step_settings=False)

    async def _query_attribute(self, element_id: str, name: str) -> Any:
        command = Command.create(
            CommandName.GET_ELEMENT_ATTRIBUTE,
            {"sessionId": self.session_id, "name": name},
            element_id=element_id,
        )
        response = await self._client.execute(command)
        error = self._extract_error(command, response)
        if error is not None:
            raise error
        return response

    # -------------------------------------------------------------------
    # エラーペイロード
    # -------------------------------------------------------------------

    @staticmethod
    def _extract_error(command: Command, response: Any) -> Optional[WebDriverError]:
        """レスポンス内のエラーペイロードを型付きの例外に変換する。

        {"error": ..., "message": ...} 形式（"value" で包まれていても可）を検出する。
        エラーでなければ None を返す。
        """
        payload = response
        if isinstance(payload, Mapping) and isinstance(payload.get("value"), Mapping):
            payload = payload["value"]
        if not (
            isinstance(payload, Mapping)
            and isinstance(payload.get("error"), str)
            and "message" in payload
        ):
            return None

        code = payload["error"]
        message = str(payload.get("message") or "")
        if code == "no such element":
            params = json.dumps(command.parameters, default=str)
            return NoSuchElementError(
                f"{message}: {params}", error=code, command_name=command.name,
            )
        return WebDriverError(message, error=code, command_name=command.name)

    # -------------------------------------------------------------------
    # 実行中の呼び出しの追跡
    # -------------------------------------------------------------------

    def _begin(self, command: Command) -> Invocation:
        invocation = Invocation(
            invocation_id=uuid.uuid4().hex,
            command=command,
            done=asyncio.get_running_loop().create_future(),
        )
        self._inflight[invocation.invocation_id] = invocation
        return invocation

    def _finish(self, invocation: Invocation) -> None:
        self._inflight.pop(invocation.invocation_id, None)
        if not invocation.done.done():
            invocation.done.set_result(None)

    async def _await_inflight(self) -> None:
        pending = [i.done for i in self._inflight.values()]
        if pending:
            logger.debug("実行中のコマンド %d 件の完了を待機します", len(pending))
            await asyncio.gather(*pending)
