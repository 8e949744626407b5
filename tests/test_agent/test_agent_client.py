"""
AgentClient のユニットテスト

Agent の REST API は httpx.MockTransport（conftest の AgentRecorder）、
開発ソケットは asyncio.start_server で模倣する。
"""

from __future__ import annotations

import logging

import httpx
import pytest

from opensdk.agent.client import AgentClient, Endpoint
from opensdk.agent.session import Dialect
from opensdk.config import CapabilityKey, SdkConfig
from opensdk.errors import InvalidArgumentError, InvalidTokenError, SessionNotCreatedError
from opensdk.messages import CustomTestReport, StepReport


# ===========================================================================
# 初期化
# ===========================================================================

class TestAgentClientInit:
    """レポート設定の組み立てと検証のテスト。"""

    def test_inferred_names(self, make_agent) -> None:
        agent = make_agent()
        assert agent.report_settings.projectName == "Unnamed Project"
        assert agent.report_settings.jobName == "Unnamed Job"

    def test_names_from_env(self, make_agent, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TP_PROJECT_NAME", "Shop")
        agent = make_agent()
        assert agent.report_settings.projectName == "Shop"

    def test_names_from_capabilities(self, make_agent) -> None:
        agent = make_agent({
            CapabilityKey.PROJECT_NAME: "P",
            CapabilityKey.JOB_NAME: "J",
            CapabilityKey.REPORT_TYPE: "LOCAL",
        })
        assert agent.report_settings.projectName == "P"
        assert agent.report_settings.reportType.value == "LOCAL"

    @pytest.mark.parametrize("key", [CapabilityKey.PROJECT_NAME, CapabilityKey.JOB_NAME])
    def test_empty_name_rejected(self, make_agent, key: str) -> None:
        """明示的に空の名前を指定した場合はエラー。"""
        with pytest.raises(InvalidArgumentError):
            make_agent({key: ""})

    def test_unknown_report_type_rejected(self, make_agent) -> None:
        with pytest.raises(InvalidArgumentError):
            make_agent({CapabilityKey.REPORT_TYPE: "NOWHERE"})

    def test_token_from_capabilities(self, make_agent) -> None:
        agent = make_agent({CapabilityKey.DEV_TOKEN: "cap-token"})
        assert agent.token == "cap-token"


# ===========================================================================
# セッション開始
# ===========================================================================

class TestStartSession:
    """start_session のテスト。"""

    async def test_success(self, make_agent, recorder, dev_socket) -> None:
        recorder.session_response["devSocketPort"] = dev_socket.port
        agent = make_agent({
            "browserName": "chrome",
            CapabilityKey.DEV_TOKEN: "cap-token",
            CapabilityKey.PROJECT_NAME: "Shop",
        })

        response = await agent.start_session()

        assert response.sessionId == "session-1"
        assert agent.agent_version == "3.4.0"
        assert agent.agent_session is not None
        assert agent.agent_session.remote_address == "http://127.0.0.1:4444/wd/hub"
        assert agent.agent_session.dialect is Dialect.W3C
        assert agent.side_channel.is_open

        request = recorder.requests[0]
        assert request.path == Endpoint.DEVELOPMENT_SESSION.value
        assert request.authorization == "cap-token"
        # SDK 内部用のケイパビリティは送らない
        assert request.body["capabilities"] == {"browserName": "chrome"}
        assert request.body["projectName"] == "Shop"
        assert request.body["jobName"] == "Unnamed Job"
        assert request.body["language"] == "Python"

        await agent.quit_session()

    async def test_oss_dialect(self, make_agent, recorder, dev_socket) -> None:
        recorder.session_response.update(devSocketPort=dev_socket.port, dialect="OSS")
        agent = make_agent()
        await agent.start_session()
        assert agent.agent_session.is_w3c is False
        await agent.quit_session()

    async def test_missing_token(self, make_agent, recorder) -> None:
        """トークン未設定は HTTP 要求の前にエラーになる。"""
        agent = make_agent(config=SdkConfig(dev_token=None))

        with pytest.raises(InvalidTokenError):
            await agent.start_session()

        assert recorder.requests == []
        await agent.quit_session()

    async def test_agent_not_running(self, recorder, sdk_config) -> None:
        """接続できない場合は Agent のアドレスを含むエラーになる。"""

        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        agent = AgentClient({"browserName": "chrome"}, sdk_config, transport=httpx.MockTransport(refuse))

        with pytest.raises(SessionNotCreatedError) as exc_info:
            await agent.start_session()

        assert "127.0.0.1:8585" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
        await agent.quit_session()

    async def test_error_status(self, make_agent, recorder) -> None:
        recorder.session_status = 401
        recorder.session_response = {"message": "トークンが無効です"}
        agent = make_agent()

        with pytest.raises(SessionNotCreatedError, match="トークンが無効です"):
            await agent.start_session()
        await agent.quit_session()

    async def test_malformed_response(self, make_agent, recorder) -> None:
        recorder.session_response = {"unexpected": True}
        agent = make_agent()

        with pytest.raises(SessionNotCreatedError):
            await agent.start_session()
        assert agent.agent_session is None
        await agent.quit_session()

    async def test_dev_socket_unreachable(self, make_agent, recorder, closed_port: int) -> None:
        recorder.session_response["devSocketPort"] = closed_port
        agent = make_agent()

        with pytest.raises(SessionNotCreatedError, match=str(closed_port)):
            await agent.start_session()
        await agent.quit_session()


# ===========================================================================
# レポート投入・セッション終了
# ===========================================================================

class TestReporting:
    """レポート投入と quit_session のテスト。"""

    async def test_test_report_delivered_on_quit(self, make_agent, recorder) -> None:
        agent = make_agent()

        agent.report_test(CustomTestReport("test_login", True))
        await agent.quit_session()

        assert recorder.paths() == [Endpoint.REPORT_TEST.value]
        assert recorder.bodies("test") == [
            {"name": "test_login", "passed": True, "message": None},
        ]
        assert recorder.requests[0].authorization == "test-token"

    async def test_reports_keep_order(self, make_agent, recorder) -> None:
        agent = make_agent()

        agent.report_step(StepReport("1"))
        agent.report_test(CustomTestReport("t"))
        agent.report_step(StepReport("2"))
        await agent.quit_session()

        assert recorder.paths() == [
            Endpoint.REPORT_STEP.value,
            Endpoint.REPORT_TEST.value,
            Endpoint.REPORT_STEP.value,
        ]

    async def test_quit_twice(self, make_agent, recorder, dev_socket) -> None:
        recorder.session_response["devSocketPort"] = dev_socket.port
        agent = make_agent()
        await agent.start_session()

        await agent.quit_session()
        await agent.quit_session()

        assert agent.is_closed
        assert agent.side_channel.is_open is False

    async def test_report_after_quit_is_dropped(
        self, make_agent, recorder, caplog: pytest.LogCaptureFixture,
    ) -> None:
        caplog.set_level(logging.WARNING, logger="opensdk.agent.client")
        agent = make_agent()
        await agent.quit_session()

        agent.report_test(CustomTestReport("late"))

        assert recorder.requests == []
        assert agent.queue.pending == 0
        assert "破棄" in caplog.text
