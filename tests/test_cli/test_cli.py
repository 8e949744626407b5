"""
CLI テスト — typer.testing.CliRunner を使用した CLI コマンドのテスト

Agent への接続確認はローカルの待ち受けソケットで代替する。
"""

from __future__ import annotations

import socket

import pytest
from typer.testing import CliRunner

from opensdk import __version__
from opensdk.cli import app

runner = CliRunner()


# ---------------------------------------------------------------------------
# ヘルパー
# ---------------------------------------------------------------------------

def _unused_port() -> int:
    """待ち受けていないポート番号を返す。"""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


# ===========================================================================
# 1. show-config コマンド
# ===========================================================================

class TestShowConfigCommand:
    """show-config コマンドのテスト。"""

    def test_masks_token(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """トークンはマスクして表示する。"""
        monkeypatch.setenv("TP_DEV_TOKEN", "abcdef123456")
        monkeypatch.setenv("TP_AGENT_URL", "http://localhost:9999")

        result = runner.invoke(app, ["show-config"])

        assert result.exit_code == 0
        assert "abcd***" in result.output
        assert "abcdef123456" not in result.output
        assert "http://127.0.0.1:9999" in result.output
        assert __version__ in result.output

    def test_names_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TP_DEV_TOKEN", "abcdef")
        monkeypatch.setenv("TP_PROJECT_NAME", "Shop")

        result = runner.invoke(app, ["show-config"])

        assert "Shop" in result.output
        assert "Unnamed Job" in result.output

    def test_warns_without_token(self) -> None:
        result = runner.invoke(app, ["show-config"])
        assert result.exit_code == 0
        assert "<unset>" in result.output
        assert "TP_DEV_TOKEN" in result.output


# ===========================================================================
# 2. check-agent コマンド
# ===========================================================================

class TestCheckAgentCommand:
    """check-agent コマンドのテスト。"""

    def test_reachable(self) -> None:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server:
            server.bind(("127.0.0.1", 0))
            server.listen(1)
            port = server.getsockname()[1]

            result = runner.invoke(app, ["check-agent", "--agent-url", f"http://localhost:{port}"])

        assert result.exit_code == 0
        assert "接続できました" in result.output

    def test_unreachable(self) -> None:
        port = _unused_port()
        result = runner.invoke(app, ["check-agent", "-u", f"http://127.0.0.1:{port}", "-t", "1"])
        assert result.exit_code == 1
        assert "接続できませんでした" in result.output

    def test_url_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        port = _unused_port()
        monkeypatch.setenv("TP_AGENT_URL", f"http://127.0.0.1:{port}")
        result = runner.invoke(app, ["check-agent"])
        assert result.exit_code == 1
        assert str(port) in result.output

    def test_invalid_url(self) -> None:
        result = runner.invoke(app, ["check-agent", "-u", "not-a-url"])
        assert result.exit_code == 2


class TestCliApp:
    """アプリ全体のテスト。"""

    def test_no_args_shows_help(self) -> None:
        result = runner.invoke(app, [])
        assert "show-config" in result.output

    def test_verbose_option(self) -> None:
        result = runner.invoke(app, ["--verbose", "show-config"])
        assert result.exit_code == 0
