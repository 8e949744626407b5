"""
CLI エントリポイント — Typer ベースの診断用コマンドラインインターフェース

opensdk コマンドとして以下のサブコマンドを提供する:
  - show-config: 環境変数から解決した SDK 設定の表示（トークンはマスク）
  - check-agent: Agent への TCP 接続確認
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional
from urllib.parse import urlparse

import typer

from . import __version__
from .config import SdkConfig, load_config_from_env, mask_token, normalize_agent_url
from .context import infer_job_name, infer_project_name, infer_test_name

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Typer アプリ定義
# ---------------------------------------------------------------------------

app = typer.Typer(
    help=(
        "opensdk — Agent レポート SDK の診断ツール\n\n"
        "環境変数（TP_DEV_TOKEN, TP_AGENT_URL 等）の設定確認と\n"
        "Agent への疎通確認を行います。"
    ),
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="デバッグログを出力する"),
) -> None:
    """共通オプションを処理する。"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _resolve_config(agent_url: Optional[str]) -> SdkConfig:
    config = load_config_from_env()
    if agent_url:
        config.agent_url = normalize_agent_url(agent_url)
    return config


# ---------------------------------------------------------------------------
# show-config コマンド
# ---------------------------------------------------------------------------

@app.command("show-config")
def show_config() -> None:
    """環境変数から解決した SDK 設定を表示する。"""
    config = load_config_from_env()
    typer.echo(f"SDK バージョン  : {config.sdk_version} (パッケージ {__version__})")
    typer.echo(f"Agent URL       : {config.agent_url}")
    typer.echo(f"開発者トークン  : {mask_token(config.dev_token)}")
    typer.echo(f"自動レポート    : {'無効' if config.disable_auto_reports else '有効'}")
    typer.echo(f"プロジェクト名  : {infer_project_name()}")
    typer.echo(f"ジョブ名        : {infer_job_name()}")
    typer.echo(f"テスト名        : {infer_test_name()}")

    if not config.dev_token:
        typer.echo(
            "警告: TP_DEV_TOKEN が未設定です。セッション開始時にエラーになります。",
            err=True,
        )


# ---------------------------------------------------------------------------
# check-agent コマンド
# ---------------------------------------------------------------------------

async def _probe(host: str, port: int, timeout: float) -> None:
    _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
    writer.close()
    await writer.wait_closed()


@app.command("check-agent")
def check_agent(
    agent_url: Optional[str] = typer.Option(
        None, "--agent-url", "-u", help="確認する Agent の URL（省略時は TP_AGENT_URL）",
    ),
    timeout: float = typer.Option(
        3.0, "--timeout", "-t", help="接続タイムアウト（秒）",
    ),
) -> None:
    """Agent に TCP 接続できるか確認する。

    接続できない場合は終了コード 1 で終了する。
    """
    config = _resolve_config(agent_url)
    parsed = urlparse(config.agent_url)
    host = parsed.hostname
    if not host:
        typer.echo(f"エラー: Agent URL が不正です: {config.agent_url}", err=True)
        raise typer.Exit(code=2)
    port = parsed.port or (443 if parsed.scheme == "https" else 80)

    try:
        asyncio.run(_probe(host, port, timeout))
    except (OSError, asyncio.TimeoutError) as exc:
        logger.debug("Agent への接続に失敗しました: %s", exc)
        typer.echo(
            f"Agent ({config.agent_url}) に接続できませんでした。"
            f"Agent が起動していることを確認してください: {exc}",
            err=True,
        )
        raise typer.Exit(code=1)

    typer.echo(f"Agent ({config.agent_url}) に接続できました")
