"""
AutomationClient — 下位のブラウザ / モバイル自動化クライアントとの境界

実際のプロトコル通信（HTTP / WebSocket）はこのインターフェースの実装側が担う。
SDK はこの Protocol を満たす任意のクライアントにレポート機能を合成する。
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .agent.session import AgentSession
    from .commands import Command


@runtime_checkable
class AutomationClient(Protocol):
    """下位の自動化クライアントの共通インターフェース。"""

    def attach(self, session: AgentSession) -> None:
        """Agent が生成したセッション（ドライバサーバーのアドレス等）に接続先を切り替える。

        Args:
            session: Agent のセッション情報
        """
        ...

    async def execute(self, command: Command) -> Any:
        """コマンドを実行し、レスポンスの値を返す。

        プロトコルレベルのエラーは例外ではなく、
        {"error": ..., "message": ...} 形式のペイロードとして返してもよい。

        Args:
            command: 実行するコマンド

        Returns:
            コマンドの結果
        """
        ...
