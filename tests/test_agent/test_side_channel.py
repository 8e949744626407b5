"""
サイドチャネルのユニットテスト

開発ソケットは asyncio.start_server で 127.0.0.1 の空きポートに立てる。
"""

from __future__ import annotations

import pytest

from opensdk.agent.side_channel import SideChannel


class TestSideChannel:
    """SideChannel のテスト。"""

    async def test_open_and_probe(self, dev_socket) -> None:
        channel = SideChannel()
        await channel.open("127.0.0.1", dev_socket.port)

        assert channel.is_open
        assert channel.address == ("127.0.0.1", dev_socket.port)
        assert await channel.is_connected() is True
        assert await dev_socket.wait_for(b"test")

        await channel.close()

    async def test_open_twice_is_noop(self, dev_socket) -> None:
        channel = SideChannel()
        await channel.open("127.0.0.1", dev_socket.port)
        await channel.open("127.0.0.1", dev_socket.port + 1)

        assert channel.address == ("127.0.0.1", dev_socket.port)
        await channel.close()

    async def test_close_is_idempotent(self, dev_socket) -> None:
        channel = SideChannel()
        await channel.open("127.0.0.1", dev_socket.port)

        await channel.close()
        await channel.close()

        assert channel.is_open is False
        assert await channel.is_connected() is False

    async def test_close_without_open(self) -> None:
        channel = SideChannel()
        await channel.close()
        assert channel.address is None

    async def test_connection_refused(self, closed_port: int) -> None:
        channel = SideChannel()
        with pytest.raises(OSError):
            await channel.open("127.0.0.1", closed_port, timeout=2.0)
        assert channel.is_open is False
