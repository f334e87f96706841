"""Shared fixtures: a live relay on an ephemeral port, and a captured console."""
import io
from typing import List

import pytest
import pytest_asyncio
from rich.console import Console
from websockets.asyncio.client import ClientConnection, connect

from relaychat import messages as m
from relaychat.config import ClientConfig, ServerConfig
from relaychat.framing import write_frame
from relaychat.node import RelayServer, bound_port
from tests.support import wait_until


class LiveRelay:
    """A RelayServer bound to 127.0.0.1:<ephemeral> plus helpers to attach clients."""
    def __init__(self, server: RelayServer, url: str) -> None:
        self.server = server
        self.url = url
        self.clients: List[ClientConnection] = []

    @property
    def registry(self):
        return self.server.registry

    async def attach(self, codename: str = "") -> ClientConnection:
        """Connect a raw client and wait until the server has registered it."""
        before = len(self.registry)
        ws = await connect(self.url)
        self.clients.append(ws)
        await wait_until(lambda: len(self.registry) == before + 1)
        if codename:
            await write_frame(ws, m.Join(codename).to_wire())
        return ws

    async def detach(self, ws: ClientConnection) -> None:
        """Close a client and wait until the server has let go of it."""
        before = len(self.registry)
        await ws.close()
        await wait_until(lambda: len(self.registry) == before - 1)


@pytest_asyncio.fixture
async def relay():
    server = RelayServer(ServerConfig(host="127.0.0.1", port=0))
    async with server.listen() as ws_server:
        live = LiveRelay(server, f"ws://127.0.0.1:{bound_port(ws_server)}")
        yield live
        for ws in live.clients:
            await ws.close()


@pytest.fixture
def output() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def console(output: io.StringIO) -> Console:
    return Console(file=output, width=160, highlight=False, force_terminal=False, color_system=None)


@pytest.fixture
def client_config() -> ClientConfig:
    return ClientConfig(server_url="ws://127.0.0.1:9")
