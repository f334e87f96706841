"""Helpers shared by the test modules."""
import asyncio
from typing import Any, Callable, Dict, List

import pytest
from websockets.asyncio.client import ClientConnection
from websockets.protocol import State

from relaychat.framing import decode_frame

RECV_TIMEOUT = 2.0
QUIET_PERIOD = 0.2


async def wait_until(predicate: Callable[[], bool], timeout: float = RECV_TIMEOUT) -> None:
    """Poll until predicate() holds; fail the test if it never does."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not met before timeout")
        await asyncio.sleep(0.01)


async def read_frame(ws) -> Any:
    """Wait for the next frame on a WebSocket connection and decode it."""
    return decode_frame(await ws.recv())


async def recv_event(ws: ClientConnection) -> Dict[str, Any]:
    return await asyncio.wait_for(read_frame(ws), RECV_TIMEOUT)


async def assert_silent(ws: ClientConnection, period: float = QUIET_PERIOD) -> None:
    """Nothing should arrive on `ws` within `period` seconds."""
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(ws.recv(), period)


class FakeConnection:
    """Stands in for a client WebSocket: records frames, reports a state."""
    def __init__(self, state: State = State.OPEN) -> None:
        self.state = state
        self.sent: List[str] = []

    async def send(self, data: str) -> None:
        self.sent.append(data)

    @property
    def frames(self) -> List[Any]:
        return [decode_frame(d) for d in self.sent]
