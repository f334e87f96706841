"""
node.py - the relay server.

What it does:
- Accepts WebSocket links, registers each one, and reads frames in order.
- Hands parsed events to the router and broadcasts whatever comes back to
  everyone except the sender.
- Answers plain HTTP GET / and /health on the same port for uptime checks.

Notes:
- Everything between "frame arrived" and "frames queued for the peers" is
  synchronous, so one link's event is handled atomically with respect to all
  the others on the event loop. No locks needed.
- Fan-out is fire-and-forget: frames are queued on each open peer without
  waiting for them to drain. Peers that are closing are skipped and will be
  cleaned up by their own handler.
"""
import logging
from http import HTTPStatus
from typing import Optional, Union

from websockets.asyncio.server import Server, ServerConnection, broadcast as ws_broadcast, serve
from websockets.exceptions import ConnectionClosed
from websockets.http11 import Request, Response

from . import __version__
from . import messages as m
from .config import ServerConfig
from .framing import FrameError, decode_frame, encode_frame
from .registry import ConnectionRegistry, RegistryEntry
from .router import EventRouter

logger = logging.getLogger(__name__)

HEALTH_PATHS = ("/", "/health")
HEALTH_BODY = "SECURE-CHANNEL :: OPERATIONAL"


def print_banner(port: int) -> None:
    print()
    print("  ╔══════════════════════════════════════╗")
    print(f"  ║       SECURE-CHANNEL  v{__version__:<14}║")
    print("  ║       relay node :: online           ║")
    print(f"  ║       port :: {str(port):<23}║")
    print("  ╚══════════════════════════════════════╝")
    print()


class RelayServer:
    """Registry + router + fan-out behind one websockets listener."""
    def __init__(self, config: Optional[ServerConfig] = None) -> None:
        self.config = config or ServerConfig()
        self.registry = ConnectionRegistry()
        self.router = EventRouter(self.registry)

    def listen(self, host: Optional[str] = None, port: Optional[int] = None) -> serve:
        """Build the websockets listener; use as `async with server.listen() as ws_server`."""
        return serve(
            self.handle_conn,
            host if host is not None else self.config.host,
            port if port is not None else self.config.port,
            process_request=self.process_request,
        )

    async def start(self) -> None:
        """Listen on the configured address and serve forever."""
        async with self.listen() as server:
            port = bound_port(server)
            addrs = ", ".join(str(sock.getsockname()) for sock in server.sockets)
            print_banner(port)
            logger.info("Relay listening on %s", addrs)
            await server.serve_forever()

    def process_request(self, connection: ServerConnection, request: Request) -> Optional[Response]:
        """Let WebSocket upgrades through; answer the health probe; 404 the rest."""
        if request.headers.get("Upgrade", "").lower() == "websocket":
            return None
        path = request.path.split("?", 1)[0]
        if path in HEALTH_PATHS:
            return connection.respond(HTTPStatus.OK, HEALTH_BODY)
        return connection.respond(HTTPStatus.NOT_FOUND, "")

    async def handle_conn(self, connection: ServerConnection) -> None:
        """Per-connection loop: register, feed frames through, always clean up."""
        entry = self.registry.register(connection)
        logger.info("+ link established  [%d active]", len(self.registry))
        try:
            async for data in connection:
                self.process_frame(entry, data)
        except ConnectionClosed as exc:
            # Peer went away without a clean close handshake.
            logger.debug("link faulted: %s", exc)
        except Exception as exc:
            logger.warning("Conn error: %s", exc, exc_info=True)
        finally:
            self.drop(entry)

    def process_frame(self, entry: RegistryEntry, data: Union[str, bytes]) -> Optional[m.OutboundEvent]:
        """Decode, parse, route and broadcast one frame. Bad frames are dropped."""
        try:
            frame = decode_frame(data)
        except FrameError as exc:
            logger.debug("dropped frame: %s", exc)
            return None

        event = m.parse_inbound(frame)
        if event is None:
            logger.debug("dropped frame: not a known event")
            return None

        outbound = self.router.route(entry, event)
        if outbound is not None:
            self.broadcast(entry, outbound)
        return outbound

    def broadcast(self, source: Optional[RegistryEntry], event: m.OutboundEvent) -> int:
        """
        Serialize once and queue the same frame on every live link except
        `source`. Returns how many peers were offered the frame (0 when the
        event is too large to send at all).
        """
        try:
            raw = encode_frame(event.to_wire())
        except FrameError as exc:
            logger.debug("dropped broadcast: %s", exc)
            return 0
        peers = [e.connection for e in self.registry.live_entries(exclude=source)]
        ws_broadcast(peers, raw)
        return len(peers)

    def drop(self, entry: RegistryEntry) -> None:
        """Lifecycle hook for close/fault: unregister, then say goodbye if named."""
        presence = self.router.disconnect(entry)
        logger.info("- link severed      [%d active]", len(self.registry))
        if presence is not None:
            self.broadcast(entry, presence)


def bound_port(server: Server) -> int:
    """Port the listener actually got (handy when asked for port 0)."""
    return server.sockets[0].getsockname()[1]
