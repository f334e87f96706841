"""
client.py - the interactive terminal side of relaychat.

What this module does:
- Connects to the relay, announces our codename, then runs two loops side by
  side: one reading stdin, one reading the socket.
- Lines starting with a known /command are handled locally; everything else
  goes out as a chat message (through the Base64 transform when /encrypt on).
- Renders inbound "system" and "message" frames with a timestamp.

Connection failures at startup end the session with exit code 1; the server
hanging up ends it with exit code 0. There is no auto-reconnect.
"""
from __future__ import annotations

import asyncio
import sys
import threading
from datetime import datetime, timezone
from typing import Any, Optional

from rich.console import Console
from rich.control import Control, ControlType
from rich.text import Text
from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI
from websockets.protocol import State

from . import __version__
from . import messages as m
from .config import ClientConfig
from .framing import FrameError, decode_frame, write_frame
from .transform import TransformError, obscure, reveal

DEFAULT_CODENAME = "ghost"
HUG_TEXT = "sent a virtual embrace ♥"
RULE = "  ─────────────────────────────────────────"

BOOT_STEPS = [
    ("  Initializing Secure Channel", 0.6),
    ("  Loading obfuscation modules", 0.4),
    ("  Performing handshake", 0.7),
    ("  Verifying transform layer", 0.5),
    ("  Establishing relay tunnel", 0.4),
    ("  Channel established", 0.3),
]

HELP_ROWS = [
    ("/heartbeat", "animated pulse"),
    ("/hug", "virtual embrace"),
    ("/panic", "clear terminal"),
    ("/nick", "change codename"),
    ("/encrypt", "on / off"),
    ("/status", "connection info"),
    ("/help", "this message"),
]


def timestamp() -> str:
    """HH:MM:SS in UTC, same clock the server logs use."""
    return datetime.now(timezone.utc).strftime("%H:%M:%S")


def clear_line(console: Console) -> None:
    console.control(Control.move_to_column(0), Control((ControlType.ERASE_IN_LINE, 2)))


def ask_codename(console: Console) -> str:
    """Prompt once for a codename; blank input becomes 'ghost'."""
    console.print()
    answer = console.input(Text("  Enter codename: ", style="bright_green"))
    return answer.strip() or DEFAULT_CODENAME


async def boot_sequence(console: Console, speed: float = 1.0) -> None:
    """Cosmetic startup animation. speed=0 prints it instantly."""
    console.clear()
    console.print()
    console.print("  ┌──────────────────────────────────────┐", style="bright_green")
    console.print(f"  │        SECURE CHANNEL  v{__version__:<13}│", style="bright_green")
    console.print("  │      obfuscated relay protocol       │", style="bright_green")
    console.print("  └──────────────────────────────────────┘", style="bright_green")
    console.print()

    for step, delay in BOOT_STEPS:
        await asyncio.sleep(delay * speed)
        console.print(Text.assemble((f"  {timestamp()}  ", "dim"), (step + "...", "bright_green")))

    await asyncio.sleep(0.3 * speed)
    console.print()
    console.print(Text.assemble(("  ✓ ", "bright_green"), ("Connection ready.", "bold")))
    console.print(RULE, style="dim")
    console.print()


class ClientSession:
    """
    State for one terminal session: our codename, the transform toggle, and
    the live connection (None until connected).
    """
    def __init__(self, config: ClientConfig, codename: str, console: Optional[Console] = None) -> None:
        self.config = config
        self.codename = codename
        self.encryption_enabled = False
        self.connection: Any = None
        self.console = console or Console(highlight=False)

    # ------------------------------------------------------------------
    # Connection lifecycle

    @property
    def is_open(self) -> bool:
        return self.connection is not None and self.connection.state is State.OPEN

    async def run(self) -> int:
        """Connect, chat until either side hangs up, and return an exit code."""
        self.console.print(f"  connecting to {self.config.server_url}...", style="dim", markup=False)
        self.console.print()
        try:
            async with connect(self.config.server_url) as connection:
                self.connection = connection
                await self.on_open()
                reader = asyncio.create_task(self.reader_loop())
                prompt = asyncio.create_task(self.prompt_loop(stdin_lines()))
                done, pending = await asyncio.wait({reader, prompt}, return_when=asyncio.FIRST_COMPLETED)
                for task in pending:
                    task.cancel()
                for task in done:
                    task.result()
        except ConnectionClosed:
            # Server dropped us mid-send; same ending as a clean close.
            self.connection = None
        except (OSError, InvalidURI, InvalidHandshake, asyncio.TimeoutError) as exc:
            self.console.print()
            self.console.print(f"  ✗ connection failed: {exc}", style="bright_red", markup=False)
            self.console.print("  verify server is running and URL is correct", style="dim")
            self.console.print()
            return 1

        self.console.print()
        self.console.print("  ✗ relay connection severed", style="bright_red")
        self.console.print("  channel terminated", style="dim")
        self.console.print()
        return 0

    async def on_open(self) -> None:
        self.console.print("  ✓ relay tunnel active", style="bright_green")
        self.console.print("  type /help for commands", style="dim")
        self.console.print(RULE, style="dim")
        self.console.print()
        await write_frame(self.connection, m.Join(self.codename).to_wire())

    async def reader_loop(self) -> None:
        """Render every inbound frame until the server closes the link."""
        try:
            async for data in self.connection:
                self.render_frame(data)
        except ConnectionClosed:
            pass

    async def prompt_loop(self, lines: "asyncio.Queue[Optional[str]]") -> None:
        """Consume stdin lines until EOF (None) or the link goes away."""
        while self.is_open:
            self.show_prompt()
            line = await lines.get()
            if line is None:
                return
            await self.handle_input(line)

    def show_prompt(self) -> None:
        self.console.print("  > ", style="dim", end="")

    # ------------------------------------------------------------------
    # Input

    async def handle_input(self, line: str) -> None:
        """One line from the user: a local command, a message, or nothing."""
        if not line.strip():
            return
        if await self.handle_command(line):
            return
        self.display_outgoing(line)
        await self.send_message(line)

    async def handle_command(self, line: str) -> bool:
        """Run a slash-command. Returns False when `line` isn't one we know."""
        parts = line.strip().split()
        cmd = parts[0].lower()

        if cmd == "/heartbeat":
            await self.animate_heartbeat()
            return True

        if cmd == "/hug":
            self.console.print("  sending_virtual_packet...", style="bright_cyan")
            await asyncio.sleep(0.4)
            self.console.print("  packet_delivered ♥", style="bright_cyan")
            await self.send_message(HUG_TEXT)
            return True

        if cmd == "/panic":
            self.console.clear()
            return True

        if cmd == "/nick":
            await self.change_nick(" ".join(parts[1:]).strip())
            return True

        if cmd == "/encrypt":
            arg = parts[1].lower() if len(parts) > 1 else ""
            if arg == "on":
                self.encryption_enabled = True
                self.console.print("  ✓ encryption :: enabled  [base64]", style="bright_green", markup=False)
            elif arg == "off":
                self.encryption_enabled = False
                self.console.print("  ✗ encryption :: disabled [plaintext]", style="bright_yellow", markup=False)
            else:
                state = "ON" if self.encryption_enabled else "OFF"
                self.console.print(f"  encryption is currently {state}", style="dim")
            return True

        if cmd == "/status":
            self.show_status()
            return True

        if cmd == "/help":
            self.show_help()
            return True

        return False

    async def change_nick(self, new_name: str) -> bool:
        if not new_name:
            self.console.print("  usage: /nick <new_codename>", style="dim")
            return False
        if len(new_name) > m.MAX_IDENTITY_LENGTH:
            self.console.print(f"  codename too long (max {m.MAX_IDENTITY_LENGTH} characters)", style="dim")
            return False
        old_name = self.codename
        if self.is_open:
            try:
                await write_frame(self.connection, m.Rename(old_name, new_name).to_wire())
            except FrameError:
                self.console.print("  codename too long", style="dim")
                return False
        self.codename = new_name
        self.console.print(f"  ✓ codename changed: {old_name} → {new_name}", style="bright_green", markup=False)
        return True

    async def send_message(self, text: str) -> bool:
        """Send a chat line; returns False (and says so) when it can't go out."""
        if not self.is_open:
            self.console.print("  ✗ channel disconnected", style="bright_red")
            return False
        body = obscure(text) if self.encryption_enabled else text
        try:
            await write_frame(self.connection, m.Message(self.codename, body, self.encryption_enabled).to_wire())
        except FrameError:
            # Nothing was sent; the prompt stays usable.
            self.console.print("  message too long", style="dim")
            return False
        return True

    # ------------------------------------------------------------------
    # Output

    def render_frame(self, data: Any) -> Optional[m.OutboundEvent]:
        """Decode and display one server frame; malformed frames are dropped."""
        try:
            event = m.parse_outbound(decode_frame(data))
        except FrameError:
            return None
        if event is None:
            return None

        clear_line(self.console)
        if isinstance(event, m.Presence):
            self.display_system(event.text)
        else:
            self.display_incoming(event)
        self.show_prompt()
        return event

    def display_outgoing(self, text: str) -> None:
        self.console.print(Text.assemble(
            (f"  {timestamp()}", "dim"), "  ", (">", "bright_green"), f' transmit --payload="{text}"',
        ))

    def display_incoming(self, relay: m.Relay) -> None:
        body = relay.body
        if relay.obscured:
            try:
                body = reveal(relay.body)
            except TransformError:
                body = relay.body  # not ours to decode; show it raw
        line = Text.assemble(
            (f"  {timestamp()}", "dim"), "  ", ("<", "bright_cyan"), " ",
            (relay.identity, "bold"), f' --state="{body}"',
        )
        if relay.obscured:
            line.append(" [enc]", style="dim")
        self.console.print(line)

    def display_system(self, text: str) -> None:
        self.console.print(Text(f"  {timestamp()}  ── {text}", style="dim"))

    def show_status(self) -> None:
        state = Text("OPEN", style="bright_green") if self.is_open else Text("CLOSED", style="bright_red")
        enc = Text("ON", style="bright_green") if self.encryption_enabled else Text("OFF", style="bright_yellow")
        self.console.print()
        self.console.print("  ┌─ status ────────────────────────┐", style="dim")
        self.console.print(Text.assemble(("  │ ", "dim"), "codename    : ", (self.codename, "bold")))
        self.console.print(Text.assemble(("  │ ", "dim"), "connection  : ", state))
        self.console.print(Text.assemble(("  │ ", "dim"), "encryption  : ", enc))
        self.console.print(Text.assemble(("  │ ", "dim"), "server      : ", (self.config.server_url, "dim")))
        self.console.print("  └────────────────────────────────", style="dim")
        self.console.print()

    def show_help(self) -> None:
        self.console.print()
        self.console.print("  ┌─ commands ──────────────────────┐", style="dim")
        for name, blurb in HELP_ROWS:
            self.console.print(Text.assemble(("  │", "dim"), f"  {name:<12} {blurb:<18}", ("│", "dim")))
        self.console.print("  └────────────────────────────────", style="dim")
        self.console.print()

    async def animate_heartbeat(self) -> None:
        for frame in ("♥", "♥ ♥", "♥ ♥ ♥", "♥ ♥", "♥", ""):
            clear_line(self.console)
            self.console.print(f"  {frame}", style="bright_red", end="")
            await asyncio.sleep(0.25)
        clear_line(self.console)
        self.console.print("  ♥ ♥ ♥  pulse transmitted", style="bright_red")


def stdin_lines() -> "asyncio.Queue[Optional[str]]":
    """
    Pump stdin into an asyncio queue from a daemon thread, so a blocked read
    never keeps the process alive after the link closes. None marks EOF.
    """
    loop = asyncio.get_running_loop()
    queue: "asyncio.Queue[Optional[str]]" = asyncio.Queue()

    def pump() -> None:
        try:
            for line in sys.stdin:
                loop.call_soon_threadsafe(queue.put_nowait, line.rstrip("\n"))
            loop.call_soon_threadsafe(queue.put_nowait, None)
        except RuntimeError:
            # Loop already closed; the session is over.
            return

    threading.Thread(target=pump, name="stdin-pump", daemon=True).start()
    return queue


async def run_client(config: ClientConfig, codename: Optional[str] = None, boot: bool = True) -> int:
    """Ask for a codename if needed, play the boot animation, then chat."""
    console = Console(highlight=False)
    name = (codename or "").strip() or ask_codename(console)
    if boot:
        await boot_sequence(console)
    return await ClientSession(config, name, console).run()
