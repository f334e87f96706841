"""
run_node.py - single entry point for the relay server and the terminal client.

Quick examples:
  Server:   python -m relaychat.run_node --mode server --port 8080
  Client:   python -m relaychat.run_node --mode client --url ws://127.0.0.1:8080 --codename alice

Environment (flags win over these):
  PORT, HOST     where the server listens (default 0.0.0.0:8080)
  SERVER_URL     where the client dials  (default wss://secure-channel.onrender.com)
"""
import argparse
import asyncio
import logging
from typing import List, Optional

from .client import run_client
from .config import ClientConfig, ServerConfig
from .node import RelayServer

LOG_FORMAT = "  [%(asctime)s] %(levelname)s %(message)s"
LOG_DATEFMT = "%H:%M:%S"


# -------------------------
# Process runners (thin wrappers)
# -------------------------

async def run_server(config: ServerConfig) -> None:
    """Spin up the relay and serve forever on host:port."""
    server = RelayServer(config)
    await server.start()


# -------------------------
# Argument parsing
# -------------------------

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="relaychat", description="Real-time text relay over WebSockets.")
    p.add_argument("--mode", choices=["server", "client"], default="client")
    p.add_argument("--host", help="server bind address (overrides HOST)")
    p.add_argument("--port", type=int, help="server port (overrides PORT)")
    p.add_argument("--url", help="server URL for the client (overrides SERVER_URL)")
    p.add_argument("--codename", help="skip the codename prompt")
    p.add_argument("--no-boot", action="store_true", help="skip the client boot animation")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return p.parse_args(argv)


def build_server_config(args: argparse.Namespace) -> ServerConfig:
    """Environment first, then any flags on top. Bad values become a clean exit."""
    try:
        config = ServerConfig.from_env()
        if args.host is not None or args.port is not None:
            config = ServerConfig(
                host=args.host if args.host is not None else config.host,
                port=args.port if args.port is not None else config.port,
            )
    except ValueError as exc:
        raise SystemExit(f"Invalid server configuration: {exc}")
    return config


def build_client_config(args: argparse.Namespace) -> ClientConfig:
    try:
        return ClientConfig(server_url=args.url) if args.url else ClientConfig.from_env()
    except ValueError as exc:
        raise SystemExit(f"Invalid client configuration: {exc}")


# -------------------------
# Main entrypoint
# -------------------------

def main(argv: Optional[List[str]] = None) -> None:
    """Dispatch into the chosen mode; keep top-level code very small."""
    args = parse_args(argv)

    if args.mode == "server":
        logging.basicConfig(level=args.log_level, format=LOG_FORMAT, datefmt=LOG_DATEFMT)
        config = build_server_config(args)
        try:
            asyncio.run(run_server(config))
        except KeyboardInterrupt:
            logging.getLogger(__name__).info("relay node shutting down")

    elif args.mode == "client":
        # The client owns the terminal; only warnings and up reach stderr.
        logging.basicConfig(level=logging.WARNING, format=LOG_FORMAT, datefmt=LOG_DATEFMT)
        config = build_client_config(args)
        try:
            code = asyncio.run(run_client(config, codename=args.codename, boot=not args.no_boot))
        except KeyboardInterrupt:
            code = 0
        raise SystemExit(code)


if __name__ == "__main__":
    main()
