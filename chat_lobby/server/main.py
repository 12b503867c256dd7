"""Server entry point."""

import argparse
import asyncio
import logging

from ..common.constants import DEFAULT_PORT, DEFAULT_SERVER_HOST
from .lobby_server import LobbyServer


def setup_logging(log_file: str) -> None:
    """Configure logging to file and console."""
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(),
        ],
    )
    # Per-frame transport chatter is only useful when debugging the wire
    logging.getLogger("chat_lobby.common.transport").setLevel(logging.INFO)


def main() -> None:
    parser = argparse.ArgumentParser(description="Chat Lobby Server")
    parser.add_argument(
        "--host", default=DEFAULT_SERVER_HOST, help="Host to bind to"
    )
    parser.add_argument(
        "--port", type=int, default=DEFAULT_PORT, help="Port to listen on"
    )
    parser.add_argument(
        "--log-file", default="chat_lobby_server.log", help="Log file path"
    )
    args = parser.parse_args()

    setup_logging(args.log_file)

    server = LobbyServer(args.host, args.port)
    try:
        asyncio.run(server.start())
    except KeyboardInterrupt:
        print("\nServer stopped")


if __name__ == "__main__":
    main()
