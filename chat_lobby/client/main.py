"""Client entry point."""

import argparse
import asyncio
import logging

from ..common.constants import DEFAULT_HOST, DEFAULT_PORT
from .lobby_client import LobbyClient
from .message_log import MessageLog
from .terminal_app import TerminalApp


def setup_logging(log_file: str | None, message_log: MessageLog) -> None:
    """Configure logging with in-memory buffer and optional file output."""
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Always add the in-memory buffer for TUI display
    root.addHandler(message_log)

    # Optionally add file handler
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        root.addHandler(file_handler)

    logging.getLogger("asyncio").setLevel(logging.WARNING)


def main() -> None:
    parser = argparse.ArgumentParser(description="Chat Lobby Client")
    parser.add_argument("--host", default=DEFAULT_HOST, help="Server host")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Server port")
    parser.add_argument(
        "--log", help="Log file path (in addition to in-memory log buffer)"
    )
    args = parser.parse_args()

    message_log = MessageLog(maxlen=200)
    setup_logging(args.log, message_log)

    client = LobbyClient(args.host, args.port)

    async def run_client() -> None:
        if await client.connect():
            await TerminalApp(client, message_log).run()
        else:
            print(f"Failed to connect to {args.host}:{args.port}")

    try:
        asyncio.run(run_client())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
