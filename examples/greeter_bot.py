#!/usr/bin/env python3
"""Example bot that wanders around the lobby and greets newcomers.

The bot:
- Walks to a random spot every few seconds
- Says hello once to every avatar it sees for the first time
- Logs chat it receives

Usage:
    python examples/greeter_bot.py [--host HOST] [--port PORT]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import math
import random
import time

from chat_lobby.client.lobby_client import ClientConfig, LobbyClient, ReconnectPolicy
from chat_lobby.common.constants import DEFAULT_PORT, FRAME_INTERVAL, MAX_RADIUS

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("greeter_bot")

# Movement interval (seconds)
MOVE_INTERVAL = 3.0


async def main() -> None:
    parser = argparse.ArgumentParser(description="Greeter bot for chat-lobby")
    parser.add_argument("--host", default="localhost", help="Server host")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Server port")
    args = parser.parse_args()

    # A bot should not hammer a server that is down
    config = ClientConfig(reconnect=ReconnectPolicy(max_attempts=10, delay=1.0))
    client = LobbyClient(args.host, args.port, config=config)
    rng = random.Random()

    greeted: set[int] = set()

    @client.on_chat
    def on_chat(avatar_id: int, text: str) -> None:
        logger.info(f"#{avatar_id} says: {text}")

    if not await client.connect():
        logger.error("Failed to connect")
        return

    next_move = time.monotonic() + MOVE_INTERVAL
    while client.running:
        await client.update()

        local_id = client.local_id
        if local_id is not None:
            for avatar_id in sorted(set(client.area.ids()) - greeted - {local_id}):
                greeted.add(avatar_id)
                logger.info(f"Greeting avatar #{avatar_id}")
                await client.submit_chat(f"Hello #{avatar_id}!")

        now = time.monotonic()
        if now >= next_move and client.reconciler.local_position is not None:
            next_move = now + MOVE_INTERVAL
            angle = rng.random() * math.pi * 2
            radius = rng.random() * MAX_RADIUS * 0.8
            await client.move_to(math.cos(angle) * radius, 0.0, math.sin(angle) * radius)

        await asyncio.sleep(FRAME_INTERVAL)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
