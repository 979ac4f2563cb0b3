"""
examples/simple_logging.py

Log every message that flows through the switchboard, handled or not.
Run with: python examples/simple_logging.py
"""

import json
import logging

import trio

from switchboard import Switchboard

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(name)s] %(levelname)s: %(message)s'
)
logger = logging.getLogger("examples.simple_logging")


def log_event(event):
    logger.info(json.dumps({
        "peer": event.sender,
        "connection": event.connection.connection_id,
        "outcome": event.outcome.value,
        "data": event.data if isinstance(event.data, str) else repr(event.data),
    }))


async def main():
    board = Switchboard(port=3000)
    board.on_data(log_event)
    await board.run_forever()


if __name__ == "__main__":
    try:
        trio.run(main)
    except KeyboardInterrupt:
        logger.info("Stopped")
