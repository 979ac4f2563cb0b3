"""
switchboard/__main__.py

Standalone signalling server.
Run with: python -m switchboard

Configured from the environment (see SwitchboardConfig.from_env), e.g.
    NODE_PORT=8997 python -m switchboard
"""

import logging
import sys

import trio

from .config import SwitchboardConfig
from .server import Switchboard

logger = logging.getLogger("switchboard")


def main() -> int:
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s [%(name)s] %(levelname)s: %(message)s'
    )

    try:
        config = SwitchboardConfig.from_env()
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    board = Switchboard(config)
    try:
        trio.run(board.run_forever)
    except KeyboardInterrupt:
        logger.info("Switchboard stopped")
    except OSError as e:
        logger.error(f"Cannot listen on {config.host}:{config.port}: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
