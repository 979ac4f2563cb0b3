"""
examples/custom_handlers.py

Switchboard with a custom /img command.
Run with: python examples/custom_handlers.py

A client sends "/img|<target peer>|<image url>" and the target receives
"/img|<sender peer>|<image url>".
"""

import logging

import trio

from switchboard import Switchboard, format_command

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(name)s] %(levelname)s: %(message)s'
)
logger = logging.getLogger("examples.custom_handlers")


def img(registry, connection, args):
    """Forward an image url to one peer, tagged with the sender's id."""
    if len(args) < 2 or connection.peer_id is None:
        return False

    target = registry.lookup(args[0])
    if target is None:
        logger.info(f"img target {args[0]} is not online")
        return False

    return target.send(format_command("img", connection.peer_id, args[1]))


async def main():
    board = Switchboard(port=3000, servelib=True, custom_handlers={"img": img})
    await board.run_forever()


if __name__ == "__main__":
    try:
        trio.run(main)
    except KeyboardInterrupt:
        logger.info("Stopped")
