"""
switchboard.protocol.commands - Built-in signalling commands

Handlers are plain callables invoked as handler(registry, connection, args)
where args is the list of "|" separated arguments after the command name.
They may be sync or async, may mutate the registry, and may send to any
connection.

Built-ins:
    - announce: /announce|<id>[|<json metadata>] or /announce|{"id": ..., ...}
    - leave:    /leave

Notices sent by the built-ins:
    - /evicted|{"id": ...}                               (replace policy)
    - /announce-rejected|{"id": ..., "reason": "in-use"}  (reject policy)
    - /announce|{"id": ..., ...} and /leave|{"id": ...}   (presence, opt-in)
"""

import json
import logging
from typing import (
    TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union,
)

from ..config import EvictionPolicy
from .parser import SwitchboardError, format_command

if TYPE_CHECKING:
    from ..connection import PeerConnection
    from ..registry import PeerRegistry

logger = logging.getLogger("switchboard.protocol.commands")

Handler = Callable[
    ["PeerRegistry", "PeerConnection", List[str]],
    Union[None, bool, Awaitable[Optional[bool]]],
]

ANNOUNCE = "announce"
LEAVE = "leave"
EVICTED = "evicted"
ANNOUNCE_REJECTED = "announce-rejected"


class CommandError(SwitchboardError):
    """Raised by a handler when its arguments are unusable."""
    pass


def parse_announce_args(args: List[str]) -> Tuple[str, Dict[str, Any]]:
    """Extract (peer_id, metadata) from announce arguments."""
    if not args or not args[0].strip():
        raise CommandError("announce requires a peer id")

    first = args[0].strip()
    if first.startswith("{"):
        try:
            data = json.loads(first)
        except json.JSONDecodeError as e:
            raise CommandError(f"invalid announce payload: {e}") from e
        if not isinstance(data, dict):
            raise CommandError("announce payload must be an object")
        peer_id = data.get("id")
        if not isinstance(peer_id, str) or not peer_id:
            raise CommandError("announce payload has no id")
        return peer_id, {k: v for k, v in data.items() if k != "id"}

    metadata: Dict[str, Any] = {}
    if len(args) > 1 and args[1].strip():
        try:
            metadata = json.loads(args[1])
        except json.JSONDecodeError as e:
            raise CommandError(f"invalid announce metadata: {e}") from e
        if not isinstance(metadata, dict):
            raise CommandError("announce metadata must be an object")
    return first, metadata


def notify_room(
    registry: "PeerRegistry",
    message: str,
    room: Optional[str],
    exclude: Optional["PeerConnection"] = None,
) -> int:
    """Send message to every registered peer in room. Returns recipients."""
    sent = 0
    for _, connection in registry.peers():
        if connection is exclude or connection.room != room:
            continue
        if connection.send(message):
            sent += 1
    return sent


class BuiltinCommands:
    """
    The announce and leave commands.

    Attributes:
        eviction_policy: How a duplicate announce is resolved
        announce_presence: Whether room members are told about arrivals/departures
    """

    def __init__(
        self,
        eviction_policy: EvictionPolicy = EvictionPolicy.REPLACE,
        announce_presence: bool = False,
    ):
        self.eviction_policy = eviction_policy
        self.announce_presence = announce_presence

    def handlers(self) -> Dict[str, Handler]:
        return {
            ANNOUNCE: self.announce,
            LEAVE: self.leave,
        }

    def announce(self, registry: "PeerRegistry", connection: "PeerConnection", args: List[str]) -> bool:
        peer_id, metadata = parse_announce_args(args)
        replace = self.eviction_policy is EvictionPolicy.REPLACE

        previous_room = connection.room
        result = registry.register(peer_id, connection, replace=replace)

        if not result.accepted:
            if result.conflict:
                logger.warning(f"Announce of {peer_id} by {connection.connection_id} rejected: id in use")
                connection.send(format_command(ANNOUNCE_REJECTED, {"id": peer_id, "reason": "in-use"}))
            return False

        connection.metadata = metadata
        logger.info(f"Peer announced: {peer_id} on {connection.connection_id}")

        if self.announce_presence and result.previous_id and result.previous_id != peer_id:
            notify_room(
                registry,
                format_command(LEAVE, {"id": result.previous_id}),
                previous_room,
                exclude=connection,
            )

        if result.evicted is not None:
            result.evicted.send(format_command(EVICTED, {"id": peer_id}))
            result.evicted.close()

        if self.announce_presence:
            notify_room(
                registry,
                format_command(ANNOUNCE, dict(metadata, id=peer_id)),
                connection.room,
                exclude=connection,
            )
        return True

    def leave(self, registry: "PeerRegistry", connection: "PeerConnection", args: List[str]) -> bool:
        peer_id = registry.unregister_by_connection(connection)
        if peer_id is None:
            return False

        logger.info(f"Peer left: {peer_id} on {connection.connection_id}")
        if self.announce_presence:
            notify_room(
                registry,
                format_command(LEAVE, {"id": peer_id}),
                connection.room,
                exclude=connection,
            )
        return True
