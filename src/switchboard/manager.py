"""
switchboard/manager.py

Connection lifecycle manager.

Each accepted WebSocket gets a PeerConnection and two tasks:
    - receive loop: reads messages and hands them to the dispatcher
    - send loop: drains the connection's outbound queue to the socket

Whichever side ends first closes the connection. Closing always releases
the connection's registry entry, whether or not it ever announced.
"""

import logging
import time
from typing import TYPE_CHECKING, Any, Dict, List, Tuple

import trio
from trio_websocket import ConnectionClosed

from .config import CLOSE_TIMEOUT, SEND_QUEUE_SIZE
from .connection import PeerConnection
from .protocol.commands import LEAVE, notify_room
from .protocol.parser import format_command

if TYPE_CHECKING:
    from .dispatcher import CommandDispatcher
    from .registry import PeerRegistry

logger = logging.getLogger("switchboard.manager")


class ConnectionManager:
    """
    Owns the set of live connections and their cleanup.

    Attributes:
        registry: Shared peer registry
        dispatcher: Handles every inbound message
        announce_presence: Tell room members when a peer disconnects
        send_queue_size: Outbound queue bound per connection
    """

    def __init__(
        self,
        registry: "PeerRegistry",
        dispatcher: "CommandDispatcher",
        announce_presence: bool = False,
        send_queue_size: int = SEND_QUEUE_SIZE,
    ):
        self.registry = registry
        self.dispatcher = dispatcher
        self.announce_presence = announce_presence
        self.send_queue_size = send_queue_size

        self._connections: Dict[str, PeerConnection] = {}
        self._connection_counter = 0
        self.total_connections = 0

    @property
    def connection_count(self) -> int:
        """Number of open connections, announced or not."""
        return len(self._connections)

    def connections(self) -> List[PeerConnection]:
        return list(self._connections.values())

    def _generate_connection_id(self) -> str:
        self._connection_counter += 1
        return f"conn-{self._connection_counter}-{int(time.time() * 1000)}"

    def open_connection(
        self,
        websocket: Any,
        remote: str = "unknown",
    ) -> Tuple[PeerConnection, trio.MemoryReceiveChannel]:
        """
        Create the record for a newly accepted transport.

        Returns:
            (connection, receive side of its outbound queue)
        """
        send_channel, receive_channel = trio.open_memory_channel(self.send_queue_size)
        connection = PeerConnection(
            self._generate_connection_id(),
            websocket,
            send_channel,
            remote=remote,
        )
        connection.on_close(self._handle_close)
        self._connections[connection.connection_id] = connection
        self.total_connections += 1
        logger.info(f"Client connected: {connection.connection_id} from {remote}")
        return connection, receive_channel

    def _handle_close(self, connection: PeerConnection) -> None:
        self._connections.pop(connection.connection_id, None)
        peer_id = self.registry.unregister_by_connection(connection)

        if peer_id is not None and self.announce_presence:
            notify_room(
                self.registry,
                format_command(LEAVE, {"id": peer_id}),
                connection.room,
                exclude=connection,
            )
        logger.info(f"Client disconnected: {connection.connection_id}"
                    + (f" (peer {peer_id} released)" if peer_id else ""))

    async def serve_connection(self, websocket: Any, remote: str = "unknown") -> None:
        """Run a connection until either side closes it."""
        connection, receive_channel = self.open_connection(websocket, remote)
        try:
            async with trio.open_nursery() as nursery:
                nursery.start_soon(self._receive_loop, connection)
                await self._send_loop(connection, receive_channel)
                nursery.cancel_scope.cancel()
        finally:
            connection.close()
            with trio.move_on_after(CLOSE_TIMEOUT) as scope:
                scope.shield = True
                await websocket.aclose()

    async def _receive_loop(self, connection: PeerConnection) -> None:
        """Read messages until the transport closes or the connection is closed."""
        try:
            while not connection.closed:
                try:
                    message = await connection.websocket.get_message()
                except ConnectionClosed as e:
                    logger.debug(f"Transport closed for {connection.describe()}: {e.reason}")
                    break
                await self.dispatcher.handle_message(connection, message)
        finally:
            connection.close()

    async def _send_loop(
        self,
        connection: PeerConnection,
        receive_channel: trio.MemoryReceiveChannel,
    ) -> None:
        """Flush queued messages; returns once the queue is closed and drained."""
        async with receive_channel:
            async for message in receive_channel:
                try:
                    await connection.websocket.send_message(message)
                except ConnectionClosed as e:
                    logger.debug(f"Send failed for {connection.describe()}: {e.reason}")
                    break
                except (trio.BrokenResourceError, trio.ClosedResourceError) as e:
                    logger.debug(f"Send failed for {connection.describe()}: {e}")
                    break

    def close_all(self) -> int:
        """Close every open connection. Returns how many were closed."""
        closed = 0
        for connection in self.connections():
            if connection.close():
                closed += 1
        return closed
