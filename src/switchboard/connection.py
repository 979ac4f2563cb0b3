"""
switchboard/connection.py

Connection record for one live transport session.
"""

import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

import trio

logger = logging.getLogger("switchboard.connection")


class ConnectionState(Enum):
    """
    Lifecycle of a connection.

    CONNECTED: transport open, no peer id registered
    ANNOUNCED: registered in the peer registry under peer_id
    CLOSED: terminal, no further transitions
    """
    CONNECTED = "connected"
    ANNOUNCED = "announced"
    CLOSED = "closed"


class PeerConnection:
    """
    A connected signalling client.

    Outbound messages go through a bounded memory channel drained by the
    connection's send task, so send() never waits on the remote end.

    peer_id is maintained by the PeerRegistry; do not assign it directly.
    """

    def __init__(
        self,
        connection_id: str,
        websocket: Any,
        send_channel: trio.MemorySendChannel,
        remote: str = "unknown",
    ):
        self.connection_id = connection_id
        self.websocket = websocket
        self.send_channel = send_channel
        self.remote = remote
        self.peer_id: Optional[str] = None
        self.metadata: Dict[str, Any] = {}
        self.connected_at = time.time()
        self.last_seen = self.connected_at
        self.messages_received = 0
        self.messages_sent = 0
        self.messages_dropped = 0
        self._closed = False
        self._close_callbacks: List[Callable[["PeerConnection"], None]] = []

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def state(self) -> ConnectionState:
        if self._closed:
            return ConnectionState.CLOSED
        if self.peer_id is not None:
            return ConnectionState.ANNOUNCED
        return ConnectionState.CONNECTED

    @property
    def room(self) -> Optional[str]:
        return self.metadata.get("room")

    def touch(self) -> None:
        """Record inbound activity."""
        self.last_seen = time.time()
        self.messages_received += 1

    def send(self, message: Union[str, bytes]) -> bool:
        """
        Queue a message for delivery without blocking.

        Returns:
            True if queued, False if the connection is closed or its queue is full
        """
        if self._closed:
            return False
        try:
            self.send_channel.send_nowait(message)
        except trio.WouldBlock:
            self.messages_dropped += 1
            logger.warning(f"Send queue full for {self.describe()}, dropping message")
            return False
        except (trio.ClosedResourceError, trio.BrokenResourceError):
            return False
        self.messages_sent += 1
        return True

    def on_close(self, callback: Callable[["PeerConnection"], None]) -> None:
        """Register a callback run once when the connection closes."""
        self._close_callbacks.append(callback)

    def close(self) -> bool:
        """
        Close the connection. Idempotent.

        Already queued messages are still flushed by the send task before the
        transport is closed.

        Returns:
            True if this call closed the connection
        """
        if self._closed:
            return False
        self._closed = True
        self.send_channel.close()

        for callback in self._close_callbacks:
            try:
                callback(self)
            except Exception as e:
                logger.error(f"Close callback failed for {self.describe()}: {e}")
        self._close_callbacks.clear()
        return True

    def describe(self) -> str:
        if self.peer_id:
            return f"{self.connection_id} ({self.peer_id})"
        return self.connection_id

    def to_dict(self) -> dict:
        return {
            "connection_id": self.connection_id,
            "peer_id": self.peer_id,
            "state": self.state.value,
            "remote": self.remote,
            "metadata": dict(self.metadata),
            "connected_at": self.connected_at,
            "last_seen": self.last_seen,
            "messages_received": self.messages_received,
            "messages_sent": self.messages_sent,
            "messages_dropped": self.messages_dropped,
        }

    def __repr__(self) -> str:
        return f"PeerConnection(id={self.connection_id}, peer={self.peer_id}, state={self.state.value})"
