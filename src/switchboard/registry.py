"""
switchboard/registry.py

Peer registry: the single mapping from peer id to live connection.

Every mutation happens under one lock together with the identity fields
of the affected connection records, so lookups never observe a partially
applied change and a closing connection can never be (re)registered.

Usage:
    from switchboard.registry import PeerRegistry

    registry = PeerRegistry()
    result = registry.register("alice", connection)
    if result.evicted:
        result.evicted.close()

    registry.lookup("alice")           # -> connection
    registry.unregister_by_connection(connection)
    registry.lookup("alice")           # -> None
"""

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

if TYPE_CHECKING:
    from .connection import PeerConnection

logger = logging.getLogger("switchboard.registry")


@dataclass
class RegisterResult:
    """Outcome of a register() call."""
    peer_id: str
    accepted: bool
    evicted: Optional["PeerConnection"] = None   # displaced connection (replace)
    previous_id: Optional[str] = None            # id this connection held before
    conflict: bool = False                       # id held by another connection (reject)


class PeerRegistry:
    """Thread-safe peer id -> connection mapping."""

    def __init__(self):
        self._lock = threading.Lock()
        self._peers: Dict[str, "PeerConnection"] = {}
        self._ids: Dict[str, str] = {}  # connection_id -> peer_id

    def register(
        self,
        peer_id: str,
        connection: "PeerConnection",
        replace: bool = True,
    ) -> RegisterResult:
        """
        Register connection under peer_id.

        Args:
            peer_id: Peer identifier chosen by the client
            connection: Connection claiming the id
            replace: If True an existing holder is evicted, otherwise the
                call is rejected and the existing registration kept

        Returns:
            RegisterResult describing what changed
        """
        with self._lock:
            if connection.closed:
                return RegisterResult(peer_id=peer_id, accepted=False)

            current = self._peers.get(peer_id)
            if current is connection:
                return RegisterResult(peer_id=peer_id, accepted=True)

            if current is not None and not replace:
                return RegisterResult(peer_id=peer_id, accepted=False, conflict=True)

            # A connection holds at most one id
            previous_id = self._ids.pop(connection.connection_id, None)
            if previous_id is not None:
                self._peers.pop(previous_id, None)

            evicted = None
            if current is not None:
                self._ids.pop(current.connection_id, None)
                current.peer_id = None
                evicted = current

            self._peers[peer_id] = connection
            self._ids[connection.connection_id] = peer_id
            connection.peer_id = peer_id

        if evicted is not None:
            logger.info(f"Peer {peer_id} moved from {evicted.connection_id} to {connection.connection_id}")
        return RegisterResult(
            peer_id=peer_id,
            accepted=True,
            evicted=evicted,
            previous_id=previous_id,
        )

    def unregister(
        self,
        peer_id: str,
        connection: Optional["PeerConnection"] = None,
    ) -> Optional["PeerConnection"]:
        """
        Remove peer_id. No-op if absent.

        If connection is given the entry is only removed while it still
        belongs to that connection.

        Returns:
            The removed connection, if any
        """
        with self._lock:
            current = self._peers.get(peer_id)
            if current is None:
                return None
            if connection is not None and current is not connection:
                return None
            del self._peers[peer_id]
            self._ids.pop(current.connection_id, None)
            current.peer_id = None
            return current

    def unregister_by_connection(self, connection: "PeerConnection") -> Optional[str]:
        """
        Remove whatever id currently maps to connection.

        Returns:
            The released peer id, or None if the connection held none
        """
        with self._lock:
            peer_id = self._ids.pop(connection.connection_id, None)
            if peer_id is None:
                return None
            if self._peers.get(peer_id) is connection:
                del self._peers[peer_id]
            connection.peer_id = None
            return peer_id

    def lookup(self, peer_id: str) -> Optional["PeerConnection"]:
        with self._lock:
            return self._peers.get(peer_id)

    def count(self) -> int:
        with self._lock:
            return len(self._peers)

    def peers(self) -> List[Tuple[str, "PeerConnection"]]:
        """Snapshot of (peer_id, connection) pairs."""
        with self._lock:
            return list(self._peers.items())

    def peer_ids(self) -> List[str]:
        with self._lock:
            return list(self._peers)

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, peer_id: str) -> bool:
        return self.lookup(peer_id) is not None

    def __repr__(self) -> str:
        return f"PeerRegistry(peers={self.count()})"
