"""
switchboard/router.py

Relay router: forwards a payload verbatim to peers by id.

Delivery is best-effort and at most once per target. Unknown targets are
skipped silently and nothing is reported back to the sender.
"""

import logging
from typing import TYPE_CHECKING, Iterable, Optional, Union

if TYPE_CHECKING:
    from .connection import PeerConnection
    from .registry import PeerRegistry

logger = logging.getLogger("switchboard.router")


class RelayRouter:
    """Address-then-forward routing over a PeerRegistry."""

    def __init__(self, registry: "PeerRegistry"):
        self.registry = registry
        self.routed = 0
        self.misses = 0

    def route(
        self,
        payload: Union[str, bytes],
        target_ids: Iterable[str],
        source: Optional["PeerConnection"] = None,
    ) -> int:
        """
        Forward payload to each target in order.

        Duplicate targets are each delivered independently.

        Returns:
            Number of targets the payload was queued for
        """
        delivered = 0
        sender = source.describe() if source is not None else "server"

        for target_id in target_ids:
            target = self.registry.lookup(target_id)
            if target is None:
                self.misses += 1
                logger.debug(f"Route miss: {sender} -> {target_id}")
                continue
            if target.send(payload):
                delivered += 1
            else:
                logger.debug(f"Route to {target_id} not queued (connection closed or busy)")

        self.routed += delivered
        return delivered
