"""
switchboard/events.py

Event tap: passive observers of every inbound message.

Observers run after dispatch and cannot influence routing. An observer
that raises is logged and the remaining observers still run.

Usage:
    def log_message(event):
        print(event.sender, event.outcome.value, event.data)

    board.events.subscribe(log_message)
"""

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, List, Optional, Union

if TYPE_CHECKING:
    from .connection import PeerConnection
    from .dispatcher import DispatchOutcome
    from .protocol.parser import ParsedMessage

logger = logging.getLogger("switchboard.events")

UNKNOWN_SENDER = "unknown"


@dataclass
class SignalEvent:
    """One inbound message and what became of it."""
    data: Union[str, bytes]
    peer_id: Optional[str]
    connection: "PeerConnection"
    message: "ParsedMessage"
    outcome: "DispatchOutcome"
    error: Optional[BaseException] = None
    timestamp: float = field(default_factory=time.time)

    @property
    def sender(self) -> str:
        return self.peer_id if self.peer_id is not None else UNKNOWN_SENDER


Observer = Callable[[SignalEvent], None]


class EventTap:
    """Fan-out of SignalEvents to any number of observers."""

    def __init__(self):
        self._observers: List[Observer] = []

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def subscribe(self, observer: Observer) -> Observer:
        """Add an observer. Returns it so this can be used as a decorator."""
        if observer not in self._observers:
            self._observers.append(observer)
        return observer

    def unsubscribe(self, observer: Observer) -> bool:
        try:
            self._observers.remove(observer)
            return True
        except ValueError:
            return False

    def publish(self, event: SignalEvent) -> int:
        """Deliver event to all observers. Returns how many ran cleanly."""
        delivered = 0
        for observer in list(self._observers):
            try:
                observer(event)
                delivered += 1
            except Exception as e:
                logger.error(f"Event observer {observer!r} failed: {e}")
        return delivered
