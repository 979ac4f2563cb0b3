"""
switchboard/dispatcher.py

Command dispatcher: parses inbound messages, invokes the handler bound to
the command name, falls back to the relay router for addressed messages,
and reports every message to the event tap.

Dispatch rules:
    1. INVALID messages are not dispatched
    2. A named message with a handler runs the handler
    3. Otherwise a message with targets is relayed verbatim
    4. Otherwise the message is unhandled

The handler table is fixed at construction. Custom handlers replace
built-ins of the same name.
"""

import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Dict, Mapping, Optional, Union

from .events import EventTap, SignalEvent
from .protocol.commands import Handler
from .protocol.parser import MessageKind, ParsedMessage, format_command, parse_message

if TYPE_CHECKING:
    from .connection import PeerConnection
    from .registry import PeerRegistry
    from .router import RelayRouter

logger = logging.getLogger("switchboard.dispatcher")

UNKNOWN_NOTICE = "unknown"


class DispatchOutcome(Enum):
    HANDLED = "handled"
    ROUTED = "routed"
    UNHANDLED = "unhandled"
    INVALID = "invalid"
    FAILED = "failed"


@dataclass
class DispatchResult:
    outcome: DispatchOutcome
    delivered: int = 0
    error: Optional[BaseException] = None


def build_handler_table(*tables: Optional[Mapping[str, Handler]]) -> Mapping[str, Handler]:
    """Merge handler tables; later tables win on name collisions."""
    merged: Dict[str, Handler] = {}
    for table in tables:
        if not table:
            continue
        for name, handler in table.items():
            if not callable(handler):
                raise ValueError(f"Handler for '{name}' is not callable")
            if name in merged:
                logger.debug(f"Handler '{name}' overridden")
            merged[name] = handler
    return MappingProxyType(merged)


class CommandDispatcher:
    """
    Routes parsed messages to handlers or the relay router.

    Attributes:
        registry: Shared peer registry handed to every handler
        router: Fallback for addressed messages
        events: Event tap receiving one event per inbound message
        unknown_command_notice: Reply "/unknown|<name>" to unhandled commands
    """

    def __init__(
        self,
        registry: "PeerRegistry",
        router: "RelayRouter",
        handlers: Optional[Mapping[str, Handler]] = None,
        events: Optional[EventTap] = None,
        unknown_command_notice: bool = False,
    ):
        self.registry = registry
        self.router = router
        self.events = events if events is not None else EventTap()
        self.unknown_command_notice = unknown_command_notice
        self._handlers = build_handler_table(handlers)

    @property
    def handlers(self) -> Mapping[str, Handler]:
        return self._handlers

    async def handle_message(
        self,
        connection: "PeerConnection",
        data: Union[str, bytes],
    ) -> DispatchResult:
        """Parse, dispatch and publish one inbound message."""
        peer_id = connection.peer_id
        connection.touch()

        message = parse_message(data)
        result = await self.dispatch(message, connection)

        self.events.publish(SignalEvent(
            data=data,
            peer_id=peer_id,
            connection=connection,
            message=message,
            outcome=result.outcome,
            error=result.error,
        ))
        return result

    async def dispatch(self, message: ParsedMessage, connection: "PeerConnection") -> DispatchResult:
        if message.kind is MessageKind.INVALID:
            logger.debug(f"Invalid message from {connection.describe()}: {message.error}")
            return DispatchResult(DispatchOutcome.INVALID)

        handler = self._handlers.get(message.name) if message.name else None
        if handler is not None:
            return await self._invoke(handler, message, connection)

        if message.has_targets:
            delivered = self.router.route(message.raw, message.targets, connection)
            return DispatchResult(DispatchOutcome.ROUTED, delivered=delivered)

        if message.kind is MessageKind.COMMAND:
            logger.debug(f"Unknown command '{message.name}' from {connection.describe()}")
            if self.unknown_command_notice:
                connection.send(format_command(UNKNOWN_NOTICE, message.name))
        return DispatchResult(DispatchOutcome.UNHANDLED)

    async def _invoke(
        self,
        handler: Handler,
        message: ParsedMessage,
        connection: "PeerConnection",
    ) -> DispatchResult:
        try:
            result = handler(self.registry, connection, list(message.args))
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Handler '{message.name}' failed for {connection.describe()}: {e}")
            return DispatchResult(DispatchOutcome.FAILED, error=e)
        return DispatchResult(DispatchOutcome.HANDLED)
