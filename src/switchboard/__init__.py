"""
switchboard - Signalling relay for real-time peer connection setup

Peers connect over WebSocket, announce an identity and exchange opaque
negotiation messages (offers, answers, candidates) routed by peer id.
The server never interprets those payloads.

Built on trio with:
- trio-websocket for the transport
- A locked peer registry shared by all connections
- Pluggable command handlers (announce and leave built in)
- An event tap for logging and analytics

Usage:
    import trio
    from switchboard import Switchboard

    board = Switchboard(port=3000)
    trio.run(board.run_forever)

Protocol:
    /announce|alice                  claim the id "alice"
    /to|bob|/offer|{...}             relay the whole message to bob
    {"to": ["bob", "carol"], ...}    relay the JSON envelope to bob and carol
    /leave                           release the id, keep the socket
"""

from .config import (
    CLIENT_LIBRARY_PATH,
    DEFAULT_HOST,
    DEFAULT_PORT,
    EvictionPolicy,
    SwitchboardConfig,
)
from .connection import ConnectionState, PeerConnection
from .dispatcher import CommandDispatcher, DispatchOutcome, DispatchResult
from .events import EventTap, SignalEvent
from .manager import ConnectionManager
from .protocol import (
    BuiltinCommands,
    CommandError,
    MessageKind,
    ParsedMessage,
    ParseError,
    SwitchboardError,
    format_command,
    parse_message,
)
from .registry import PeerRegistry, RegisterResult
from .router import RelayRouter
from .server import Switchboard

__version__ = "1.0.0"
__all__ = [
    # Core
    "Switchboard",
    "SwitchboardConfig",
    "EvictionPolicy",
    # Components
    "PeerRegistry",
    "RegisterResult",
    "RelayRouter",
    "CommandDispatcher",
    "DispatchOutcome",
    "DispatchResult",
    "ConnectionManager",
    "PeerConnection",
    "ConnectionState",
    "EventTap",
    "SignalEvent",
    # Protocol
    "BuiltinCommands",
    "MessageKind",
    "ParsedMessage",
    "format_command",
    "parse_message",
    # Errors
    "SwitchboardError",
    "ParseError",
    "CommandError",
    # Config
    "DEFAULT_HOST",
    "DEFAULT_PORT",
    "CLIENT_LIBRARY_PATH",
]
