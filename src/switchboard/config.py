"""
switchboard/config.py

Configuration constants and data classes for switchboard.
"""

import os
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Callable, Dict, Optional


# Default listening port (same as the original standalone server)
DEFAULT_PORT = 3000
DEFAULT_HOST = "0.0.0.0"

# Path the client support library is served from when servelib is enabled
CLIENT_LIBRARY_PATH = "/rtc.io/switchboard.js"

# Per-connection outbound queue bound (messages)
SEND_QUEUE_SIZE = 100

# Largest inbound WebSocket message accepted (bytes)
MAX_MESSAGE_SIZE = 2 ** 20

# Limits for the HTTP request head read before deciding how to serve a stream
MAX_REQUEST_HEAD = 16 * 1024
HANDSHAKE_TIMEOUT = 10.0  # seconds

# How long a closing connection gets to flush its close handshake
CLOSE_TIMEOUT = 5.0  # seconds


class EvictionPolicy(Enum):
    """
    What happens when a peer id that is already registered is announced again.

    REPLACE: newest announce wins, the previous connection is notified and closed
    REJECT: the existing registration is kept, the newcomer is notified
    """
    REPLACE = "replace"
    REJECT = "reject"


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class SwitchboardConfig:
    """Construction-time options for a Switchboard instance."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    # Duplicate announce handling
    eviction_policy: EvictionPolicy = EvictionPolicy.REPLACE

    # command name -> handler(registry, connection, args)
    custom_handlers: Dict[str, Callable[..., Any]] = field(default_factory=dict)

    # Serve the client library from CLIENT_LIBRARY_PATH on the same listener
    servelib: bool = False

    # Reply "/unknown|<name>" to commands nobody handles
    unknown_command_notice: bool = False

    # Tell room members when peers announce and leave
    announce_presence: bool = False

    # If set, WebSocket upgrades on any other path are refused with a 404
    websocket_path: Optional[str] = None

    send_queue_size: int = SEND_QUEUE_SIZE
    max_message_size: int = MAX_MESSAGE_SIZE

    def __post_init__(self):
        if isinstance(self.eviction_policy, str):
            self.eviction_policy = EvictionPolicy(self.eviction_policy.lower())
        if not isinstance(self.eviction_policy, EvictionPolicy):
            raise ValueError(f"Invalid eviction policy: {self.eviction_policy!r}")
        if not 0 <= int(self.port) <= 65535:
            raise ValueError(f"Invalid port: {self.port}")
        self.port = int(self.port)
        if self.send_queue_size < 1:
            raise ValueError("send_queue_size must be at least 1")
        for name, handler in self.custom_handlers.items():
            if not callable(handler):
                raise ValueError(f"Handler for '{name}' is not callable")

    def with_options(self, **options) -> "SwitchboardConfig":
        """Return a copy with the given options applied, ignoring None values."""
        known = {f.name for f in fields(self)}
        unknown = set(options) - known
        if unknown:
            raise ValueError(f"Unknown switchboard options: {', '.join(sorted(unknown))}")
        return replace(self, **{k: v for k, v in options.items() if v is not None})

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None, **overrides) -> "SwitchboardConfig":
        """
        Build a config from environment variables.

        Recognised variables:
            NODE_PORT: listening port
            SWITCHBOARD_HOST: bind address
            SWITCHBOARD_EVICTION_POLICY: replace or reject
            SWITCHBOARD_SERVELIB: serve the client library (1/true/yes/on)
            SWITCHBOARD_PRESENCE: send announce/leave presence notices
        """
        env = os.environ if environ is None else environ
        options: Dict[str, Any] = {}

        if env.get("NODE_PORT"):
            options["port"] = int(env["NODE_PORT"])
        if env.get("SWITCHBOARD_HOST"):
            options["host"] = env["SWITCHBOARD_HOST"]
        if env.get("SWITCHBOARD_EVICTION_POLICY"):
            options["eviction_policy"] = env["SWITCHBOARD_EVICTION_POLICY"]
        if env.get("SWITCHBOARD_SERVELIB"):
            options["servelib"] = _env_flag(env["SWITCHBOARD_SERVELIB"])
        if env.get("SWITCHBOARD_PRESENCE"):
            options["announce_presence"] = _env_flag(env["SWITCHBOARD_PRESENCE"])

        options.update(overrides)
        return cls(**options)
