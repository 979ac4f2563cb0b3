"""
switchboard.protocol - Signalling wire protocol

Components:
    - parse_message: classifies raw messages into commands, routes and data
    - format_command: builds "/name|arg|..." messages
    - BuiltinCommands: the announce and leave handlers
"""

from .parser import (
    ARG_SEPARATOR,
    COMMAND_PREFIX,
    MessageKind,
    ParsedMessage,
    ParseError,
    SwitchboardError,
    format_command,
    parse_message,
    parse_target_arg,
    parse_targets,
)
from .commands import (
    BuiltinCommands,
    CommandError,
    Handler,
    notify_room,
    parse_announce_args,
)

__all__ = [
    # Parser
    "ARG_SEPARATOR",
    "COMMAND_PREFIX",
    "MessageKind",
    "ParsedMessage",
    "ParseError",
    "SwitchboardError",
    "format_command",
    "parse_message",
    "parse_target_arg",
    "parse_targets",
    # Commands
    "BuiltinCommands",
    "CommandError",
    "Handler",
    "notify_room",
    "parse_announce_args",
]
