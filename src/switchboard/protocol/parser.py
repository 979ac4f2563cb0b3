"""
switchboard.protocol.parser - Signalling message parser

Classifies raw inbound messages. Parsing is pure and never raises to the
caller: malformed input comes back as an INVALID message with the reason.

Message formats:
    - Command:          /<name>|<arg>|<arg>...
    - Routed (command): /to|<peer id or JSON array of ids>|<anything>
    - Routed (JSON):    {"to": "<peer id>" | ["<id>", ...], ...}
    - Data:             anything else

Usage:
    from switchboard.protocol.parser import parse_message

    message = parse_message("/announce|alice")
    message.kind   # MessageKind.COMMAND
    message.name   # "announce"
    message.args   # ("alice",)
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple, Union

COMMAND_PREFIX = "/"
ARG_SEPARATOR = "|"
ROUTE_COMMAND = "to"
ENVELOPE_TARGET_KEY = "to"


class SwitchboardError(Exception):
    """Base class for switchboard errors."""
    pass


class ParseError(SwitchboardError):
    """Raised when a message cannot be parsed."""
    pass


class MessageKind(Enum):
    COMMAND = "command"
    ROUTE = "route"
    DATA = "data"
    INVALID = "invalid"


@dataclass(frozen=True)
class ParsedMessage:
    """Result of parsing one inbound message."""
    kind: MessageKind
    raw: Union[str, bytes]
    name: Optional[str] = None
    args: Tuple[str, ...] = ()
    targets: Tuple[str, ...] = ()
    error: Optional[str] = None

    @property
    def has_targets(self) -> bool:
        return bool(self.targets)

    @property
    def is_valid(self) -> bool:
        return self.kind is not MessageKind.INVALID


def parse_targets(value: Any) -> Tuple[str, ...]:
    """
    Normalise a target value into a tuple of peer ids.

    Accepts a peer id string or a list of peer ids. A string is always a
    single literal peer id. Order and duplicates are preserved.
    """
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ParseError("empty target")
        return (text,)

    if not isinstance(value, list) or not value:
        raise ParseError("targets must be a peer id or a non-empty list of peer ids")

    targets = []
    for target in value:
        if not isinstance(target, str) or not target:
            raise ParseError(f"invalid target: {target!r}")
        targets.append(target)
    return tuple(targets)


def parse_target_arg(arg: str) -> Tuple[str, ...]:
    """Parse the target argument of /to: a peer id or a JSON array of ids."""
    text = arg.strip()
    if text.startswith("["):
        try:
            return parse_targets(json.loads(text))
        except json.JSONDecodeError as e:
            raise ParseError(f"invalid target list: {e}") from e
    return parse_targets(text)


def _decode(data: Union[str, bytes]) -> str:
    if isinstance(data, str):
        return data
    if isinstance(data, (bytes, bytearray)):
        try:
            return bytes(data).decode("utf-8")
        except UnicodeDecodeError as e:
            raise ParseError(f"message is not valid UTF-8: {e}") from e
    raise ParseError(f"unsupported message type: {type(data).__name__}")


def _parse_command(raw: Union[str, bytes], text: str) -> ParsedMessage:
    parts = text[len(COMMAND_PREFIX):].split(ARG_SEPARATOR)
    name = parts[0].strip()
    if not name:
        raise ParseError("missing command name")
    args = tuple(parts[1:])

    if name == ROUTE_COMMAND:
        if not args:
            raise ParseError("route command without targets")
        return ParsedMessage(
            kind=MessageKind.ROUTE,
            raw=raw,
            name=name,
            args=args,
            targets=parse_target_arg(args[0]),
        )

    return ParsedMessage(kind=MessageKind.COMMAND, raw=raw, name=name, args=args)


def _parse_envelope(raw: Union[str, bytes], text: str) -> ParsedMessage:
    try:
        envelope = json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseError(f"invalid JSON envelope: {e}") from e

    if isinstance(envelope, dict) and ENVELOPE_TARGET_KEY in envelope:
        return ParsedMessage(
            kind=MessageKind.ROUTE,
            raw=raw,
            targets=parse_targets(envelope[ENVELOPE_TARGET_KEY]),
        )
    return ParsedMessage(kind=MessageKind.DATA, raw=raw)


def parse_message(data: Union[str, bytes]) -> ParsedMessage:
    """Parse a raw message. Never raises; failures are INVALID messages."""
    try:
        text = _decode(data)
        if not text.strip():
            raise ParseError("empty message")
        if text.startswith(COMMAND_PREFIX):
            return _parse_command(data, text)
        if text.lstrip().startswith("{"):
            return _parse_envelope(data, text)
        return ParsedMessage(kind=MessageKind.DATA, raw=data)
    except ParseError as e:
        return ParsedMessage(kind=MessageKind.INVALID, raw=data, error=str(e))


def format_command(name: str, *args: Any) -> str:
    """Build a command message; non-string arguments are JSON encoded."""
    parts = [COMMAND_PREFIX + name]
    for arg in args:
        parts.append(arg if isinstance(arg, str) else json.dumps(arg))
    return ARG_SEPARATOR.join(parts)
