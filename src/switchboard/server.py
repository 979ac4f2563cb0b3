"""
switchboard.server - Signalling relay server

Accepts TCP connections, upgrades WebSocket requests with trio-websocket
and hands each one to the connection manager. Plain HTTP requests are
answered on the same listener: the client library when servelib is on,
404 otherwise.

Usage:
    from switchboard import Switchboard

    board = Switchboard(port=3000, servelib=True)
    board.on_data(lambda event: print(event.sender, event.data))

    trio.run(board.run_forever)

Custom handlers:
    def img(registry, connection, args):
        ...

    board = Switchboard(custom_handlers={"img": img})
"""

import logging
import time
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any, Dict, Optional

import trio
from trio_websocket import ConnectionClosed, wrap_server_stream

from .config import (
    CLIENT_LIBRARY_PATH,
    CLOSE_TIMEOUT,
    HANDSHAKE_TIMEOUT,
    MAX_REQUEST_HEAD,
    SwitchboardConfig,
)
from .dispatcher import CommandDispatcher, build_handler_table
from .events import EventTap, Observer
from .manager import ConnectionManager
from .protocol.commands import BuiltinCommands
from .registry import PeerRegistry
from .router import RelayRouter

logger = logging.getLogger("switchboard.server")

CLIENT_LIBRARY_FILE = Path(__file__).parent / "static" / "switchboard.js"

STATUS_TEXT = {
    200: "OK",
    400: "Bad Request",
    404: "Not Found",
    405: "Method Not Allowed",
}


@dataclass
class RequestHead:
    """Parsed HTTP request line and headers."""
    method: str
    target: str
    headers: Dict[str, str]

    @property
    def path(self) -> str:
        return self.target.split("?", 1)[0]

    @property
    def is_websocket_upgrade(self) -> bool:
        upgrade = self.headers.get("upgrade", "").lower()
        connection = self.headers.get("connection", "").lower()
        return upgrade == "websocket" and "upgrade" in connection


def parse_request_head(data: bytes) -> Optional[RequestHead]:
    """Parse the head of an HTTP request; None if it is not one."""
    try:
        header_end = data.index(b"\r\n\r\n")
        lines = data[:header_end].decode("latin-1").split("\r\n")
    except ValueError:
        return None

    request_line = lines[0].split(" ")
    if len(request_line) != 3 or not request_line[2].startswith("HTTP/"):
        return None

    headers = {}
    for line in lines[1:]:
        if ":" in line:
            key, value = line.split(":", 1)
            headers[key.strip().lower()] = value.strip()

    return RequestHead(method=request_line[0], target=request_line[1], headers=headers)


class ReplayStream(trio.abc.Stream):
    """Stream wrapper that first yields bytes already read from the stream."""

    def __init__(self, stream: trio.abc.Stream, prefix: bytes):
        self.stream = stream
        self._prefix = prefix

    async def send_all(self, data) -> None:
        await self.stream.send_all(data)

    async def wait_send_all_might_not_block(self) -> None:
        await self.stream.wait_send_all_might_not_block()

    async def receive_some(self, max_bytes=None) -> bytes:
        if self._prefix:
            if max_bytes is None:
                max_bytes = len(self._prefix)
            data, self._prefix = self._prefix[:max_bytes], self._prefix[max_bytes:]
            return data
        return await self.stream.receive_some(max_bytes)

    async def aclose(self) -> None:
        await self.stream.aclose()


def _describe_remote(stream: trio.abc.Stream) -> str:
    sock = getattr(stream, "socket", None)
    if sock is None:
        return "unknown"
    try:
        host, port = sock.getpeername()[:2]
    except (OSError, ValueError):
        return "unknown"
    return f"{host}:{port}"


async def _read_request_head(stream: trio.abc.Stream) -> Optional[bytes]:
    """Read until the end of the request head. Returns everything read."""
    data = b""
    while b"\r\n\r\n" not in data:
        if len(data) > MAX_REQUEST_HEAD:
            return None
        chunk = await stream.receive_some(4096)
        if not chunk:
            return None
        data += chunk
    return data


async def _send_http(
    stream: trio.abc.Stream,
    status: int,
    body: bytes = b"",
    content_type: str = "text/plain",
) -> None:
    lines = [
        f"HTTP/1.1 {status} {STATUS_TEXT.get(status, 'Error')}",
        f"Content-Type: {content_type}",
        f"Content-Length: {len(body)}",
        "Connection: close",
        "",
        "",
    ]
    await stream.send_all("\r\n".join(lines).encode("latin-1") + body)


class Switchboard:
    """
    Signalling relay server.

    Owns one PeerRegistry and everything wired to it, so several
    instances can run side by side in one process.

    Attributes:
        config: Effective configuration
        registry: Peer id -> connection mapping
        events: Tap receiving an event for every inbound message
        router: Relay router for addressed messages
        dispatcher: Command dispatcher
        manager: Connection lifecycle manager
    """

    def __init__(self, config: Optional[SwitchboardConfig] = None, **options):
        """
        Initialize Switchboard.

        Args:
            config: Base configuration (default: SwitchboardConfig())
            **options: Overrides for any SwitchboardConfig field
        """
        base = config if config is not None else SwitchboardConfig()
        self.config = base.with_options(**options) if options else base

        self.registry = PeerRegistry()
        self.events = EventTap()
        self.router = RelayRouter(self.registry)
        self.builtins = BuiltinCommands(
            eviction_policy=self.config.eviction_policy,
            announce_presence=self.config.announce_presence,
        )
        self.dispatcher = CommandDispatcher(
            self.registry,
            self.router,
            handlers=build_handler_table(self.builtins.handlers(), self.config.custom_handlers),
            events=self.events,
            unknown_command_notice=self.config.unknown_command_notice,
        )
        self.manager = ConnectionManager(
            self.registry,
            self.dispatcher,
            announce_presence=self.config.announce_presence,
            send_queue_size=self.config.send_queue_size,
        )

        self._started = False
        self._started_at: Optional[float] = None
        self._cancel_scope: Optional[trio.CancelScope] = None
        self._active_streams = 0

    @property
    def host(self) -> str:
        return self.config.host

    @property
    def port(self) -> int:
        return self.config.port

    @property
    def client_count(self) -> int:
        """Open connections, announced or not."""
        return self.manager.connection_count

    @property
    def peer_count(self) -> int:
        """Announced peers."""
        return self.registry.count()

    def on_data(self, observer: Observer) -> Observer:
        """Subscribe an observer to every inbound message."""
        return self.events.subscribe(observer)

    def client_library(self) -> bytes:
        return CLIENT_LIBRARY_FILE.read_bytes()

    async def start(self) -> bool:
        """
        Mark the server ready.

        Returns:
            True if started (or already running)
        """
        if self._started:
            logger.warning("Switchboard already started")
            return True
        self._started = True
        self._started_at = time.time()
        logger.info(
            f"Starting Switchboard on {self.host}:{self.port} "
            f"(eviction={self.config.eviction_policy.value}, servelib={self.config.servelib})"
        )
        return True

    async def stop(self) -> None:
        """Close all connections and stop listening."""
        if not self._started:
            return

        logger.info("Stopping Switchboard...")
        closed = self.manager.close_all()

        # Let closing connections finish their close handshake
        with trio.move_on_after(CLOSE_TIMEOUT):
            while self._active_streams:
                await trio.sleep(0.01)

        if self._cancel_scope is not None:
            self._cancel_scope.cancel()
        self._started = False
        logger.info(f"Switchboard stopped ({closed} connections closed)")

    async def run_forever(self, *, task_status=trio.TASK_STATUS_IGNORED) -> None:
        """
        Listen on host:port until cancelled or stopped.

        Use in a nursery with nursery.start() to wait until listening.
        """
        if not self._started:
            await self.start()

        with trio.CancelScope() as scope:
            self._cancel_scope = scope
            async with trio.open_nursery() as nursery:
                listeners = await nursery.start(
                    partial(trio.serve_tcp, self.handle_stream, self.port, host=self.host)
                )
                logger.info(f"Switchboard listening on ws://{self.host}:{self.port}")
                task_status.started(listeners)
                await trio.sleep_forever()
        self._cancel_scope = None

    async def handle_stream(self, stream: trio.abc.Stream) -> None:
        """Serve one accepted byte stream."""
        remote = _describe_remote(stream)
        data = None
        head = None
        self._active_streams += 1
        try:
            with trio.move_on_after(HANDSHAKE_TIMEOUT):
                data = await _read_request_head(stream)
                head = parse_request_head(data) if data else None
                if head is None:
                    await _send_http(stream, 400, b"Bad Request")
                    return

            if head is None:
                logger.debug(f"Handshake timeout from {remote}")
                return

            if head.is_websocket_upgrade:
                path = self.config.websocket_path
                if path is not None and head.path != path:
                    logger.debug(f"Refusing upgrade on {head.path} from {remote}")
                    await _send_http(stream, 404, b"Not Found")
                    return
                await self._serve_websocket(ReplayStream(stream, data), remote)

            elif self.config.servelib and head.path == CLIENT_LIBRARY_PATH:
                if head.method != "GET":
                    await _send_http(stream, 405, b"Method Not Allowed")
                else:
                    await _send_http(stream, 200, self.client_library(), "application/javascript")

            else:
                await _send_http(stream, 404, b"Not Found")

        except (trio.BrokenResourceError, trio.ClosedResourceError) as e:
            logger.debug(f"Stream from {remote} failed: {e}")
        except Exception as e:
            logger.error(f"Error serving stream from {remote}: {e}")
        finally:
            with trio.move_on_after(CLOSE_TIMEOUT) as scope:
                scope.shield = True
                await stream.aclose()
            self._active_streams -= 1

    async def _serve_websocket(self, stream: ReplayStream, remote: str) -> None:
        async with trio.open_nursery() as nursery:
            websocket = await self._accept_websocket(nursery, stream, remote)
            if websocket is not None:
                await self.manager.serve_connection(websocket, remote)
            nursery.cancel_scope.cancel()

    async def _accept_websocket(self, nursery: trio.Nursery, stream: ReplayStream, remote: str):
        """Complete the upgrade handshake; None if it fails or times out."""
        with trio.move_on_after(HANDSHAKE_TIMEOUT):
            try:
                request = await wrap_server_stream(
                    nursery,
                    stream,
                    max_message_size=self.config.max_message_size,
                )
                return await request.accept()
            except ConnectionClosed as e:
                logger.debug(f"Client {remote} closed during handshake: {e.reason}")
                return None
            except (trio.BrokenResourceError, trio.ClosedResourceError) as e:
                logger.debug(f"Client {remote} dropped during handshake: {e}")
                return None
        logger.debug(f"WebSocket handshake timeout from {remote}")
        return None

    def get_stats(self) -> Dict[str, Any]:
        """Get server statistics."""
        return {
            "host": self.host,
            "port": self.port,
            "running": self._started,
            "uptime": time.time() - self._started_at if self._started_at and self._started else 0,
            "client_count": self.client_count,
            "peer_count": self.peer_count,
            "total_connections": self.manager.total_connections,
            "peers": self.registry.peer_ids(),
            "handlers": sorted(self.dispatcher.handlers),
            "eviction_policy": self.config.eviction_policy.value,
            "observers": self.events.observer_count,
            "routed": self.router.routed,
            "route_misses": self.router.misses,
        }

    def __repr__(self) -> str:
        status = "running" if self._started else "stopped"
        return f"Switchboard(status={status}, clients={self.client_count}, peers={self.peer_count})"
