"""
Tests for switchboard.router - RelayRouter.
"""

import json

from switchboard.registry import PeerRegistry
from switchboard.router import RelayRouter


class StubConnection:
    """Connection record that records what it is sent."""

    def __init__(self, connection_id: str, accept: bool = True):
        self.connection_id = connection_id
        self.peer_id = None
        self.closed = False
        self.accept = accept
        self.sent = []

    def send(self, message) -> bool:
        if not self.accept:
            return False
        self.sent.append(message)
        return True

    def describe(self) -> str:
        return self.connection_id


def make_registry(*peer_ids):
    registry = PeerRegistry()
    connections = {}
    for i, peer_id in enumerate(peer_ids):
        conn = StubConnection(f"c{i}")
        registry.register(peer_id, conn)
        connections[peer_id] = conn
    return registry, connections


class TestRelayRouter:

    def test_payload_forwarded_verbatim(self):
        registry, conns = make_registry("alice", "bob")
        router = RelayRouter(registry)
        payload = json.dumps({"to": "bob", "body": "offer-sdp"})

        delivered = router.route(payload, ["bob"], conns["alice"])

        assert delivered == 1
        assert conns["bob"].sent == [payload]
        assert conns["alice"].sent == []

    def test_bytes_payload_untouched(self):
        registry, conns = make_registry("bob")
        router = RelayRouter(registry)

        router.route(b"\x00\x01binary", ["bob"])

        assert conns["bob"].sent == [b"\x00\x01binary"]

    def test_offline_target_skipped(self):
        """Three targets, one offline: exactly the other two receive it."""
        registry, conns = make_registry("alice", "bob", "carol")
        router = RelayRouter(registry)

        delivered = router.route("/to|x", ["bob", "dave", "carol"], conns["alice"])

        assert delivered == 2
        assert conns["bob"].sent == ["/to|x"]
        assert conns["carol"].sent == ["/to|x"]
        assert conns["alice"].sent == []
        assert router.misses == 1
        assert router.routed == 2

    def test_duplicate_targets_each_delivered(self):
        registry, conns = make_registry("bob")
        router = RelayRouter(registry)

        assert router.route("m", ["bob", "bob"]) == 2
        assert conns["bob"].sent == ["m", "m"]

    def test_busy_target_does_not_stop_others(self):
        registry = PeerRegistry()
        busy = StubConnection("c1", accept=False)
        ok = StubConnection("c2")
        registry.register("busy", busy)
        registry.register("ok", ok)
        router = RelayRouter(registry)

        assert router.route("m", ["busy", "ok"]) == 1
        assert ok.sent == ["m"]

    def test_route_to_departed_peer_is_dropped(self):
        registry, conns = make_registry("alice", "bob")
        registry.unregister_by_connection(conns["alice"])
        router = RelayRouter(registry)

        assert router.route("m", ["alice"], conns["bob"]) == 0
        assert conns["alice"].sent == []
