"""
Tests for switchboard.protocol.parser - message classification.
"""

import json

import pytest

from switchboard.protocol.parser import (
    MessageKind,
    ParseError,
    format_command,
    parse_message,
    parse_target_arg,
    parse_targets,
)


class TestCommands:
    """Tests for /name|arg command messages."""

    def test_announce_command(self):
        message = parse_message("/announce|alice")
        assert message.kind is MessageKind.COMMAND
        assert message.name == "announce"
        assert message.args == ("alice",)
        assert message.targets == ()
        assert message.raw == "/announce|alice"

    def test_command_without_args(self):
        message = parse_message("/leave")
        assert message.kind is MessageKind.COMMAND
        assert message.name == "leave"
        assert message.args == ()

    def test_json_arguments_are_kept_as_text(self):
        payload = json.dumps({"id": "alice", "room": "r1"})
        message = parse_message(f"/announce|{payload}")
        assert message.args == (payload,)

    def test_empty_arguments_preserved(self):
        message = parse_message("/custom||x|")
        assert message.args == ("", "x", "")

    def test_names_are_case_sensitive(self):
        assert parse_message("/Announce|alice").name == "Announce"

    def test_bytes_are_decoded(self):
        message = parse_message(b"/announce|alice")
        assert message.kind is MessageKind.COMMAND
        assert message.raw == b"/announce|alice"

    def test_missing_name_is_invalid(self):
        message = parse_message("/|alice")
        assert message.kind is MessageKind.INVALID
        assert "command name" in message.error


class TestRoutes:
    """Tests for addressed messages."""

    def test_to_single_target(self):
        raw = "/to|bob|/offer|{\"sdp\": \"v=0\"}"
        message = parse_message(raw)
        assert message.kind is MessageKind.ROUTE
        assert message.name == "to"
        assert message.targets == ("bob",)
        assert message.raw == raw

    def test_to_target_list(self):
        message = parse_message('/to|["bob", "carol", "bob"]|/candidate|x')
        assert message.targets == ("bob", "carol", "bob")

    def test_to_without_targets_is_invalid(self):
        assert parse_message("/to").kind is MessageKind.INVALID
        assert parse_message("/to||body").kind is MessageKind.INVALID
        assert parse_message("/to|[]|body").kind is MessageKind.INVALID

    def test_json_envelope(self):
        raw = json.dumps({"to": "bob", "body": "offer-sdp"})
        message = parse_message(raw)
        assert message.kind is MessageKind.ROUTE
        assert message.name is None
        assert message.targets == ("bob",)

    def test_json_envelope_with_list(self):
        message = parse_message(json.dumps({"to": ["bob", "carol"], "body": 1}))
        assert message.targets == ("bob", "carol")

    def test_json_envelope_with_bad_target(self):
        message = parse_message(json.dumps({"to": 42}))
        assert message.kind is MessageKind.INVALID

    def test_json_envelope_string_target_is_literal(self):
        message = parse_message(json.dumps({"to": "[\"alice\"]", "body": 1}))
        assert message.kind is MessageKind.ROUTE
        assert message.targets == ('["alice"]',)

        message = parse_message(json.dumps({"to": "[x"}))
        assert message.kind is MessageKind.ROUTE
        assert message.targets == ("[x",)

    def test_json_without_target_is_data(self):
        message = parse_message(json.dumps({"body": "hello"}))
        assert message.kind is MessageKind.DATA
        assert not message.has_targets


class TestMalformedInput:
    """Malformed input is classified, never raised."""

    @pytest.mark.parametrize("data", [
        "",
        "   ",
        "{not json",
        b"\xff\xfe\xfa",
        None,
        12345,
    ])
    def test_invalid_messages(self, data):
        message = parse_message(data)
        assert message.kind is MessageKind.INVALID
        assert message.error
        assert not message.is_valid
        assert message.raw is data

    def test_plain_text_is_data(self):
        message = parse_message("hello there")
        assert message.kind is MessageKind.DATA
        assert message.error is None


class TestHelpers:

    def test_parse_targets_rejects_bad_entries(self):
        with pytest.raises(ParseError):
            parse_targets(["bob", ""])
        with pytest.raises(ParseError):
            parse_target_arg("[1, 2]")
        with pytest.raises(ParseError):
            parse_target_arg("[bob")

    def test_parse_targets_strips_single_id(self):
        assert parse_targets(" bob ") == ("bob",)

    def test_parse_target_arg_reads_json_array(self):
        assert parse_target_arg('["bob", "bob"]') == ("bob", "bob")
        assert parse_target_arg("bob") == ("bob",)

    def test_format_command(self):
        assert format_command("leave") == "/leave"
        assert format_command("evicted", {"id": "alice"}) == '/evicted|{"id": "alice"}'
        assert format_command("img", "bob", "http://x") == "/img|bob|http://x"

    def test_formatted_commands_parse_back(self):
        message = parse_message(format_command("unknown", "frobnicate"))
        assert message.name == "unknown"
        assert message.args == ("frobnicate",)
