"""
Tests for switchboard.config - SwitchboardConfig.
"""

import pytest

from switchboard.config import DEFAULT_PORT, EvictionPolicy, SwitchboardConfig


class TestSwitchboardConfig:

    def test_defaults(self):
        config = SwitchboardConfig()
        assert config.port == DEFAULT_PORT
        assert config.eviction_policy is EvictionPolicy.REPLACE
        assert config.servelib is False
        assert config.unknown_command_notice is False
        assert config.announce_presence is False
        assert config.custom_handlers == {}

    def test_policy_from_string(self):
        assert SwitchboardConfig(eviction_policy="reject").eviction_policy is EvictionPolicy.REJECT
        assert SwitchboardConfig(eviction_policy="REPLACE").eviction_policy is EvictionPolicy.REPLACE

    @pytest.mark.parametrize("options", [
        {"eviction_policy": "drop"},
        {"port": 70000},
        {"send_queue_size": 0},
        {"custom_handlers": {"x": 1}},
    ])
    def test_invalid_values(self, options):
        with pytest.raises(ValueError):
            SwitchboardConfig(**options)

    def test_with_options(self):
        config = SwitchboardConfig().with_options(port=9000, servelib=True, host=None)
        assert config.port == 9000
        assert config.servelib is True
        assert config.host == SwitchboardConfig().host

    def test_with_unknown_option(self):
        with pytest.raises(ValueError):
            SwitchboardConfig().with_options(colour="blue")

    def test_from_env(self):
        config = SwitchboardConfig.from_env({
            "NODE_PORT": "8997",
            "SWITCHBOARD_HOST": "127.0.0.1",
            "SWITCHBOARD_EVICTION_POLICY": "reject",
            "SWITCHBOARD_SERVELIB": "yes",
            "SWITCHBOARD_PRESENCE": "0",
        })
        assert config.port == 8997
        assert config.host == "127.0.0.1"
        assert config.eviction_policy is EvictionPolicy.REJECT
        assert config.servelib is True
        assert config.announce_presence is False

    def test_from_env_overrides(self):
        config = SwitchboardConfig.from_env({"NODE_PORT": "8997"}, port=1234)
        assert config.port == 1234

    def test_from_env_empty(self):
        assert SwitchboardConfig.from_env({}) == SwitchboardConfig()
