"""
Unit tests for ServerConfig.
"""

import dataclasses

import pytest

from controlserver.config import ServerConfig


class TestServerConfig:
    """Tests for defaults, immutability and validation."""

    def test_defaults(self):
        config = ServerConfig()

        assert config.address == ("127.0.0.1", 1111)
        assert config.debug is False
        assert config.buffer_size == 256
        assert config.encoding == "utf-8"
        config.validate()

    def test_is_immutable(self):
        config = ServerConfig()

        with pytest.raises(dataclasses.FrozenInstanceError):
            config.port = 9999

    @pytest.mark.parametrize("overrides, message", [
        ({"port": -1}, "Invalid port"),
        ({"port": 65536}, "Invalid port"),
        ({"backlog": 0}, "backlog"),
        ({"buffer_size": 0}, "buffer_size"),
        ({"log_level": "LOUD"}, "log level"),
        ({"encoding": "no-such-codec"}, "encoding"),
    ])
    def test_validate_rejects(self, overrides, message):
        with pytest.raises(ValueError, match=message):
            ServerConfig(**overrides).validate()

    def test_port_zero_is_allowed(self):
        ServerConfig(port=0).validate()

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("CONTROL_HOST", "0.0.0.0")
        monkeypatch.setenv("CONTROL_PORT", "4321")
        monkeypatch.setenv("CONTROL_DEBUG", "yes")
        monkeypatch.setenv("CONTROL_BUFFER_SIZE", "512")
        monkeypatch.setenv("CONTROL_LOG_LEVEL", "DEBUG")

        config = ServerConfig.from_env()

        assert config.address == ("0.0.0.0", 4321)
        assert config.debug is True
        assert config.buffer_size == 512
        assert config.log_level == "DEBUG"

    def test_from_env_defaults(self, monkeypatch):
        for name in ["CONTROL_HOST", "CONTROL_PORT", "CONTROL_DEBUG",
                     "CONTROL_BUFFER_SIZE", "CONTROL_LOG_LEVEL"]:
            monkeypatch.delenv(name, raising=False)

        assert ServerConfig.from_env() == ServerConfig()

    def test_debug_flag_false_values(self, monkeypatch):
        monkeypatch.setenv("CONTROL_DEBUG", "0")

        assert ServerConfig.from_env().debug is False
