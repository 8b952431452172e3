"""
Unit tests for ServerConfig.
"""

import pytest

from chainserver import ServerConfig


def test_defaults():
    """Test default configuration values."""
    config = ServerConfig()

    assert config.host == "127.0.0.1"
    assert config.port == 3000
    assert config.keep_alive is True
    assert config.min_workers == 4
    assert config.max_workers == 16
    assert config.log_level == "INFO"
    config.validate()


def test_port_zero_is_allowed():
    """Test port 0 passes validation."""
    ServerConfig(port=0).validate()


@pytest.mark.parametrize("overrides", [
    {"port": -1},
    {"port": 65536},
    {"backlog": 0},
    {"min_workers": 0},
    {"min_workers": 4, "max_workers": 2},
    {"queue_size": 0},
    {"buffer_size": 512},
    {"timeout": 0},
    {"keep_alive_timeout": 0},
    {"log_level": "LOUD"},
])
def test_invalid(overrides):
    """Test out-of-range settings are rejected."""
    with pytest.raises(ValueError):
        ServerConfig(**overrides).validate()


def test_log_level_is_case_insensitive():
    """Test log level names ignore case."""
    ServerConfig(log_level="debug").validate()


def test_no_timeout():
    """Test a None timeout is accepted."""
    ServerConfig(timeout=None).validate()
