"""Tests for server configuration."""

import pytest

from aiohum.server import ServerConfig
from aiohum.server.config import DEFAULT_ALLOWED_ORIGINS
from aiohum.server_cli import build_config, parse_args


def test_defaults_without_environment():
    config = ServerConfig.from_env({})

    assert config.port == 3001
    assert config.ws_path == "/ws"
    assert config.allowed_origins == DEFAULT_ALLOWED_ORIGINS
    assert config.grace_period == 30.0


def test_environment_sets_port_and_frontend_origin():
    config = ServerConfig.from_env({"PORT": "8080", "FRONTEND_URL": "https://hum.example"})

    assert config.port == 8080
    assert config.allowed_origins[-1] == "https://hum.example"
    assert set(DEFAULT_ALLOWED_ORIGINS) <= set(config.allowed_origins)


def test_overrides_win_and_none_is_ignored():
    config = ServerConfig.from_env({"PORT": "8080"}, port=9000, server_name=None)

    assert config.port == 9000
    assert config.server_name == "HUM Sync Engine"


@pytest.mark.parametrize(
    "kwargs", [{"port": 0}, {"grace_period": -1.0}, {"ws_path": "ws"}]
)
def test_invalid_values_are_rejected(kwargs):
    with pytest.raises(ValueError):
        ServerConfig(**kwargs)


def test_cli_arguments_are_merged(monkeypatch):
    monkeypatch.delenv("PORT", raising=False)
    monkeypatch.delenv("FRONTEND_URL", raising=False)
    args = parse_args(
        ["--port", "4000", "--grace-period", "5", "--allowed-origin", "http://a", "--no-advertise"]
    )

    config = build_config(args)

    assert config.port == 4000
    assert config.grace_period == 5.0
    assert config.allowed_origins == ("http://a",)
    assert config.advertise is False
