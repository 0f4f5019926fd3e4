from __future__ import annotations

from pathlib import Path

import pytest

from fwagent.config import AgentConfigError, load_config_from_env

_ENV_VARS = (
    "FW_AGENT_MQTT_HOST",
    "FW_AGENT_MQTT_PORT",
    "FW_AGENT_ACCESS_TOKEN",
    "FW_AGENT_CLIENT_ID",
    "FW_AGENT_KEEPALIVE_S",
    "FW_AGENT_ATTRIBUTES_BASE",
    "FW_AGENT_FIRMWARE_BASE",
    "FW_AGENT_CHUNK_SIZE",
    "FW_AGENT_TELEMETRY_INTERVAL_S",
    "FW_AGENT_INSTALL_DIR",
    "FW_AGENT_EXECUTABLE",
    "FW_AGENT_LOADER_STUB_SUFFIXES",
    "FW_AGENT_RECONNECT_INITIAL_S",
    "FW_AGENT_RECONNECT_MAX_S",
    "LOG_LEVEL",
    "LOG_FORMAT",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults_target_local_broker(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FW_AGENT_EXECUTABLE", "/opt/fw/fw-1")

    cfg = load_config_from_env()

    assert cfg.mqtt_host == "localhost"
    assert cfg.mqtt_port == 1883
    assert cfg.access_token is None
    assert cfg.attributes_base == "v1/devices/me"
    assert cfg.firmware_base == "v2/fw"
    assert cfg.chunk_size == 4096
    assert cfg.telemetry_interval_s == 1.0
    assert cfg.install_dir == Path(".")
    assert cfg.loader_stub_suffixes == (".exe",)
    assert cfg.log_format == "text"
    assert cfg.executable_identity == "fw-1"


def test_overrides_are_parsed(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("FW_AGENT_MQTT_HOST", "tb.example.net")
    monkeypatch.setenv("FW_AGENT_MQTT_PORT", "8883")
    monkeypatch.setenv("FW_AGENT_ACCESS_TOKEN", " token-123 ")
    monkeypatch.setenv("FW_AGENT_FIRMWARE_BASE", "v2/fw/")
    monkeypatch.setenv("FW_AGENT_CHUNK_SIZE", "1024")
    monkeypatch.setenv("FW_AGENT_INSTALL_DIR", str(tmp_path))
    monkeypatch.setenv("FW_AGENT_LOADER_STUB_SUFFIXES", ".exe, .bin ,")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("LOG_FORMAT", "JSON")

    cfg = load_config_from_env()

    assert cfg.mqtt_host == "tb.example.net"
    assert cfg.mqtt_port == 8883
    assert cfg.access_token == "token-123"
    assert cfg.firmware_base == "v2/fw"
    assert cfg.chunk_size == 1024
    assert cfg.install_dir == tmp_path
    assert cfg.loader_stub_suffixes == (".exe", ".bin")
    assert cfg.log_level == "DEBUG"
    assert cfg.log_format == "json"


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("FW_AGENT_MQTT_PORT", "abc"),
        ("FW_AGENT_MQTT_PORT", "70000"),
        ("FW_AGENT_CHUNK_SIZE", "0"),
        ("FW_AGENT_TELEMETRY_INTERVAL_S", "-1"),
        ("LOG_FORMAT", "xml"),
    ],
)
def test_invalid_values_fail_fast(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(AgentConfigError) as exc:
        load_config_from_env()
    assert name in str(exc.value)


def test_reconnect_ceiling_must_cover_initial_delay(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FW_AGENT_RECONNECT_INITIAL_S", "10")
    monkeypatch.setenv("FW_AGENT_RECONNECT_MAX_S", "5")

    with pytest.raises(AgentConfigError):
        load_config_from_env()


def test_identity_falls_back_to_running_program(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("sys.argv", ["/usr/local/bin/fw-7"])

    cfg = load_config_from_env()

    assert cfg.executable_identity == "fw-7"
