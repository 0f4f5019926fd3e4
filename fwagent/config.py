from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path


class AgentConfigError(ValueError):
    """Invalid agent configuration."""


def _get_str(name: str, default: str) -> str:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    return v.strip()


def _get_optional_str(name: str) -> str | None:
    v = os.getenv(name)
    if v is None:
        return None
    vv = v.strip()
    return vv or None


def _get_positive_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    try:
        value = int(v.strip())
    except ValueError as exc:
        raise AgentConfigError(f"{name} must be an integer (got {v!r})") from exc
    if value <= 0:
        raise AgentConfigError(f"{name} must be > 0 (got {value})")
    return value


def _get_positive_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    try:
        value = float(v.strip())
    except ValueError as exc:
        raise AgentConfigError(f"{name} must be a number (got {v!r})") from exc
    if value <= 0:
        raise AgentConfigError(f"{name} must be > 0 (got {value})")
    return value


def _get_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    v = os.getenv(name)
    if v is None:
        return default
    return tuple(s.strip() for s in v.split(",") if s.strip())


def running_program_path() -> str:
    """Path of the program this process was started from.

    Frozen builds report the binary itself; otherwise the script in argv[0].
    """

    if getattr(sys, "frozen", False):
        return sys.executable
    return sys.argv[0] if sys.argv and sys.argv[0] else sys.executable


@dataclass(frozen=True)
class AgentConfig:
    mqtt_host: str
    mqtt_port: int
    access_token: str | None
    client_id: str | None
    keepalive_s: int

    attributes_base: str
    firmware_base: str
    chunk_size: int

    telemetry_interval_s: float

    install_dir: Path
    executable_path: str
    loader_stub_suffixes: tuple[str, ...]

    reconnect_initial_s: float
    reconnect_max_s: float

    log_level: str
    log_format: str

    @property
    def executable_identity(self) -> str:
        return Path(self.executable_path).name


def load_config_from_env() -> AgentConfig:
    log_format = _get_str("LOG_FORMAT", "text").lower()
    if log_format not in {"text", "json"}:
        raise AgentConfigError(f"LOG_FORMAT must be 'text' or 'json' (got {log_format!r})")

    port = _get_positive_int("FW_AGENT_MQTT_PORT", 1883)
    if port > 65535:
        raise AgentConfigError(f"FW_AGENT_MQTT_PORT must be <= 65535 (got {port})")

    reconnect_initial_s = _get_positive_float("FW_AGENT_RECONNECT_INITIAL_S", 1.0)
    reconnect_max_s = _get_positive_float("FW_AGENT_RECONNECT_MAX_S", 60.0)
    if reconnect_max_s < reconnect_initial_s:
        raise AgentConfigError("FW_AGENT_RECONNECT_MAX_S must be >= FW_AGENT_RECONNECT_INITIAL_S")

    return AgentConfig(
        mqtt_host=_get_str("FW_AGENT_MQTT_HOST", "localhost"),
        mqtt_port=port,
        access_token=_get_optional_str("FW_AGENT_ACCESS_TOKEN"),
        client_id=_get_optional_str("FW_AGENT_CLIENT_ID"),
        keepalive_s=_get_positive_int("FW_AGENT_KEEPALIVE_S", 60),
        attributes_base=_get_str("FW_AGENT_ATTRIBUTES_BASE", "v1/devices/me").rstrip("/"),
        firmware_base=_get_str("FW_AGENT_FIRMWARE_BASE", "v2/fw").rstrip("/"),
        chunk_size=_get_positive_int("FW_AGENT_CHUNK_SIZE", 4096),
        telemetry_interval_s=_get_positive_float("FW_AGENT_TELEMETRY_INTERVAL_S", 1.0),
        install_dir=Path(_get_str("FW_AGENT_INSTALL_DIR", ".")).expanduser(),
        executable_path=_get_optional_str("FW_AGENT_EXECUTABLE") or running_program_path(),
        loader_stub_suffixes=_get_list("FW_AGENT_LOADER_STUB_SUFFIXES", (".exe",)),
        reconnect_initial_s=reconnect_initial_s,
        reconnect_max_s=reconnect_max_s,
        log_level=_get_str("LOG_LEVEL", "INFO").upper(),
        log_format=log_format,
    )
