from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from .backends import MockSensorBackend, ModbusSensorBackend
from .base import CheckedSensorBackend, SensorBackend

_VALID_BACKENDS = {"mock", "modbus"}
_METRIC_KEY_RE = re.compile(r"^[a-z][a-z0-9_]{0,63}$")


class SensorConfigError(ValueError):
    """Invalid sensor configuration."""


@dataclass(frozen=True)
class SensorConfig:
    backend: str
    backend_settings: Mapping[str, Any] = field(default_factory=dict)


def load_sensor_config_from_env() -> SensorConfig:
    config_path = os.getenv("SENSOR_CONFIG_PATH")
    override_backend = os.getenv("SENSOR_BACKEND")

    raw: dict[str, Any]
    origin = "env defaults"
    if config_path:
        path = Path(config_path).expanduser()
        if not path.exists():
            raise SensorConfigError(f"SENSOR_CONFIG_PATH does not exist: {path}")
        try:
            loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise SensorConfigError(f"failed to parse sensor config at {path}: {exc}") from exc
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise SensorConfigError(f"sensor config at {path} must be a YAML object")
        raw = dict(loaded)
        origin = str(path)
    else:
        raw = {"backend": "mock"}

    if override_backend:
        raw["backend"] = override_backend

    return parse_sensor_config(raw, origin=origin)


def parse_sensor_config(raw: Mapping[str, Any], *, origin: str) -> SensorConfig:
    backend = _require_backend(raw, origin=origin)
    settings = {k: v for k, v in raw.items() if k != "backend"}
    metric_key = settings.get("metric_key")
    if metric_key is not None and (not isinstance(metric_key, str) or not _METRIC_KEY_RE.fullmatch(metric_key)):
        raise SensorConfigError(f"{origin}: invalid metric key '{metric_key}'")
    return SensorConfig(backend=backend, backend_settings=settings)


def build_sensor_backend(*, config: SensorConfig, seed: str = "fwagent") -> CheckedSensorBackend:
    backend = _build_backend(config=config, seed=seed)
    return CheckedSensorBackend(backend_name=config.backend, backend=backend)


def _build_backend(*, config: SensorConfig, seed: str) -> SensorBackend:
    settings = config.backend_settings
    if config.backend == "modbus":
        return _build_modbus_backend(settings)
    return MockSensorBackend(
        seed=seed,
        metric_key=str(settings.get("metric_key", "temperature")),
    )


def _build_modbus_backend(settings: Mapping[str, Any]) -> ModbusSensorBackend:
    modbus = _mapping_value(settings.get("modbus"))

    def _setting(key: str, default: Any) -> Any:
        value = settings.get(key)
        if value is None:
            value = modbus.get(key)
        return default if value is None else value

    port = _as_string(_setting("port", ""), message="modbus port must be a string").strip()
    if not port:
        raise SensorConfigError("modbus backend requires a serial 'port'")

    slave_address = _as_int(_setting("slave_address", 1), message="modbus slave_address must be an integer")
    if not 1 <= slave_address <= 247:
        raise SensorConfigError("modbus slave_address must be between 1 and 247")

    register = _as_int(_setting("register", 528), message="modbus register must be an integer")
    if not 0 <= register <= 0xFFFF:
        raise SensorConfigError("modbus register must be between 0 and 65535")

    baudrate = _as_int(_setting("baudrate", 9600), message="modbus baudrate must be an integer")
    if baudrate <= 0:
        raise SensorConfigError("modbus baudrate must be > 0")

    timeout_s = _as_float(_setting("timeout_s", 0.5), message="modbus timeout_s must be numeric")
    if timeout_s <= 0:
        raise SensorConfigError("modbus timeout_s must be > 0")

    signed = _setting("signed", False)
    if not isinstance(signed, bool):
        raise SensorConfigError("modbus signed must be a boolean")

    return ModbusSensorBackend(
        port=port,
        slave_address=slave_address,
        register=register,
        scale=_as_float(_setting("scale", 0.1), message="modbus scale must be numeric"),
        metric_key=str(_setting("metric_key", "temperature")),
        signed=signed,
        baudrate=baudrate,
        timeout_s=timeout_s,
    )


def _require_backend(raw: Mapping[str, Any], *, origin: str) -> str:
    value = raw.get("backend")
    if not isinstance(value, str) or not value.strip():
        raise SensorConfigError(f"{origin}: missing required 'backend' string")
    backend = value.strip()
    if backend not in _VALID_BACKENDS:
        allowed = ", ".join(sorted(_VALID_BACKENDS))
        raise SensorConfigError(f"{origin}: unsupported backend '{backend}' (allowed: {allowed})")
    return backend


def _as_float(value: Any, *, message: str) -> float:
    if isinstance(value, bool):
        raise SensorConfigError(message)
    if isinstance(value, (int, float)):
        return float(value)
    raise SensorConfigError(message)


def _as_int(value: Any, *, message: str) -> int:
    if isinstance(value, bool):
        raise SensorConfigError(message)
    if isinstance(value, int):
        return value
    raise SensorConfigError(message)


def _as_string(value: Any, *, message: str) -> str:
    if isinstance(value, str):
        return value
    raise SensorConfigError(message)


def _mapping_value(value: Any) -> Mapping[str, Any]:
    if isinstance(value, Mapping):
        return value
    return {}
