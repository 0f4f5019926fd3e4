from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, TypeAlias

MetricValue: TypeAlias = float | int | str | bool | None
Metrics: TypeAlias = dict[str, MetricValue]


class SensorError(RuntimeError):
    """Raised when a sensor backend cannot produce a reading."""


class SensorBackend(Protocol):
    """Small internal sensor interface used by the telemetry loop."""

    metric_keys: frozenset[str]

    def read_metrics(self) -> Metrics: ...


def normalize_metrics(
    *,
    metrics: Mapping[str, Any],
    expected_keys: frozenset[str],
) -> Metrics:
    """Return metrics constrained to the supported scalar contract."""

    out: Metrics = {}
    for key, value in metrics.items():
        if value is None or isinstance(value, (bool, int, float, str)):
            out[str(key)] = value
        else:
            out[str(key)] = None

    for key in expected_keys:
        out.setdefault(key, None)
    return out


@dataclass
class CheckedSensorBackend:
    """Wraps a backend so every read failure surfaces as ``SensorError``."""

    backend_name: str
    backend: SensorBackend
    metric_keys: frozenset[str] = field(init=False)

    def __post_init__(self) -> None:
        self.metric_keys = frozenset(getattr(self.backend, "metric_keys", frozenset()))

    def read_metrics(self) -> Metrics:
        try:
            raw = self.backend.read_metrics()
        except SensorError:
            raise
        except Exception as exc:
            raise SensorError(
                f"sensor backend '{self.backend_name}' read failed: {type(exc).__name__}: {exc}"
            ) from exc
        return normalize_metrics(metrics=raw, expected_keys=self.metric_keys)
