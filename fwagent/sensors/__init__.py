from .base import CheckedSensorBackend, MetricValue, Metrics, SensorBackend, SensorError
from .config import SensorConfig, SensorConfigError, build_sensor_backend, load_sensor_config_from_env

__all__ = [
    "CheckedSensorBackend",
    "MetricValue",
    "Metrics",
    "SensorBackend",
    "SensorConfig",
    "SensorConfigError",
    "SensorError",
    "build_sensor_backend",
    "load_sensor_config_from_env",
]
