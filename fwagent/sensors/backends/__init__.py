from .mock import MockSensorBackend
from .modbus import HoldingRegisterReader, ModbusSensorBackend

__all__ = [
    "HoldingRegisterReader",
    "MockSensorBackend",
    "ModbusSensorBackend",
]
