from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Protocol, runtime_checkable

from ..base import Metrics, SensorError

_FUNCTION_READ_HOLDING = 3


@runtime_checkable
class HoldingRegisterReader(Protocol):
    def read_register(
        self,
        registeraddress: int,
        number_of_decimals: int = 0,
        functioncode: int = 3,
        signed: bool = False,
    ) -> int | float: ...


def open_instrument(
    *,
    port: str,
    slave_address: int,
    baudrate: int,
    timeout_s: float,
) -> HoldingRegisterReader:
    try:
        import minimalmodbus  # type: ignore[import-not-found]
    except ImportError as exc:
        raise SensorError(
            "SENSOR_BACKEND=modbus requires minimalmodbus (pip install 'fwagent[modbus]')"
        ) from exc
    instrument = minimalmodbus.Instrument(port, slave_address, mode=minimalmodbus.MODE_RTU)
    instrument.serial.baudrate = baudrate
    instrument.serial.timeout = timeout_s
    return instrument


InstrumentFactory = Callable[[], HoldingRegisterReader]


@dataclass
class ModbusSensorBackend:
    """Reads one holding register and reports it scaled under ``metric_key``."""

    port: str
    slave_address: int = 1
    register: int = 528
    scale: float = 0.1
    metric_key: str = "temperature"
    signed: bool = False
    baudrate: int = 9600
    timeout_s: float = 0.5
    instrument_factory: InstrumentFactory | None = None
    metric_keys: frozenset[str] = field(init=False)
    _instrument: HoldingRegisterReader | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self.metric_keys = frozenset({self.metric_key})

    def read_metrics(self) -> Metrics:
        instrument = self._get_instrument()
        try:
            raw = instrument.read_register(
                self.register,
                0,
                _FUNCTION_READ_HOLDING,
                self.signed,
            )
        except (OSError, ValueError) as exc:
            # Reopen on the next read; serial adapters come and go.
            self._instrument = None
            raise SensorError(
                f"modbus read of register {self.register} on slave {self.slave_address} failed: {exc}"
            ) from exc
        return {self.metric_key: round(float(raw) * self.scale, 6)}

    def _get_instrument(self) -> HoldingRegisterReader:
        if self._instrument is None:
            if self.instrument_factory is not None:
                self._instrument = self.instrument_factory()
            else:
                self._instrument = open_instrument(
                    port=self.port,
                    slave_address=self.slave_address,
                    baudrate=self.baudrate,
                    timeout_s=self.timeout_s,
                )
        return self._instrument
