from __future__ import annotations

import asyncio
import json
import logging
import random
from typing import Any, Awaitable, Callable, Dict

from .sensors import SensorBackend
from .state import AgentState
from .transport import Publisher, TransportError

log = logging.getLogger("fwagent.telemetry")

SleepFn = Callable[[float], Awaitable[None]]


def make_telemetry(metrics: Dict[str, Any], rng: random.Random) -> Dict[str, Any]:
    message: Dict[str, Any] = {"random": rng.randrange(0, 100)}
    message.update(metrics)
    return message


class TelemetryLoop:
    """Publishes one sensor reading per interval while the agent is active.

    Publishing is fire-and-forget: each message goes out on its own task so a
    slow broker does not stretch the cadence. Sensor failures propagate.
    """

    def __init__(
        self,
        *,
        state: AgentState,
        publisher: Publisher,
        sensor: SensorBackend,
        topic: str,
        interval_s: float = 1.0,
        rng: random.Random | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.state = state
        self.publisher = publisher
        self.sensor = sensor
        self.topic = topic
        self.interval_s = interval_s
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._pending: set[asyncio.Task[None]] = set()
        self.ticks = 0

    async def run(self) -> None:
        while self.state.active:
            await self.tick()
            await self._sleep(self.interval_s)

    async def tick(self) -> None:
        # Serial sensor reads block; keep them off the event loop.
        metrics = await asyncio.to_thread(self.sensor.read_metrics)
        payload = json.dumps(make_telemetry(metrics, self._rng), separators=(",", ":"))
        self.ticks += 1
        task = asyncio.get_running_loop().create_task(self._publish(payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for in-flight publishes started by earlier ticks."""

        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def _publish(self, payload: str) -> None:
        try:
            await self.publisher.publish(self.topic, payload)
        except TransportError as exc:
            log.warning("telemetry publish failed: %s", exc)
        else:
            log.debug("telemetry sent: %s", payload)
