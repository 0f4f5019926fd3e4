from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Union

from .attributes import AttributeListener
from .installer import UpdateInstaller
from .state import AgentState
from .telemetry import TelemetryLoop
from .topics import Topics
from .transfer import ChunkTransferEngine
from .transport import InboundMessage, TransportSession

log = logging.getLogger("fwagent.supervisor")


@dataclass(frozen=True)
class AttributeReceived:
    payload: bytes
    pushed: bool


@dataclass(frozen=True)
class ChunkReceived:
    topic: str
    payload: bytes


@dataclass(frozen=True)
class Ignored:
    topic: str


Event = Union[AttributeReceived, ChunkReceived, Ignored]


def classify(message: InboundMessage, topics: Topics) -> Event:
    topic = message.topic
    if topic.startswith(topics.attributes_response_prefix):
        return AttributeReceived(payload=message.payload, pushed=False)
    if topic == topics.attributes:
        return AttributeReceived(payload=message.payload, pushed=True)
    if topic.startswith(topics.chunk_response_prefix):
        return ChunkReceived(topic=topic, payload=message.payload)
    return Ignored(topic=topic)


class AgentSupervisor:
    """Owns the agent lifecycle.

    connect -> (message dispatch + telemetry until ``state.active`` is False)
    -> disconnect -> start the installed firmware, if any.

    Inbound messages are handled one at a time on the event loop, so handlers
    mutate ``state`` without locking.
    """

    def __init__(
        self,
        *,
        state: AgentState,
        topics: Topics,
        transport: TransportSession,
        listener: AttributeListener,
        engine: ChunkTransferEngine,
        installer: UpdateInstaller,
        telemetry: TelemetryLoop,
    ) -> None:
        self.state = state
        self.topics = topics
        self.transport = transport
        self.listener = listener
        self.engine = engine
        self.installer = installer
        self.telemetry = telemetry

    async def dispatch(self, event: Event) -> None:
        if isinstance(event, AttributeReceived):
            if event.pushed:
                await self.listener.on_attribute_update(event.payload)
            else:
                await self.listener.on_attribute_response(event.payload)
        elif isinstance(event, ChunkReceived):
            await self.engine.on_chunk(event.topic, event.payload)
        else:
            log.debug("ignoring message on %s", event.topic)

    async def run(self) -> int:
        exit_code = 0
        try:
            log.info("running as %s", self.state.executable_identity)
            await self.transport.connect()
            await self._run_until_inactive()
        except Exception:
            log.exception("agent stopped on error")
            exit_code = 1
        finally:
            self.state.deactivate()
            await self.transport.disconnect()

        return self._handoff(exit_code)

    async def _pump_messages(self) -> None:
        async for message in self.transport.messages():
            await self.dispatch(classify(message, self.topics))
            if not self.state.active:
                break

    async def _run_until_inactive(self) -> None:
        pump = asyncio.create_task(self._pump_messages(), name="fwagent-messages")
        telemetry = asyncio.create_task(self.telemetry.run(), name="fwagent-telemetry")
        try:
            done, _ = await asyncio.wait({pump, telemetry}, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                task.result()
        finally:
            for task in (pump, telemetry):
                task.cancel()
            await asyncio.gather(pump, telemetry, return_exceptions=True)
            await self.telemetry.drain()

    def _handoff(self, exit_code: int) -> int:
        path = self.state.installed_path
        if path is None:
            log.info("no firmware installed; not starting a successor")
            return exit_code
        try:
            self.installer.launch(path)
        except OSError:
            log.exception("failed to start %s", path)
            return 1
        return exit_code
