from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from .firmware import FirmwareDescriptor, decode_attribute_response, decode_attribute_update
from .state import AgentState
from .transfer import ChunkTransferEngine

log = logging.getLogger("fwagent.attributes")


@dataclass
class AttributeListener:
    """Turns shared firmware attributes into download decisions.

    Every descriptor starts a new download session (superseding the current
    one). The first chunk is requested only when the advertised image differs
    from the program that is running.
    """

    state: AgentState
    engine: ChunkTransferEngine
    loader_stub_suffixes: Sequence[str] = (".exe",)

    async def on_attribute_response(self, payload: bytes) -> None:
        await self._offer(decode_attribute_response(payload))

    async def on_attribute_update(self, payload: bytes) -> None:
        await self._offer(decode_attribute_update(payload))

    def is_loader_stub(self) -> bool:
        identity = self.state.executable_identity
        return any(identity.endswith(suffix) for suffix in self.loader_stub_suffixes)

    def needs_download(self, descriptor: FirmwareDescriptor) -> bool:
        if self.is_loader_stub():
            return False
        return descriptor.target_identity != self.state.executable_identity

    async def _offer(self, descriptor: FirmwareDescriptor) -> None:
        log.info(
            "firmware offered: %s (%d bytes, tag=%r)",
            descriptor.target_identity,
            descriptor.size,
            descriptor.tag,
        )
        session = self.state.start_session(descriptor)

        if not self.needs_download(descriptor):
            log.info("running %s; no download", self.state.executable_identity)
            return

        log.info("starting firmware download (request %d)", session.request_id)
        await self.engine.request_chunk(session, 0)
