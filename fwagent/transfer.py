from __future__ import annotations

import logging
from dataclasses import dataclass

from .installer import UpdateInstaller
from .state import AgentState, DownloadSession
from .topics import Topics
from .transport import Publisher, TransportError

log = logging.getLogger("fwagent.transfer")

DEFAULT_CHUNK_SIZE = 4096


class ChunkOverflowError(RuntimeError):
    """Raised when a chunk would land past the advertised firmware size."""


@dataclass
class ChunkTransferEngine:
    """Request/response chunk protocol for a single firmware download.

    Exactly one chunk request is outstanding at a time: the request for chunk
    ``n + 1`` is published only after the response for chunk ``n`` has been
    copied into the session buffer. An empty response marks the end of the
    image and hands the buffer to the installer.

    There is no timeout or gap detection. If a response is lost the transfer
    waits until the next firmware descriptor restarts it.
    """

    state: AgentState
    publisher: Publisher
    installer: UpdateInstaller
    topics: Topics
    chunk_size: int = DEFAULT_CHUNK_SIZE

    async def request_chunk(self, session: DownloadSession, chunk_index: int) -> None:
        session.next_chunk_index = chunk_index
        topic = self.topics.chunk_request(session.request_id, chunk_index)
        try:
            await self.publisher.publish(topic, str(self.chunk_size))
        except TransportError as exc:
            # The reconnect re-requests attributes, which restarts the download.
            log.warning("chunk request %s not sent: %s", topic, exc)

    async def on_chunk(self, topic: str, payload: bytes) -> None:
        request_id, chunk_index = self.topics.parse_chunk_response(topic)
        session = self.state.session
        if session is None or request_id != session.request_id:
            # Stale response from a superseded offer.
            log.debug("ignoring chunk %d for request %d", chunk_index, request_id)
            return

        if not payload:
            self._complete(session)
            return

        self._apply(session, chunk_index, payload)
        await self.request_chunk(session, chunk_index + 1)

    def _apply(self, session: DownloadSession, chunk_index: int, payload: bytes) -> None:
        offset = chunk_index * self.chunk_size
        end = offset + len(payload)
        if end > session.size:
            raise ChunkOverflowError(
                f"chunk {chunk_index} ({len(payload)} bytes at offset {offset}) exceeds "
                f"firmware size {session.size}"
            )
        session.buffer[offset:end] = payload
        # A repeated chunk overwrites the same bytes and is not counted twice.
        session.bytes_received = max(session.bytes_received, end)
        log.debug(
            "bytes %d / %d",
            end,
            session.size,
            extra={
                "fields": {
                    "request_id": session.request_id,
                    "chunk": chunk_index,
                    "bytes": end,
                    "size": session.size,
                }
            },
        )

    def _complete(self, session: DownloadSession) -> None:
        descriptor = session.descriptor
        log.info(
            "firmware %s transfer complete (%d / %d bytes)",
            descriptor.target_identity,
            session.bytes_received,
            session.size,
            extra={"fields": {"request_id": session.request_id, "target": descriptor.target_identity}},
        )
        path = self.installer.install(descriptor, session.buffer)
        self.state.session = None
        self.state.installed_path = path
        self.state.deactivate()
