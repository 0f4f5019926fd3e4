from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from .firmware import FirmwareDescriptor


@dataclass
class DownloadSession:
    """One firmware transfer, keyed by the request id it was started with."""

    request_id: int
    descriptor: FirmwareDescriptor
    next_chunk_index: int = 0
    bytes_received: int = 0
    buffer: bytearray = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.buffer = bytearray(self.descriptor.size)

    @property
    def size(self) -> int:
        return len(self.buffer)


@dataclass
class AgentState:
    """Process-wide agent state.

    Owned by the supervisor; message handlers receive it by reference. All
    mutation happens on the event loop thread, one handler at a time.
    """

    executable_identity: str
    active: bool = True
    session: DownloadSession | None = None
    last_request_id: int = -1
    installed_path: Path | None = None

    def start_session(self, descriptor: FirmwareDescriptor) -> DownloadSession:
        """Supersede any in-progress transfer with a fresh session."""

        self.last_request_id += 1
        self.session = DownloadSession(request_id=self.last_request_id, descriptor=descriptor)
        return self.session

    def deactivate(self) -> None:
        self.active = False
