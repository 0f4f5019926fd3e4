from __future__ import annotations

import re
from dataclasses import dataclass

_UINT32_MAX = 0xFFFFFFFF


@dataclass(frozen=True)
class Topics:
    """Broker topic layout (ThingsBoard device API by default)."""

    attributes_base: str = "v1/devices/me"
    firmware_base: str = "v2/fw"

    @property
    def attributes(self) -> str:
        return f"{self.attributes_base}/attributes"

    @property
    def attributes_response_prefix(self) -> str:
        return f"{self.attributes_base}/attributes/response/"

    @property
    def attributes_response_pattern(self) -> str:
        return f"{self.attributes_response_prefix}+"

    @property
    def attributes_request(self) -> str:
        return f"{self.attributes_base}/attributes/request/0"

    @property
    def telemetry(self) -> str:
        return f"{self.attributes_base}/telemetry"

    @property
    def chunk_response_prefix(self) -> str:
        return f"{self.firmware_base}/response/"

    @property
    def chunk_response_pattern(self) -> str:
        return f"{self.firmware_base}/response/+/chunk/+"

    def subscriptions(self) -> tuple[str, ...]:
        return (
            self.attributes_response_pattern,
            self.attributes,
            self.chunk_response_pattern,
        )

    def chunk_request(self, request_id: int, chunk_index: int) -> str:
        return f"{self.firmware_base}/request/{request_id}/chunk/{chunk_index}"

    def parse_chunk_response(self, topic: str) -> tuple[int, int]:
        """Return (request_id, chunk_index) encoded in a chunk response topic.

        Parsing is permissive: a missing or unparseable number reads as 0.
        """

        m = re.search(
            re.escape(self.firmware_base) + r"/response/([0-9]*)/chunk/([0-9]*)",
            topic,
        )
        if m is None:
            return 0, 0
        return _parse_uint32(m.group(1)), _parse_uint32(m.group(2))


def _parse_uint32(raw: str) -> int:
    if not raw:
        return 0
    value = int(raw)
    if value > _UINT32_MAX:
        return 0
    return value
