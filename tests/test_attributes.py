from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import pytest

from fwagent.attributes import AttributeListener
from fwagent.firmware import FirmwareDecodeError
from fwagent.installer import UpdateInstaller
from fwagent.state import AgentState
from fwagent.topics import Topics
from fwagent.transfer import ChunkTransferEngine


class _Publisher:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str | bytes]] = []

    async def publish(self, topic: str, payload: str | bytes) -> None:
        self.sent.append((topic, payload))


def _fields(**overrides: Any) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "fw_checksum": "d41d8cd98f00b204e9800998ecf8427e",
        "fw_checksum_algorithm": "MD5",
        "fw_size": 8,
        "fw_tag": "fw 2",
        "fw_title": "fw",
        "fw_version": "2",
    }
    fields.update(overrides)
    return fields


def _listener(tmp_path: Path, identity: str = "fw-1") -> tuple[AgentState, _Publisher, AttributeListener]:
    state = AgentState(executable_identity=identity)
    publisher = _Publisher()
    engine = ChunkTransferEngine(
        state=state,
        publisher=publisher,
        installer=UpdateInstaller(install_dir=tmp_path),
        topics=Topics(),
    )
    return state, publisher, AttributeListener(state=state, engine=engine)


def test_attribute_response_reads_shared_fields(tmp_path: Path) -> None:
    state, publisher, listener = _listener(tmp_path)

    payload = json.dumps({"shared": _fields()}).encode()
    asyncio.run(listener.on_attribute_response(payload))

    assert publisher.sent == [("v2/fw/request/0/chunk/0", "4096")]
    session = state.session
    assert session is not None
    assert session.request_id == 0
    assert session.next_chunk_index == 0
    assert session.bytes_received == 0
    assert len(session.buffer) == 8
    assert session.descriptor.checksum_algorithm == "MD5"


def test_running_target_version_does_not_download(tmp_path: Path) -> None:
    state, publisher, listener = _listener(tmp_path, identity="fw-2")

    asyncio.run(listener.on_attribute_update(json.dumps(_fields()).encode()))

    assert publisher.sent == []
    # The offer still claims a request id.
    assert state.session is not None
    assert state.last_request_id == 0


def test_loader_stub_never_downloads(tmp_path: Path) -> None:
    _, publisher, listener = _listener(tmp_path, identity="Firmware.exe")

    asyncio.run(listener.on_attribute_update(json.dumps(_fields()).encode()))

    assert listener.is_loader_stub() is True
    assert publisher.sent == []


def test_new_offer_mid_transfer_restarts_with_next_request_id(tmp_path: Path) -> None:
    state, publisher, listener = _listener(tmp_path)

    async def scenario() -> None:
        await listener.on_attribute_update(json.dumps(_fields()).encode())
        first = state.session
        assert first is not None
        await listener.engine.on_chunk("v2/fw/response/0/chunk/0", b"1234")
        await listener.on_attribute_update(json.dumps(_fields(fw_version="3", fw_size=16)).encode())
        second = state.session
        assert second is not None and second is not first
        assert second.request_id == first.request_id + 1
        assert second.bytes_received == 0
        assert len(second.buffer) == 16

    asyncio.run(scenario())

    assert publisher.sent[-1] == ("v2/fw/request/1/chunk/0", "4096")


@pytest.mark.parametrize(
    "payload",
    [
        b"not json",
        b"[1, 2, 3]",
        json.dumps({k: v for k, v in _fields().items() if k != "fw_title"}).encode(),
        json.dumps(_fields(fw_size="8")).encode(),
        json.dumps(_fields(fw_size=True)).encode(),
        json.dumps(_fields(fw_size=-1)).encode(),
        json.dumps(_fields(fw_version=2)).encode(),
    ],
)
def test_attribute_update_decode_failures_are_fatal(tmp_path: Path, payload: bytes) -> None:
    state, publisher, listener = _listener(tmp_path)

    with pytest.raises(FirmwareDecodeError):
        asyncio.run(listener.on_attribute_update(payload))

    assert state.session is None
    assert publisher.sent == []


def test_attribute_response_without_shared_object_is_rejected(tmp_path: Path) -> None:
    _, _, listener = _listener(tmp_path)

    with pytest.raises(FirmwareDecodeError) as exc:
        asyncio.run(listener.on_attribute_response(json.dumps(_fields()).encode()))
    assert "shared" in str(exc.value)
