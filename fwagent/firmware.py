from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Mapping


class FirmwareDecodeError(ValueError):
    """Raised when a firmware attribute payload cannot be decoded."""


@dataclass(frozen=True)
class FirmwareDescriptor:
    title: str
    version: str
    size: int
    checksum: str
    checksum_algorithm: str
    tag: str

    @property
    def target_identity(self) -> str:
        return f"{self.title}-{self.version}"


def _require_str(obj: Mapping[str, Any], key: str) -> str:
    v = obj.get(key)
    if not isinstance(v, str):
        raise FirmwareDecodeError(f"'{key}' must be a string")
    return v


def _require_size(obj: Mapping[str, Any], key: str) -> int:
    v = obj.get(key)
    if isinstance(v, bool) or not isinstance(v, int):
        raise FirmwareDecodeError(f"'{key}' must be an int")
    if v < 0:
        raise FirmwareDecodeError(f"'{key}' must be >= 0")
    return v


def _require_mapping(obj: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    v = obj.get(key)
    if not isinstance(v, Mapping):
        raise FirmwareDecodeError(f"'{key}' must be a mapping")
    return v


def parse_firmware_descriptor(fields: Mapping[str, Any]) -> FirmwareDescriptor:
    return FirmwareDescriptor(
        title=_require_str(fields, "fw_title"),
        version=_require_str(fields, "fw_version"),
        size=_require_size(fields, "fw_size"),
        checksum=_require_str(fields, "fw_checksum"),
        checksum_algorithm=_require_str(fields, "fw_checksum_algorithm"),
        tag=_require_str(fields, "fw_tag"),
    )


def _load_object(payload: bytes) -> Mapping[str, Any]:
    try:
        data = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise FirmwareDecodeError(f"attribute payload is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise FirmwareDecodeError("attribute payload was not a JSON object")
    return data


def decode_attribute_response(payload: bytes) -> FirmwareDescriptor:
    """Decode a response to an attribute request (fields nested under ``shared``)."""

    return parse_firmware_descriptor(_require_mapping(_load_object(payload), "shared"))


def decode_attribute_update(payload: bytes) -> FirmwareDescriptor:
    """Decode a pushed attribute update (fields at the top level)."""

    return parse_firmware_descriptor(_load_object(payload))
