from __future__ import annotations

import pytest

from fwagent.topics import Topics


def test_default_layout_matches_device_api() -> None:
    topics = Topics()

    assert topics.subscriptions() == (
        "v1/devices/me/attributes/response/+",
        "v1/devices/me/attributes",
        "v2/fw/response/+/chunk/+",
    )
    assert topics.attributes_request == "v1/devices/me/attributes/request/0"
    assert topics.telemetry == "v1/devices/me/telemetry"
    assert topics.chunk_request(7, 12) == "v2/fw/request/7/chunk/12"


def test_custom_bases_are_used_everywhere() -> None:
    topics = Topics(attributes_base="site/a", firmware_base="site/fw")

    assert topics.attributes == "site/a/attributes"
    assert topics.chunk_response_pattern == "site/fw/response/+/chunk/+"
    assert topics.chunk_request(0, 0) == "site/fw/request/0/chunk/0"
    assert topics.parse_chunk_response("site/fw/response/4/chunk/9") == (4, 9)


@pytest.mark.parametrize(
    ("topic", "expected"),
    [
        ("v2/fw/response/3/chunk/7", (3, 7)),
        ("v2/fw/response/0/chunk/0", (0, 0)),
        ("v2/fw/response//chunk/5", (0, 5)),
        ("v2/fw/response/abc/chunk/def", (0, 0)),
        ("v2/fw/response/4294967295/chunk/1", (4294967295, 1)),
        ("v2/fw/response/4294967296/chunk/1", (0, 1)),
        ("v1/devices/me/attributes", (0, 0)),
    ],
)
def test_parse_chunk_response_is_permissive(topic: str, expected: tuple[int, int]) -> None:
    assert Topics().parse_chunk_response(topic) == expected
