import json

import pytest

from fountain.models import FountainPacket, FountainProfile, WireFormat
from fountain.packet import decode_packet, encode_packet, is_fountain_packet_type

PACKET_TYPE = "scouting_fountain_packet"


def full_packet(**overrides) -> FountainPacket:
    fields = dict(
        type=PACKET_TYPE,
        session_id="legacy_session",
        packet_id=3,
        data="eHl6",
        indices=[1, 2],
        k=10,
        total_bytes=200,
        checksum="1234",
        profile=FountainProfile.RELIABLE,
    )
    fields.update(overrides)
    return FountainPacket(**fields)


def test_parses_compact_packet_from_generator():
    raw = json.dumps({
        "t": PACKET_TYPE,
        "s": "session_123",
        "i": 7,
        "p": "fast",
        "d": "abcd",
    })

    p = decode_packet(raw)

    assert p is not None
    assert p.type == PACKET_TYPE
    assert p.session_id == "session_123"
    assert p.packet_id == 7
    assert p.data == "abcd"
    assert p.profile == FountainProfile.FAST
    assert p.indices is None
    assert p.k is None


def test_parses_legacy_packet():
    raw = json.dumps({
        "type": PACKET_TYPE,
        "sessionId": "legacy_session",
        "packetId": 3,
        "data": "xyz",
        "k": 10,
        "bytes": 200,
        "checksum": "1234",
        "indices": [1, 2],
    })

    p = decode_packet(raw)

    assert p is not None
    assert p.session_id == "legacy_session"
    assert p.packet_id == 3
    assert p.data == "xyz"
    assert p.indices == [1, 2]
    assert p.k == 10
    assert p.total_bytes == 200
    assert p.checksum == "1234"
    assert p.profile is None


def test_legacy_output_has_full_field_set_and_no_tag():
    p = full_packet(
        session_id="legacy_session_2",
        packet_id=9,
        data="payload",
        k=44,
        total_bytes=520,
        checksum="9999",
        indices=[2, 8, 11],
        profile=None,
    )

    raw = json.loads(encode_packet(p, WireFormat.LEGACY))

    assert raw == {
        "type": PACKET_TYPE,
        "sessionId": "legacy_session_2",
        "packetId": 9,
        "data": "payload",
        "k": 44,
        "bytes": 520,
        "checksum": "9999",
        "indices": [2, 8, 11],
    }
    assert "t" not in raw


def test_legacy_output_ignores_include_session_fields():
    raw = json.loads(encode_packet(full_packet(), WireFormat.LEGACY, include_session_fields=False))
    for key in ("type", "sessionId", "packetId", "k", "bytes", "checksum", "indices", "data"):
        assert key in raw


def test_legacy_encode_requires_session_fields():
    with pytest.raises(ValueError):
        encode_packet(full_packet(k=None), WireFormat.LEGACY)


@pytest.mark.parametrize("wire_format", list(WireFormat))
def test_roundtrip_with_session_fields(wire_format):
    p = full_packet()
    assert decode_packet(encode_packet(p, wire_format)) == p


def test_compact_without_session_fields_keeps_stream_fields():
    p = full_packet(packet_id=12, indices=[0, 4, 9])

    raw = encode_packet(p, WireFormat.COMPACT, include_session_fields=False)
    decoded = decode_packet(raw)

    assert set(json.loads(raw)) == {"s", "i", "v", "x", "d"}
    assert decoded.session_id == p.session_id
    assert decoded.packet_id == 12
    assert decoded.indices == [0, 4, 9]
    assert decoded.data == p.data
    assert decoded.type is None
    assert not decoded.has_session_fields


def test_compact_header_is_smaller_than_legacy():
    p = full_packet()
    assert len(encode_packet(p, WireFormat.COMPACT)) < len(encode_packet(p, WireFormat.LEGACY))


@pytest.mark.parametrize(
    "raw",
    [
        "not-json",
        "",
        "[1, 2, 3]",
        "42",
        json.dumps({"foo": "bar"}),
        # legacy missing the type discriminator
        json.dumps({"sessionId": "s", "packetId": 1, "data": "eA==", "k": 1,
                    "bytes": 1, "checksum": "c", "indices": [0]}),
        # legacy missing k
        json.dumps({"type": PACKET_TYPE, "sessionId": "s", "packetId": 1, "data": "eA==",
                    "bytes": 1, "checksum": "c", "indices": [0]}),
        # compact with neither t nor v
        json.dumps({"s": "s", "i": 1, "d": "eA=="}),
        # compact with an unknown version and no type
        json.dumps({"s": "s", "i": 1, "v": 2, "d": "eA=="}),
    ],
)
def test_invalid_input_returns_none(raw):
    assert decode_packet(raw) is None


@pytest.mark.parametrize(
    "field, value",
    [
        ("packetId", "3"),
        ("packetId", -1),
        ("packetId", True),
        ("k", 0),
        ("bytes", 1.5),
        ("indices", []),
        ("indices", [1, "2"]),
        ("indices", [-1]),
        ("data", 123),
        ("data", ""),
        ("profile", "turbo"),
    ],
)
def test_wrong_field_types_return_none(field, value):
    wire = json.loads(encode_packet(full_packet(), WireFormat.LEGACY))
    wire[field] = value
    assert decode_packet(json.dumps(wire)) is None


def test_type_discriminator_is_checked():
    wrong = json.loads(encode_packet(full_packet(), WireFormat.LEGACY))
    wrong["type"] = "match_schedule"
    assert decode_packet(json.dumps(wrong)) is None

    raw = encode_packet(full_packet(), WireFormat.LEGACY)
    assert decode_packet(raw, expected_type=PACKET_TYPE) is not None
    assert decode_packet(raw, expected_type="pit_fountain_packet") is None


def test_headerless_compact_packet_passes_type_check():
    raw = encode_packet(full_packet(), WireFormat.COMPACT, include_session_fields=False)
    assert decode_packet(raw, expected_type=PACKET_TYPE) is not None


def test_is_fountain_packet_type():
    assert is_fountain_packet_type(PACKET_TYPE)
    assert not is_fountain_packet_type("_fountain_packet")
    assert not is_fountain_packet_type("scouting")
