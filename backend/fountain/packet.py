"""
Wire codec for fountain packets.

Two JSON shapes map onto the same FountainPacket:

- compact: single-letter keys, session fields only on header packets,
  sized for a QR frame
- legacy: long keys, complete field set on every packet, for scanners
  that keep no cross-packet session state

decode_packet() never raises; anything it cannot use comes back as None.
"""

import json
import logging
from typing import Annotated

from pydantic import BaseModel, Field, StrictInt, StrictStr, ValidationError

from config import COMPACT_FORMAT_VERSION, PACKET_TYPE_SUFFIX
from fountain.models import FountainPacket, FountainProfile, WireFormat

logger = logging.getLogger(__name__)

BlockIndex = Annotated[StrictInt, Field(ge=0)]
PacketId = Annotated[StrictInt, Field(ge=0)]
PositiveInt = Annotated[StrictInt, Field(gt=0)]

# Keys that identify each shape
COMPACT_KEYS = frozenset({"s", "i", "d"})
LEGACY_KEYS = frozenset({"sessionId", "packetId", "data"})


class _LegacyWire(BaseModel):
    type: StrictStr
    session_id: StrictStr = Field(alias="sessionId", min_length=1)
    packet_id: PacketId = Field(alias="packetId")
    k: PositiveInt
    total_bytes: PositiveInt = Field(alias="bytes")
    checksum: StrictStr
    indices: list[BlockIndex] = Field(min_length=1)
    data: StrictStr = Field(min_length=1)
    profile: FountainProfile | None = None


class _CompactWire(BaseModel):
    t: StrictStr | None = None
    s: StrictStr = Field(min_length=1)
    i: PacketId
    d: StrictStr = Field(min_length=1)
    x: list[BlockIndex] | None = Field(default=None, min_length=1)
    v: StrictInt | None = None
    p: FountainProfile | None = None
    k: PositiveInt | None = None
    b: PositiveInt | None = None
    c: StrictStr | None = None


def is_fountain_packet_type(packet_type: str) -> bool:
    return packet_type.endswith(PACKET_TYPE_SUFFIX) and len(packet_type) > len(PACKET_TYPE_SUFFIX)


def _type_matches(packet_type: str | None, expected_type: str | None) -> bool:
    if packet_type is None:
        return True
    if not is_fountain_packet_type(packet_type):
        return False
    return expected_type is None or packet_type == expected_type


def encode_packet(
    packet: FountainPacket,
    wire_format: WireFormat = WireFormat.COMPACT,
    include_session_fields: bool = True,
) -> str:
    """
    Serialize a packet to wire text.

    Legacy output always carries the full field set, so the packet must hold
    its session fields. For compact output, include_session_fields decides
    whether this frame is a session header.
    """
    if wire_format == WireFormat.LEGACY:
        if not packet.has_session_fields or packet.indices is None or packet.type is None:
            raise ValueError(
                f"Packet {packet.packet_id} of {packet.session_id} lacks fields required by the legacy format"
            )
        wire = {
            "type": packet.type,
            "sessionId": packet.session_id,
            "packetId": packet.packet_id,
            "data": packet.data,
            "k": packet.k,
            "bytes": packet.total_bytes,
            "checksum": packet.checksum,
            "indices": list(packet.indices),
        }
        if packet.profile is not None:
            wire["profile"] = packet.profile.value
        return json.dumps(wire, separators=(",", ":"))

    wire = {"s": packet.session_id, "i": packet.packet_id, "v": COMPACT_FORMAT_VERSION}
    if include_session_fields:
        header = {
            "t": packet.type,
            "p": packet.profile.value if packet.profile is not None else None,
            "k": packet.k,
            "b": packet.total_bytes,
            "c": packet.checksum,
        }
        wire.update({key: value for key, value in header.items() if value is not None})
    if packet.indices is not None:
        wire["x"] = list(packet.indices)
    wire["d"] = packet.data
    return json.dumps(wire, separators=(",", ":"))


def _from_legacy(obj: dict) -> FountainPacket:
    wire = _LegacyWire.model_validate(obj)
    return FountainPacket(
        type=wire.type,
        session_id=wire.session_id,
        packet_id=wire.packet_id,
        data=wire.data,
        indices=wire.indices,
        k=wire.k,
        total_bytes=wire.total_bytes,
        checksum=wire.checksum,
        profile=wire.profile,
    )


def _from_compact(obj: dict) -> FountainPacket | None:
    wire = _CompactWire.model_validate(obj)
    if wire.t is None and wire.v != COMPACT_FORMAT_VERSION:
        return None
    return FountainPacket(
        type=wire.t,
        session_id=wire.s,
        packet_id=wire.i,
        data=wire.d,
        indices=wire.x,
        k=wire.k,
        total_bytes=wire.b,
        checksum=wire.c,
        profile=wire.p,
    )


def decode_packet(raw: str, expected_type: str | None = None) -> FountainPacket | None:
    """Parse scanned text into a packet, or None if it is not a usable fountain packet."""
    try:
        obj = json.loads(raw)
    except (TypeError, ValueError, RecursionError) as e:
        logger.debug(f"Ignoring non-JSON scan: {e}")
        return None

    if not isinstance(obj, dict):
        return None

    keys = set(obj)
    try:
        if COMPACT_KEYS <= keys:
            packet = _from_compact(obj)
        elif keys & LEGACY_KEYS or "type" in keys:
            packet = _from_legacy(obj)
        else:
            return None
    except ValidationError as e:
        logger.debug(f"Ignoring malformed fountain packet: {e.error_count()} error(s)")
        return None

    if packet is None or not _type_matches(packet.type, expected_type):
        return None
    return packet
