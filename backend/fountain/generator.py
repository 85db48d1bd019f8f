"""
Fountain packet generator (display side).

Turns one payload into an endless stream of LT-coded packets. Every packet
is the XOR of a random subset of source blocks, so any sufficiently large
subset of scanned frames rebuilds the payload regardless of which frames the
camera missed.
"""

import itertools
import logging
import random
import time
import uuid
from typing import Iterator

from config import (
    DEFAULT_DATA_TYPE,
    MAX_CYCLE_ITERATION_FACTOR,
    PACKET_ID_ORIGIN,
    PACKET_TYPE_SUFFIX,
    QR_CAPACITY_RATIO,
    QR_CODE_SIZE_BYTES,
    SESSION_HEADER_INTERVAL,
)
from fountain.blocks import encode_block, split_blocks, xor_blocks
from fountain.degree import DegreeSampler
from fountain.estimate import get_fountain_estimate
from fountain.models import FountainPacket, FountainProfile, TransferSession, WireFormat
from fountain.packet import encode_packet
from security.integrity import payload_checksum

logger = logging.getLogger(__name__)


def new_session_id(data_type: str) -> str:
    return f"{data_type}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def default_wire_format(profile: FountainProfile) -> WireFormat:
    """Reliable transfers favour old scanners; fast ones favour frame size."""
    if profile == FountainProfile.RELIABLE:
        return WireFormat.LEGACY
    return WireFormat.COMPACT


class FountainGenerator:
    """Encodes a single payload for one transfer session."""

    def __init__(
        self,
        payload: bytes,
        profile: FountainProfile = FountainProfile.FAST,
        *,
        data_type: str = DEFAULT_DATA_TYPE,
        session_id: str | None = None,
        block_size: int | None = None,
        seed: int | None = None,
    ) -> None:
        if not payload:
            raise ValueError("Cannot fountain-encode an empty payload")

        profile = FountainProfile(profile)
        self.estimate = get_fountain_estimate(len(payload), profile, block_size)
        self.blocks = split_blocks(payload, self.estimate.block_size)
        self.seed = seed if seed is not None else random.getrandbits(64)
        self.session = TransferSession(
            session_id=session_id or new_session_id(data_type),
            packet_type=f"{data_type}{PACKET_TYPE_SUFFIX}",
            total_bytes=len(payload),
            k=len(self.blocks),
            block_size=self.estimate.block_size,
            checksum=payload_checksum(payload),
            profile=profile,
        )
        self._sampler = DegreeSampler(self.session.k, profile)

        logger.info(
            f"Fountain session {self.session.session_id} [{profile.value}]: "
            f"{self.session.k} blocks @ {self.session.block_size} bytes, "
            f"targeting {self.estimate.target_packets} packets per cycle"
        )

    @property
    def default_wire_format(self) -> WireFormat:
        return default_wire_format(self.session.profile)

    def _make_packet(self, packet_id: int, rng: random.Random) -> FountainPacket:
        degree = self._sampler.sample(rng)
        indices = sorted(rng.sample(range(self.session.k), degree))
        data = xor_blocks((self.blocks[i] for i in indices), self.session.block_size)
        return FountainPacket(
            type=self.session.packet_type,
            session_id=self.session.session_id,
            packet_id=packet_id,
            data=encode_block(data),
            indices=indices,
            k=self.session.k,
            total_bytes=self.session.total_bytes,
            checksum=self.session.checksum,
            profile=self.session.profile,
        )

    def packets(self) -> Iterator[FountainPacket]:
        """
        Endless packet stream. Each call restarts from PACKET_ID_ORIGIN and
        yields the same sequence; the display loop decides when to stop.
        """
        rng = random.Random(self.seed)
        for packet_id in itertools.count(PACKET_ID_ORIGIN):
            yield self._make_packet(packet_id, rng)

    def encode(
        self,
        packet: FountainPacket,
        wire_format: WireFormat | None = None,
        include_session_fields: bool = True,
    ) -> str:
        return encode_packet(
            packet,
            wire_format or self.default_wire_format,
            include_session_fields=include_session_fields,
        )

    def frames(self, wire_format: WireFormat | None = None) -> Iterator[str]:
        """Endless wire frames; compact frames repeat the session header periodically."""
        for packet in self.packets():
            is_header = (packet.packet_id - PACKET_ID_ORIGIN) % SESSION_HEADER_INTERVAL == 0
            yield self.encode(packet, wire_format, include_session_fields=is_header)

    def build_cycle(
        self,
        target_packets: int | None = None,
        wire_format: WireFormat | None = None,
    ) -> list[str]:
        """
        Finite frame list for a display that loops over the same frames.

        Skips repeated index combinations and frames that would not fit a
        QR code; gives up after MAX_CYCLE_ITERATION_FACTOR x target draws.
        """
        target = target_packets or self.estimate.target_packets
        max_iterations = target * MAX_CYCLE_ITERATION_FACTOR
        capacity = int(QR_CODE_SIZE_BYTES * QR_CAPACITY_RATIO)

        frames: list[str] = []
        seen: set[tuple[int, ...]] = set()
        for iteration, packet in enumerate(self.packets(), start=1):
            if len(frames) >= target:
                break
            if iteration > max_iterations:
                logger.warning(
                    f"Reached maximum iterations ({max_iterations}), "
                    f"stopping with {len(frames)}/{target} packets"
                )
                break

            key = tuple(packet.indices)
            if key in seen:
                continue
            seen.add(key)

            is_header = len(frames) % SESSION_HEADER_INTERVAL == 0
            frame = self.encode(packet, wire_format, include_session_fields=is_header)
            if len(frame) > capacity:
                logger.warning(f"Packet {packet.packet_id} too large ({len(frame)} chars), skipping")
                continue
            frames.append(frame)

        return frames
