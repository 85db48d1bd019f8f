"""
Fountain packet collector (scanner side).

Holds the decode state of one transfer session and resolves source blocks
with a peeling decoder: a packet that references a single unknown block
resolves it, and every resolved block is XORed out of the pending packets
that reference it, which may leave them with a single unknown in turn.
Propagation runs off an explicit worklist until nothing more resolves.

When peeling stalls with enough pending packets to pin every block down,
Gauss-Jordan elimination over GF(2) runs on the pending packets and any
block it isolates is fed back into the peeling worklist.
"""

import itertools
import logging
from collections import defaultdict, deque
from dataclasses import dataclass

from fountain.blocks import decode_block, xor_bytes
from fountain.models import CollectorState, FountainPacket, ScanProgress, TransferSession
from security.integrity import verify_checksum

logger = logging.getLogger(__name__)

MAX_REPORTED_MISSING = 100
TERMINAL_STATES = (CollectorState.COMPLETE, CollectorState.FAILED)


@dataclass(slots=True)
class _Equation:
    """A received packet reduced to the blocks it still needs."""
    unknown: set[int]
    data: bytes


def session_from_packet(packet: FountainPacket) -> TransferSession | None:
    """
    Build the session description from a packet carrying the session header.

    The block size is not on the wire; it is the decoded length of the
    packet's data and must agree with k and the declared byte count.
    """
    if not packet.has_session_fields:
        return None
    block = decode_block(packet.data)
    if not block:
        return None
    block_size = len(block)
    if not (packet.k - 1) * block_size < packet.total_bytes <= packet.k * block_size:
        logger.warning(
            f"Session {packet.session_id}: k={packet.k} and {block_size}-byte blocks "
            f"cannot hold {packet.total_bytes} bytes"
        )
        return None
    return TransferSession(
        session_id=packet.session_id,
        packet_type=packet.type,
        total_bytes=packet.total_bytes,
        k=packet.k,
        block_size=block_size,
        checksum=packet.checksum,
        profile=packet.profile,
    )


class FountainCollector:
    """Decode state for a single session."""

    def __init__(self, session: TransferSession) -> None:
        self.session = session
        self.state = CollectorState.COLLECTING
        self.error_message: str | None = None
        self._received: set[int] = set()
        self._resolved: dict[int, bytes] = {}
        self._equations: dict[int, _Equation] = {}
        self._waiting: defaultdict[int, set[int]] = defaultdict(set)
        self._equation_ids = itertools.count()
        self._payload: bytes | None = None

    @classmethod
    def from_packet(cls, packet: FountainPacket) -> "FountainCollector | None":
        session = session_from_packet(packet)
        if session is None:
            return None
        return cls(session)

    # --- Inspection ---

    @property
    def k(self) -> int:
        return self.session.k

    @property
    def is_done(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def payload(self) -> bytes | None:
        """The verified payload; None unless the session completed."""
        if self.state != CollectorState.COMPLETE:
            return None
        return self._payload

    @property
    def resolved_count(self) -> int:
        return len(self._resolved)

    @property
    def received_count(self) -> int:
        return len(self._received)

    @property
    def pending_count(self) -> int:
        return len(self._equations)

    def resolved_block(self, index: int) -> bytes | None:
        return self._resolved.get(index)

    def missing_packet_ids(self, limit: int = MAX_REPORTED_MISSING) -> list[int]:
        """Gaps in the range of packet ids seen so far."""
        if not self._received:
            return []
        missing = []
        for packet_id in range(min(self._received), max(self._received) + 1):
            if packet_id not in self._received:
                missing.append(packet_id)
                if len(missing) >= limit:
                    break
        return missing

    def snapshot(self) -> dict:
        """Comparable copy of the decode state."""
        return {
            "state": self.state,
            "received": frozenset(self._received),
            "resolved": dict(self._resolved),
            "pending": sorted(
                (tuple(sorted(eq.unknown)), eq.data) for eq in self._equations.values()
            ),
        }

    def progress(self) -> ScanProgress:
        return ScanProgress(
            session_id=self.session.session_id,
            packet_type=self.session.packet_type,
            state=self.state,
            k=self.k,
            resolved_blocks=self.resolved_count,
            received_packets=self.received_count,
            pending_equations=self.pending_count,
            progress_percent=self.resolved_count / self.k * 100,
            missing_packets=self.missing_packet_ids(),
            error_message=self.error_message,
        )

    # --- Ingestion ---

    def _conflicts(self, packet: FountainPacket) -> bool:
        session = self.session
        checks = (
            (packet.k, session.k),
            (packet.total_bytes, session.total_bytes),
            (packet.checksum, session.checksum),
            (packet.profile, session.profile),
            (packet.type, session.packet_type),
        )
        return any(
            seen is not None and expected is not None and seen != expected
            for seen, expected in checks
        )

    def _valid_indices(self, indices: list[int] | None) -> bool:
        if not indices:
            return False
        if len(set(indices)) != len(indices):
            return False
        return all(0 <= i < self.k for i in indices)

    def add_packet(self, packet: FountainPacket) -> bool:
        """
        Fold one packet into the decode state.

        Returns True when the packet was accepted. Duplicates, packets for
        another session, packets after a terminal state and invalid packets
        are dropped without touching the state.
        """
        if self.is_done or packet.session_id != self.session.session_id:
            return False
        if packet.packet_id in self._received:
            return False

        if self._conflicts(packet):
            logger.warning(
                f"Session {self.session.session_id}: packet {packet.packet_id} "
                f"disagrees with session fields, dropped"
            )
            return False
        indices = packet.indices
        if indices is None and self.k == 1:
            # A single-block session leaves nothing to reference
            indices = [0]
        if not self._valid_indices(indices):
            logger.debug(
                f"Session {self.session.session_id}: packet {packet.packet_id} "
                f"has invalid indices {indices}, dropped"
            )
            return False
        data = decode_block(packet.data)
        if data is None or len(data) != self.session.block_size:
            logger.debug(
                f"Session {self.session.session_id}: packet {packet.packet_id} "
                f"data is not a {self.session.block_size}-byte block, dropped"
            )
            return False

        self._received.add(packet.packet_id)
        resolved_before = len(self._resolved)
        self._absorb(set(indices), data)
        if self._equations and len(self._resolved) + len(self._equations) >= self.k:
            self._eliminate()

        if len(self._resolved) == self.k:
            self._finish()
        elif len(self._resolved) > resolved_before:
            self.state = CollectorState.RESOLVING
        else:
            self.state = CollectorState.COLLECTING
        return True

    def _absorb(self, unknown: set[int], data: bytes) -> None:
        for index in [i for i in unknown if i in self._resolved]:
            data = xor_bytes(data, self._resolved[index])
            unknown.discard(index)

        if not unknown:
            return
        if len(unknown) == 1:
            self._peel(unknown.pop(), data)
            return

        equation_id = next(self._equation_ids)
        self._equations[equation_id] = _Equation(unknown, data)
        for index in unknown:
            self._waiting[index].add(equation_id)

    def _peel(self, index: int, data: bytes) -> None:
        worklist = deque([(index, data)])
        while worklist:
            index, data = worklist.popleft()
            if index in self._resolved:
                continue
            self._resolved[index] = data

            for equation_id in self._waiting.pop(index, ()):
                equation = self._equations.get(equation_id)
                if equation is None:
                    continue
                equation.data = xor_bytes(equation.data, data)
                equation.unknown.discard(index)

                if len(equation.unknown) == 1:
                    (remaining,) = equation.unknown
                    del self._equations[equation_id]
                    self._waiting[remaining].discard(equation_id)
                    worklist.append((remaining, equation.data))
                elif not equation.unknown:
                    del self._equations[equation_id]

    def _eliminate(self) -> None:
        """Solve what the pending packets determine jointly but peeling cannot reach."""
        # pivot block -> (unknown bitmask, data); each pivot bit lives in its own row only
        pivots: dict[int, tuple[int, int]] = {}
        for equation in self._equations.values():
            mask = sum(1 << i for i in equation.unknown)
            value = int.from_bytes(equation.data, "big")
            for bit, (pivot_mask, pivot_value) in pivots.items():
                if mask >> bit & 1:
                    mask ^= pivot_mask
                    value ^= pivot_value
            if not mask:
                continue

            bit = (mask & -mask).bit_length() - 1
            for other, (other_mask, other_value) in pivots.items():
                if other_mask >> bit & 1:
                    pivots[other] = (other_mask ^ mask, other_value ^ value)
            pivots[bit] = (mask, value)

        solved = [
            (bit, value.to_bytes(self.session.block_size, "big"))
            for bit, (mask, value) in pivots.items()
            if mask == 1 << bit
        ]
        for index, data in solved:
            self._peel(index, data)

    def _finish(self) -> None:
        session = self.session
        assembled = b"".join(self._resolved[i] for i in range(session.k))
        payload = assembled[:session.total_bytes]

        if verify_checksum(payload, session.checksum):
            self._payload = payload
            self.state = CollectorState.COMPLETE
            logger.info(
                f"Session {session.session_id} complete: {session.total_bytes} bytes "
                f"from {len(self._received)} packets"
            )
        else:
            self.state = CollectorState.FAILED
            self.error_message = "Checksum mismatch after all blocks were resolved"
            logger.error(f"Session {session.session_id} failed: checksum mismatch")

        # Nothing else can change once terminal
        self._equations.clear()
        self._waiting.clear()
