"""
Fountain Manager: owns every broadcast and scan session.

Generators for the display side and collectors for the scanner side live in
session-keyed stores. Scanned packets for one session are folded in one at
a time under that session's lock; different sessions never block each other.
Idle scan sessions are dropped by a periodic sweeper.
"""

import asyncio
import itertools
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from config import (
    FRAME_WINDOW_MAX,
    MAX_ORPHAN_PACKETS,
    SCAN_SESSION_TIMEOUT,
    SWEEP_INTERVAL,
)
from fountain.collector import FountainCollector
from fountain.compression import prepare_payload, restore_payload
from fountain.generator import FountainGenerator, default_wire_format
from fountain.models import (
    BroadcastInfo,
    CollectorState,
    FountainPacket,
    FountainProfile,
    ScanProgress,
    ScanResult,
    WireFormat,
)
from fountain.packet import decode_packet

logger = logging.getLogger(__name__)


@dataclass
class _SessionLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0  # holders plus waiters


class FountainManager:
    """Manages all active broadcasts and scan sessions."""

    def __init__(self, expected_type: str | None = None) -> None:
        self.expected_type = expected_type
        self._broadcasts: dict[str, tuple[FountainGenerator, BroadcastInfo]] = {}
        self._collectors: dict[str, FountainCollector] = {}
        self._orphans: dict[str, list[FountainPacket]] = {}
        self._last_seen: dict[str, float] = {}
        self._session_locks: dict[str, _SessionLock] = {}
        self._event_callbacks: list = []  # async fn(event_type, data)
        self._sweeper: asyncio.Task | None = None

    def on_event(self, callback) -> None:
        """Register callback: async fn(event_type: str, data: dict)."""
        self._event_callbacks.append(callback)

    async def _emit(self, event_type: str, data: dict) -> None:
        """Emit an event to all registered callbacks."""
        for cb in self._event_callbacks:
            try:
                await cb(event_type, data)
            except Exception as e:
                logger.error(f"Event callback error: {e}")

    async def start(self) -> None:
        """Start the idle-session sweeper."""
        self._sweeper = asyncio.create_task(self._sweep_loop())
        logger.info("Fountain manager started")

    async def stop(self) -> None:
        """Stop the sweeper and drop every session."""
        if self._sweeper:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None

        self._broadcasts.clear()
        self._collectors.clear()
        self._orphans.clear()
        self._last_seen.clear()
        self._session_locks.clear()
        logger.info("Fountain manager stopped")

    # --- Broadcasts (display side) ---

    async def start_broadcast(
        self,
        data: Any,
        data_type: str,
        profile: FountainProfile = FountainProfile.FAST,
        wire_format: WireFormat | None = None,
        seed: int | None = None,
    ) -> BroadcastInfo:
        """
        Prepare a payload and start a generator for it.

        Raises PayloadTooSmallError if the payload is below the minimum size.
        """
        payload, stats = await asyncio.to_thread(prepare_payload, data)
        generator = FountainGenerator(payload, profile, data_type=data_type, seed=seed)
        session = generator.session

        info = BroadcastInfo(
            session_id=session.session_id,
            data_type=data_type,
            profile=session.profile,
            wire_format=wire_format or default_wire_format(session.profile),
            total_bytes=session.total_bytes,
            k=session.k,
            block_size=session.block_size,
            checksum=session.checksum,
            target_packets=generator.estimate.target_packets,
            stats=stats,
        )
        self._broadcasts[session.session_id] = (generator, info)

        await self._emit("broadcast_started", info.model_dump(mode="json"))
        return info

    def get_broadcasts(self) -> list[BroadcastInfo]:
        return [info for _, info in self._broadcasts.values()]

    def get_broadcast(self, session_id: str) -> BroadcastInfo | None:
        entry = self._broadcasts.get(session_id)
        return entry[1] if entry else None

    def _generator(self, session_id: str) -> tuple[FountainGenerator, BroadcastInfo]:
        entry = self._broadcasts.get(session_id)
        if entry is None:
            raise KeyError(session_id)
        return entry

    async def build_cycle(self, session_id: str) -> list[str]:
        """Rotating frame list for a looping display."""
        generator, info = self._generator(session_id)
        return await asyncio.to_thread(generator.build_cycle, None, info.wire_format)

    async def frame_window(self, session_id: str, start: int = 0, count: int = 10) -> list[str]:
        """Frames [start, start + count) of the endless stream."""
        generator, info = self._generator(session_id)
        if start < 0 or count < 1 or count > FRAME_WINDOW_MAX:
            raise ValueError(f"count must be 1..{FRAME_WINDOW_MAX} and start non-negative")

        def window() -> list[str]:
            return list(itertools.islice(generator.frames(info.wire_format), start, start + count))

        return await asyncio.to_thread(window)

    def stop_broadcast(self, session_id: str) -> bool:
        if self._broadcasts.pop(session_id, None) is None:
            return False
        logger.info(f"Broadcast {session_id} stopped")
        return True

    # --- Scans (scanner side) ---

    @asynccontextmanager
    async def _session_lock(self, session_id: str):
        """
        Hold a session's lock. The entry lives while anyone holds or waits on
        it, or while the session has state; the last user out drops it.
        """
        entry = self._session_locks.setdefault(session_id, _SessionLock())
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            idle = session_id not in self._collectors and session_id not in self._orphans
            if entry.users == 0 and idle and self._session_locks.get(session_id) is entry:
                del self._session_locks[session_id]

    def _hold_orphan(self, packet: FountainPacket) -> ScanResult:
        """Keep a headerless compact packet until its session header is scanned."""
        held = self._orphans.setdefault(packet.session_id, [])
        duplicate = any(p.packet_id == packet.packet_id for p in held)
        accepted = not duplicate and len(held) < MAX_ORPHAN_PACKETS
        if accepted:
            held.append(packet)
        elif not duplicate:
            logger.warning(f"Session {packet.session_id}: orphan buffer full, packet {packet.packet_id} dropped")

        progress = ScanProgress(
            session_id=packet.session_id,
            packet_type=packet.type,
            received_packets=len(held),
            awaiting_header=True,
        )
        return ScanResult(accepted=accepted, progress=progress)

    @staticmethod
    def _fold(
        collector: FountainCollector,
        packet: FountainPacket,
        held: list[FountainPacket],
    ) -> bool:
        for orphan in held:
            collector.add_packet(orphan)
        return collector.add_packet(packet)

    async def ingest(self, raw: str) -> ScanResult:
        """Feed one scanned frame. Unusable frames come back as accepted=False."""
        packet = decode_packet(raw, self.expected_type)
        if packet is None:
            return ScanResult(accepted=False)

        session_id = packet.session_id
        async with self._session_lock(session_id):
            collector = self._collectors.get(session_id)
            held: list[FountainPacket] = []
            if collector is None:
                collector = FountainCollector.from_packet(packet)
                if collector is None:
                    if packet.has_session_fields:
                        return ScanResult(accepted=False)
                    self._last_seen[session_id] = time.monotonic()
                    return self._hold_orphan(packet)

                self._collectors[session_id] = collector
                held = self._orphans.pop(session_id, [])
                logger.info(
                    f"Started scan session {session_id}: k={collector.k}, "
                    f"bytes={collector.session.total_bytes}, {len(held)} held packet(s)"
                )

            was_done = collector.is_done
            accepted = await asyncio.to_thread(self._fold, collector, packet, held)
            self._last_seen[session_id] = time.monotonic()
            progress = collector.progress()

        if accepted or held:
            await self._emit_progress(progress, finished=collector.is_done and not was_done)
        return ScanResult(accepted=accepted, progress=progress)

    async def _emit_progress(self, progress: ScanProgress, finished: bool) -> None:
        data = progress.model_dump(mode="json")
        if not finished:
            await self._emit("scan_progress", data)
            return

        if progress.state == CollectorState.COMPLETE:
            await self._emit("scan_complete", data)
            notification = {
                "type": "success",
                "message": f"Session {progress.session_id} reconstructed from {progress.received_packets} packets",
            }
        else:
            await self._emit("scan_failed", data)
            notification = {
                "type": "error",
                "message": f"Session {progress.session_id} failed: {progress.error_message}",
            }
        await self._emit("notification", notification)

    def _scan_progress(self, session_id: str) -> ScanProgress | None:
        collector = self._collectors.get(session_id)
        if collector is not None:
            return collector.progress()
        held = self._orphans.get(session_id)
        if held is None:
            return None
        return ScanProgress(
            session_id=session_id,
            received_packets=len(held),
            awaiting_header=True,
        )

    async def get_scan(self, session_id: str) -> ScanProgress | None:
        if session_id not in self._collectors and session_id not in self._orphans:
            return None
        async with self._session_lock(session_id):
            return self._scan_progress(session_id)

    async def get_scans(self) -> list[ScanProgress]:
        scans = []
        for session_id in dict.fromkeys([*self._collectors, *self._orphans]):
            progress = await self.get_scan(session_id)
            if progress is not None:
                scans.append(progress)
        return scans

    async def get_payload(self, session_id: str) -> bytes | None:
        if session_id not in self._collectors:
            return None
        async with self._session_lock(session_id):
            collector = self._collectors.get(session_id)
            return collector.payload if collector else None

    async def get_data(self, session_id: str) -> Any:
        """Restored JSON data of a completed scan. Raises LookupError until complete."""
        payload = await self.get_payload(session_id)
        if payload is None:
            raise LookupError(session_id)
        return restore_payload(payload)

    async def cancel_scan(self, session_id: str) -> bool:
        """Discard a scan session's state; other sessions are untouched."""
        async with self._session_lock(session_id):
            dropped = self._collectors.pop(session_id, None) is not None
            dropped = self._orphans.pop(session_id, None) is not None or dropped
            self._last_seen.pop(session_id, None)
        if dropped:
            logger.info(f"Scan session {session_id} discarded")
        return dropped

    async def expire_stale(self, now: float | None = None) -> list[str]:
        """Drop scan sessions idle for longer than SCAN_SESSION_TIMEOUT."""
        now = time.monotonic() if now is None else now
        stale = [
            session_id
            for session_id, last_seen in list(self._last_seen.items())
            if now - last_seen > SCAN_SESSION_TIMEOUT
        ]
        for session_id in stale:
            logger.info(f"Scan session {session_id} timed out")
            await self.cancel_scan(session_id)
        return stale

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(SWEEP_INTERVAL)
            try:
                await self.expire_stale()
            except Exception as e:
                logger.error(f"Session sweep failed: {e}")
