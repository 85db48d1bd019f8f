"""Pydantic models for fountain-coded transfers."""

from enum import Enum

from pydantic import BaseModel


class FountainProfile(str, Enum):
    """Encoding modes; tune block size, redundancy and degree distribution."""
    FAST = "fast"
    RELIABLE = "reliable"


class WireFormat(str, Enum):
    COMPACT = "compact"
    LEGACY = "legacy"


class CollectorState(str, Enum):
    """All possible states of a scanning session."""
    COLLECTING = "collecting"
    RESOLVING = "resolving"
    COMPLETE = "complete"
    FAILED = "failed"


class PayloadTooSmallError(ValueError):
    """Raised when a payload is below the fountain-coding minimum."""


class FountainPacket(BaseModel):
    """One encoded unit on the wire, independent of its wire shape."""
    type: str | None = None
    session_id: str
    packet_id: int
    data: str  # base64 of the XORed source blocks
    indices: list[int] | None = None
    k: int | None = None
    total_bytes: int | None = None
    checksum: str | None = None
    profile: FountainProfile | None = None

    @property
    def degree(self) -> int:
        return len(self.indices or [])

    @property
    def has_session_fields(self) -> bool:
        return (
            self.k is not None
            and self.total_bytes is not None
            and self.checksum is not None
        )


class TransferSession(BaseModel):
    """Session-level fields shared by every packet of one transfer."""
    session_id: str
    packet_type: str | None = None
    total_bytes: int
    k: int
    block_size: int
    checksum: str
    profile: FountainProfile | None = None


class FountainEstimate(BaseModel):
    block_size: int
    estimated_blocks: int
    redundancy_factor: float
    target_packets: int


class CompressionStats(BaseModel):
    compressed: bool
    original_size: int
    encoded_size: int
    compression_ratio: float
    estimated_qr_reduction: str


class BroadcastInfo(BaseModel):
    """State of a generator session, exposed to the frontend."""
    session_id: str
    data_type: str
    profile: FountainProfile
    wire_format: WireFormat
    total_bytes: int
    k: int
    block_size: int
    checksum: str
    target_packets: int
    stats: CompressionStats | None = None


class ScanProgress(BaseModel):
    """Full state of a scanning session, exposed to the frontend."""
    session_id: str
    packet_type: str | None = None
    state: CollectorState = CollectorState.COLLECTING
    k: int = 0
    resolved_blocks: int = 0
    received_packets: int = 0
    pending_equations: int = 0
    progress_percent: float = 0.0
    missing_packets: list[int] = []
    awaiting_header: bool = False
    error_message: str | None = None


class ScanResult(BaseModel):
    """Outcome of feeding one scanned frame to the collector."""
    accepted: bool
    progress: ScanProgress | None = None
