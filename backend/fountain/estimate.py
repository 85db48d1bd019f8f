"""Block size and redundancy planning per transfer profile."""

import math

from fountain.models import FountainEstimate, FountainProfile


def _block_size(payload_bytes: int, profile: FountainProfile) -> int:
    if profile == FountainProfile.FAST:
        if payload_bytes <= 3_000:
            return 260
        if payload_bytes <= 120_000:
            return 520
        return 620

    if payload_bytes <= 2_500:
        return 220
    if payload_bytes <= 120_000:
        return 400
    return 500


def _redundancy_factor(estimated_blocks: int, profile: FountainProfile) -> float:
    if profile == FountainProfile.FAST:
        if estimated_blocks < 12:
            return 1.35
        if estimated_blocks < 40:
            return 1.25
        return 1.3

    if estimated_blocks < 15:
        return 1.8
    if estimated_blocks < 50:
        return 1.5
    return 1.35


def get_fountain_estimate(
    payload_bytes: int,
    profile: FountainProfile = FountainProfile.FAST,
    block_size: int | None = None,
) -> FountainEstimate:
    """Pick a block size and how many packets one display cycle should hold."""
    block_size = block_size or _block_size(payload_bytes, profile)
    estimated_blocks = math.ceil(payload_bytes / block_size)
    redundancy_factor = _redundancy_factor(estimated_blocks, profile)
    return FountainEstimate(
        block_size=block_size,
        estimated_blocks=estimated_blocks,
        redundancy_factor=redundancy_factor,
        target_packets=math.ceil(estimated_blocks * redundancy_factor),
    )
