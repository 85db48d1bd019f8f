"""Source block helpers shared by the generator and the collector."""

import base64
import binascii
from typing import Iterable


def split_blocks(payload: bytes, block_size: int) -> list[bytes]:
    """Split into fixed-size blocks, zero-padding the last one."""
    if block_size <= 0:
        raise ValueError(f"block_size must be positive, got {block_size}")
    blocks = []
    for offset in range(0, len(payload), block_size):
        block = payload[offset:offset + block_size]
        blocks.append(block.ljust(block_size, b"\x00"))
    return blocks


def xor_bytes(a: bytes, b: bytes) -> bytes:
    if len(a) != len(b):
        raise ValueError(f"Cannot XOR blocks of {len(a)} and {len(b)} bytes")
    return (int.from_bytes(a, "big") ^ int.from_bytes(b, "big")).to_bytes(len(a), "big")


def xor_blocks(blocks: Iterable[bytes], block_size: int) -> bytes:
    acc = 0
    for block in blocks:
        acc ^= int.from_bytes(block, "big")
    return acc.to_bytes(block_size, "big")


def encode_block(block: bytes) -> str:
    return base64.b64encode(block).decode("ascii")


def decode_block(text: str) -> bytes | None:
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError):
        return None
