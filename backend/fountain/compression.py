"""
Payload preparation for fountain transfers.

Scouting data travels as JSON; large documents are gzipped first so they
need fewer QR frames. The scanner side recognises gzip by its magic bytes.
"""

import gzip
import json
import logging
import math
import zlib
from typing import Any

from config import (
    COMPRESSION_THRESHOLD,
    MIN_FOUNTAIN_SIZE_COMPRESSED,
    MIN_FOUNTAIN_SIZE_UNCOMPRESSED,
    QR_CODE_SIZE_BYTES,
)
from fountain.models import CompressionStats, PayloadTooSmallError

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"


def should_use_compression(json_text: str) -> bool:
    return len(json_text) > COMPRESSION_THRESHOLD


def is_gzip(raw: bytes) -> bool:
    return len(raw) > 2 and raw[:2] == GZIP_MAGIC


def compression_stats(json_text: str, encoded: bytes, compressed: bool) -> CompressionStats:
    original_size = len(json_text)
    encoded_size = len(encoded)
    original_qrs = math.ceil(original_size / QR_CODE_SIZE_BYTES)
    encoded_qrs = math.ceil(encoded_size / QR_CODE_SIZE_BYTES)
    return CompressionStats(
        compressed=compressed,
        original_size=original_size,
        encoded_size=encoded_size,
        compression_ratio=encoded_size / original_size if original_size else 1.0,
        estimated_qr_reduction=f"~{original_qrs} -> {encoded_qrs} codes",
    )


def prepare_payload(data: Any) -> tuple[bytes, CompressionStats]:
    """
    Serialize data for the generator, gzipping it when it is large.

    Raises PayloadTooSmallError when the result is too small to be worth
    fountain coding.
    """
    json_text = json.dumps(data, separators=(",", ":"))
    compressed = should_use_compression(json_text)
    if compressed:
        encoded = gzip.compress(json_text.encode("utf-8"), mtime=0)
    else:
        encoded = json_text.encode("utf-8")

    stats = compression_stats(json_text, encoded, compressed)
    min_size = MIN_FOUNTAIN_SIZE_COMPRESSED if compressed else MIN_FOUNTAIN_SIZE_UNCOMPRESSED
    if len(encoded) < min_size:
        raise PayloadTooSmallError(
            f"Data is too small ({len(encoded)} bytes). "
            f"Need at least {min_size} bytes for fountain code generation."
        )

    if compressed:
        logger.info(
            f"Compressed: {stats.original_size} -> {stats.encoded_size} bytes "
            f"({(1 - stats.compression_ratio) * 100:.1f}% reduction)"
        )
    return encoded, stats


def restore_payload(raw: bytes) -> Any:
    """Inverse of prepare_payload. Raises ValueError on undecodable data."""
    try:
        if is_gzip(raw):
            raw = gzip.decompress(raw)
        return json.loads(raw.decode("utf-8"))
    except (OSError, EOFError, zlib.error) as e:
        raise ValueError(f"Reconstructed payload is not valid data: {e}") from e
