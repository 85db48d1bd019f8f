"""
Payload integrity digests.

Fountain transfers are neither authenticated nor encrypted; the digest only
detects a reassembled payload that differs from what the generator encoded.
"""

from cryptography.hazmat.primitives import hashes

from config import CHECKSUM_BYTES


def payload_checksum(payload: bytes) -> str:
    """
    Hex digest carried on every packet of a session.

    SHA-256 truncated to CHECKSUM_BYTES to keep compact frames small.
    """
    digest = hashes.Hash(hashes.SHA256())
    digest.update(payload)
    return digest.finalize()[:CHECKSUM_BYTES].hex()


def verify_checksum(payload: bytes, expected: str) -> bool:
    return payload_checksum(payload) == expected.lower()
