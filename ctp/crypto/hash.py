"""
CTP Hash Functions

sha256, hash256 (double SHA-256, as used for txids) and hash160
(RIPEMD-160 over SHA-256, as used for key and script hashes).
"""

from __future__ import annotations
import hashlib

from Crypto.Hash import RIPEMD160


def sha256(data: bytes) -> bytes:
    """Single SHA-256."""
    return hashlib.sha256(data).digest()


def hash256(data: bytes) -> bytes:
    """Double SHA-256, the chain's transaction-id hash."""
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def hash160(data: bytes) -> bytes:
    """RIPEMD-160(SHA-256(data))."""
    return RIPEMD160.new(hashlib.sha256(data).digest()).digest()


def tagged_sha256(label: bytes, *parts: bytes) -> bytes:
    """SHA-256 over a domain label followed by the given parts."""
    h = hashlib.sha256(label)
    for part in parts:
        h.update(part)
    return h.digest()
