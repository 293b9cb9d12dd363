"""
CTP Core Data Structures
"""

from ctp.core.types import KeyPair, Outpoint, Paycode, PaycodeSecret, Utxo
from ctp.core.serialization import (
    ByteReader,
    ByteWriter,
    serialize_bytes,
    serialize_u8,
    serialize_u32,
    serialize_u64,
    serialize_varint,
    deserialize_varint,
)

__all__ = [
    # Types
    "KeyPair",
    "Outpoint",
    "Paycode",
    "PaycodeSecret",
    "Utxo",
    # Serialization
    "ByteReader",
    "ByteWriter",
    "serialize_bytes",
    "serialize_u8",
    "serialize_u32",
    "serialize_u64",
    "serialize_varint",
    "deserialize_varint",
]
