"""
CTP CashTokens Output Prefix

    PREFIX_TOKEN (0xEF) || category (32) || bitfield
        [|| CompactSize(len) || commitment]   if HAS_COMMITMENT
        [|| CompactSize(amount)]              if HAS_AMOUNT

The prefix sits at the front of an output's locking-bytecode field.
The confidential flow stores the 33-byte Pedersen commitment in a
mutable NFT's commitment.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Tuple

from ctp.constants import (
    MAX_U64,
    TOKEN_BIT_HAS_AMOUNT,
    TOKEN_BIT_HAS_COMMITMENT,
    TOKEN_BIT_HAS_NFT,
    TOKEN_BIT_RESERVED,
    TOKEN_CAPABILITY_MASK,
    TOKEN_CATEGORY_SIZE,
    TOKEN_MAX_COMMITMENT,
    TOKEN_PREFIX,
)
from ctp.core.serialization import ByteReader, ByteWriter
from ctp.errors import InvalidEncodingError, InvalidLengthError, ValueOutOfRangeError


class Capability(IntEnum):
    NONE = 0
    MUTABLE = 1
    MINTING = 2


@dataclass(frozen=True)
class TokenData:
    """
    Token carried by an output.

    category is in wire (internal) byte order.
    """
    category: bytes
    nft: bool = False
    capability: Capability = Capability.NONE
    commitment: bytes = b""
    amount: int = 0

    def __post_init__(self):
        if len(self.category) != TOKEN_CATEGORY_SIZE:
            raise InvalidLengthError("token category", TOKEN_CATEGORY_SIZE, len(self.category))
        if len(self.commitment) > TOKEN_MAX_COMMITMENT:
            raise ValueOutOfRangeError("token commitment length", len(self.commitment), TOKEN_MAX_COMMITMENT)
        if self.commitment and not self.nft:
            raise InvalidEncodingError("Commitment requires an NFT")
        if not 0 <= self.amount <= MAX_U64:
            raise ValueOutOfRangeError("token amount", self.amount, MAX_U64)
        if not self.nft and self.amount == 0:
            raise InvalidEncodingError("Token must carry an NFT or a fungible amount")

    @classmethod
    def category_from_txid(cls, txid: str) -> bytes:
        """Wire-order category for a genesis txid given in display order."""
        return bytes.fromhex(txid)[::-1]

    def encode_prefix(self) -> bytes:
        bitfield = 0
        if self.commitment:
            bitfield |= TOKEN_BIT_HAS_COMMITMENT
        if self.nft:
            bitfield |= TOKEN_BIT_HAS_NFT | int(self.capability)
        if self.amount:
            bitfield |= TOKEN_BIT_HAS_AMOUNT

        writer = ByteWriter().write_u8(TOKEN_PREFIX).write_fixed_bytes(self.category).write_u8(bitfield)
        if self.commitment:
            writer.write_bytes(self.commitment)
        if self.amount:
            writer.write_varint(self.amount)
        return writer.to_bytes()


def split_token_prefix(locking_bytecode: bytes) -> Tuple[Optional[TokenData], bytes]:
    """
    Separate an output's token prefix from its locking script.

    Returns:
        (token data or None, remaining locking script)
    """
    if not locking_bytecode or locking_bytecode[0] != TOKEN_PREFIX:
        return None, locking_bytecode

    reader = ByteReader(locking_bytecode)
    reader.read_u8()
    category = reader.read_fixed_bytes(TOKEN_CATEGORY_SIZE)
    bitfield = reader.read_u8()
    if bitfield & TOKEN_BIT_RESERVED:
        raise InvalidEncodingError("Reserved token bitfield bit set")

    nft = bool(bitfield & TOKEN_BIT_HAS_NFT)
    capability = bitfield & TOKEN_CAPABILITY_MASK
    if capability > Capability.MINTING or (capability and not nft):
        raise InvalidEncodingError(f"Invalid token capability: {capability}")
    commitment = b""
    if bitfield & TOKEN_BIT_HAS_COMMITMENT:
        commitment = reader.read_bytes()
        if not commitment:
            raise InvalidEncodingError("Empty token commitment with HAS_COMMITMENT set")
    amount = 0
    if bitfield & TOKEN_BIT_HAS_AMOUNT:
        amount = reader.read_varint()
        if amount == 0:
            raise InvalidEncodingError("Zero token amount with HAS_AMOUNT set")

    token = TokenData(
        category=category,
        nft=nft,
        capability=Capability(capability),
        commitment=commitment,
        amount=amount,
    )
    return token, locking_bytecode[reader.offset:]
