"""
CTP Transactions

Legacy transaction serialization with CashTokens output prefixes.

    version (u32) || varint(n_in) || inputs || varint(n_out) || outputs || locktime (u32)
    input  = outpoint (36) || vbytes(script_sig) || sequence (u32)
    output = value (u64) || vbytes(token_prefix || locking_script)

All integers little-endian. txid = reversed hash256(serialization).
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional

from ctp.constants import DEFAULT_LOCKTIME, DEFAULT_SEQUENCE, MAX_U64, TX_VERSION
from ctp.core.serialization import ByteReader, ByteWriter
from ctp.core.types import Outpoint
from ctp.crypto.hash import hash256
from ctp.errors import InvalidEncodingError, ValueOutOfRangeError
from ctp.protocol.token import TokenData, split_token_prefix


@dataclass
class TxInput:
    """Transaction input."""
    outpoint: Outpoint
    script_sig: bytes = b""
    sequence: int = DEFAULT_SEQUENCE

    def serialize(self) -> bytes:
        return (
            ByteWriter()
            .write_fixed_bytes(self.outpoint.serialize())
            .write_bytes(self.script_sig)
            .write_u32(self.sequence)
            .to_bytes()
        )


@dataclass
class TxOutput:
    """Transaction output. locking_script excludes the token prefix."""
    value: int
    locking_script: bytes
    token: Optional[TokenData] = None

    def __post_init__(self):
        if not 0 <= self.value <= MAX_U64:
            raise ValueOutOfRangeError("output value", self.value, MAX_U64)

    @property
    def token_prefix(self) -> bytes:
        return self.token.encode_prefix() if self.token is not None else b""

    @property
    def locking_bytecode(self) -> bytes:
        """The on-chain locking field: token prefix followed by script."""
        return self.token_prefix + self.locking_script

    def serialize(self) -> bytes:
        return ByteWriter().write_u64(self.value).write_bytes(self.locking_bytecode).to_bytes()


@dataclass
class Transaction:
    """
    Transaction.

    Mutable while being built; script_sig fields are filled in by signing.
    """
    inputs: List[TxInput] = field(default_factory=list)
    outputs: List[TxOutput] = field(default_factory=list)
    version: int = TX_VERSION
    locktime: int = DEFAULT_LOCKTIME

    def serialize(self) -> bytes:
        writer = ByteWriter().write_u32(self.version).write_varint(len(self.inputs))
        for tx_in in self.inputs:
            writer.write_fixed_bytes(tx_in.serialize())
        writer.write_varint(len(self.outputs))
        for tx_out in self.outputs:
            writer.write_fixed_bytes(tx_out.serialize())
        writer.write_u32(self.locktime)
        return writer.to_bytes()

    @classmethod
    def deserialize(cls, data: bytes) -> Transaction:
        """
        Parse a raw transaction.

        Raises:
            InvalidEncodingError: truncated, trailing bytes or bad token prefix
        """
        reader = ByteReader(data)
        version = reader.read_u32()

        inputs = []
        for _ in range(reader.read_varint()):
            outpoint, _ = Outpoint.deserialize(reader.read_fixed_bytes(36))
            script_sig = reader.read_bytes()
            sequence = reader.read_u32()
            inputs.append(TxInput(outpoint, script_sig, sequence))

        outputs = []
        for _ in range(reader.read_varint()):
            value = reader.read_u64()
            token, script = split_token_prefix(reader.read_bytes())
            outputs.append(TxOutput(value, script, token))

        locktime = reader.read_u32()
        reader.expect_end("transaction")
        if not inputs or not outputs:
            raise InvalidEncodingError("Transaction needs at least one input and one output")
        return cls(inputs, outputs, version, locktime)

    @classmethod
    def from_hex(cls, hex_string: str) -> Transaction:
        return cls.deserialize(bytes.fromhex(hex_string))

    def hex(self) -> str:
        return self.serialize().hex()

    @property
    def txid(self) -> str:
        """Display-order transaction id."""
        return hash256(self.serialize())[::-1].hex()

    @property
    def size(self) -> int:
        return len(self.serialize())

    def output_total(self) -> int:
        return sum(o.value for o in self.outputs)

    def __repr__(self) -> str:
        return f"Transaction(txid={self.txid[:16]}..., inputs={len(self.inputs)}, outputs={len(self.outputs)})"
