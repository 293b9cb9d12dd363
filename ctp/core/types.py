"""
CTP Core Types

Keys, outpoints and paycodes. Points are 33-byte compressed secp256k1
encodings, scalars 32-byte big-endian. Txids are kept in display
(big-endian hex) order and reversed on the wire.
"""

from __future__ import annotations
from dataclasses import dataclass, field

from ctp.constants import (
    HASH160_SIZE,
    MAX_U32,
    PUBLIC_KEY_SIZE,
    TXID_SIZE,
)
from ctp.core.serialization import ByteReader, serialize_u32
from ctp.crypto.curve import (
    decode_point,
    generate_private_key,
    private_key_to_scalar,
    public_key_from_private,
)
from ctp.crypto.hash import hash160, sha256
from ctp.errors import InvalidEncodingError, InvalidLengthError, ValueOutOfRangeError


def _check_txid(txid: str) -> None:
    try:
        raw = bytes.fromhex(txid)
    except ValueError as e:
        raise InvalidEncodingError(f"txid is not hex: {txid!r}") from e
    if len(raw) != TXID_SIZE:
        raise InvalidLengthError("txid", TXID_SIZE, len(raw))


@dataclass(frozen=True, slots=True)
class Outpoint:
    """
    Reference to a transaction output.

    SIZE: 36 bytes
    SERIALIZATION: txid (internal byte order) || vout (u32 LE)
    """
    txid: str
    vout: int

    def __post_init__(self):
        _check_txid(self.txid)
        if not 0 <= self.vout <= MAX_U32:
            raise ValueOutOfRangeError("vout", self.vout, MAX_U32)

    @property
    def txid_bytes(self) -> bytes:
        """Txid in display order."""
        return bytes.fromhex(self.txid)

    def serialize(self) -> bytes:
        return self.txid_bytes[::-1] + serialize_u32(self.vout)

    @classmethod
    def deserialize(cls, data: bytes, offset: int = 0) -> tuple[Outpoint, int]:
        """Deserialize from bytes, return (Outpoint, bytes_consumed)."""
        reader = ByteReader(data[offset:offset + 36])
        txid = reader.read_fixed_bytes(TXID_SIZE)[::-1].hex()
        vout = reader.read_u32()
        return cls(txid, vout), 36

    def __str__(self) -> str:
        return f"{self.txid}:{self.vout}"


@dataclass(frozen=True, slots=True)
class KeyPair:
    """
    secp256k1 key pair.

    SIZE: 32 + 33 bytes
    """
    private_key: bytes = field(repr=False)
    public_key: bytes = b""

    def __post_init__(self):
        private_key_to_scalar(self.private_key)
        derived = public_key_from_private(self.private_key)
        if not self.public_key:
            object.__setattr__(self, "public_key", derived)
        elif self.public_key != derived:
            raise InvalidEncodingError("public key does not match private key")

    @classmethod
    def from_private(cls, private_key: bytes) -> KeyPair:
        return cls(private_key)

    @classmethod
    def from_seed(cls, seed: bytes) -> KeyPair:
        """Deterministic key from seed (testing and demos)."""
        return cls(sha256(b"ctp/keypair" + seed))

    @classmethod
    def generate(cls) -> KeyPair:
        return cls(generate_private_key())

    @property
    def pubkey_hash(self) -> bytes:
        """hash160 of the compressed public key."""
        return hash160(self.public_key)

    def __repr__(self) -> str:
        return f"KeyPair(public={self.public_key.hex()[:16]}...)"


@dataclass(frozen=True, slots=True)
class Paycode:
    """
    Long-lived public identity: (scan public key, spend public key).

    SIZE: 66 bytes
    SERIALIZATION: scan_public || spend_public
    """
    scan_public: bytes
    spend_public: bytes

    def __post_init__(self):
        decode_point(self.scan_public, "scan public key")
        decode_point(self.spend_public, "spend public key")

    @classmethod
    def single_key(cls, public_key: bytes) -> Paycode:
        """Paycode whose scan and spend keys are the same point."""
        return cls(public_key, public_key)

    def serialize(self) -> bytes:
        return self.scan_public + self.spend_public

    @classmethod
    def deserialize(cls, data: bytes) -> Paycode:
        if len(data) != 2 * PUBLIC_KEY_SIZE:
            raise InvalidLengthError("paycode", 2 * PUBLIC_KEY_SIZE, len(data))
        return cls(data[:PUBLIC_KEY_SIZE], data[PUBLIC_KEY_SIZE:])

    def hex(self) -> str:
        return self.serialize().hex()

    @classmethod
    def from_hex(cls, hex_string: str) -> Paycode:
        return cls.deserialize(bytes.fromhex(hex_string))

    def __repr__(self) -> str:
        return f"Paycode(scan={self.scan_public.hex()[:16]}..., spend={self.spend_public.hex()[:16]}...)"


@dataclass(frozen=True, slots=True)
class PaycodeSecret:
    """Private half of a paycode. Held only by its owner."""
    scan_private: bytes = field(repr=False)
    spend_private: bytes = field(repr=False)

    def __post_init__(self):
        private_key_to_scalar(self.scan_private, "scan private key")
        private_key_to_scalar(self.spend_private, "spend private key")

    @classmethod
    def from_seed(cls, seed: bytes) -> PaycodeSecret:
        return cls(
            sha256(b"ctp/paycode/scan" + seed),
            sha256(b"ctp/paycode/spend" + seed),
        )

    @classmethod
    def single_key(cls, private_key: bytes) -> PaycodeSecret:
        """Secret for Paycode.single_key."""
        return cls(private_key, private_key)

    @classmethod
    def generate(cls) -> PaycodeSecret:
        return cls(generate_private_key(), generate_private_key())

    @property
    def paycode(self) -> Paycode:
        return Paycode(
            public_key_from_private(self.scan_private),
            public_key_from_private(self.spend_private),
        )

    def __repr__(self) -> str:
        return f"PaycodeSecret({self.paycode!r})"


@dataclass(frozen=True, slots=True)
class Utxo:
    """Unspent output as reported by a chain collaborator."""
    txid: str
    vout: int
    value: int
    locking_script: bytes
    token_prefix: bytes = b""

    @property
    def outpoint(self) -> Outpoint:
        return Outpoint(self.txid, self.vout)

    @property
    def full_script(self) -> bytes:
        """Locking bytecode as committed on-chain, token prefix included."""
        return self.token_prefix + self.locking_script


def check_hash160(value: bytes, what: str = "hash160") -> bytes:
    if len(value) != HASH160_SIZE:
        raise InvalidLengthError(what, HASH160_SIZE, len(value))
    return value
