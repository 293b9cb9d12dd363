"""
CTP Amount Envelope

Canonical framing that binds a Sigma64 proof to its context:

    envelope = "CTv1" || vbytes(header) || vbytes(core)
    header   = vbytes(tag) || u64le(range_bits) || vbytes(ephemeral_pub)
               || vbytes(H) || vbytes(asset_id or "") || u64le(output_index)
               || vbytes(extra_context)

vbytes(x) is CompactSize(len(x)) || x. Two anchors are derived:
core_hash = hash256(core) and proof_hash = hash256(envelope). The
proof hash is what the covenant commits to on-chain.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional

from ctp.constants import (
    ENVELOPE_MAGIC,
    PROTOCOL_TAG,
    PUBLIC_KEY_SIZE,
    RANGE_BITS,
    TOKEN_CATEGORY_SIZE,
)
from ctp.core.serialization import ByteReader, ByteWriter
from ctp.crypto.curve import decode_point
from ctp.crypto.hash import hash256
from ctp.crypto.pedersen import PedersenGenerators
from ctp.errors import InvalidEncodingError, InvalidLengthError, MalformedInputError
from ctp.zk.sigma import RangeProof, generate_proof, verify_proof_bytes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnvelopeHeader:
    """Context fields bound into the proof hash."""
    protocol_tag: str
    range_bits: int
    ephemeral_public_key: bytes
    generator_h: bytes
    asset_id: Optional[bytes]
    output_index: int
    extra_context: bytes = b""

    def __post_init__(self):
        if len(self.ephemeral_public_key) != PUBLIC_KEY_SIZE:
            raise InvalidLengthError("ephemeral public key", PUBLIC_KEY_SIZE, len(self.ephemeral_public_key))
        if len(self.generator_h) != PUBLIC_KEY_SIZE:
            raise InvalidLengthError("generator H", PUBLIC_KEY_SIZE, len(self.generator_h))
        if self.asset_id is not None and len(self.asset_id) != TOKEN_CATEGORY_SIZE:
            raise InvalidLengthError("asset id", TOKEN_CATEGORY_SIZE, len(self.asset_id))

    def serialize(self) -> bytes:
        return (
            ByteWriter()
            .write_bytes(self.protocol_tag.encode("utf-8"))
            .write_u64(self.range_bits)
            .write_bytes(self.ephemeral_public_key)
            .write_bytes(self.generator_h)
            .write_bytes(self.asset_id or b"")
            .write_u64(self.output_index)
            .write_bytes(self.extra_context)
            .to_bytes()
        )

    @classmethod
    def deserialize(cls, data: bytes) -> EnvelopeHeader:
        reader = ByteReader(data)
        try:
            tag = reader.read_bytes().decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidEncodingError("Envelope protocol tag is not UTF-8") from e
        range_bits = reader.read_u64()
        ephemeral = reader.read_bytes()
        generator_h = reader.read_bytes()
        asset_id = reader.read_bytes()
        output_index = reader.read_u64()
        extra = reader.read_bytes()
        reader.expect_end("envelope header")
        return cls(
            protocol_tag=tag,
            range_bits=range_bits,
            ephemeral_public_key=ephemeral,
            generator_h=generator_h,
            asset_id=asset_id or None,
            output_index=output_index,
            extra_context=extra,
        )


@dataclass(frozen=True)
class AmountEnvelope:
    """Parsed envelope."""
    header: EnvelopeHeader
    core: bytes

    @property
    def core_hash(self) -> bytes:
        return hash256(self.core)


def build_envelope(
    protocol_tag: str,
    range_bits: int,
    ephemeral_public_key: bytes,
    generator_h: bytes,
    asset_id: Optional[bytes],
    output_index: int,
    extra_context: bytes,
    core_proof_bytes: bytes,
) -> bytes:
    """Frame a proof and its context into envelope bytes."""
    header = EnvelopeHeader(
        protocol_tag=protocol_tag,
        range_bits=range_bits,
        ephemeral_public_key=ephemeral_public_key,
        generator_h=generator_h,
        asset_id=asset_id,
        output_index=output_index,
        extra_context=extra_context,
    )
    return (
        ByteWriter()
        .write_fixed_bytes(ENVELOPE_MAGIC)
        .write_bytes(header.serialize())
        .write_bytes(core_proof_bytes)
        .to_bytes()
    )


def parse_envelope(data: bytes) -> AmountEnvelope:
    """
    Exact inverse of build_envelope.

    Raises:
        InvalidEncodingError: bad magic, truncation or trailing bytes
    """
    reader = ByteReader(data)
    magic = reader.read_fixed_bytes(len(ENVELOPE_MAGIC))
    if magic != ENVELOPE_MAGIC:
        raise InvalidEncodingError(f"Bad envelope magic: {magic!r}")
    header_bytes = reader.read_bytes()
    core = reader.read_bytes()
    reader.expect_end("envelope")
    return AmountEnvelope(EnvelopeHeader.deserialize(header_bytes), core)


def core_hash(core_proof_bytes: bytes) -> bytes:
    return hash256(core_proof_bytes)


def proof_hash(envelope: bytes) -> bytes:
    return hash256(envelope)


@dataclass(frozen=True)
class AmountProofEnvelope:
    """Everything the sender anchors for one hidden amount."""
    envelope: bytes
    proof_hash: bytes
    core_hash: bytes
    commitment: bytes
    proof: RangeProof


def build_amount_proof_envelope(
    value: int,
    zk_seed: bytes,
    ephemeral_public_key: bytes,
    asset_id: Optional[bytes] = None,
    output_index: int = 0,
    extra_context: bytes = b"",
) -> AmountProofEnvelope:
    """
    Generate the range proof for value and frame it.

    Returns:
        AmountProofEnvelope carrying the envelope, both anchor hashes and
        the 33-byte commitment destined for the token commitment field
    """
    decode_point(ephemeral_public_key, "ephemeral public key")
    proof = generate_proof(value, zk_seed)
    core = proof.serialize()
    envelope = build_envelope(
        PROTOCOL_TAG,
        RANGE_BITS,
        ephemeral_public_key,
        PedersenGenerators.get_H_bytes(),
        asset_id,
        output_index,
        extra_context,
        core,
    )
    result = AmountProofEnvelope(
        envelope=envelope,
        proof_hash=hash256(envelope),
        core_hash=hash256(core),
        commitment=proof.commitment,
        proof=proof,
    )
    logger.debug(
        f"Amount envelope built: {len(envelope)} bytes, "
        f"proof_hash={result.proof_hash.hex()}"
    )
    return result


def verify_amount_proof_envelope(
    envelope: bytes,
    expected_proof_hash: bytes,
    expected_commitment: Optional[bytes] = None,
) -> bool:
    """
    Check an envelope end to end against its anchor.

    The double hash of the whole envelope must equal the anchored proof
    hash, so any changed byte in the header or the core fails. Then the
    framing, protocol tag, bit width and generator are checked, the
    optional commitment is compared, and the range proof is verified.
    Any failure returns False.
    """
    if hash256(envelope) != expected_proof_hash:
        logger.debug("Envelope rejected: proof hash differs from anchor")
        return False
    try:
        parsed = parse_envelope(envelope)
    except MalformedInputError as e:
        logger.debug(f"Envelope rejected: {e}")
        return False

    header = parsed.header
    if header.protocol_tag != PROTOCOL_TAG or header.range_bits != RANGE_BITS:
        return False
    if header.generator_h != PedersenGenerators.get_H_bytes():
        return False
    if expected_commitment is not None and parsed.core[:PUBLIC_KEY_SIZE] != expected_commitment:
        return False
    return verify_proof_bytes(parsed.core)
