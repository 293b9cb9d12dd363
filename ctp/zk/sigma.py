"""
CTP Sigma64 Range Proof

Proves a Pedersen commitment C = v·H + r·G opens to some v in [0, 2^64)
without revealing v. The value is split into 64 bit commitments

    C_i = b_i·H + r_i·G,    sum(2^i · C_i) == C

and each C_i carries a non-interactive OR proof that it commits to 0
(C_i = r_i·G) or to 1 (C_i - H = r_i·G). The real branch is a Schnorr
proof, the other branch is simulated, and the Fiat-Shamir challenge
e = H(A0 || A1 || C_i) is split between them.

All "randomness" is derived from a 32-byte seed,

    scalar(i, purpose) = sha256(seed || u64le(i) || u64le(purpose)) mod n

so sender and receiver produce byte-identical proofs. Never reuse a
seed for two different amounts.

Serialization (fixed width, big-endian scalars):
    C (33) || C_0..C_63 (64 x 33) || 64 x [A0 || A1 || e0 || z0 || e1 || z1]
where points are 33 bytes and scalars 32.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import ecdsa.ellipticcurve as ec

from ctp.constants import (
    BIG_ENDIAN,
    MAX_U64,
    PROOF_SIZE,
    PUBLIC_KEY_SIZE,
    PURPOSE_BLINDING,
    PURPOSE_REAL_NONCE,
    PURPOSE_SIM_CHALLENGE,
    PURPOSE_SIM_RESPONSE,
    RANGE_BITS,
    SCALAR_SIZE,
)
from ctp.core.serialization import ByteReader, serialize_u64
from ctp.crypto.curve import (
    INFINITY,
    N,
    base_mul,
    decode_point,
    encode_point,
    point_add,
    point_mul,
    point_sub,
    points_equal,
)
from ctp.crypto.hash import sha256
from ctp.crypto.pedersen import PedersenGenerators, commit_point
from ctp.errors import (
    InvalidLengthError,
    InvalidScalarError,
    MalformedInputError,
    ValueOutOfRangeError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BitProof:
    """OR proof that one bit commitment opens to 0 or 1."""
    a0: bytes
    a1: bytes
    e0: int
    z0: int
    e1: int
    z1: int

    def serialize(self) -> bytes:
        return (
            self.a0
            + self.a1
            + self.e0.to_bytes(SCALAR_SIZE, BIG_ENDIAN)
            + self.z0.to_bytes(SCALAR_SIZE, BIG_ENDIAN)
            + self.e1.to_bytes(SCALAR_SIZE, BIG_ENDIAN)
            + self.z1.to_bytes(SCALAR_SIZE, BIG_ENDIAN)
        )


@dataclass(frozen=True)
class RangeProof:
    """
    Sigma64 proof.

    SIZE: 14,561 bytes
    """
    commitment: bytes
    bit_commitments: Tuple[bytes, ...]
    bit_proofs: Tuple[BitProof, ...]

    def serialize(self) -> bytes:
        parts = [self.commitment]
        parts.extend(self.bit_commitments)
        parts.extend(p.serialize() for p in self.bit_proofs)
        return b"".join(parts)

    @classmethod
    def deserialize(cls, data: bytes) -> RangeProof:
        """
        Parse a serialized proof.

        Raises:
            InvalidLengthError: not exactly PROOF_SIZE bytes
            InvalidPointError: a point does not decode
            InvalidScalarError: a scalar is not below the group order
        """
        if len(data) != PROOF_SIZE:
            raise InvalidLengthError("range proof", PROOF_SIZE, len(data))
        reader = ByteReader(data)

        def read_point(what: str) -> bytes:
            raw = reader.read_fixed_bytes(PUBLIC_KEY_SIZE)
            decode_point(raw, what)
            return raw

        def read_scalar(what: str) -> int:
            value = int.from_bytes(reader.read_fixed_bytes(SCALAR_SIZE), BIG_ENDIAN)
            if value >= N:
                raise InvalidScalarError(what, "non-canonical scalar")
            return value

        commitment = read_point("aggregate commitment")
        bit_commitments = tuple(read_point(f"bit commitment {i}") for i in range(RANGE_BITS))
        bit_proofs = []
        for i in range(RANGE_BITS):
            a0 = read_point(f"bit {i} A0")
            a1 = read_point(f"bit {i} A1")
            e0 = read_scalar(f"bit {i} e0")
            z0 = read_scalar(f"bit {i} z0")
            e1 = read_scalar(f"bit {i} e1")
            z1 = read_scalar(f"bit {i} z1")
            bit_proofs.append(BitProof(a0, a1, e0, z0, e1, z1))
        reader.expect_end("range proof")
        return cls(commitment, bit_commitments, tuple(bit_proofs))


def seed_scalar(seed: bytes, index: int, purpose: int) -> int:
    """sha256(seed || u64le(index) || u64le(purpose)) mod n"""
    digest = sha256(seed + serialize_u64(index) + serialize_u64(purpose))
    return int.from_bytes(digest, BIG_ENDIAN) % N


def aggregate_blinding(seed: bytes) -> int:
    """r = sum(2^i · r_i) mod n, the blinding of the aggregate commitment."""
    total = 0
    for i in range(RANGE_BITS):
        total = (total + (seed_scalar(seed, i, PURPOSE_BLINDING) << i)) % N
    return total


def _challenge(a0: bytes, a1: bytes, bit_commitment: bytes) -> int:
    return int.from_bytes(sha256(a0 + a1 + bit_commitment), BIG_ENDIAN) % N


def _check_seed(seed: bytes) -> None:
    if len(seed) != 32:
        raise InvalidLengthError("zk seed", 32, len(seed))


def generate_proof(
    value: int,
    seed: bytes,
    generator_h: Optional[ec.PointJacobi] = None,
) -> RangeProof:
    """
    Build a Sigma64 proof for value.

    Args:
        value: amount in [0, 2^64)
        seed: 32-byte deterministic seed (the RPA session zk seed)
        generator_h: value generator, defaults to the protocol H

    Returns:
        RangeProof whose commitment opens to (value, aggregate_blinding(seed))
    """
    if not 0 <= value <= MAX_U64:
        raise ValueOutOfRangeError("proof value", value, MAX_U64)
    _check_seed(seed)
    h = generator_h if generator_h is not None else PedersenGenerators.get_H()

    bit_commitments = []
    bit_proofs = []
    blinding = 0

    for i in range(RANGE_BITS):
        bit = (value >> i) & 1
        r_i = seed_scalar(seed, i, PURPOSE_BLINDING)
        blinding = (blinding + (r_i << i)) % N

        c_i = point_add(point_mul(h, bit), base_mul(r_i))
        c_i_bytes = encode_point(c_i)

        k = seed_scalar(seed, i, PURPOSE_REAL_NONCE)
        e_sim = seed_scalar(seed, i, PURPOSE_SIM_CHALLENGE)
        z_sim = seed_scalar(seed, i, PURPOSE_SIM_RESPONSE)

        # The simulated branch is the statement that is false for this bit.
        d_sim = point_sub(c_i, h) if bit == 0 else c_i
        a_real = encode_point(base_mul(k))
        a_sim = encode_point(point_sub(base_mul(z_sim), point_mul(d_sim, e_sim)))

        a0, a1 = (a_real, a_sim) if bit == 0 else (a_sim, a_real)
        e = _challenge(a0, a1, c_i_bytes)
        e_real = (e - e_sim) % N
        z_real = (k + e_real * r_i) % N

        if bit == 0:
            proof = BitProof(a0, a1, e_real, z_real, e_sim, z_sim)
        else:
            proof = BitProof(a0, a1, e_sim, z_sim, e_real, z_real)

        bit_commitments.append(c_i_bytes)
        bit_proofs.append(proof)

    commitment = encode_point(commit_point(value, blinding, h))
    logger.debug(f"Sigma64 proof generated, commitment={commitment.hex()}")
    return RangeProof(commitment, tuple(bit_commitments), tuple(bit_proofs))


def verify_proof(
    proof: RangeProof,
    generator_h: Optional[ec.PointJacobi] = None,
) -> bool:
    """
    Verify a Sigma64 proof. Every check must pass.

    - sum(2^i · C_i) == C
    - e0 + e1 == H(A0 || A1 || C_i) mod n
    - z0·G == A0 + e0·C_i
    - z1·G == A1 + e1·(C_i - H)
    """
    if len(proof.bit_commitments) != RANGE_BITS or len(proof.bit_proofs) != RANGE_BITS:
        return False
    h = generator_h if generator_h is not None else PedersenGenerators.get_H()

    try:
        commitment = decode_point(proof.commitment, "aggregate commitment")
        bit_points = [decode_point(c, "bit commitment") for c in proof.bit_commitments]
    except MalformedInputError:
        return False

    # Horner: sum(2^i C_i) from the top bit down
    acc = INFINITY
    for c_i in reversed(bit_points):
        acc = point_add(point_mul(acc, 2), c_i)
    if not points_equal(acc, commitment):
        logger.debug("Sigma64: weighted bit commitments do not sum to C")
        return False

    for i, (c_bytes, c_i, bp) in enumerate(zip(proof.bit_commitments, bit_points, proof.bit_proofs)):
        if not all(0 <= s < N for s in (bp.e0, bp.z0, bp.e1, bp.z1)):
            return False
        try:
            a0 = decode_point(bp.a0, "A0")
            a1 = decode_point(bp.a1, "A1")
        except MalformedInputError:
            return False

        if (bp.e0 + bp.e1) % N != _challenge(bp.a0, bp.a1, c_bytes):
            logger.debug(f"Sigma64: challenge split mismatch at bit {i}")
            return False
        if not points_equal(base_mul(bp.z0), point_add(a0, point_mul(c_i, bp.e0))):
            logger.debug(f"Sigma64: branch 0 equation fails at bit {i}")
            return False
        if not points_equal(base_mul(bp.z1), point_add(a1, point_mul(point_sub(c_i, h), bp.e1))):
            logger.debug(f"Sigma64: branch 1 equation fails at bit {i}")
            return False

    return True


def verify_proof_bytes(data: bytes, generator_h: Optional[ec.PointJacobi] = None) -> bool:
    """Parse and verify a serialized proof; malformed bytes verify as False."""
    try:
        proof = RangeProof.deserialize(data)
    except MalformedInputError:
        return False
    return verify_proof(proof, generator_h)
