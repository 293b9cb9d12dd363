"""
CTP Pedersen Commitments

C = v·H + r·G over secp256k1, where H is a nothing-up-my-sleeve
generator found by try-and-increment hashing. Nobody knows log_G(H),
so commitments are binding; uniform r makes them perfectly hiding.
"""

from __future__ import annotations
import logging
from typing import Dict, Optional

import ecdsa.ellipticcurve as ec

from ctp.constants import (
    ASSET_GENERATOR_TAG,
    GENERATOR_H_TAG,
    HASH_TO_POINT_MAX_TRIES,
    MAX_U64,
    TOKEN_CATEGORY_SIZE,
)
from ctp.crypto.curve import (
    base_mul,
    decode_point,
    encode_point,
    is_infinity,
    point_add,
    point_mul,
)
from ctp.crypto.hash import tagged_sha256
from ctp.errors import (
    InvalidLengthError,
    InvalidPointError,
    MalformedInputError,
    ValueOutOfRangeError,
)

logger = logging.getLogger(__name__)


def hash_to_point(tag: bytes, data: bytes = b"") -> ec.PointJacobi:
    """
    Map (tag, data) to a curve point with unknown discrete log.

    For ctr = 0, 1, ...: x = sha256(tag || data || ctr); the first of
    02||x, 03||x that decodes is returned.
    """
    for ctr in range(HASH_TO_POINT_MAX_TRIES):
        x = tagged_sha256(tag, data, bytes([ctr]))
        for prefix in (b"\x02", b"\x03"):
            try:
                return decode_point(prefix + x, "hash-to-point candidate")
            except InvalidPointError:
                continue
    raise MalformedInputError(f"hash_to_point failed for tag {tag!r}")


class PedersenGenerators:
    """
    Generator points for Pedersen commitments.

    G is the standard secp256k1 base point. H and the per-asset
    generators are pure functions of fixed labels, computed once.
    """

    _H: Optional[ec.PointJacobi] = None
    _H_bytes: Optional[bytes] = None
    _asset: Dict[bytes, ec.PointJacobi] = {}

    @classmethod
    def get_H(cls) -> ec.PointJacobi:
        if cls._H is None:
            cls._H = hash_to_point(GENERATOR_H_TAG)
            cls._H_bytes = encode_point(cls._H)
            logger.debug(f"Pedersen H initialised: {cls._H_bytes.hex()}")
        return cls._H

    @classmethod
    def get_H_bytes(cls) -> bytes:
        """Compressed H (33 bytes)."""
        cls.get_H()
        return cls._H_bytes

    @classmethod
    def get_asset_H(cls, asset_id: bytes) -> ec.PointJacobi:
        """Asset-scoped generator H_a = hash_to_point("BCH-CT/ASSET", asset_id)."""
        if len(asset_id) != TOKEN_CATEGORY_SIZE:
            raise InvalidLengthError("asset id", TOKEN_CATEGORY_SIZE, len(asset_id))
        point = cls._asset.get(asset_id)
        if point is None:
            point = hash_to_point(ASSET_GENERATOR_TAG, asset_id)
            cls._asset[asset_id] = point
        return point


def commit_point(value: int, blinding: int, generator_h: Optional[ec.PointJacobi] = None):
    """C = value·H + blinding·G as a point (may be infinity for value = blinding = 0)."""
    if not 0 <= value <= MAX_U64:
        raise ValueOutOfRangeError("committed value", value, MAX_U64)
    h = generator_h if generator_h is not None else PedersenGenerators.get_H()
    return point_add(point_mul(h, value), base_mul(blinding))


def pedersen_commit(
    value: int,
    blinding: int,
    generator_h: Optional[ec.PointJacobi] = None,
) -> bytes:
    """
    Pedersen commitment to value with blinding factor.

    Args:
        value: amount in [0, 2^64)
        blinding: scalar (reduced mod n)
        generator_h: alternative value generator (e.g. an asset generator)

    Returns:
        33-byte compressed commitment
    """
    point = commit_point(value, blinding, generator_h)
    if is_infinity(point):
        raise MalformedInputError("Commitment is the point at infinity")
    return encode_point(point)


def verify_opening(
    commitment: bytes,
    value: int,
    blinding: int,
    generator_h: Optional[ec.PointJacobi] = None,
) -> bool:
    """Check that commitment opens to (value, blinding)."""
    try:
        return pedersen_commit(value, blinding, generator_h) == commitment
    except MalformedInputError:
        return False
