"""
CTP Schnorr Signatures

Bitcoin Cash Schnorr (May 2019 upgrade) over secp256k1:

    e = sha256(R.x || P_compressed || m) mod n
    s = k + e·x mod n,   R = k·G with jacobi(R.y) == 1

Nonces are RFC 6979 with the "Schnorr+SHA256  " additional data so
they never collide with ECDSA nonces for the same key and message.
"""

from __future__ import annotations
import hashlib

from ecdsa import rfc6979
from ecdsa.numbertheory import jacobi

from ctp.constants import (
    BIG_ENDIAN,
    HASH_SIZE,
    PUBLIC_KEY_SIZE,
    SCHNORR_NONCE_EXTRA,
    SCHNORR_SIGNATURE_SIZE,
)
from ctp.crypto.curve import (
    N,
    P,
    base_mul,
    decode_point,
    encode_point,
    is_infinity,
    point_mul,
    point_sub,
    private_key_to_scalar,
)
from ctp.crypto.hash import sha256
from ctp.errors import InvalidLengthError, InvalidPointError


def _challenge(r: bytes, public_key: bytes, message: bytes) -> int:
    return int.from_bytes(sha256(r + public_key + message), BIG_ENDIAN) % N


def schnorr_sign(message: bytes, private_key: bytes) -> bytes:
    """
    Sign a 32-byte message hash.

    Returns:
        64-byte signature r || s
    """
    if len(message) != HASH_SIZE:
        raise InvalidLengthError("message hash", HASH_SIZE, len(message))
    x = private_key_to_scalar(private_key)
    public_key = encode_point(base_mul(x))

    k = rfc6979.generate_k(
        N, x, hashlib.sha256, message, extra_entropy=SCHNORR_NONCE_EXTRA
    )
    R = base_mul(k)
    if jacobi(R.y(), P) != 1:
        k = N - k
    r = R.x().to_bytes(32, BIG_ENDIAN)

    e = _challenge(r, public_key, message)
    s = (k + e * x) % N
    return r + s.to_bytes(32, BIG_ENDIAN)


def schnorr_verify(signature: bytes, message: bytes, public_key: bytes) -> bool:
    """Verify a 64-byte signature. Malformed inputs verify as False."""
    if len(signature) != SCHNORR_SIGNATURE_SIZE or len(message) != HASH_SIZE:
        return False
    if len(public_key) != PUBLIC_KEY_SIZE:
        return False
    try:
        pub_point = decode_point(public_key)
    except (InvalidLengthError, InvalidPointError):
        return False

    r = int.from_bytes(signature[:32], BIG_ENDIAN)
    s = int.from_bytes(signature[32:], BIG_ENDIAN)
    if r >= P or s >= N:
        return False

    e = _challenge(signature[:32], public_key, message)
    R = point_sub(base_mul(s), point_mul(pub_point, e))
    if is_infinity(R):
        return False
    if jacobi(R.y(), P) != 1:
        return False
    return R.x() == r
