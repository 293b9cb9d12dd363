"""
CTP secp256k1 Primitives

Thin helpers around python-ecdsa's Jacobian points. Points travel as
33-byte compressed SEC1 encodings; scalars as 32-byte big-endian
integers reduced modulo the group order.
"""

from __future__ import annotations
import secrets
from typing import Union

import ecdsa
import ecdsa.ellipticcurve as ec

from ctp.constants import BIG_ENDIAN, PUBLIC_KEY_SIZE, SCALAR_SIZE
from ctp.errors import InvalidLengthError, InvalidPointError, InvalidScalarError

# ==============================================================================
# Curve constants
# ==============================================================================

CURVE = ecdsa.SECP256k1.curve
G = ecdsa.SECP256k1.generator
N = ecdsa.SECP256k1.order
P = CURVE.p()
INFINITY = ec.INFINITY

Point = Union[ec.PointJacobi, ec.Point]


# ==============================================================================
# Scalars
# ==============================================================================

def scalar_from_bytes(data: bytes) -> int:
    """Interpret 32 big-endian bytes as a scalar, reduced mod n."""
    return int.from_bytes(data, BIG_ENDIAN) % N


def scalar_to_bytes(value: int) -> bytes:
    return (value % N).to_bytes(SCALAR_SIZE, BIG_ENDIAN)


def private_key_to_scalar(private_key: bytes, what: str = "private key") -> int:
    """Validate a 32-byte private key and return it as an integer in [1, n)."""
    if len(private_key) != SCALAR_SIZE:
        raise InvalidLengthError(what, SCALAR_SIZE, len(private_key))
    value = int.from_bytes(private_key, BIG_ENDIAN)
    if not 0 < value < N:
        raise InvalidScalarError(what)
    return value


def random_scalar() -> int:
    return secrets.randbelow(N - 1) + 1


# ==============================================================================
# Points
# ==============================================================================

def is_infinity(point: Point) -> bool:
    return point == INFINITY


def decode_point(data: bytes, what: str = "public key") -> ec.PointJacobi:
    """
    Decode a 33-byte compressed point.

    Raises:
        InvalidLengthError: wrong length
        InvalidPointError: bad prefix or x not on the curve
    """
    if len(data) != PUBLIC_KEY_SIZE:
        raise InvalidLengthError(what, PUBLIC_KEY_SIZE, len(data))
    prefix = data[0]
    if prefix not in (0x02, 0x03):
        raise InvalidPointError(what, f"invalid prefix byte 0x{prefix:02x}")

    x = int.from_bytes(data[1:], BIG_ENDIAN)
    if x >= P:
        raise InvalidPointError(what, "x coordinate exceeds field prime")
    y_sq = (pow(x, 3, P) + 7) % P
    y = pow(y_sq, (P + 1) // 4, P)
    if (y * y) % P != y_sq:
        raise InvalidPointError(what)

    if (y & 1) != (prefix & 1):
        y = P - y
    return ec.PointJacobi(CURVE, x, y, 1, N)


def encode_point(point: Point) -> bytes:
    """Encode a point as 33 compressed bytes."""
    if is_infinity(point):
        raise InvalidPointError("point", "cannot encode the point at infinity")
    y = point.y()
    return bytes([0x03 if y & 1 else 0x02]) + point.x().to_bytes(32, BIG_ENDIAN)


def is_valid_point(data: bytes) -> bool:
    try:
        decode_point(data)
    except (InvalidLengthError, InvalidPointError):
        return False
    return True


def point_add(a: Point, b: Point) -> Point:
    if is_infinity(a):
        return b
    if is_infinity(b):
        return a
    return a + b


def point_neg(a: Point) -> Point:
    if is_infinity(a):
        return a
    return ec.PointJacobi(CURVE, a.x(), P - a.y(), 1, N)


def point_sub(a: Point, b: Point) -> Point:
    return point_add(a, point_neg(b))


def point_mul(point: Point, scalar: int) -> Point:
    scalar %= N
    if scalar == 0 or is_infinity(point):
        return INFINITY
    return point * scalar


def base_mul(scalar: int) -> Point:
    """scalar·G using the library's precomputed generator table."""
    scalar %= N
    if scalar == 0:
        return INFINITY
    return G * scalar


def points_equal(a: Point, b: Point) -> bool:
    if is_infinity(a) or is_infinity(b):
        return is_infinity(a) and is_infinity(b)
    return a.x() == b.x() and a.y() == b.y()


# ==============================================================================
# Keys
# ==============================================================================

def public_key_from_private(private_key: bytes) -> bytes:
    """Compressed public key for a 32-byte private key."""
    return encode_point(base_mul(private_key_to_scalar(private_key)))


def generate_private_key() -> bytes:
    """Fresh random private key (32 bytes)."""
    return scalar_to_bytes(random_scalar())


def ecdh_x(private_scalar: int, public_point: Point) -> bytes:
    """x-coordinate of private·public, 32 bytes."""
    shared = point_mul(public_point, private_scalar)
    if is_infinity(shared):
        raise InvalidPointError("shared point", "ECDH produced the point at infinity")
    return shared.x().to_bytes(32, BIG_ENDIAN)
