"""
CTP Reusable Payment Address Derivation

Sender and receiver agree on a secret without talking:

    secret = x(a·B_scan) = x(b_scan·A)

and expand it, together with the outpoint the sender spends, into a
session (four domain-separated 32-byte keys) and a one-time child key

    t     = sha256("bch-rpa/child" || secret || outpoint || mode || index) mod n
    P     = B_spend + t·G          (sender, public)
    p     = b_spend + t  mod n     (receiver, private)

Everything here is a pure function of its inputs.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field

from ctp.constants import (
    BIG_ENDIAN,
    MAX_U32,
    RPA_LABEL_AMOUNT,
    RPA_LABEL_CHILD,
    RPA_LABEL_MEMO,
    RPA_LABEL_SESSION,
    RPA_LABEL_ZK_SEED,
    RPA_MODE_CONF_ASSET,
    RPA_MODES,
)
from ctp.core.serialization import serialize_u8, serialize_u32
from ctp.core.types import KeyPair, Outpoint, Paycode, PaycodeSecret
from ctp.crypto.curve import (
    N,
    base_mul,
    decode_point,
    ecdh_x,
    encode_point,
    is_infinity,
    point_add,
    private_key_to_scalar,
    public_key_from_private,
    scalar_to_bytes,
)
from ctp.crypto.hash import hash160, tagged_sha256
from ctp.errors import (
    DegenerateKeyError,
    DerivationMismatchError,
    InvalidLengthError,
    InvalidModeError,
    ValueOutOfRangeError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RpaSession:
    """Per (secret, outpoint) key fan-out. Recomputed on demand, never stored."""
    session_key: bytes = field(repr=False)
    amount_key: bytes = field(repr=False)
    memo_key: bytes = field(repr=False)
    zk_seed: bytes = field(repr=False)


@dataclass(frozen=True)
class RpaContext:
    """Public data a receiver needs to re-derive a one-time key."""
    mode: int
    index: int
    outpoint: Outpoint
    sender_public_key: bytes

    def __post_init__(self):
        _check_mode_index(self.mode, self.index)
        decode_point(self.sender_public_key, "sender public key")


@dataclass(frozen=True)
class LockIntent:
    """Sender-side result: the one-time key the receiver will control."""
    child_public_key: bytes
    child_hash: bytes
    session: RpaSession
    context: RpaContext


def _check_mode_index(mode: int, index: int) -> None:
    if mode not in RPA_MODES:
        raise InvalidModeError(mode)
    if not 0 <= index <= MAX_U32:
        raise ValueOutOfRangeError("rpa index", index, MAX_U32)


def _check_secret(shared_secret: bytes) -> None:
    if len(shared_secret) != 32:
        raise InvalidLengthError("shared secret", 32, len(shared_secret))


def derive_session_keys(shared_secret: bytes, outpoint: Outpoint) -> RpaSession:
    """
    Expand a shared secret into the four session keys.

    Each key is sha256(label || secret || outpoint_bytes) with its own label.
    """
    _check_secret(shared_secret)
    entropy = outpoint.serialize()
    return RpaSession(
        session_key=tagged_sha256(RPA_LABEL_SESSION, shared_secret, entropy),
        amount_key=tagged_sha256(RPA_LABEL_AMOUNT, shared_secret, entropy),
        memo_key=tagged_sha256(RPA_LABEL_MEMO, shared_secret, entropy),
        zk_seed=tagged_sha256(RPA_LABEL_ZK_SEED, shared_secret, entropy),
    )


def derive_child_offset(
    shared_secret: bytes,
    outpoint: Outpoint,
    mode: int,
    index: int,
) -> int:
    """Mode- and index-tagged scalar offset; zero is remapped to 1."""
    _check_secret(shared_secret)
    _check_mode_index(mode, index)
    digest = tagged_sha256(
        RPA_LABEL_CHILD,
        shared_secret,
        outpoint.serialize(),
        serialize_u8(mode),
        serialize_u32(index),
    )
    offset = int.from_bytes(digest, BIG_ENDIAN) % N
    if offset == 0:
        logger.warning("RPA child offset reduced to zero, using sentinel 1")
        offset = 1
    return offset


def derive_lock_intent(
    sender_private_key: bytes,
    receiver: Paycode,
    outpoint: Outpoint,
    index: int = 0,
    mode: int = RPA_MODE_CONF_ASSET,
) -> LockIntent:
    """
    Sender side: compute the receiver's one-time public key for this outpoint.

    Args:
        sender_private_key: key of the input being spent
        receiver: receiver's paycode
        outpoint: the sender input's outpoint (public derivation entropy)
        index: output index within the payment
        mode: RPA mode id

    Returns:
        LockIntent with child key, its hash160, the session and context
    """
    _check_mode_index(mode, index)
    a = private_key_to_scalar(sender_private_key, "sender private key")
    scan_point = decode_point(receiver.scan_public, "receiver scan key")
    spend_point = decode_point(receiver.spend_public, "receiver spend key")

    secret = ecdh_x(a, scan_point)
    session = derive_session_keys(secret, outpoint)
    offset = derive_child_offset(secret, outpoint, mode, index)

    child = point_add(spend_point, base_mul(offset))
    if is_infinity(child):
        raise DegenerateKeyError("one-time public key")
    child_public_key = encode_point(child)
    child_hash = hash160(child_public_key)

    logger.debug(
        f"Lock intent: outpoint={outpoint} mode={mode} index={index} "
        f"child_hash={child_hash.hex()}"
    )
    return LockIntent(
        child_public_key=child_public_key,
        child_hash=child_hash,
        session=session,
        context=RpaContext(
            mode=mode,
            index=index,
            outpoint=outpoint,
            sender_public_key=public_key_from_private(sender_private_key),
        ),
    )


def receiver_shared_secret(scan_private_key: bytes, sender_public_key: bytes) -> bytes:
    """Receiver side of the agreement: x(b_scan·A)."""
    b_scan = private_key_to_scalar(scan_private_key, "scan private key")
    return ecdh_x(b_scan, decode_point(sender_public_key, "sender public key"))


def derive_receiver_session(
    scan_private_key: bytes,
    sender_public_key: bytes,
    outpoint: Outpoint,
) -> RpaSession:
    """Receiver side session fan-out, identical to the sender's."""
    secret = receiver_shared_secret(scan_private_key, sender_public_key)
    return derive_session_keys(secret, outpoint)


def derive_one_time_private_key(
    scan_private_key: bytes,
    spend_private_key: bytes,
    sender_public_key: bytes,
    outpoint: Outpoint,
    index: int = 0,
    mode: int = RPA_MODE_CONF_ASSET,
) -> bytes:
    """
    Receiver side: private key for the one-time output.

    Returns:
        32-byte private key p = b_spend + t mod n
    """
    b_spend = private_key_to_scalar(spend_private_key, "spend private key")
    secret = receiver_shared_secret(scan_private_key, sender_public_key)
    offset = derive_child_offset(secret, outpoint, mode, index)

    child = (b_spend + offset) % N
    if child == 0:
        raise DegenerateKeyError("one-time private key")
    return scalar_to_bytes(child)


def recover_one_time_key(
    secret: PaycodeSecret,
    context: RpaContext,
    expected_hash: bytes,
) -> KeyPair:
    """
    Derive the one-time key and insist it matches the on-chain hash.

    Raises:
        DerivationMismatchError: the derived key hashes differently
    """
    private_key = derive_one_time_private_key(
        secret.scan_private,
        secret.spend_private,
        context.sender_public_key,
        context.outpoint,
        context.index,
        context.mode,
    )
    keypair = KeyPair(private_key)
    if keypair.pubkey_hash != expected_hash:
        logger.error(
            f"RPA derivation mismatch at {context.outpoint}: "
            f"expected {expected_hash.hex()}, derived {keypair.pubkey_hash.hex()}"
        )
        raise DerivationMismatchError(expected_hash, keypair.pubkey_hash)
    return keypair
