"""
CTP ECDH, Ephemeral Keys and Amount Encryption

The sender tells the receiver the locked amount off-chain: both sides
agree on x(a·B) and derive an encryption key and a blinding scalar
from it. Amounts are sealed with ChaCha20-Poly1305 so tampering is
detected, not just garbled.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from Crypto.Cipher import ChaCha20_Poly1305

from ctp.constants import (
    AMOUNT_NONCE_SIZE,
    AMOUNT_TAG_SIZE,
    BIG_ENDIAN,
    KDF_LABEL_BLIND,
    KDF_LABEL_ENCRYPT,
    KDF_LABEL_NONCE,
    LITTLE_ENDIAN,
    MAX_U64,
)
from ctp.core.serialization import serialize_u64
from ctp.core.types import Outpoint
from ctp.crypto.curve import (
    N,
    decode_point,
    ecdh_x,
    private_key_to_scalar,
    public_key_from_private,
    scalar_to_bytes,
)
from ctp.crypto.hash import sha256, tagged_sha256
from ctp.errors import (
    AmountDecryptionError,
    DegenerateKeyError,
    InvalidLengthError,
    ValueOutOfRangeError,
)

logger = logging.getLogger(__name__)


def shared_secret(private_key: bytes, public_key: bytes) -> bytes:
    """32-byte x-coordinate of private·public."""
    scalar = private_key_to_scalar(private_key)
    return ecdh_x(scalar, decode_point(public_key))


def kdf(secret: bytes, label: bytes, context: bytes = b"") -> bytes:
    """sha256(label || secret || context)"""
    return tagged_sha256(label, secret, context)


def derive_blind_and_key(
    private_key: bytes,
    public_key: bytes,
    context: bytes = b"",
) -> Tuple[int, bytes]:
    """
    Derive (blinding scalar, 32-byte encryption key) from an ECDH pair.

    Either side can call this: sender with (ephemeral_priv, receiver_pub),
    receiver with (receiver_priv, ephemeral_pub).
    """
    secret = shared_secret(private_key, public_key)
    blind = int.from_bytes(kdf(secret, KDF_LABEL_BLIND, context), BIG_ENDIAN) % N
    if blind == 0:
        blind = 1
    return blind, kdf(secret, KDF_LABEL_ENCRYPT, context)


def derive_encryption_key(
    private_key: bytes,
    public_key: bytes,
    context: bytes = b"",
) -> bytes:
    """Encryption key half of derive_blind_and_key."""
    return kdf(shared_secret(private_key, public_key), KDF_LABEL_ENCRYPT, context)


# ==============================================================================
# Ephemeral keys
# ==============================================================================

def derive_ephemeral_private_key(
    base_public_key: bytes,
    amount: int,
    outpoint: Outpoint,
    domain_tag: Optional[bytes] = None,
) -> bytes:
    """
    Deterministic per-output ephemeral key.

    sha256(basePub || u64le(amount) || txid || u64le(vout) [|| tag]) mod n
    """
    decode_point(base_public_key, "base public key")
    if not 0 <= amount <= MAX_U64:
        raise ValueOutOfRangeError("amount", amount, MAX_U64)
    digest = sha256(
        base_public_key
        + serialize_u64(amount)
        + outpoint.txid_bytes
        + serialize_u64(outpoint.vout)
        + (domain_tag or b"")
    )
    scalar = int.from_bytes(digest, BIG_ENDIAN) % N
    if scalar == 0:
        raise DegenerateKeyError("ephemeral private key")
    return scalar_to_bytes(scalar)


# ==============================================================================
# Amount encryption
# ==============================================================================

@dataclass(frozen=True)
class EncryptedAmount:
    """Amount notice sent to the receiver alongside a lock."""
    ephemeral_public_key: bytes
    ciphertext: bytes

    def to_dict(self) -> dict:
        return {
            "ephemeral_public_key": self.ephemeral_public_key.hex(),
            "ciphertext": self.ciphertext.hex(),
        }


def _nonce(ephemeral_public_key: bytes) -> bytes:
    return sha256(KDF_LABEL_NONCE + ephemeral_public_key)[:AMOUNT_NONCE_SIZE]


def encrypt_amount(
    ephemeral_private_key: bytes,
    receiver_public_key: bytes,
    amount: int,
    context: bytes = b"",
) -> EncryptedAmount:
    """Seal amount for the holder of receiver_public_key."""
    if not 0 <= amount <= MAX_U64:
        raise ValueOutOfRangeError("amount", amount, MAX_U64)
    key = derive_encryption_key(ephemeral_private_key, receiver_public_key, context)
    ephemeral_public_key = public_key_from_private(ephemeral_private_key)

    cipher = ChaCha20_Poly1305.new(key=key, nonce=_nonce(ephemeral_public_key))
    cipher.update(context)
    ciphertext, tag = cipher.encrypt_and_digest(serialize_u64(amount))
    return EncryptedAmount(ephemeral_public_key, ciphertext + tag)


def decrypt_amount(
    receiver_private_key: bytes,
    notice: EncryptedAmount,
    context: bytes = b"",
) -> int:
    """
    Open an amount notice.

    Raises:
        AmountDecryptionError: authentication failed
    """
    if len(notice.ciphertext) != 8 + AMOUNT_TAG_SIZE:
        raise InvalidLengthError("amount ciphertext", 8 + AMOUNT_TAG_SIZE, len(notice.ciphertext))
    key = derive_encryption_key(receiver_private_key, notice.ephemeral_public_key, context)

    cipher = ChaCha20_Poly1305.new(key=key, nonce=_nonce(notice.ephemeral_public_key))
    cipher.update(context)
    body, tag = notice.ciphertext[:8], notice.ciphertext[8:]
    try:
        plaintext = cipher.decrypt_and_verify(body, tag)
    except ValueError as e:
        logger.error("Amount notice failed authentication")
        raise AmountDecryptionError() from e
    return int.from_bytes(plaintext, LITTLE_ENDIAN)
