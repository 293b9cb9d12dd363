"""
CTP Cryptographic Primitive Tests

Hashes, curve helpers, Schnorr, Pedersen and amount encryption.
"""

import pytest

from ctp.core.types import KeyPair, Outpoint
from ctp.crypto.curve import (
    G,
    N,
    base_mul,
    decode_point,
    encode_point,
    is_valid_point,
    point_add,
    point_neg,
    points_equal,
    public_key_from_private,
    scalar_to_bytes,
)
from ctp.crypto.ecdh import (
    EncryptedAmount,
    decrypt_amount,
    derive_blind_and_key,
    derive_encryption_key,
    derive_ephemeral_private_key,
    encrypt_amount,
)
from ctp.crypto.hash import hash160, hash256, sha256
from ctp.crypto.pedersen import PedersenGenerators, pedersen_commit, verify_opening
from ctp.crypto.schnorr import schnorr_sign, schnorr_verify
from ctp.errors import (
    AmountDecryptionError,
    InvalidLengthError,
    InvalidPointError,
    InvalidScalarError,
    ValueOutOfRangeError,
)


# ==============================================================================
# Hashes
# ==============================================================================

class TestHashes:
    """Known-answer tests for the hash helpers."""

    def test_sha256_empty(self):
        assert sha256(b"").hex() == (
            "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        )

    def test_hash256_empty(self):
        assert hash256(b"").hex() == (
            "5df6e0e2761359d30a8275058e299fcc0381534545f55cf43e41983f5d4c9456"
        )

    def test_hash160_empty(self):
        assert hash160(b"").hex() == "b472a266d0bd89c13706a4132ccfb16f7c3b9fcb"


# ==============================================================================
# Curve
# ==============================================================================

class TestCurve:
    """Tests for point encoding and key handling."""

    def test_generator_public_key(self):
        """Private key 1 maps to the compressed generator."""
        assert public_key_from_private(scalar_to_bytes(1)).hex() == (
            "0279be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"
        )

    def test_decode_encode(self):
        """Decoding and re-encoding a key is the identity."""
        pub = KeyPair(bytes([0x42] * 32)).public_key
        assert encode_point(decode_point(pub)) == pub

    def test_decode_rejects_bad_prefix(self):
        with pytest.raises(InvalidPointError):
            decode_point(b"\x04" + bytes(32))

    def test_decode_rejects_wrong_length(self):
        with pytest.raises(InvalidLengthError):
            decode_point(b"\x02" + bytes(31))

    def test_decode_rejects_x_above_field(self):
        assert not is_valid_point(b"\x02" + b"\xff" * 32)

    def test_point_negation(self):
        assert points_equal(point_add(base_mul(7), point_neg(base_mul(7))), base_mul(0))

    def test_zero_private_key_rejected(self):
        with pytest.raises(InvalidScalarError):
            KeyPair(bytes(32))

    def test_order_private_key_rejected(self):
        with pytest.raises(InvalidScalarError):
            KeyPair(N.to_bytes(32, "big"))

    def test_generator_constant(self):
        assert points_equal(base_mul(1), G)


# ==============================================================================
# Schnorr
# ==============================================================================

class TestSchnorr:
    """Tests for BCH Schnorr signatures."""

    def test_sign_verify(self):
        key = KeyPair(bytes([0x01] * 32))
        msg = sha256(b"message")
        sig = schnorr_sign(msg, key.private_key)
        assert len(sig) == 64
        assert schnorr_verify(sig, msg, key.public_key)

    def test_deterministic(self):
        """RFC 6979 nonces make signing deterministic."""
        key = KeyPair(bytes([0x02] * 32))
        msg = sha256(b"message")
        assert schnorr_sign(msg, key.private_key) == schnorr_sign(msg, key.private_key)

    def test_wrong_message_fails(self):
        key = KeyPair(bytes([0x03] * 32))
        sig = schnorr_sign(sha256(b"a"), key.private_key)
        assert not schnorr_verify(sig, sha256(b"b"), key.public_key)

    def test_wrong_key_fails(self):
        msg = sha256(b"message")
        sig = schnorr_sign(msg, bytes([0x04] * 32))
        assert not schnorr_verify(sig, msg, KeyPair(bytes([0x05] * 32)).public_key)

    def test_tampered_signature_fails(self):
        key = KeyPair(bytes([0x06] * 32))
        msg = sha256(b"message")
        sig = bytearray(schnorr_sign(msg, key.private_key))
        sig[40] ^= 0x01
        assert not schnorr_verify(bytes(sig), msg, key.public_key)

    def test_malformed_inputs_are_false(self):
        key = KeyPair(bytes([0x07] * 32))
        msg = sha256(b"message")
        assert not schnorr_verify(b"\x00" * 63, msg, key.public_key)
        assert not schnorr_verify(b"\x00" * 64, msg, b"\x05" + bytes(32))

    def test_message_must_be_32_bytes(self):
        with pytest.raises(InvalidLengthError):
            schnorr_sign(b"short", bytes([0x01] * 32))


# ==============================================================================
# Pedersen
# ==============================================================================

class TestPedersen:
    """Tests for Pedersen commitments."""

    def test_h_is_not_g(self):
        assert PedersenGenerators.get_H_bytes() != encode_point(G)
        assert len(PedersenGenerators.get_H_bytes()) == 33

    def test_commitment_size(self):
        assert len(pedersen_commit(100_000, 12345)) == 33

    def test_binding_on_value(self):
        assert pedersen_commit(1, 99) != pedersen_commit(2, 99)

    def test_hiding_on_blinding(self):
        assert pedersen_commit(1, 99) != pedersen_commit(1, 100)

    def test_opening(self):
        c = pedersen_commit(500, 777)
        assert verify_opening(c, 500, 777)
        assert not verify_opening(c, 501, 777)

    def test_asset_generator_differs(self):
        asset_h = PedersenGenerators.get_asset_H(bytes([0xAB] * 32))
        assert pedersen_commit(5, 9, asset_h) != pedersen_commit(5, 9)

    def test_asset_id_length(self):
        with pytest.raises(InvalidLengthError):
            PedersenGenerators.get_asset_H(b"\x01" * 31)

    def test_value_range(self):
        with pytest.raises(ValueOutOfRangeError):
            pedersen_commit(2**64, 1)


# ==============================================================================
# Amount encryption
# ==============================================================================

class TestAmountEncryption:
    """Tests for ECDH-derived amount notices."""

    @pytest.fixture
    def parties(self):
        return KeyPair(bytes([0x0A] * 32)), KeyPair(bytes([0x0B] * 32))

    def test_shared_blind_and_key(self, parties):
        eph, recv = parties
        ctx = b"context"
        assert derive_blind_and_key(eph.private_key, recv.public_key, ctx) == (
            derive_blind_and_key(recv.private_key, eph.public_key, ctx)
        )

    def test_encryption_key_matches(self, parties):
        eph, recv = parties
        _, key = derive_blind_and_key(eph.private_key, recv.public_key, b"ctx")
        assert derive_encryption_key(recv.private_key, eph.public_key, b"ctx") == key

    def test_zero_blind_remapped(self, monkeypatch, parties):
        eph, recv = parties
        monkeypatch.setattr(
            "ctp.crypto.ecdh.kdf", lambda secret, label, context=b"": N.to_bytes(32, "big")
        )
        blind, _ = derive_blind_and_key(eph.private_key, recv.public_key)
        assert blind == 1

    def test_round_trip(self, parties):
        eph, recv = parties
        notice = encrypt_amount(eph.private_key, recv.public_key, 100_000, b"ctx")
        assert notice.ephemeral_public_key == eph.public_key
        assert decrypt_amount(recv.private_key, notice, b"ctx") == 100_000

    def test_tamper_detected(self, parties):
        eph, recv = parties
        notice = encrypt_amount(eph.private_key, recv.public_key, 42, b"ctx")
        flipped = bytes([notice.ciphertext[0] ^ 0x01]) + notice.ciphertext[1:]
        with pytest.raises(AmountDecryptionError):
            decrypt_amount(recv.private_key, EncryptedAmount(notice.ephemeral_public_key, flipped), b"ctx")

    def test_wrong_context_rejected(self, parties):
        eph, recv = parties
        notice = encrypt_amount(eph.private_key, recv.public_key, 42, b"ctx")
        with pytest.raises(AmountDecryptionError):
            decrypt_amount(recv.private_key, notice, b"other")

    def test_ephemeral_key_deterministic(self, parties, outpoint_a, outpoint_b):
        _, recv = parties
        k1 = derive_ephemeral_private_key(recv.public_key, 1000, outpoint_a)
        assert k1 == derive_ephemeral_private_key(recv.public_key, 1000, outpoint_a)
        assert k1 != derive_ephemeral_private_key(recv.public_key, 1001, outpoint_a)
        assert k1 != derive_ephemeral_private_key(recv.public_key, 1000, outpoint_b)
        assert k1 != derive_ephemeral_private_key(recv.public_key, 1000, outpoint_a, b"tag")

    def test_ephemeral_key_needs_valid_base(self):
        with pytest.raises(InvalidPointError):
            derive_ephemeral_private_key(b"\x05" + bytes(32), 1, Outpoint("00" * 32, 0))
