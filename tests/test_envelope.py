"""
CTP Amount Envelope Tests
"""

import pytest

from ctp.constants import ENVELOPE_MAGIC, PROTOCOL_TAG, RANGE_BITS
from ctp.core.types import KeyPair
from ctp.crypto.hash import hash256
from ctp.crypto.pedersen import PedersenGenerators
from ctp.errors import InvalidEncodingError, InvalidLengthError
from ctp.zk.envelope import (
    EnvelopeHeader,
    build_amount_proof_envelope,
    build_envelope,
    core_hash,
    parse_envelope,
    proof_hash,
    verify_amount_proof_envelope,
)


@pytest.fixture(scope="module")
def amount_envelope():
    """Envelope for 100000 with fixed seed and ephemeral key."""
    eph = KeyPair(bytes([0x44] * 32)).public_key
    return build_amount_proof_envelope(100_000, bytes(range(32)), eph, output_index=0)


# ==============================================================================
# Framing
# ==============================================================================

class TestEnvelopeFraming:
    """Tests for build_envelope / parse_envelope."""

    def test_parse_inverts_build(self, ephemeral_pub):
        asset = bytes([0x0C] * 32)
        data = build_envelope(
            PROTOCOL_TAG, RANGE_BITS, ephemeral_pub,
            PedersenGenerators.get_H_bytes(), asset, 2, b"extra", b"core-bytes",
        )
        parsed = parse_envelope(data)
        assert parsed.header == EnvelopeHeader(
            PROTOCOL_TAG, RANGE_BITS, ephemeral_pub,
            PedersenGenerators.get_H_bytes(), asset, 2, b"extra",
        )
        assert parsed.core == b"core-bytes"
        assert parsed.core_hash == core_hash(b"core-bytes")

    def test_empty_asset_is_none(self, ephemeral_pub):
        data = build_envelope(
            PROTOCOL_TAG, RANGE_BITS, ephemeral_pub,
            PedersenGenerators.get_H_bytes(), None, 0, b"", b"x",
        )
        assert parse_envelope(data).header.asset_id is None

    def test_magic_prefix(self, ephemeral_pub):
        data = build_envelope(
            PROTOCOL_TAG, RANGE_BITS, ephemeral_pub,
            PedersenGenerators.get_H_bytes(), None, 0, b"", b"x",
        )
        assert data.startswith(ENVELOPE_MAGIC)
        with pytest.raises(InvalidEncodingError):
            parse_envelope(b"CTv2" + data[4:])

    def test_truncated(self, amount_envelope):
        with pytest.raises(InvalidEncodingError):
            parse_envelope(amount_envelope.envelope[:-1])

    def test_trailing_bytes(self, amount_envelope):
        with pytest.raises(InvalidEncodingError):
            parse_envelope(amount_envelope.envelope + b"\x00")

    def test_header_key_length(self, ephemeral_pub):
        with pytest.raises(InvalidLengthError):
            EnvelopeHeader(PROTOCOL_TAG, RANGE_BITS, ephemeral_pub[:-1],
                           PedersenGenerators.get_H_bytes(), None, 0)


# ==============================================================================
# Proof envelope
# ==============================================================================

class TestAmountProofEnvelope:
    """Tests for the sender-side envelope and its verification."""

    def test_anchors(self, amount_envelope):
        assert amount_envelope.proof_hash == proof_hash(amount_envelope.envelope)
        assert amount_envelope.proof_hash == hash256(amount_envelope.envelope)
        assert amount_envelope.core_hash == hash256(amount_envelope.proof.serialize())
        assert amount_envelope.commitment == amount_envelope.proof.commitment

    def test_verifies(self, amount_envelope):
        assert verify_amount_proof_envelope(
            amount_envelope.envelope,
            expected_proof_hash=amount_envelope.proof_hash,
            expected_commitment=amount_envelope.commitment,
        )

    def test_last_byte_flip(self, amount_envelope):
        data = bytearray(amount_envelope.envelope)
        data[-1] ^= 0x01
        assert not verify_amount_proof_envelope(bytes(data), amount_envelope.proof_hash)

    def test_every_header_byte_flip(self, amount_envelope):
        """Any flipped byte before the core, or in a sample of the core, fails."""
        envelope = amount_envelope.envelope
        header_len = len(envelope) - len(amount_envelope.proof.serialize())
        positions = list(range(header_len)) + list(range(header_len, len(envelope), 251))
        for pos in positions:
            data = bytearray(envelope)
            data[pos] ^= 0x01
            assert not verify_amount_proof_envelope(bytes(data), amount_envelope.proof_hash), pos

    def test_wrong_proof_hash(self, amount_envelope):
        assert not verify_amount_proof_envelope(amount_envelope.envelope, bytes(32))

    def test_wrong_commitment(self, amount_envelope):
        assert not verify_amount_proof_envelope(
            amount_envelope.envelope,
            amount_envelope.proof_hash,
            expected_commitment=b"\x02" + bytes(32),
        )

    def test_context_change_breaks_anchor(self, amount_envelope):
        """Same proof under a new output index no longer matches the anchor."""
        moved = build_envelope(
            PROTOCOL_TAG, RANGE_BITS,
            parse_envelope(amount_envelope.envelope).header.ephemeral_public_key,
            PedersenGenerators.get_H_bytes(), None, 1, b"",
            amount_envelope.proof.serialize(),
        )
        assert proof_hash(moved) != amount_envelope.proof_hash
        assert not verify_amount_proof_envelope(moved, amount_envelope.proof_hash)
        assert verify_amount_proof_envelope(moved, proof_hash(moved))

    def test_wrong_tag_rejected(self, amount_envelope):
        header = parse_envelope(amount_envelope.envelope).header
        data = build_envelope(
            "BCH-CT/Other", RANGE_BITS, header.ephemeral_public_key,
            header.generator_h, None, 0, b"", amount_envelope.proof.serialize(),
        )
        assert not verify_amount_proof_envelope(data, proof_hash(data))

    def test_garbage_is_false(self):
        garbage = b"not an envelope"
        assert not verify_amount_proof_envelope(garbage, hash256(garbage))
