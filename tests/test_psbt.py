"""
CTP Proprietary RPA Metadata Tests
"""

import json

import pytest

from ctp.constants import PSBT_RPA_CONTEXT, RPA_CONTEXT_SIZE, RPA_MODE_CONF_ASSET
from ctp.errors import InvalidEncodingError, InvalidLengthError
from ctp.protocol.psbt import (
    OutputMetadata,
    RpaMetadata,
    attach_rpa_metadata,
    decode_rpa_context,
    encode_rpa_context,
    export_json,
    extract_rpa_metadata,
    parse_proprietary_key,
    proprietary_key,
)
from ctp.rpa import RpaContext


@pytest.fixture
def context(sender_key, outpoint_a) -> RpaContext:
    return RpaContext(RPA_MODE_CONF_ASSET, 4, outpoint_a, sender_key.public_key)


class TestRpaContextRecord:
    """Tests for the 77-byte context record."""

    def test_size_and_layout(self, context, outpoint_a):
        data = encode_rpa_context(context)
        assert len(data) == RPA_CONTEXT_SIZE
        assert data[0] == 0x01
        assert data[1] == RPA_MODE_CONF_ASSET
        assert data[2:4] == b"\x00\x00"
        assert data[4:8] == (4).to_bytes(4, "little")
        assert data[12:44] == outpoint_a.txid_bytes

    def test_decode(self, context):
        assert decode_rpa_context(encode_rpa_context(context)) == context

    def test_wrong_size(self, context):
        with pytest.raises(InvalidLengthError):
            decode_rpa_context(encode_rpa_context(context)[:-1])

    def test_unknown_version(self, context):
        data = b"\x02" + encode_rpa_context(context)[1:]
        with pytest.raises(InvalidEncodingError):
            decode_rpa_context(data)


class TestProprietaryKeys:
    """Tests for key framing."""

    def test_key_layout(self):
        key = proprietary_key(PSBT_RPA_CONTEXT)
        assert key == b"\xfc\x0abch-rpa-v0\x01"
        assert parse_proprietary_key(key) == PSBT_RPA_CONTEXT

    def test_foreign_keys(self):
        assert parse_proprietary_key(b"") is None
        assert parse_proprietary_key(b"\x00\x01") is None
        assert parse_proprietary_key(b"\xfc\x03abc\x01") is None
        assert parse_proprietary_key(b"\xfc\x0abch-rpa") is None


class TestOutputMetadata:
    """Tests for attaching and extracting RPA records."""

    def test_attach_extract(self, context):
        output = OutputMetadata()
        meta = RpaMetadata(context, proof_hash=bytes([0x01] * 32), zk_seed=bytes([0x02] * 32))
        attach_rpa_metadata(output, meta)
        assert len(output.records) == 3
        assert extract_rpa_metadata(output) == meta

    def test_foreign_records_kept(self, context):
        output = OutputMetadata([(b"\x00\x01", b"other")])
        attach_rpa_metadata(output, RpaMetadata(context))
        assert output.get(b"\x00\x01") == b"other"
        assert extract_rpa_metadata(output).context == context

    def test_attach_replaces(self, context):
        output = OutputMetadata()
        attach_rpa_metadata(output, RpaMetadata(context, proof_hash=bytes(32)))
        attach_rpa_metadata(output, RpaMetadata(context, proof_hash=bytes([0xFF] * 32)))
        assert len(output.records) == 2
        assert extract_rpa_metadata(output).proof_hash == bytes([0xFF] * 32)

    def test_no_context(self):
        assert extract_rpa_metadata(OutputMetadata()) is None

    def test_bad_proof_hash(self, context):
        with pytest.raises(InvalidLengthError):
            attach_rpa_metadata(OutputMetadata(), RpaMetadata(context, proof_hash=b"\x01"))

    def test_export_json(self, context):
        doc = json.loads(export_json([(0, RpaMetadata(context, proof_hash=bytes(32)))]))
        entry = doc["rpa_outputs"][0]
        assert entry["index"] == 4
        assert entry["proof_hash"] == "00" * 32
        assert len(entry["records"]) == 2
