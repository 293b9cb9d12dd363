"""
CTP Covenant and Script Tests
"""

import json

import pytest

from ctp.core.types import KeyPair
from ctp.crypto.hash import hash160
from ctp.errors import InvalidEncodingError, InvalidLengthError, InvalidScriptError
from ctp.protocol.covenant import (
    CovenantTemplate,
    build_covenant,
    extract_guard_hash,
    parse_covenant_header,
)
from ctp.protocol.script import (
    Op,
    decode_script_number,
    encode_script_number,
    is_p2pkh,
    is_p2sh,
    p2pkh_script,
    p2sh_script,
    parse_script,
    push_data,
    push_only_items,
    script_hash,
)


GUARD = bytes(range(20))
PROOF_HASH = bytes([0xAA] * 32)


# ==============================================================================
# Script helpers
# ==============================================================================

class TestScript:
    """Tests for pushes, script numbers and templates."""

    def test_push_data_forms(self):
        assert push_data(b"") == b"\x00"
        assert push_data(b"\x05") == bytes([Op.OP_1 + 4])
        assert push_data(b"\x81") == bytes([Op.OP_1NEGATE])
        assert push_data(b"\xaa" * 3) == b"\x03" + b"\xaa" * 3
        assert push_data(b"\xaa" * 80)[:2] == bytes([Op.OP_PUSHDATA1, 80])
        assert push_data(b"\xaa" * 300)[:3] == bytes([Op.OP_PUSHDATA2]) + (300).to_bytes(2, "little")

    def test_script_numbers(self):
        assert encode_script_number(0) == b""
        assert encode_script_number(127) == b"\x7f"
        assert encode_script_number(128) == b"\x80\x00"
        assert encode_script_number(-1) == b"\x81"
        assert encode_script_number(100_000) == b"\xa0\x86\x01"
        assert decode_script_number(b"\x80\x00") == 128
        assert decode_script_number(b"\x81") == -1

    def test_non_minimal_number(self):
        with pytest.raises(InvalidScriptError):
            decode_script_number(b"\x01\x00")

    def test_p2pkh(self):
        script = p2pkh_script(GUARD)
        assert len(script) == 25
        assert is_p2pkh(script)
        assert not is_p2sh(script)
        assert script_hash(script) == GUARD

    def test_p2sh(self):
        script = p2sh_script(b"\x51")
        assert is_p2sh(script)
        assert script_hash(script) == hash160(b"\x51")

    def test_parse_script_truncated(self):
        with pytest.raises(InvalidScriptError):
            parse_script(b"\x05\x01\x02")

    def test_push_only_items(self):
        script = push_data(b"\xaa" * 4) + bytes([Op.OP_1 + 2]) + push_data(b"")
        assert push_only_items(script) == [b"\xaa" * 4, b"\x03", b""]

    def test_push_only_rejects_opcodes(self):
        with pytest.raises(InvalidScriptError):
            push_only_items(bytes([Op.OP_DUP]))


# ==============================================================================
# Covenant build and parse
# ==============================================================================

class TestCovenant:
    """Tests for covenant construction and header parsing."""

    def test_layout_without_proof_hash(self, template):
        cov = build_covenant(GUARD, template=template)
        assert cov.redeem_script == b"\x14" + GUARD + template.bytecode
        assert cov.locking_script == p2sh_script(cov.redeem_script)
        assert cov.proof_hash is None

    def test_layout_with_proof_hash(self, template):
        cov = build_covenant(GUARD, PROOF_HASH, template)
        assert cov.redeem_script[:34] == b"\x20" + PROOF_HASH
        assert cov.redeem_script[34] == Op.OP_DROP
        assert cov.redeem_script[35:56] == b"\x14" + GUARD

    def test_extract_guard_hash(self, template):
        assert extract_guard_hash(build_covenant(GUARD, template=template).redeem_script) == GUARD
        assert extract_guard_hash(build_covenant(GUARD, PROOF_HASH, template).redeem_script) == GUARD

    def test_header_fields(self, template):
        header = parse_covenant_header(build_covenant(GUARD, PROOF_HASH, template).redeem_script)
        assert header.proof_hash == PROOF_HASH
        assert header.template_offset == 56

    def test_public_key_guard(self, template):
        key = KeyPair(bytes([0x21] * 32))
        cov = build_covenant(key.public_key, template=template)
        assert cov.guard_hash == key.pubkey_hash

    def test_bad_guard_length(self, template):
        with pytest.raises(InvalidLengthError):
            build_covenant(bytes(19), template=template)

    def test_bad_proof_hash_length(self, template):
        with pytest.raises(InvalidLengthError):
            build_covenant(GUARD, bytes(31), template)

    def test_proof_hash_changes_address(self, template):
        a = build_covenant(GUARD, PROOF_HASH, template)
        b = build_covenant(GUARD, bytes([0xAB] * 32), template)
        assert a.locking_script != b.locking_script

    @pytest.mark.parametrize("redeem", [
        b"",
        b"\x51" + b"\x14" + GUARD,
        b"\x20" + PROOF_HASH + b"\x76" + b"\x14" + GUARD,
        b"\x20" + PROOF_HASH[:10],
        b"\x20" + PROOF_HASH + b"\x75" + b"\x15" + GUARD,
        b"\x14" + GUARD[:19],
    ])
    def test_malformed_headers(self, redeem):
        with pytest.raises(InvalidScriptError):
            parse_covenant_header(redeem)


# ==============================================================================
# Templates
# ==============================================================================

class TestCovenantTemplate:
    """Tests for template loading."""

    def test_default_template(self, template):
        assert template.bytecode.hex() == (
            "5179a98800cd537f7c0376a9148801147f770288ac8800cc53799d00d1c0ce88ad7551"
        )

    def test_artifact_file(self, tmp_path):
        path = tmp_path / "artifact.json"
        path.write_text(json.dumps({"contractName": "Demo", "debug": {"bytecode": "51" * 20}}))
        template = CovenantTemplate.from_artifact(path)
        assert template.name == "Demo"
        assert template.bytecode == b"\x51" * 20

    def test_plain_bytecode_field(self):
        assert CovenantTemplate.from_artifact_dict({"bytecode": "52" * 16}).bytecode == b"\x52" * 16

    def test_missing_bytecode(self):
        with pytest.raises(InvalidEncodingError):
            CovenantTemplate.from_artifact_dict({"contractName": "Empty"})

    def test_not_hex(self):
        with pytest.raises(InvalidEncodingError):
            CovenantTemplate.from_hex("zz" * 20)

    def test_too_short(self):
        with pytest.raises(InvalidScriptError):
            CovenantTemplate.from_hex("51")
