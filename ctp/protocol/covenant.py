"""
CTP Covenant Construction

A covenant redeem script is a small header prepended to an opaque,
pre-compiled template:

    [0x20 <proof_hash:32> OP_DROP]  0x14 <guard_hash:20>  <template>

The optional proof-hash push is dropped at runtime; it anchors the
amount envelope without occupying a stack slot. The guard hash is left
on the stack for the template, which checks it against the unlocking
key, checks the designated output's P2PKH shape and value, the token
category, and the signature. The funding output is P2SH(redeem).

The range proof is verified by the receiver before signing. The
template only enforces equality and hash checks.
"""

from __future__ import annotations
import json
import logging
from dataclasses import dataclass
from enum import Enum, auto
from importlib import resources
from pathlib import Path
from typing import Optional, Union

from ctp.constants import HASH160_SIZE, HASH_SIZE, PUBLIC_KEY_SIZE
from ctp.crypto.curve import decode_point
from ctp.crypto.hash import hash160
from ctp.errors import InvalidEncodingError, InvalidLengthError, InvalidScriptError
from ctp.protocol.script import Op, p2sh_script

logger = logging.getLogger(__name__)

PUSH_32 = 0x20
PUSH_20 = 0x14
MIN_TEMPLATE_SIZE = 16
DEFAULT_ARTIFACT = "data/covenant_template.json"


@dataclass(frozen=True)
class CovenantTemplate:
    """Opaque compiled template tail."""
    bytecode: bytes
    name: str = "ConfidentialGuard"

    def __post_init__(self):
        if len(self.bytecode) < MIN_TEMPLATE_SIZE:
            raise InvalidScriptError(
                f"Covenant template too short: {len(self.bytecode)} bytes",
                {"min": MIN_TEMPLATE_SIZE},
            )

    @classmethod
    def from_hex(cls, hex_string: str, name: str = "ConfidentialGuard") -> CovenantTemplate:
        try:
            return cls(bytes.fromhex(hex_string), name)
        except ValueError as e:
            raise InvalidEncodingError("Covenant template is not hex") from e

    @classmethod
    def from_artifact_dict(cls, artifact: dict) -> CovenantTemplate:
        """
        Accepts a compiled artifact carrying hex bytecode under
        debug.bytecode or bytecode.
        """
        name = artifact.get("contractName", "ConfidentialGuard")
        candidate = (artifact.get("debug") or {}).get("bytecode") or artifact.get("bytecode")
        if not candidate:
            raise InvalidEncodingError("Artifact has no bytecode")
        return cls.from_hex(candidate, name)

    @classmethod
    def from_artifact(cls, path: Union[str, Path]) -> CovenantTemplate:
        with open(path, "r") as f:
            artifact = json.load(f)
        template = cls.from_artifact_dict(artifact)
        logger.info(f"Covenant template '{template.name}' loaded from {path} ({len(template.bytecode)} bytes)")
        return template

    @classmethod
    def default(cls) -> CovenantTemplate:
        """Template bundled with the package."""
        text = resources.files("ctp").joinpath(DEFAULT_ARTIFACT).read_text(encoding="utf-8")
        return cls.from_artifact_dict(json.loads(text))


@dataclass(frozen=True)
class Covenant:
    """Funding-time covenant: redeem script and its P2SH locking script."""
    redeem_script: bytes
    locking_script: bytes
    guard_hash: bytes
    proof_hash: Optional[bytes] = None


def _guard_hash(guard: bytes) -> bytes:
    if len(guard) == HASH160_SIZE:
        return guard
    if len(guard) == PUBLIC_KEY_SIZE:
        decode_point(guard, "guard public key")
        return hash160(guard)
    raise InvalidLengthError("guard (hash160 or public key)", HASH160_SIZE, len(guard))


def build_covenant(
    guard: bytes,
    proof_hash: Optional[bytes] = None,
    template: Optional[CovenantTemplate] = None,
) -> Covenant:
    """
    Build the covenant for a guard key.

    Args:
        guard: 20-byte guard hash or 33-byte guard public key
        proof_hash: optional 32-byte envelope proof hash to anchor
        template: compiled template tail, defaults to the bundled one

    Returns:
        Covenant with redeem and P2SH locking scripts
    """
    guard_hash = _guard_hash(guard)
    template = template or CovenantTemplate.default()

    header = b""
    if proof_hash is not None:
        if len(proof_hash) != HASH_SIZE:
            raise InvalidLengthError("proof hash", HASH_SIZE, len(proof_hash))
        header = bytes([PUSH_32]) + proof_hash + bytes([Op.OP_DROP])

    redeem = header + bytes([PUSH_20]) + guard_hash + template.bytecode
    return Covenant(
        redeem_script=redeem,
        locking_script=p2sh_script(redeem),
        guard_hash=guard_hash,
        proof_hash=proof_hash,
    )


class _HeaderState(Enum):
    START = auto()
    EXPECT_DROP = auto()
    EXPECT_GUARD = auto()
    DONE = auto()


@dataclass(frozen=True)
class CovenantHeader:
    """Parsed redeem-script header."""
    guard_hash: bytes
    proof_hash: Optional[bytes]
    template_offset: int


def parse_covenant_header(redeem_script: bytes) -> CovenantHeader:
    """
    Walk the header with a byte cursor.

    Raises:
        InvalidScriptError: unexpected opcode or script too short
    """
    cursor = 0
    proof_hash = None
    guard_hash = b""
    state = _HeaderState.START

    def need(n: int) -> None:
        if cursor + n > len(redeem_script):
            raise InvalidScriptError(
                f"Redeem script too short: need {n} bytes at offset {cursor}",
                {"offset": cursor, "length": len(redeem_script)},
            )

    while state is not _HeaderState.DONE:
        need(1)
        op = redeem_script[cursor]
        if state is _HeaderState.START:
            if op == PUSH_32:
                need(1 + HASH_SIZE)
                proof_hash = redeem_script[cursor + 1:cursor + 1 + HASH_SIZE]
                cursor += 1 + HASH_SIZE
                state = _HeaderState.EXPECT_DROP
            elif op == PUSH_20:
                state = _HeaderState.EXPECT_GUARD
            else:
                raise InvalidScriptError(f"Unexpected header opcode 0x{op:02x}", {"offset": cursor})
        elif state is _HeaderState.EXPECT_DROP:
            if op != Op.OP_DROP:
                raise InvalidScriptError(f"Expected OP_DROP after proof hash, got 0x{op:02x}", {"offset": cursor})
            cursor += 1
            state = _HeaderState.EXPECT_GUARD
        elif state is _HeaderState.EXPECT_GUARD:
            if op != PUSH_20:
                raise InvalidScriptError(f"Expected 20-byte guard push, got 0x{op:02x}", {"offset": cursor})
            need(1 + HASH160_SIZE)
            guard_hash = redeem_script[cursor + 1:cursor + 1 + HASH160_SIZE]
            cursor += 1 + HASH160_SIZE
            state = _HeaderState.DONE

    return CovenantHeader(guard_hash, proof_hash, cursor)


def extract_guard_hash(redeem_script: bytes) -> bytes:
    """The 20-byte guard hash of a covenant redeem script."""
    return parse_covenant_header(redeem_script).guard_hash
