"""
CTP Script Helpers

Opcodes, minimal pushes, script numbers and the two standard output
templates (pay-to-public-key-hash, pay-to-script-hash).
"""

from __future__ import annotations
from enum import IntEnum
from typing import List, Optional, Tuple

from ctp.constants import HASH160_SIZE, LITTLE_ENDIAN
from ctp.core.types import check_hash160
from ctp.crypto.hash import hash160
from ctp.errors import InvalidScriptError


class Op(IntEnum):
    """Opcodes used by this package."""
    OP_0 = 0x00
    OP_PUSHDATA1 = 0x4C
    OP_PUSHDATA2 = 0x4D
    OP_PUSHDATA4 = 0x4E
    OP_1NEGATE = 0x4F
    OP_1 = 0x51
    OP_16 = 0x60
    OP_DROP = 0x75
    OP_DUP = 0x76
    OP_EQUAL = 0x87
    OP_EQUALVERIFY = 0x88
    OP_HASH160 = 0xA9
    OP_CHECKSIG = 0xAC
    OP_CHECKSIGVERIFY = 0xAD


def push_data(data: bytes) -> bytes:
    """Minimal push of data."""
    n = len(data)
    if n == 0:
        return bytes([Op.OP_0])
    if n == 1 and 1 <= data[0] <= 16:
        return bytes([Op.OP_1 + data[0] - 1])
    if n == 1 and data[0] == 0x81:
        return bytes([Op.OP_1NEGATE])
    if n < Op.OP_PUSHDATA1:
        return bytes([n]) + data
    if n <= 0xFF:
        return bytes([Op.OP_PUSHDATA1, n]) + data
    if n <= 0xFFFF:
        return bytes([Op.OP_PUSHDATA2]) + n.to_bytes(2, LITTLE_ENDIAN) + data
    return bytes([Op.OP_PUSHDATA4]) + n.to_bytes(4, LITTLE_ENDIAN) + data


def encode_script_number(value: int) -> bytes:
    """Minimal little-endian sign-magnitude encoding of a script number."""
    if value == 0:
        return b""
    negative = value < 0
    magnitude = abs(value)
    out = bytearray()
    while magnitude:
        out.append(magnitude & 0xFF)
        magnitude >>= 8
    if out[-1] & 0x80:
        out.append(0x80 if negative else 0x00)
    elif negative:
        out[-1] |= 0x80
    return bytes(out)


def decode_script_number(data: bytes) -> int:
    if not data:
        return 0
    if data[-1] & 0x7F == 0 and (len(data) == 1 or not data[-2] & 0x80):
        raise InvalidScriptError("Non-minimal script number", {"data": data.hex()})
    value = int.from_bytes(data, LITTLE_ENDIAN)
    if data[-1] & 0x80:
        return -(value & ~(0x80 << (8 * (len(data) - 1))))
    return value


def parse_script(script: bytes) -> List[Tuple[int, Optional[bytes]]]:
    """
    Split a script into (opcode, pushed data or None).

    Raises:
        InvalidScriptError: a push runs past the end of the script
    """
    ops: List[Tuple[int, Optional[bytes]]] = []
    i = 0
    while i < len(script):
        op = script[i]
        i += 1
        if op == 0 or op > Op.OP_PUSHDATA4:
            ops.append((op, b"" if op == 0 else None))
            continue
        if op < Op.OP_PUSHDATA1:
            size = op
        else:
            width = {Op.OP_PUSHDATA1: 1, Op.OP_PUSHDATA2: 2, Op.OP_PUSHDATA4: 4}[op]
            if i + width > len(script):
                raise InvalidScriptError("Truncated push length", {"offset": i})
            size = int.from_bytes(script[i:i + width], LITTLE_ENDIAN)
            i += width
        if i + size > len(script):
            raise InvalidScriptError("Push runs past end of script", {"offset": i, "size": size})
        ops.append((op, script[i:i + size]))
        i += size
    return ops


def push_only_items(script: bytes) -> List[bytes]:
    """Data items of a push-only script (small-int opcodes decoded)."""
    items = []
    for op, data in parse_script(script):
        if data is not None:
            items.append(data)
        elif Op.OP_1 <= op <= Op.OP_16:
            items.append(encode_script_number(op - Op.OP_1 + 1))
        elif op == Op.OP_1NEGATE:
            items.append(b"\x81")
        else:
            raise InvalidScriptError(f"Non-push opcode 0x{op:02x} in push-only script")
    return items


# ==============================================================================
# Output templates
# ==============================================================================

def p2pkh_script(pubkey_hash: bytes) -> bytes:
    """OP_DUP OP_HASH160 <20> OP_EQUALVERIFY OP_CHECKSIG"""
    check_hash160(pubkey_hash, "pubkey hash")
    return (
        bytes([Op.OP_DUP, Op.OP_HASH160, HASH160_SIZE])
        + pubkey_hash
        + bytes([Op.OP_EQUALVERIFY, Op.OP_CHECKSIG])
    )


def p2sh_script(redeem_script: bytes) -> bytes:
    """OP_HASH160 <hash160(redeem)> OP_EQUAL"""
    return bytes([Op.OP_HASH160, HASH160_SIZE]) + hash160(redeem_script) + bytes([Op.OP_EQUAL])


def is_p2pkh(script: bytes) -> bool:
    return (
        len(script) == 25
        and script[:3] == bytes([Op.OP_DUP, Op.OP_HASH160, HASH160_SIZE])
        and script[23:] == bytes([Op.OP_EQUALVERIFY, Op.OP_CHECKSIG])
    )


def is_p2sh(script: bytes) -> bool:
    return (
        len(script) == 23
        and script[:2] == bytes([Op.OP_HASH160, HASH160_SIZE])
        and script[22] == Op.OP_EQUAL
    )


def script_hash(script: bytes) -> bytes:
    """The 20-byte hash inside a P2PKH or P2SH script."""
    if is_p2pkh(script):
        return script[3:23]
    if is_p2sh(script):
        return script[2:22]
    raise InvalidScriptError("Not a P2PKH or P2SH script", {"script": script.hex()})
