"""
CTP Proprietary RPA Metadata

Per-output key/value records that let an offline signer re-derive a
one-time key without scanning the chain.

    key   = 0xFC || CompactSize(len(prefix)) || "bch-rpa-v0" || subtype
    CONTEXT (0x01):    77 bytes
        version (1) || mode (1) || reserved (2) || index (u32) || vout (u32)
        || prev txid (32, display order) || sender pubkey (33)
    PROOF_HASH (0x02): 32 bytes
    ZK_SEED (0x03):    32 bytes
"""

from __future__ import annotations
import json
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ctp.constants import (
    HASH_SIZE,
    PSBT_PROPRIETARY_TYPE,
    PSBT_RPA_CONTEXT,
    PSBT_RPA_PREFIX,
    PSBT_RPA_PROOF_HASH,
    PSBT_RPA_ZK_SEED,
    PUBLIC_KEY_SIZE,
    RPA_CONTEXT_SIZE,
    RPA_CONTEXT_VERSION,
    TXID_SIZE,
)
from ctp.core.serialization import ByteReader, ByteWriter
from ctp.core.types import Outpoint
from ctp.errors import InvalidEncodingError, InvalidLengthError
from ctp.rpa.derivation import RpaContext


def encode_rpa_context(context: RpaContext) -> bytes:
    return (
        ByteWriter()
        .write_u8(RPA_CONTEXT_VERSION)
        .write_u8(context.mode)
        .write_fixed_bytes(b"\x00\x00")
        .write_u32(context.index)
        .write_u32(context.outpoint.vout)
        .write_fixed_bytes(context.outpoint.txid_bytes)
        .write_fixed_bytes(context.sender_public_key)
        .to_bytes()
    )


def decode_rpa_context(data: bytes) -> RpaContext:
    if len(data) != RPA_CONTEXT_SIZE:
        raise InvalidLengthError("rpa context", RPA_CONTEXT_SIZE, len(data))
    reader = ByteReader(data)
    version = reader.read_u8()
    if version != RPA_CONTEXT_VERSION:
        raise InvalidEncodingError(f"Unsupported rpa context version: {version}")
    mode = reader.read_u8()
    reader.read_fixed_bytes(2)
    index = reader.read_u32()
    vout = reader.read_u32()
    txid = reader.read_fixed_bytes(TXID_SIZE).hex()
    sender = reader.read_fixed_bytes(PUBLIC_KEY_SIZE)
    return RpaContext(mode=mode, index=index, outpoint=Outpoint(txid, vout), sender_public_key=sender)


def proprietary_key(subtype: int) -> bytes:
    return (
        ByteWriter()
        .write_u8(PSBT_PROPRIETARY_TYPE)
        .write_bytes(PSBT_RPA_PREFIX)
        .write_u8(subtype)
        .to_bytes()
    )


def parse_proprietary_key(key: bytes) -> Optional[int]:
    """Subtype of an RPA proprietary key, or None for foreign keys."""
    if not key or key[0] != PSBT_PROPRIETARY_TYPE:
        return None
    reader = ByteReader(key[1:])
    try:
        prefix = reader.read_bytes()
        subtype = reader.read_u8()
    except InvalidEncodingError:
        return None
    if prefix != PSBT_RPA_PREFIX or not reader.is_empty():
        return None
    return subtype


@dataclass
class OutputMetadata:
    """Unknown/proprietary records attached to one PSBT output."""
    records: List[Tuple[bytes, bytes]] = field(default_factory=list)

    def set(self, key: bytes, value: bytes) -> None:
        self.records = [(k, v) for k, v in self.records if k != key]
        self.records.append((key, value))

    def get(self, key: bytes) -> Optional[bytes]:
        for k, v in self.records:
            if k == key:
                return v
        return None


@dataclass(frozen=True)
class RpaMetadata:
    context: RpaContext
    proof_hash: Optional[bytes] = None
    zk_seed: Optional[bytes] = None


def attach_rpa_metadata(output: OutputMetadata, metadata: RpaMetadata) -> None:
    output.set(proprietary_key(PSBT_RPA_CONTEXT), encode_rpa_context(metadata.context))
    if metadata.proof_hash is not None:
        if len(metadata.proof_hash) != HASH_SIZE:
            raise InvalidLengthError("proof hash", HASH_SIZE, len(metadata.proof_hash))
        output.set(proprietary_key(PSBT_RPA_PROOF_HASH), metadata.proof_hash)
    if metadata.zk_seed is not None:
        if len(metadata.zk_seed) != HASH_SIZE:
            raise InvalidLengthError("zk seed", HASH_SIZE, len(metadata.zk_seed))
        output.set(proprietary_key(PSBT_RPA_ZK_SEED), metadata.zk_seed)


def extract_rpa_metadata(output: OutputMetadata) -> Optional[RpaMetadata]:
    """RPA records of an output, or None when no context record is present."""
    found: Dict[int, bytes] = {}
    for key, value in output.records:
        subtype = parse_proprietary_key(key)
        if subtype is not None:
            found[subtype] = value
    if PSBT_RPA_CONTEXT not in found:
        return None
    return RpaMetadata(
        context=decode_rpa_context(found[PSBT_RPA_CONTEXT]),
        proof_hash=found.get(PSBT_RPA_PROOF_HASH),
        zk_seed=found.get(PSBT_RPA_ZK_SEED),
    )


def metadata_to_dict(metadata: RpaMetadata, output_index: int = 0) -> dict:
    context = metadata.context
    result = {
        "output_index": output_index,
        "mode": context.mode,
        "index": context.index,
        "prev_txid": context.outpoint.txid,
        "prev_vout": context.outpoint.vout,
        "sender_pubkey": context.sender_public_key.hex(),
        "records": {
            proprietary_key(PSBT_RPA_CONTEXT).hex(): encode_rpa_context(context).hex(),
        },
    }
    if metadata.proof_hash is not None:
        result["proof_hash"] = metadata.proof_hash.hex()
        result["records"][proprietary_key(PSBT_RPA_PROOF_HASH).hex()] = metadata.proof_hash.hex()
    if metadata.zk_seed is not None:
        result["zk_seed"] = metadata.zk_seed.hex()
        result["records"][proprietary_key(PSBT_RPA_ZK_SEED).hex()] = metadata.zk_seed.hex()
    return result


def export_json(entries: List[Tuple[int, RpaMetadata]]) -> str:
    """JSON document for a list of (output index, metadata)."""
    return json.dumps(
        {"rpa_outputs": [metadata_to_dict(m, i) for i, m in entries]},
        indent=2,
    )
