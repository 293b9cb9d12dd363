"""
CTP Signature Hashing and Input Signing

BIP143-style digest with SIGHASH_ALL | SIGHASH_FORKID (0x41):

    version || hashPrevouts || hashSequence || outpoint
    || [token prefix of spent UTXO] || vbytes(scriptCode)
    || value (u64) || sequence (u32) || hashOutputs || locktime || sighash type (u32)

digest = hash256(preimage). This layout is the wire contract; a single
byte out of place produces signatures the network rejects.
"""

from __future__ import annotations
import logging
from ctp.constants import SCHNORR_SIGNATURE_SIZE, SIGHASH_ALL_FORKID
from ctp.core.serialization import ByteWriter
from ctp.core.types import KeyPair, Utxo
from ctp.crypto.hash import hash256
from ctp.crypto.schnorr import schnorr_sign, schnorr_verify
from ctp.errors import MalformedInputError, SignatureVerifyError, ValueOutOfRangeError
from ctp.protocol.script import encode_script_number, push_data
from ctp.protocol.transaction import Transaction

logger = logging.getLogger(__name__)


def hash_prevouts(tx: Transaction) -> bytes:
    return hash256(b"".join(i.outpoint.serialize() for i in tx.inputs))


def hash_sequence(tx: Transaction) -> bytes:
    writer = ByteWriter()
    for tx_in in tx.inputs:
        writer.write_u32(tx_in.sequence)
    return hash256(writer.to_bytes())


def hash_outputs(tx: Transaction) -> bytes:
    return hash256(b"".join(o.serialize() for o in tx.outputs))


def signature_preimage(
    tx: Transaction,
    input_index: int,
    script_code: bytes,
    value: int,
    sighash_type: int = SIGHASH_ALL_FORKID,
    token_prefix: bytes = b"",
) -> bytes:
    """
    Signing serialization for one input.

    Args:
        tx: spending transaction
        input_index: input being signed
        script_code: script being satisfied (P2PKH script or redeem script)
        value: value of the spent output
        sighash_type: only SIGHASH_ALL | FORKID is produced by this package
        token_prefix: token prefix of the spent output, if any
    """
    if not 0 <= input_index < len(tx.inputs):
        raise ValueOutOfRangeError("input index", input_index, len(tx.inputs) - 1)
    tx_in = tx.inputs[input_index]
    return (
        ByteWriter()
        .write_u32(tx.version)
        .write_fixed_bytes(hash_prevouts(tx))
        .write_fixed_bytes(hash_sequence(tx))
        .write_fixed_bytes(tx_in.outpoint.serialize())
        .write_fixed_bytes(token_prefix)
        .write_bytes(script_code)
        .write_u64(value)
        .write_u32(tx_in.sequence)
        .write_fixed_bytes(hash_outputs(tx))
        .write_u32(tx.locktime)
        .write_u32(sighash_type)
        .to_bytes()
    )


def signature_hash(
    tx: Transaction,
    input_index: int,
    script_code: bytes,
    value: int,
    sighash_type: int = SIGHASH_ALL_FORKID,
    token_prefix: bytes = b"",
) -> bytes:
    return hash256(signature_preimage(tx, input_index, script_code, value, sighash_type, token_prefix))


def sign_input(
    tx: Transaction,
    input_index: int,
    keypair: KeyPair,
    script_code: bytes,
    value: int,
    token_prefix: bytes = b"",
) -> bytes:
    """
    Schnorr-sign one input and check the signature before returning it.

    Returns:
        65 bytes: signature || sighash type
    """
    digest = signature_hash(tx, input_index, script_code, value, SIGHASH_ALL_FORKID, token_prefix)
    signature = schnorr_sign(digest, keypair.private_key)
    if not schnorr_verify(signature, digest, keypair.public_key):
        logger.error(f"Signature for input {input_index} failed local verification")
        raise SignatureVerifyError(input_index)
    return signature + bytes([SIGHASH_ALL_FORKID])


def verify_input_signature(
    tx: Transaction,
    input_index: int,
    signature: bytes,
    public_key: bytes,
    script_code: bytes,
    value: int,
    token_prefix: bytes = b"",
) -> bool:
    """Check a 65-byte script signature against the input's digest."""
    if len(signature) != SCHNORR_SIGNATURE_SIZE + 1:
        return False
    sighash_type = signature[-1]
    if sighash_type != SIGHASH_ALL_FORKID:
        return False
    digest = signature_hash(tx, input_index, script_code, value, sighash_type, token_prefix)
    return schnorr_verify(signature[:-1], digest, public_key)


def sign_p2pkh_input(tx: Transaction, input_index: int, keypair: KeyPair, utxo: Utxo) -> None:
    """Fill in <sig> <pubkey> for a P2PKH input."""
    signature = sign_input(
        tx, input_index, keypair, utxo.locking_script, utxo.value, utxo.token_prefix
    )
    tx.inputs[input_index].script_sig = push_data(signature) + push_data(keypair.public_key)


def covenant_unlocking_script(
    amount: int,
    signature: bytes,
    public_key: bytes,
    redeem_script: bytes,
) -> bytes:
    """<amount> <sig> <pubkey> <redeem_script>"""
    if amount < 0:
        raise MalformedInputError(f"Negative covenant amount: {amount}")
    return (
        push_data(encode_script_number(amount))
        + push_data(signature)
        + push_data(public_key)
        + push_data(redeem_script)
    )


def sign_covenant_input(
    tx: Transaction,
    input_index: int,
    keypair: KeyPair,
    redeem_script: bytes,
    value: int,
    amount: int,
    token_prefix: bytes = b"",
) -> None:
    """Sign a covenant input and install its unlocking script."""
    signature = sign_input(
        tx, input_index, keypair, redeem_script, value, token_prefix
    )
    tx.inputs[input_index].script_sig = covenant_unlocking_script(
        amount, signature, keypair.public_key, redeem_script
    )
