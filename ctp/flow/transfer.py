"""
CTP Confidential Transfer Flow

Three chained transactions:

1. lock_to_covenant      sender locks a token carrying the amount
                         commitment under a covenant guarded by a key
                         only the receiver can derive
2. unlock_from_covenant  receiver re-derives the guard key, regenerates
                         and checks the proof, and pays the amount to a
                         fresh RPA address of the sender
3. sweep_one_time_output sender re-derives that one-time key and spends it

Each step consumes the previous step's output, so any fatal error
aborts the remaining steps. Nothing here catches CTPError.
"""

from __future__ import annotations
import logging
import math
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from ctp.chain.interface import ChainInterface, utxo_from_output
from ctp.constants import (
    RPA_MODE_CONF_ASSET,
    RPA_MODE_STEALTH_P2PKH,
)
from ctp.core.serialization import varint_size
from ctp.core.types import KeyPair, Outpoint, Paycode, PaycodeSecret, Utxo
from ctp.crypto.curve import decode_point, public_key_from_private
from ctp.crypto.ecdh import (
    EncryptedAmount,
    decrypt_amount,
    derive_ephemeral_private_key,
    encrypt_amount,
)
from ctp.errors import (
    CommitmentMismatchError,
    InsufficientFundsError,
    MalformedInputError,
    ProofHashMismatchError,
    ProofMismatchError,
    RedeemScriptMismatchError,
)
from ctp.flow.spend import CovenantSpend, FeeInput, SpendState
from ctp.protocol.covenant import Covenant, CovenantTemplate, build_covenant
from ctp.protocol.script import p2pkh_script, push_only_items, script_hash
from ctp.protocol.sighash import sign_p2pkh_input
from ctp.protocol.token import Capability, TokenData
from ctp.protocol.transaction import Transaction, TxInput, TxOutput
from ctp.rpa.derivation import (
    LockIntent,
    RpaContext,
    derive_lock_intent,
    derive_one_time_private_key,
    derive_receiver_session,
    recover_one_time_key,
)
from ctp.zk.envelope import (
    AmountProofEnvelope,
    build_amount_proof_envelope,
    verify_amount_proof_envelope,
)

logger = logging.getLogger(__name__)

COVENANT_VOUT = 0
P2PKH_UNLOCK_SIZE = 1 + 65 + 1 + 33


@dataclass(frozen=True)
class Party:
    """A participant: a funding wallet key and a paycode secret."""
    name: str
    wallet: KeyPair
    paycode_secret: PaycodeSecret

    @classmethod
    def from_seed(cls, name: str, seed: bytes) -> Party:
        return cls(name, KeyPair.from_seed(seed), PaycodeSecret.from_seed(seed))

    @property
    def paycode(self) -> Paycode:
        return self.paycode_secret.paycode

    @property
    def locking_script(self) -> bytes:
        return p2pkh_script(self.wallet.pubkey_hash)


@dataclass(frozen=True)
class LockResult:
    txid: str
    covenant: Covenant
    amount_envelope: AmountProofEnvelope
    notice: EncryptedAmount
    intent: LockIntent
    token: TokenData


@dataclass(frozen=True)
class UnlockResult:
    txid: str
    amount: int
    guard_public_key: bytes
    return_intent: LockIntent
    state: SpendState


@dataclass(frozen=True)
class SweepResult:
    txid: str
    one_time_public_key: bytes
    value: int


# ==============================================================================
# Helpers
# ==============================================================================

def estimate_fee(tx: Transaction, unlock_sizes: Dict[int, int], fee_rate: float) -> int:
    """Fee for tx once each input i gets an unlocking script of unlock_sizes[i] bytes."""
    size = tx.size
    for index, unlock in unlock_sizes.items():
        current = len(tx.inputs[index].script_sig)
        size += unlock + varint_size(unlock) - current - varint_size(current)
    return math.ceil(size * fee_rate)


def input_public_key(tx: Transaction, input_index: int) -> bytes:
    """Public key revealed by a P2PKH-style unlocking script (last push)."""
    items = push_only_items(tx.inputs[input_index].script_sig)
    if len(items) < 2:
        raise MalformedInputError(f"Input {input_index} does not reveal a public key")
    public_key = items[-1]
    decode_point(public_key, f"input {input_index} public key")
    return public_key


def _context(outpoint: Outpoint) -> bytes:
    return outpoint.serialize()


def _change_output(tx: Transaction, change: int, locking_script: bytes, dust_limit: int) -> None:
    if change >= dust_limit:
        tx.outputs.append(TxOutput(change, locking_script))
    elif change > 0:
        logger.debug(f"Change {change} below dust, left as fee")


# ==============================================================================
# Step 1: sender locks
# ==============================================================================

def lock_to_covenant(
    sender: Party,
    receiver: Paycode,
    funding_utxo: Utxo,
    amount: int,
    chain: ChainInterface,
    template: Optional[CovenantTemplate] = None,
    index: int = 0,
) -> LockResult:
    """
    Lock amount under a receiver-derived guard.

    The funding UTXO must be output 0 of its transaction so its txid can
    serve as the new token category.
    """
    dust_limit = chain.get_dust_limit()
    if amount < dust_limit:
        raise MalformedInputError(f"Amount {amount} is below dust limit {dust_limit}")
    if funding_utxo.vout != 0:
        raise MalformedInputError(
            f"Token genesis needs output 0, funding UTXO is {funding_utxo.outpoint}"
        )
    outpoint = funding_utxo.outpoint
    logger.info(f"[{sender.name}] Locking {amount} sat from {outpoint}")

    intent = derive_lock_intent(
        sender.wallet.private_key, receiver, outpoint, index, RPA_MODE_CONF_ASSET
    )
    ephemeral_private = derive_ephemeral_private_key(receiver.scan_public, amount, outpoint)
    ephemeral_public = public_key_from_private(ephemeral_private)

    category = TokenData.category_from_txid(funding_utxo.txid)
    amount_envelope = build_amount_proof_envelope(
        amount,
        intent.session.zk_seed,
        ephemeral_public,
        asset_id=category,
        output_index=COVENANT_VOUT,
    )
    covenant = build_covenant(intent.child_hash, amount_envelope.proof_hash, template)
    token = TokenData(
        category=category,
        nft=True,
        capability=Capability.MUTABLE,
        commitment=amount_envelope.commitment,
    )
    notice = encrypt_amount(ephemeral_private, receiver.scan_public, amount, _context(outpoint))

    tx = Transaction(
        inputs=[TxInput(outpoint)],
        outputs=[
            TxOutput(amount, covenant.locking_script, token),
            TxOutput(0, sender.locking_script),
        ],
    )
    fee = estimate_fee(tx, {0: P2PKH_UNLOCK_SIZE}, chain.get_fee_rate())
    if funding_utxo.value < amount + fee:
        raise InsufficientFundsError(funding_utxo.value, amount + fee)
    tx.outputs.pop()
    _change_output(tx, funding_utxo.value - amount - fee, sender.locking_script, dust_limit)

    sign_p2pkh_input(tx, 0, sender.wallet, funding_utxo)
    txid = chain.broadcast(tx.serialize())
    logger.info(
        f"[{sender.name}] Covenant funded: {txid}:{COVENANT_VOUT} "
        f"proof_hash={amount_envelope.proof_hash.hex()}"
    )
    return LockResult(txid, covenant, amount_envelope, notice, intent, token)


# ==============================================================================
# Step 2: receiver unlocks
# ==============================================================================

def unlock_from_covenant(
    receiver: Party,
    notice: EncryptedAmount,
    lock_txid: str,
    return_paycode: Paycode,
    fee_utxo: Utxo,
    chain: ChainInterface,
    template: Optional[CovenantTemplate] = None,
    index: int = 0,
    anchored_proof_hash: Optional[bytes] = None,
) -> UnlockResult:
    """
    Re-derive the guard, check the hidden amount, and pay it onward.

    anchored_proof_hash is the proof hash the sender published with the
    output metadata. When given, the regenerated envelope must hash to it.

    Raises:
        AmountDecryptionError: the notice was tampered with
        CommitmentMismatchError: regenerated commitment differs from the token
        ProofHashMismatchError: regenerated envelope differs from the anchor
        RedeemScriptMismatchError: rebuilt covenant differs from the funded output
        ProofMismatchError: the anchored envelope does not verify
    """
    lock_tx = chain.get_transaction(lock_txid)
    funded = lock_tx.outputs[COVENANT_VOUT]
    if funded.token is None or not funded.token.commitment:
        raise ProofMismatchError("Covenant output carries no amount commitment")

    outpoint = lock_tx.inputs[0].outpoint
    sender_public = input_public_key(lock_tx, 0)
    secret = receiver.paycode_secret

    amount = decrypt_amount(secret.scan_private, notice, _context(outpoint))
    logger.info(f"[{receiver.name}] Notice decrypted, regenerating proof for {outpoint}")

    session = derive_receiver_session(secret.scan_private, sender_public, outpoint)
    ephemeral_private = derive_ephemeral_private_key(receiver.paycode.scan_public, amount, outpoint)
    if public_key_from_private(ephemeral_private) != notice.ephemeral_public_key:
        raise ProofMismatchError("Ephemeral key in notice does not match re-derivation")

    amount_envelope = build_amount_proof_envelope(
        amount,
        session.zk_seed,
        notice.ephemeral_public_key,
        asset_id=funded.token.category,
        output_index=COVENANT_VOUT,
    )
    if amount_envelope.commitment != funded.token.commitment:
        raise CommitmentMismatchError(funded.token.commitment, amount_envelope.commitment)
    if anchored_proof_hash is not None and amount_envelope.proof_hash != anchored_proof_hash:
        raise ProofHashMismatchError(anchored_proof_hash, amount_envelope.proof_hash)

    guard_key = KeyPair(
        derive_one_time_private_key(
            secret.scan_private,
            secret.spend_private,
            sender_public,
            outpoint,
            index,
            RPA_MODE_CONF_ASSET,
        )
    )
    covenant = build_covenant(guard_key.pubkey_hash, amount_envelope.proof_hash, template)
    if covenant.locking_script != funded.locking_script:
        raise RedeemScriptMismatchError(funded.locking_script, covenant.locking_script)

    if not verify_amount_proof_envelope(
        amount_envelope.envelope,
        expected_proof_hash=covenant.proof_hash,
        expected_commitment=funded.token.commitment,
    ):
        raise ProofMismatchError("Anchored amount envelope does not verify")
    logger.info(f"[{receiver.name}] Range proof verified, guard re-derived")

    return_intent = derive_lock_intent(
        receiver.wallet.private_key,
        return_paycode,
        fee_utxo.outpoint,
        index,
        RPA_MODE_STEALTH_P2PKH,
    )
    covenant_utxo = utxo_from_output(lock_txid, COVENANT_VOUT, funded)

    tx = Transaction(
        inputs=[TxInput(covenant_utxo.outpoint), TxInput(fee_utxo.outpoint)],
        outputs=[
            TxOutput(amount, p2pkh_script(return_intent.child_hash), funded.token),
            TxOutput(0, receiver.locking_script),
        ],
    )
    covenant_unlock = 5 + 66 + 34 + len(covenant.redeem_script) + 3
    fee = estimate_fee(tx, {0: covenant_unlock, 1: P2PKH_UNLOCK_SIZE}, chain.get_fee_rate())
    if fee_utxo.value < fee:
        raise InsufficientFundsError(fee_utxo.value, fee)
    tx.outputs.pop()
    _change_output(tx, fee_utxo.value - fee, receiver.locking_script, chain.get_dust_limit())

    spend = CovenantSpend(
        tx,
        input_index=0,
        utxo=covenant_utxo,
        redeem_script=covenant.redeem_script,
        keypair=guard_key,
        amount=amount,
        output_index=0,
        fee_inputs=[FeeInput(1, receiver.wallet, fee_utxo)],
    )
    txid = spend.run(chain)
    logger.info(f"[{receiver.name}] Covenant unlocked: {txid}")
    return UnlockResult(txid, amount, guard_key.public_key, return_intent, spend.state)



# ==============================================================================
# Step 3: one-time outputs
# ==============================================================================

def pay_to_paycode(
    sender: Party,
    receiver: Paycode,
    funding_utxo: Utxo,
    amount: int,
    chain: ChainInterface,
    index: int = 0,
) -> Tuple[str, LockIntent]:
    """Plain stealth payment: amount to the receiver's one-time P2PKH address."""
    dust_limit = chain.get_dust_limit()
    if amount < dust_limit:
        raise MalformedInputError(f"Amount {amount} is below dust limit {dust_limit}")
    intent = derive_lock_intent(
        sender.wallet.private_key,
        receiver,
        funding_utxo.outpoint,
        index,
        RPA_MODE_STEALTH_P2PKH,
    )
    tx = Transaction(
        inputs=[TxInput(funding_utxo.outpoint)],
        outputs=[
            TxOutput(amount, p2pkh_script(intent.child_hash), None),
            TxOutput(0, sender.locking_script),
        ],
    )
    fee = estimate_fee(tx, {0: P2PKH_UNLOCK_SIZE}, chain.get_fee_rate())
    if funding_utxo.value < amount + fee:
        raise InsufficientFundsError(funding_utxo.value, amount + fee)
    tx.outputs.pop()
    _change_output(tx, funding_utxo.value - amount - fee, sender.locking_script, dust_limit)

    sign_p2pkh_input(tx, 0, sender.wallet, funding_utxo)
    txid = chain.broadcast(tx.serialize())
    logger.info(f"[{sender.name}] Stealth payment {txid}:0 to {intent.child_hash.hex()}")
    return txid, intent


def sweep_one_time_output(
    owner: Party,
    txid: str,
    chain: ChainInterface,
    index: int = 0,
    source_input: int = 1,
    mode: int = RPA_MODE_STEALTH_P2PKH,
    destination: Optional[bytes] = None,
) -> SweepResult:
    """
    Recover the one-time key for output 0 of txid and spend it.

    The counterparty's public key and the derivation outpoint are read
    from input source_input of that transaction.

    Raises:
        DerivationMismatchError: recovered key does not hash to the output
    """
    paid_tx = chain.get_transaction(txid)
    output = paid_tx.outputs[0]
    expected_hash = script_hash(output.locking_script)

    context = RpaContext(
        mode,
        index,
        paid_tx.inputs[source_input].outpoint,
        input_public_key(paid_tx, source_input),
    )
    keypair = recover_one_time_key(owner.paycode_secret, context, expected_hash)
    logger.info(f"[{owner.name}] One-time key recovered for {txid}:0")

    utxo = utxo_from_output(txid, 0, output)
    destination = destination or owner.locking_script
    tx = Transaction(
        inputs=[TxInput(utxo.outpoint)],
        outputs=[TxOutput(utxo.value, destination, output.token)],
    )
    fee = estimate_fee(tx, {0: P2PKH_UNLOCK_SIZE}, chain.get_fee_rate())
    dust_limit = chain.get_dust_limit()
    if utxo.value - fee < dust_limit:
        raise InsufficientFundsError(utxo.value, fee + dust_limit)
    tx.outputs[0].value = utxo.value - fee

    sign_p2pkh_input(tx, 0, keypair, utxo)
    sweep_txid = chain.broadcast(tx.serialize())
    logger.info(f"[{owner.name}] One-time output swept: {sweep_txid}")
    return SweepResult(sweep_txid, keypair.public_key, tx.outputs[0].value)


@dataclass(frozen=True)
class TransferReport:
    lock: LockResult
    unlock: UnlockResult
    sweep: SweepResult


def run_confidential_transfer(
    sender: Party,
    receiver: Party,
    sender_utxo: Utxo,
    receiver_fee_utxo: Utxo,
    amount: int,
    chain: ChainInterface,
    template: Optional[CovenantTemplate] = None,
    index: int = 0,
) -> TransferReport:
    """Run all three steps. The first fatal error propagates and stops the loop."""
    lock = lock_to_covenant(sender, receiver.paycode, sender_utxo, amount, chain, template, index)
    unlock = unlock_from_covenant(
        receiver,
        lock.notice,
        lock.txid,
        sender.paycode,
        receiver_fee_utxo,
        chain,
        template,
        index,
        anchored_proof_hash=lock.covenant.proof_hash,
    )
    sweep = sweep_one_time_output(sender, unlock.txid, chain, index)
    return TransferReport(lock, unlock, sweep)
