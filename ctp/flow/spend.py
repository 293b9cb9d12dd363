"""
CTP Covenant Spend State Machine

    BUILT -> GUARD_VERIFIED -> VALUE_VERIFIED -> SIGNED -> BROADCAST
                     \\               \\
                      +---------------+--> FAILED (terminal)

The two checks mirror what the covenant template enforces on-chain
and run before any signature exists, so a bad spend never leaves the
machine.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from ctp.chain.interface import ChainInterface
from ctp.core.types import KeyPair, Utxo
from ctp.crypto.hash import hash160
from ctp.errors import (
    CTPError,
    GuardHashMismatchError,
    InvalidStateTransitionError,
    OutputValueMismatchError,
)
from ctp.protocol.covenant import extract_guard_hash
from ctp.protocol.sighash import sign_covenant_input, sign_p2pkh_input
from ctp.protocol.transaction import Transaction

logger = logging.getLogger(__name__)


class SpendState(Enum):
    BUILT = "built"
    GUARD_VERIFIED = "guard_verified"
    VALUE_VERIFIED = "value_verified"
    SIGNED = "signed"
    BROADCAST = "broadcast"
    FAILED = "failed"


_NEXT = {
    SpendState.BUILT: SpendState.GUARD_VERIFIED,
    SpendState.GUARD_VERIFIED: SpendState.VALUE_VERIFIED,
    SpendState.VALUE_VERIFIED: SpendState.SIGNED,
    SpendState.SIGNED: SpendState.BROADCAST,
}


def check_guard(redeem_script: bytes, public_key: bytes) -> bytes:
    """hash160(public_key) must equal the covenant's guard hash."""
    guard = extract_guard_hash(redeem_script)
    actual = hash160(public_key)
    if actual != guard:
        raise GuardHashMismatchError(guard, actual)
    return guard


def check_output_value(tx: Transaction, amount: int, output_index: int = 0) -> None:
    """The designated output must carry exactly the asserted amount."""
    if output_index >= len(tx.outputs):
        raise OutputValueMismatchError(amount, 0, output_index)
    value = tx.outputs[output_index].value
    if value != amount:
        raise OutputValueMismatchError(amount, value, output_index)


def assert_covenant_will_pass(
    tx: Transaction,
    redeem_script: bytes,
    public_key: bytes,
    amount: int,
    output_index: int = 0,
) -> None:
    """Both pre-broadcast checks at once."""
    check_guard(redeem_script, public_key)
    check_output_value(tx, amount, output_index)


@dataclass
class FeeInput:
    """Additional P2PKH input signed together with the covenant input."""
    input_index: int
    keypair: KeyPair
    utxo: Utxo


class CovenantSpend:
    """
    One attempt to spend a covenant output.

    Each step may only run from the state before it; a failed check
    moves the attempt to FAILED and re-raises.
    """

    def __init__(
        self,
        tx: Transaction,
        input_index: int,
        utxo: Utxo,
        redeem_script: bytes,
        keypair: KeyPair,
        amount: int,
        output_index: int = 0,
        fee_inputs: Optional[List[FeeInput]] = None,
    ):
        self.tx = tx
        self.input_index = input_index
        self.utxo = utxo
        self.redeem_script = redeem_script
        self.keypair = keypair
        self.amount = amount
        self.output_index = output_index
        self.fee_inputs = fee_inputs or []
        self.state = SpendState.BUILT
        self.txid: Optional[str] = None

    def _advance(self, target: SpendState) -> None:
        if _NEXT.get(self.state) is not target:
            raise InvalidStateTransitionError(self.state.name, target.name)

    def _fail(self, error: CTPError) -> None:
        logger.error(f"Covenant spend failed in {self.state.name}: {error}")
        self.state = SpendState.FAILED

    def verify_guard(self) -> None:
        self._advance(SpendState.GUARD_VERIFIED)
        try:
            check_guard(self.redeem_script, self.keypair.public_key)
        except CTPError as e:
            self._fail(e)
            raise
        self.state = SpendState.GUARD_VERIFIED

    def verify_value(self) -> None:
        self._advance(SpendState.VALUE_VERIFIED)
        try:
            check_output_value(self.tx, self.amount, self.output_index)
        except CTPError as e:
            self._fail(e)
            raise
        self.state = SpendState.VALUE_VERIFIED

    def sign(self) -> None:
        self._advance(SpendState.SIGNED)
        try:
            sign_covenant_input(
                self.tx,
                self.input_index,
                self.keypair,
                self.redeem_script,
                self.utxo.value,
                self.amount,
                self.utxo.token_prefix,
            )
            for fee in self.fee_inputs:
                sign_p2pkh_input(self.tx, fee.input_index, fee.keypair, fee.utxo)
        except CTPError as e:
            self._fail(e)
            raise
        self.state = SpendState.SIGNED

    def broadcast(self, chain: ChainInterface) -> str:
        self._advance(SpendState.BROADCAST)
        self.txid = chain.broadcast(self.tx.serialize())
        self.state = SpendState.BROADCAST
        logger.info(f"Covenant spend broadcast: {self.txid}")
        return self.txid

    def run(self, chain: ChainInterface) -> str:
        """All four steps in order."""
        self.verify_guard()
        self.verify_value()
        self.sign()
        return self.broadcast(chain)
