"""
CTP Chain Interface

Boundary to the blockchain. The protocol needs four calls: find UTXOs,
read the fee rate, broadcast, and fetch a transaction with its exact
output scripts. Anything that honours ChainInterface will do. The dust
limit defaults to the relay policy constant.

MockChain is an in-memory ledger for tests and offline runs. It
checks what a node would check for the two script shapes this
package produces.
"""

from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from ctp.constants import DEFAULT_FEE_RATE, DUST_LIMIT
from ctp.core.types import Outpoint, Utxo
from ctp.crypto.hash import hash160, sha256
from ctp.errors import (
    InsufficientFundsError,
    MalformedInputError,
    TransactionNotFoundError,
    TransactionRejectedError,
    UtxoNotFoundError,
)
from ctp.protocol.covenant import parse_covenant_header
from ctp.protocol.script import (
    decode_script_number,
    is_p2pkh,
    is_p2sh,
    push_only_items,
    script_hash,
)
from ctp.protocol.sighash import verify_input_signature
from ctp.protocol.token import TokenData
from ctp.protocol.transaction import Transaction, TxInput, TxOutput

logger = logging.getLogger(__name__)


class ChainInterface(ABC):
    """Chain collaborator."""

    @abstractmethod
    def get_utxos(self, locking_script: bytes) -> List[Utxo]:
        """Unspent outputs paying to locking_script (token prefix excluded)."""

    @abstractmethod
    def get_fee_rate(self) -> float:
        """Fee rate in satoshis per byte."""

    @abstractmethod
    def broadcast(self, raw_tx: bytes) -> str:
        """Submit a transaction, return its txid."""

    @abstractmethod
    def get_transaction(self, txid: str) -> Transaction:
        """Fetch a transaction with outputs exactly as committed."""

    def get_dust_limit(self) -> int:
        """Smallest output value the network relays."""
        return DUST_LIMIT

    def get_utxo(self, locking_script: bytes) -> Utxo:
        """Largest UTXO for a script."""
        utxos = self.get_utxos(locking_script)
        if not utxos:
            raise InsufficientFundsError(0, 1)
        return max(utxos, key=lambda u: u.value)


def utxo_from_output(txid: str, vout: int, output: TxOutput) -> Utxo:
    return Utxo(
        txid=txid,
        vout=vout,
        value=output.value,
        locking_script=output.locking_script,
        token_prefix=output.token_prefix,
    )


class MockChain(ChainInterface):
    """
    In-memory chain for testing.

    Simulates a UTXO set without network access.
    """

    def __init__(
        self,
        fee_rate: float = DEFAULT_FEE_RATE,
        verify_scripts: bool = True,
        dust_limit: int = DUST_LIMIT,
    ):
        self.fee_rate = fee_rate
        self.dust_limit = dust_limit
        self.verify_scripts = verify_scripts
        self._transactions: Dict[str, Transaction] = {}
        self._unspent: Dict[Outpoint, TxOutput] = {}
        self._funding_counter = 0

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def fund(self, locking_script: bytes, value: int, token: Optional[TokenData] = None) -> Utxo:
        """Create an output out of thin air, as a coinbase would."""
        self._funding_counter += 1
        source = Outpoint(sha256(b"MOCK_FUNDING:" + self._funding_counter.to_bytes(8, "big")).hex(), 0)
        tx = Transaction(
            inputs=[TxInput(source, b"")],
            outputs=[TxOutput(value, locking_script, token)],
        )
        self._record(tx)
        logger.debug(f"Mock funding {value} sat in {tx.txid}")
        return utxo_from_output(tx.txid, 0, tx.outputs[0])

    def is_unspent(self, outpoint: Outpoint) -> bool:
        return outpoint in self._unspent

    # ------------------------------------------------------------------
    # ChainInterface
    # ------------------------------------------------------------------

    def get_utxos(self, locking_script: bytes) -> List[Utxo]:
        return [
            utxo_from_output(op.txid, op.vout, out)
            for op, out in self._unspent.items()
            if out.locking_script == locking_script
        ]

    def get_fee_rate(self) -> float:
        return self.fee_rate

    def get_dust_limit(self) -> int:
        return self.dust_limit

    def get_transaction(self, txid: str) -> Transaction:
        tx = self._transactions.get(txid)
        if tx is None:
            raise TransactionNotFoundError(txid)
        return Transaction.deserialize(tx.serialize())

    def broadcast(self, raw_tx: bytes) -> str:
        try:
            tx = Transaction.deserialize(raw_tx)
        except MalformedInputError as e:
            raise TransactionRejectedError(f"unparseable transaction: {e.message}") from e

        txid = tx.txid
        if txid in self._transactions:
            raise TransactionRejectedError("duplicate transaction", txid)

        spent_total = 0
        spent: List[TxOutput] = []
        for index, tx_in in enumerate(tx.inputs):
            prev = self._unspent.get(tx_in.outpoint)
            if prev is None:
                raise UtxoNotFoundError(tx_in.outpoint.txid, tx_in.outpoint.vout)
            if self.verify_scripts:
                self._verify_input(tx, index, prev)
            spent_total += prev.value
            spent.append(prev)
        self._verify_token_categories(tx, spent)

        if tx.output_total() > spent_total:
            raise TransactionRejectedError(
                f"outputs {tx.output_total()} exceed inputs {spent_total}", txid
            )

        for tx_in in tx.inputs:
            del self._unspent[tx_in.outpoint]
        self._record(tx)
        logger.info(f"Mock broadcast accepted {txid} (fee {spent_total - tx.output_total()} sat)")
        return txid

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _record(self, tx: Transaction) -> None:
        txid = tx.txid
        self._transactions[txid] = tx
        for vout, out in enumerate(tx.outputs):
            self._unspent[Outpoint(txid, vout)] = out

    def _reject(self, tx: Transaction, index: int, reason: str) -> TransactionRejectedError:
        logger.warning(f"Mock chain rejects input {index} of {tx.txid}: {reason}")
        return TransactionRejectedError(f"input {index}: {reason}", tx.txid)

    def _verify_token_categories(self, tx: Transaction, spent: List[TxOutput]) -> None:
        """Output categories must be carried in, or minted from an input spending vout 0."""
        allowed = {prev.token.category for prev in spent if prev.token}
        allowed.update(
            TokenData.category_from_txid(tx_in.outpoint.txid)
            for tx_in in tx.inputs
            if tx_in.outpoint.vout == 0
        )
        for vout, out in enumerate(tx.outputs):
            if out.token and out.token.category not in allowed:
                logger.warning(f"Mock chain rejects output {vout} of {tx.txid}: unknown token category")
                raise TransactionRejectedError(
                    f"output {vout}: token category {out.token.category.hex()} has no genesis input",
                    tx.txid,
                )

    def _verify_input(self, tx: Transaction, index: int, prev: TxOutput) -> None:
        try:
            items = push_only_items(tx.inputs[index].script_sig)
        except MalformedInputError as e:
            raise self._reject(tx, index, e.message) from e

        if is_p2pkh(prev.locking_script):
            self._verify_p2pkh(tx, index, prev, items)
        elif is_p2sh(prev.locking_script):
            self._verify_covenant(tx, index, prev, items)
        else:
            raise self._reject(tx, index, "unsupported locking script")

    def _verify_p2pkh(self, tx: Transaction, index: int, prev: TxOutput, items: List[bytes]) -> None:
        if len(items) != 2:
            raise self._reject(tx, index, "P2PKH unlock needs <sig> <pubkey>")
        signature, public_key = items
        if hash160(public_key) != script_hash(prev.locking_script):
            raise self._reject(tx, index, "public key does not match P2PKH hash")
        if not verify_input_signature(
            tx, index, signature, public_key, prev.locking_script, prev.value, prev.token_prefix
        ):
            raise self._reject(tx, index, "bad signature")

    def _verify_covenant(self, tx: Transaction, index: int, prev: TxOutput, items: List[bytes]) -> None:
        if len(items) != 4:
            raise self._reject(tx, index, "covenant unlock needs <amount> <sig> <pubkey> <redeem>")
        amount_bytes, signature, public_key, redeem = items
        if hash160(redeem) != script_hash(prev.locking_script):
            raise self._reject(tx, index, "redeem script does not match P2SH hash")
        try:
            header = parse_covenant_header(redeem)
            amount = decode_script_number(amount_bytes)
        except MalformedInputError as e:
            raise self._reject(tx, index, e.message) from e

        if hash160(public_key) != header.guard_hash:
            raise self._reject(tx, index, "unlocking key does not match guard")
        designated = tx.outputs[0]
        if not is_p2pkh(designated.locking_script):
            raise self._reject(tx, index, "designated output is not P2PKH")
        if designated.value != amount:
            raise self._reject(tx, index, "designated output value differs from asserted amount")
        prev_category = prev.token.category if prev.token else None
        out_category = designated.token.category if designated.token else None
        if prev_category != out_category:
            raise self._reject(tx, index, "token category not carried to designated output")
        if not verify_input_signature(
            tx, index, signature, public_key, redeem, prev.value, prev.token_prefix
        ):
            raise self._reject(tx, index, "bad signature")
