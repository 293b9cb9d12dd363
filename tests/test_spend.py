"""
CTP Covenant Spend and Mock Chain Tests
"""

import pytest

from ctp.chain.interface import MockChain, utxo_from_output
from ctp.core.types import KeyPair, Outpoint, Utxo
from ctp.errors import (
    ErrorCategory,
    GuardHashMismatchError,
    InsufficientFundsError,
    InvalidStateTransitionError,
    OutputValueMismatchError,
    TransactionNotFoundError,
    TransactionRejectedError,
    UtxoNotFoundError,
)
from ctp.flow.spend import (
    CovenantSpend,
    FeeInput,
    SpendState,
    assert_covenant_will_pass,
)
from ctp.protocol.covenant import build_covenant
from ctp.protocol.script import p2pkh_script
from ctp.protocol.sighash import sign_p2pkh_input
from ctp.protocol.token import Capability, TokenData
from ctp.protocol.transaction import Transaction, TxInput, TxOutput


AMOUNT = 100_000
CATEGORY = bytes([0x77] * 32)


@pytest.fixture
def guard_key() -> KeyPair:
    return KeyPair(bytes([0x61] * 32))


@pytest.fixture
def destination() -> bytes:
    return p2pkh_script(KeyPair(bytes([0x62] * 32)).pubkey_hash)


@pytest.fixture
def funded(mock_chain, guard_key, template):
    """Covenant output holding AMOUNT + 2000 with a commitment NFT."""
    covenant = build_covenant(guard_key.public_key, bytes([0x0F] * 32), template)
    token = TokenData(CATEGORY, nft=True, capability=Capability.MUTABLE, commitment=b"\x02" * 33)
    utxo = mock_chain.fund(covenant.locking_script, AMOUNT + 2_000, token)
    return covenant, utxo, token


def _spend_tx(utxo: Utxo, destination: bytes, token, value: int = AMOUNT) -> Transaction:
    return Transaction(
        inputs=[TxInput(utxo.outpoint)],
        outputs=[TxOutput(value, destination, token)],
    )


# ==============================================================================
# State machine
# ==============================================================================

class TestCovenantSpend:
    """Tests for the spend state machine."""

    def test_full_run(self, mock_chain, funded, guard_key, destination):
        covenant, utxo, token = funded
        tx = _spend_tx(utxo, destination, token)
        spend = CovenantSpend(tx, 0, utxo, covenant.redeem_script, guard_key, AMOUNT)
        txid = spend.run(mock_chain)
        assert spend.state is SpendState.BROADCAST
        assert txid == spend.txid
        assert not mock_chain.is_unspent(utxo.outpoint)
        assert mock_chain.is_unspent(Outpoint(txid, 0))

    def test_step_by_step(self, mock_chain, funded, guard_key, destination):
        covenant, utxo, token = funded
        spend = CovenantSpend(_spend_tx(utxo, destination, token), 0, utxo,
                              covenant.redeem_script, guard_key, AMOUNT)
        assert spend.state is SpendState.BUILT
        spend.verify_guard()
        assert spend.state is SpendState.GUARD_VERIFIED
        spend.verify_value()
        assert spend.state is SpendState.VALUE_VERIFIED
        spend.sign()
        assert spend.state is SpendState.SIGNED
        spend.broadcast(mock_chain)
        assert spend.state is SpendState.BROADCAST

    def test_sign_before_checks(self, funded, guard_key, destination):
        covenant, utxo, token = funded
        spend = CovenantSpend(_spend_tx(utxo, destination, token), 0, utxo,
                              covenant.redeem_script, guard_key, AMOUNT)
        with pytest.raises(InvalidStateTransitionError):
            spend.sign()
        assert spend.state is SpendState.BUILT
        assert spend.tx.inputs[0].script_sig == b""

    def test_value_before_guard(self, funded, guard_key, destination):
        covenant, utxo, token = funded
        spend = CovenantSpend(_spend_tx(utxo, destination, token), 0, utxo,
                              covenant.redeem_script, guard_key, AMOUNT)
        with pytest.raises(InvalidStateTransitionError):
            spend.verify_value()

    def test_wrong_key_fails(self, funded, destination):
        covenant, utxo, token = funded
        intruder = KeyPair(bytes([0x66] * 32))
        spend = CovenantSpend(_spend_tx(utxo, destination, token), 0, utxo,
                              covenant.redeem_script, intruder, AMOUNT)
        with pytest.raises(GuardHashMismatchError) as exc:
            spend.verify_guard()
        assert exc.value.category is ErrorCategory.INVARIANT_FAILURE
        assert spend.state is SpendState.FAILED
        with pytest.raises(InvalidStateTransitionError):
            spend.verify_guard()

    def test_wrong_value_fails(self, funded, guard_key, destination):
        covenant, utxo, token = funded
        spend = CovenantSpend(_spend_tx(utxo, destination, token, AMOUNT - 1), 0, utxo,
                              covenant.redeem_script, guard_key, AMOUNT)
        spend.verify_guard()
        with pytest.raises(OutputValueMismatchError):
            spend.verify_value()
        assert spend.state is SpendState.FAILED
        assert spend.tx.inputs[0].script_sig == b""

    def test_assert_helper(self, funded, guard_key, destination):
        covenant, utxo, token = funded
        tx = _spend_tx(utxo, destination, token)
        assert_covenant_will_pass(tx, covenant.redeem_script, guard_key.public_key, AMOUNT)
        with pytest.raises(OutputValueMismatchError):
            assert_covenant_will_pass(tx, covenant.redeem_script, guard_key.public_key, AMOUNT, 1)

    def test_fee_input(self, mock_chain, funded, guard_key, destination):
        covenant, utxo, token = funded
        payer = KeyPair(bytes([0x63] * 32))
        fee_utxo = mock_chain.fund(p2pkh_script(payer.pubkey_hash), 5_000)
        tx = Transaction(
            inputs=[TxInput(utxo.outpoint), TxInput(fee_utxo.outpoint)],
            outputs=[TxOutput(AMOUNT, destination, token)],
        )
        spend = CovenantSpend(tx, 0, utxo, covenant.redeem_script, guard_key, AMOUNT,
                              fee_inputs=[FeeInput(1, payer, fee_utxo)])
        spend.run(mock_chain)
        assert not mock_chain.is_unspent(fee_utxo.outpoint)


# ==============================================================================
# Mock chain
# ==============================================================================

class TestMockChain:
    """The mock ledger enforces what a node would."""

    def test_fund_and_lookup(self, mock_chain):
        script = p2pkh_script(bytes(20))
        utxo = mock_chain.fund(script, 1234)
        assert mock_chain.get_utxos(script) == [utxo]
        assert mock_chain.get_utxo(script) == utxo
        assert mock_chain.get_transaction(utxo.txid).outputs[0].value == 1234

    def test_no_utxo(self, mock_chain):
        with pytest.raises(InsufficientFundsError):
            mock_chain.get_utxo(p2pkh_script(bytes(20)))

    def test_unknown_transaction(self, mock_chain):
        with pytest.raises(TransactionNotFoundError):
            mock_chain.get_transaction("00" * 32)

    def test_p2pkh_spend(self, mock_chain, destination):
        key = KeyPair(bytes([0x64] * 32))
        utxo = mock_chain.fund(p2pkh_script(key.pubkey_hash), 10_000)
        tx = Transaction([TxInput(utxo.outpoint)], [TxOutput(9_000, destination)])
        sign_p2pkh_input(tx, 0, key, utxo)
        mock_chain.broadcast(tx.serialize())
        double = Transaction([TxInput(utxo.outpoint)], [TxOutput(8_000, destination)])
        sign_p2pkh_input(double, 0, key, utxo)
        with pytest.raises(UtxoNotFoundError):
            mock_chain.broadcast(double.serialize())

    def test_unsigned_rejected(self, mock_chain, destination):
        utxo = mock_chain.fund(p2pkh_script(bytes(20)), 10_000)
        tx = Transaction([TxInput(utxo.outpoint)], [TxOutput(9_000, destination)])
        with pytest.raises(TransactionRejectedError):
            mock_chain.broadcast(tx.serialize())

    def test_overspend_rejected(self, mock_chain, destination):
        key = KeyPair(bytes([0x65] * 32))
        utxo = mock_chain.fund(p2pkh_script(key.pubkey_hash), 10_000)
        tx = Transaction([TxInput(utxo.outpoint)], [TxOutput(10_001, destination)])
        sign_p2pkh_input(tx, 0, key, utxo)
        with pytest.raises(TransactionRejectedError):
            mock_chain.broadcast(tx.serialize())

    def test_covenant_token_must_carry(self, mock_chain, funded, guard_key, destination):
        """Dropping the NFT from the designated output is rejected by the chain."""
        covenant, utxo, _ = funded
        spend = CovenantSpend(_spend_tx(utxo, destination, None), 0, utxo,
                              covenant.redeem_script, guard_key, AMOUNT)
        with pytest.raises(TransactionRejectedError):
            spend.run(mock_chain)
        assert mock_chain.is_unspent(utxo.outpoint)

    def test_garbage_rejected(self):
        with pytest.raises(TransactionRejectedError):
            MockChain().broadcast(b"\x00\x01")

    def test_genesis_from_output_zero(self, mock_chain, destination):
        key = KeyPair(bytes([0x66] * 32))
        utxo = mock_chain.fund(p2pkh_script(key.pubkey_hash), 10_000)
        token = TokenData(TokenData.category_from_txid(utxo.txid), nft=True)
        tx = Transaction([TxInput(utxo.outpoint)], [TxOutput(9_000, destination, token)])
        sign_p2pkh_input(tx, 0, key, utxo)
        txid = mock_chain.broadcast(tx.serialize())
        assert mock_chain.get_transaction(txid).outputs[0].token.category == token.category

    def test_unknown_category_rejected(self, mock_chain, destination):
        key = KeyPair(bytes([0x67] * 32))
        utxo = mock_chain.fund(p2pkh_script(key.pubkey_hash), 10_000)
        token = TokenData(CATEGORY, nft=True)
        tx = Transaction([TxInput(utxo.outpoint)], [TxOutput(9_000, destination, token)])
        sign_p2pkh_input(tx, 0, key, utxo)
        with pytest.raises(TransactionRejectedError):
            mock_chain.broadcast(tx.serialize())
        assert mock_chain.is_unspent(utxo.outpoint)

    def test_genesis_from_output_one_rejected(self, mock_chain, destination):
        """Only an input spending vout 0 can mint its transaction id as a category."""
        key = KeyPair(bytes([0x68] * 32))
        script = p2pkh_script(key.pubkey_hash)
        utxo = mock_chain.fund(script, 10_000)
        split = Transaction([TxInput(utxo.outpoint)], [TxOutput(4_000, destination), TxOutput(5_000, script)])
        sign_p2pkh_input(split, 0, key, utxo)
        split_txid = mock_chain.broadcast(split.serialize())
        change = utxo_from_output(split_txid, 1, split.outputs[1])

        token = TokenData(TokenData.category_from_txid(split_txid), nft=True)
        tx = Transaction([TxInput(change.outpoint)], [TxOutput(4_000, destination, token)])
        sign_p2pkh_input(tx, 0, key, change)
        with pytest.raises(TransactionRejectedError):
            mock_chain.broadcast(tx.serialize())
