"""
CTP Command Line Interface

Offline runs of the three flows against an in-memory chain:

    ctp --mode conf-asset      lock, unlock and sweep a hidden amount
    ctp --mode stealth         stealth P2PKH payment and recovery
    ctp --mode pq-vault        vault-mode derivation stub

--export-psbt adds the proprietary RPA metadata as JSON.
"""

from __future__ import annotations
import argparse
import json
import logging
import sys
from typing import List, Optional

from ctp import __version__
from ctp.chain.interface import MockChain
from ctp.config import CTPConfig, setup_logging
from ctp.constants import RPA_MODE_PQ_VAULT
from ctp.core.types import Outpoint
from ctp.crypto.hash import sha256
from ctp.errors import CTPError
from ctp.flow.transfer import (
    Party,
    pay_to_paycode,
    run_confidential_transfer,
    sweep_one_time_output,
)
from ctp.protocol.covenant import CovenantTemplate
from ctp.protocol.psbt import RpaMetadata, export_json
from ctp.rpa.derivation import derive_lock_intent

logger = logging.getLogger(__name__)

MODES = ("conf-asset", "stealth", "pq-vault")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ctp",
        description="Confidential transfer protocol (offline, in-memory chain)",
    )
    parser.add_argument("--mode", "-m", choices=MODES, default="conf-asset", help="Flow to run")
    parser.add_argument("--config", "-c", type=str, help="Path to config file")
    parser.add_argument("--amount", "-a", type=int, help="Amount in satoshis")
    parser.add_argument("--index", type=int, help="RPA index")
    parser.add_argument("--sender-seed", type=str, default="alice", help="Seed for the sender's keys")
    parser.add_argument("--receiver-seed", type=str, default="bob", help="Seed for the receiver's keys")
    parser.add_argument("--export-psbt", action="store_true", help="Print RPA metadata as JSON")
    parser.add_argument("--log-level", type=str, help="Log level")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def load_config(args: argparse.Namespace) -> CTPConfig:
    config = CTPConfig.load(args.config) if args.config else CTPConfig()
    config.apply_env()
    if args.log_level:
        config.log.level = args.log_level
    if args.amount is not None:
        config.transfer.send_amount = args.amount
    if args.index is not None:
        config.transfer.rpa_index = args.index
    return config


def run_conf_asset(config: CTPConfig, sender: Party, receiver: Party, export_psbt: bool) -> dict:
    chain = MockChain(fee_rate=config.network.fee_rate, dust_limit=config.network.dust_limit)
    template = (
        CovenantTemplate.from_artifact(config.covenant.template_path)
        if config.covenant.template_path
        else CovenantTemplate.default()
    )
    transfer = config.transfer
    sender_utxo = chain.fund(sender.locking_script, transfer.funding_value)
    fee_utxo = chain.fund(receiver.locking_script, transfer.fee_budget)

    report = run_confidential_transfer(
        sender, receiver, sender_utxo, fee_utxo, transfer.send_amount, chain, template, transfer.rpa_index
    )
    lock = report.lock
    result = {
        "mode": "conf-asset",
        "amount": report.unlock.amount,
        "lock_txid": lock.txid,
        "unlock_txid": report.unlock.txid,
        "sweep_txid": report.sweep.txid,
        "guard_hash": lock.covenant.guard_hash.hex(),
        "proof_hash": lock.amount_envelope.proof_hash.hex(),
        "core_hash": lock.amount_envelope.core_hash.hex(),
        "commitment": lock.amount_envelope.commitment.hex(),
        "envelope_size": len(lock.amount_envelope.envelope),
        "swept_value": report.sweep.value,
    }
    if export_psbt:
        result["psbt"] = json.loads(export_json([
            (0, RpaMetadata(lock.intent.context, lock.amount_envelope.proof_hash, lock.intent.session.zk_seed)),
            (0, RpaMetadata(report.unlock.return_intent.context)),
        ]))
    return result


def run_stealth(config: CTPConfig, sender: Party, receiver: Party, export_psbt: bool) -> dict:
    chain = MockChain(fee_rate=config.network.fee_rate, dust_limit=config.network.dust_limit)
    transfer = config.transfer
    funding = chain.fund(sender.locking_script, transfer.funding_value)

    txid, intent = pay_to_paycode(
        sender, receiver.paycode, funding, transfer.send_amount, chain, transfer.rpa_index
    )
    sweep = sweep_one_time_output(receiver, txid, chain, transfer.rpa_index, source_input=0)
    result = {
        "mode": "stealth",
        "payment_txid": txid,
        "one_time_hash": intent.child_hash.hex(),
        "sweep_txid": sweep.txid,
        "swept_value": sweep.value,
    }
    if export_psbt:
        result["psbt"] = json.loads(export_json([(0, RpaMetadata(intent.context))]))
    return result


def run_pq_vault(config: CTPConfig, sender: Party, receiver: Party, export_psbt: bool) -> dict:
    """Derivation only; the vault spend path has no covenant template yet."""
    outpoint = Outpoint(sha256(b"pq-vault-demo").hex(), 0)
    intent = derive_lock_intent(
        sender.wallet.private_key,
        receiver.paycode,
        outpoint,
        config.transfer.rpa_index,
        RPA_MODE_PQ_VAULT,
    )
    result = {
        "mode": "pq-vault",
        "outpoint": str(outpoint),
        "one_time_hash": intent.child_hash.hex(),
        "one_time_public_key": intent.child_public_key.hex(),
    }
    if export_psbt:
        result["psbt"] = json.loads(export_json([(0, RpaMetadata(intent.context, None, intent.session.zk_seed))]))
    return result


RUNNERS = {
    "conf-asset": run_conf_asset,
    "stealth": run_stealth,
    "pq-vault": run_pq_vault,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args)
    except (OSError, ValueError) as e:
        print(json.dumps({"error": f"cannot load configuration: {e}"}), file=sys.stderr)
        return 1

    setup_logging(config.log)
    problems = config.validate()
    if problems:
        for problem in problems:
            logger.error(f"Config: {problem}")
        return 1

    sender = Party.from_seed("sender", args.sender_seed.encode())
    receiver = Party.from_seed("receiver", args.receiver_seed.encode())
    logger.info(f"Running {args.mode} flow")

    try:
        result = RUNNERS[args.mode](config, sender, receiver, args.export_psbt)
    except CTPError as e:
        logger.error(f"Transfer aborted: {e}")
        print(json.dumps({"error": e.to_dict()}, indent=2), file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
