"""
CTP Transfer Flow
"""

from ctp.flow.spend import CovenantSpend, SpendState, assert_covenant_will_pass
from ctp.flow.transfer import (
    Party,
    lock_to_covenant,
    pay_to_paycode,
    run_confidential_transfer,
    sweep_one_time_output,
    unlock_from_covenant,
)

__all__ = [
    "CovenantSpend",
    "SpendState",
    "assert_covenant_will_pass",
    "Party",
    "lock_to_covenant",
    "pay_to_paycode",
    "run_confidential_transfer",
    "sweep_one_time_output",
    "unlock_from_covenant",
]
