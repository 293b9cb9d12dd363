"""
CTP Protocol Layer
Scripts, tokens, transactions, covenants and signing
"""

from ctp.protocol.covenant import (
    Covenant,
    CovenantTemplate,
    build_covenant,
    extract_guard_hash,
)
from ctp.protocol.token import Capability, TokenData
from ctp.protocol.transaction import Transaction, TxInput, TxOutput

__all__ = [
    "Covenant",
    "CovenantTemplate",
    "build_covenant",
    "extract_guard_hash",
    "Capability",
    "TokenData",
    "Transaction",
    "TxInput",
    "TxOutput",
]
