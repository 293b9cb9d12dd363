"""
Confidential Transfer Protocol (CTP)
Reusable payment addresses, Sigma64 range proofs and covenant spends

Application-layer confidential asset transfers over an unmodified
UTXO scripting system.
"""

__version__ = "1.0.0"
__author__ = "CTP Protocol"

from ctp.constants import PROTOCOL_TAG, RANGE_BITS, ENVELOPE_MAGIC

__all__ = [
    "PROTOCOL_TAG",
    "RANGE_BITS",
    "ENVELOPE_MAGIC",
    "__version__",
]
