"""
CTP Reusable Payment Addresses
"""

from ctp.rpa.derivation import (
    LockIntent,
    RpaContext,
    RpaSession,
    derive_lock_intent,
    derive_one_time_private_key,
    derive_receiver_session,
    derive_session_keys,
    recover_one_time_key,
)

__all__ = [
    "LockIntent",
    "RpaContext",
    "RpaSession",
    "derive_lock_intent",
    "derive_one_time_private_key",
    "derive_receiver_session",
    "derive_session_keys",
    "recover_one_time_key",
]
