"""
CTP Protocol Error Handling

All error codes and exception classes.

The thousands digit of every code names its category:
1xxx malformed input, 2xxx derivation mismatch, 3xxx proof/commitment
mismatch, 4xxx pre-broadcast invariant failure, 5xxx external I/O.
"""

from enum import Enum, IntEnum
from typing import Optional, Any


class ErrorCategory(Enum):
    """Error categories. Everything except EXTERNAL_IO is fatal."""

    MALFORMED_INPUT = 1
    DERIVATION_MISMATCH = 2
    PROOF_MISMATCH = 3
    INVARIANT_FAILURE = 4
    EXTERNAL_IO = 5


class ErrorCode(IntEnum):
    """Protocol error codes."""

    # 1xxx - Malformed input
    MALFORMED_INPUT = 1000
    INVALID_LENGTH = 1001
    INVALID_POINT = 1002
    INVALID_SCALAR = 1003
    INVALID_ENCODING = 1004
    VALUE_OUT_OF_RANGE = 1005
    INVALID_SCRIPT = 1006
    INVALID_MODE = 1007

    # 2xxx - Derivation mismatch
    DERIVATION_MISMATCH = 2001
    DEGENERATE_KEY = 2002

    # 3xxx - Proof / commitment mismatch
    PROOF_INVALID = 3001
    COMMITMENT_MISMATCH = 3002
    PROOF_HASH_MISMATCH = 3003
    REDEEM_SCRIPT_MISMATCH = 3004
    AMOUNT_DECRYPTION_FAILED = 3005

    # 4xxx - Pre-broadcast invariant failure
    GUARD_HASH_MISMATCH = 4001
    OUTPUT_VALUE_MISMATCH = 4002
    SIGNATURE_VERIFY_FAILED = 4003
    INVALID_STATE_TRANSITION = 4004

    # 5xxx - External I/O
    CHAIN_UNAVAILABLE = 5001
    INSUFFICIENT_FUNDS = 5002
    UTXO_NOT_FOUND = 5003
    TX_REJECTED = 5004
    TX_NOT_FOUND = 5005

    @property
    def category(self) -> ErrorCategory:
        return ErrorCategory(self.value // 1000)


class CTPError(Exception):
    """Base exception for all CTP protocol errors."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Any] = None
    ):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(f"[{code.value}] {message}")

    @property
    def category(self) -> ErrorCategory:
        return self.code.category

    @property
    def fatal(self) -> bool:
        """Fatal errors abort the whole transfer; external I/O is left to the caller."""
        return self.category is not ErrorCategory.EXTERNAL_IO

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict for CLI output."""
        result = {
            "code": self.code.value,
            "name": self.code.name,
            "category": self.category.name,
            "message": self.message,
        }
        if self.details is not None:
            result["details"] = self.details
        return result


# ==============================================================================
# Malformed Input (1xxx)
# ==============================================================================

class MalformedInputError(CTPError):
    def __init__(
        self,
        message: str,
        details: Any = None,
        code: ErrorCode = ErrorCode.MALFORMED_INPUT,
    ):
        super().__init__(code, message, details)


class InvalidLengthError(MalformedInputError):
    def __init__(self, what: str, expected: int, got: int):
        super().__init__(
            f"{what} must be {expected} bytes, got {got}",
            {"field": what, "expected": expected, "got": got},
            ErrorCode.INVALID_LENGTH,
        )


class InvalidPointError(MalformedInputError):
    def __init__(self, what: str, reason: str = "not a valid compressed secp256k1 point"):
        super().__init__(
            f"{what}: {reason}",
            {"field": what},
            ErrorCode.INVALID_POINT,
        )


class InvalidScalarError(MalformedInputError):
    def __init__(self, what: str, reason: str = "scalar out of range"):
        super().__init__(
            f"{what}: {reason}",
            {"field": what},
            ErrorCode.INVALID_SCALAR,
        )


class InvalidEncodingError(MalformedInputError):
    def __init__(self, message: str, details: Any = None):
        super().__init__(message, details, ErrorCode.INVALID_ENCODING)


class ValueOutOfRangeError(MalformedInputError):
    def __init__(self, what: str, value: int, maximum: int):
        super().__init__(
            f"{what} out of range: {value} (max {maximum})",
            {"field": what, "value": value, "max": maximum},
            ErrorCode.VALUE_OUT_OF_RANGE,
        )


class InvalidScriptError(MalformedInputError):
    def __init__(self, message: str, details: Any = None):
        super().__init__(message, details, ErrorCode.INVALID_SCRIPT)


class InvalidModeError(MalformedInputError):
    def __init__(self, mode: int):
        super().__init__(
            f"Unknown RPA mode: {mode}",
            {"mode": mode},
            ErrorCode.INVALID_MODE,
        )


# ==============================================================================
# Derivation Mismatch (2xxx)
# ==============================================================================

class DerivationMismatchError(CTPError):
    def __init__(self, expected: bytes, got: bytes, what: str = "one-time key hash"):
        super().__init__(
            ErrorCode.DERIVATION_MISMATCH,
            f"Derived {what} does not match expected value",
            {"expected": expected.hex(), "got": got.hex()}
        )


class DegenerateKeyError(CTPError):
    def __init__(self, what: str):
        super().__init__(
            ErrorCode.DEGENERATE_KEY,
            f"Derivation produced a degenerate {what}",
            {"field": what}
        )


# ==============================================================================
# Proof / Commitment Mismatch (3xxx)
# ==============================================================================

class ProofMismatchError(CTPError):
    def __init__(
        self,
        message: str,
        details: Any = None,
        code: ErrorCode = ErrorCode.PROOF_INVALID,
    ):
        super().__init__(code, message, details)


class CommitmentMismatchError(ProofMismatchError):
    def __init__(self, expected: bytes, got: bytes):
        super().__init__(
            "Regenerated commitment does not match committed value",
            {"expected": expected.hex(), "got": got.hex()},
            ErrorCode.COMMITMENT_MISMATCH,
        )


class ProofHashMismatchError(ProofMismatchError):
    def __init__(self, expected: bytes, got: bytes):
        super().__init__(
            "Regenerated proof hash does not match anchored value",
            {"expected": expected.hex(), "got": got.hex()},
            ErrorCode.PROOF_HASH_MISMATCH,
        )


class RedeemScriptMismatchError(ProofMismatchError):
    def __init__(self, expected: bytes, got: bytes):
        super().__init__(
            "Rebuilt covenant locking script does not match the funded output",
            {"expected": expected.hex(), "got": got.hex()},
            ErrorCode.REDEEM_SCRIPT_MISMATCH,
        )


class AmountDecryptionError(ProofMismatchError):
    def __init__(self, message: str = "Encrypted amount failed authentication"):
        super().__init__(message, None, ErrorCode.AMOUNT_DECRYPTION_FAILED)


# ==============================================================================
# Invariant Failure (4xxx)
# ==============================================================================

class InvariantViolationError(CTPError):
    def __init__(
        self,
        message: str,
        details: Any = None,
        code: ErrorCode = ErrorCode.INVALID_STATE_TRANSITION,
    ):
        super().__init__(code, message, details)


class GuardHashMismatchError(InvariantViolationError):
    def __init__(self, expected: bytes, got: bytes):
        super().__init__(
            "Unlocking public key does not hash to the covenant guard",
            {"expected": expected.hex(), "got": got.hex()},
            ErrorCode.GUARD_HASH_MISMATCH,
        )


class OutputValueMismatchError(InvariantViolationError):
    def __init__(self, expected: int, got: int, output_index: int = 0):
        super().__init__(
            f"Output {output_index} value {got} does not equal asserted amount {expected}",
            {"expected": expected, "got": got, "output_index": output_index},
            ErrorCode.OUTPUT_VALUE_MISMATCH,
        )


class SignatureVerifyError(InvariantViolationError):
    def __init__(self, input_index: int):
        super().__init__(
            f"Locally produced signature for input {input_index} does not verify",
            {"input_index": input_index},
            ErrorCode.SIGNATURE_VERIFY_FAILED,
        )


class InvalidStateTransitionError(InvariantViolationError):
    def __init__(self, current: str, attempted: str):
        super().__init__(
            f"Cannot move spend from {current} to {attempted}",
            {"current": current, "attempted": attempted},
            ErrorCode.INVALID_STATE_TRANSITION,
        )


# ==============================================================================
# External I/O (5xxx)
# ==============================================================================

class ChainError(CTPError):
    def __init__(
        self,
        message: str,
        details: Any = None,
        code: ErrorCode = ErrorCode.CHAIN_UNAVAILABLE,
    ):
        super().__init__(code, message, details)


class InsufficientFundsError(ChainError):
    def __init__(self, available: int, required: int):
        super().__init__(
            f"Insufficient funds: {available} < {required}",
            {"available": available, "required": required},
            ErrorCode.INSUFFICIENT_FUNDS,
        )


class UtxoNotFoundError(ChainError):
    def __init__(self, txid: str, vout: int):
        super().__init__(
            f"UTXO not found or already spent: {txid}:{vout}",
            {"txid": txid, "vout": vout},
            ErrorCode.UTXO_NOT_FOUND,
        )


class TransactionRejectedError(ChainError):
    def __init__(self, reason: str, txid: Optional[str] = None):
        super().__init__(
            f"Transaction rejected: {reason}",
            {"reason": reason, "txid": txid},
            ErrorCode.TX_REJECTED,
        )


class TransactionNotFoundError(ChainError):
    def __init__(self, txid: str):
        super().__init__(
            f"Transaction not found: {txid}",
            {"txid": txid},
            ErrorCode.TX_NOT_FOUND,
        )
