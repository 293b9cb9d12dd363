"""
CTP Protocol Constants

All protocol constants defined here for single source of truth.
"""

from typing import Final

# ==============================================================================
# ENCODING
# ==============================================================================

LITTLE_ENDIAN: Final[str] = "little"
BIG_ENDIAN: Final[str] = "big"

HASH_SIZE: Final[int] = 32                      # sha256 / hash256 output
HASH160_SIZE: Final[int] = 20                   # ripemd160(sha256(x))
SCALAR_SIZE: Final[int] = 32
PUBLIC_KEY_SIZE: Final[int] = 33                # compressed SEC1 point
SCHNORR_SIGNATURE_SIZE: Final[int] = 64
TXID_SIZE: Final[int] = 32

MAX_U32: Final[int] = 0xFFFFFFFF
MAX_U64: Final[int] = 0xFFFFFFFFFFFFFFFF

# ==============================================================================
# PEDERSEN GENERATORS
# ==============================================================================

GENERATOR_H_TAG: Final[bytes] = b"BCH-CT/H"
ASSET_GENERATOR_TAG: Final[bytes] = b"BCH-CT/ASSET"
HASH_TO_POINT_MAX_TRIES: Final[int] = 256

# ==============================================================================
# RPA DERIVATION
# ==============================================================================

RPA_LABEL_SESSION: Final[bytes] = b"bch-rpa/session"
RPA_LABEL_AMOUNT: Final[bytes] = b"bch-rpa/amount"
RPA_LABEL_MEMO: Final[bytes] = b"bch-rpa/memo"
RPA_LABEL_ZK_SEED: Final[bytes] = b"bch-rpa/zk-seed"
RPA_LABEL_CHILD: Final[bytes] = b"bch-rpa/child"

RPA_MODE_STEALTH_P2PKH: Final[int] = 1
RPA_MODE_PQ_VAULT: Final[int] = 2
RPA_MODE_CONF_ASSET: Final[int] = 3
RPA_MODES: Final[tuple] = (
    RPA_MODE_STEALTH_P2PKH,
    RPA_MODE_PQ_VAULT,
    RPA_MODE_CONF_ASSET,
)

# ==============================================================================
# AMOUNT ENCRYPTION / EPHEMERAL KEYS
# ==============================================================================

KDF_LABEL_ENCRYPT: Final[bytes] = b"BCH-CT enc"
KDF_LABEL_BLIND: Final[bytes] = b"BCH-CT blind"
KDF_LABEL_NONCE: Final[bytes] = b"BCH-CT nonce"
AMOUNT_NONCE_SIZE: Final[int] = 12
AMOUNT_TAG_SIZE: Final[int] = 16

# ==============================================================================
# SIGMA64 RANGE PROOF
# ==============================================================================

RANGE_BITS: Final[int] = 64
PURPOSE_BLINDING: Final[int] = 0
PURPOSE_REAL_NONCE: Final[int] = 1
PURPOSE_SIM_CHALLENGE: Final[int] = 2
PURPOSE_SIM_RESPONSE: Final[int] = 3

BIT_PROOF_SIZE: Final[int] = 2 * PUBLIC_KEY_SIZE + 4 * SCALAR_SIZE       # 194
PROOF_SIZE: Final[int] = (
    PUBLIC_KEY_SIZE
    + RANGE_BITS * PUBLIC_KEY_SIZE
    + RANGE_BITS * BIT_PROOF_SIZE
)

# ==============================================================================
# AMOUNT ENVELOPE
# ==============================================================================

ENVELOPE_MAGIC: Final[bytes] = b"CTv1"
PROTOCOL_TAG: Final[str] = "BCH-CT/Sigma64-v1"

# ==============================================================================
# SCRIPT / TRANSACTIONS
# ==============================================================================

SIGHASH_ALL: Final[int] = 0x01
SIGHASH_FORKID: Final[int] = 0x40
SIGHASH_ALL_FORKID: Final[int] = SIGHASH_ALL | SIGHASH_FORKID

SCHNORR_NONCE_EXTRA: Final[bytes] = b"Schnorr+SHA256  "

TX_VERSION: Final[int] = 2
DEFAULT_SEQUENCE: Final[int] = 0xFFFFFFFF
DEFAULT_LOCKTIME: Final[int] = 0

DUST_LIMIT: Final[int] = 546                    # satoshis
DEFAULT_FEE_RATE: Final[float] = 1.0            # satoshis per byte

# CashTokens output prefix
TOKEN_PREFIX: Final[int] = 0xEF
TOKEN_CATEGORY_SIZE: Final[int] = 32
TOKEN_BIT_RESERVED: Final[int] = 0x80
TOKEN_BIT_HAS_COMMITMENT: Final[int] = 0x40
TOKEN_BIT_HAS_NFT: Final[int] = 0x20
TOKEN_BIT_HAS_AMOUNT: Final[int] = 0x10
TOKEN_CAPABILITY_MASK: Final[int] = 0x0F
TOKEN_MAX_COMMITMENT: Final[int] = 40

# ==============================================================================
# PROPRIETARY RPA METADATA
# ==============================================================================

PSBT_PROPRIETARY_TYPE: Final[int] = 0xFC
PSBT_RPA_PREFIX: Final[bytes] = b"bch-rpa-v0"
PSBT_RPA_CONTEXT: Final[int] = 0x01
PSBT_RPA_PROOF_HASH: Final[int] = 0x02
PSBT_RPA_ZK_SEED: Final[int] = 0x03
RPA_CONTEXT_VERSION: Final[int] = 0x01
RPA_CONTEXT_SIZE: Final[int] = 77
