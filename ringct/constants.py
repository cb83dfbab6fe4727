"""
RingCT Wallet Engine Constants

All protocol and wallet constants defined here for single source of truth.
Multi-byte wire integers are LITTLE-ENDIAN unless noted.
"""

from enum import IntEnum
from typing import Final

# ==============================================================================
# ENCODING
# ==============================================================================

LITTLE_ENDIAN: Final[str] = "little"
BIG_ENDIAN: Final[str] = "big"

# ==============================================================================
# CRYPTOGRAPHIC SIZES
# ==============================================================================

SECRET_KEY_SIZE: Final[int] = 32
PUBLIC_KEY_SIZE: Final[int] = 33         # Compressed secp256k1 point
COMMITMENT_SIZE: Final[int] = 33         # Pedersen commitment (compressed point)
KEY_IMAGE_SIZE: Final[int] = 33
HASH_SIZE: Final[int] = 32
HASH160_SIZE: Final[int] = 20
BLIND_SIZE: Final[int] = 32

# secp256k1 group order
CURVE_ORDER: Final[int] = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

# ==============================================================================
# TRANSACTION FORMAT
# ==============================================================================

TX_VERSION: Final[int] = 2
ANON_MARKER: Final[int] = 0xFFFFFFA0     # prevout.n of anonymous inputs
SEQUENCE_FINAL: Final[int] = 0xFFFFFFFF
SEQUENCE_RBF: Final[int] = 0xFFFFFFFE
SIGHASH_ALL: Final[int] = 0x01


class TransactionType(IntEnum):
    """Transaction type (high byte of the version field)."""
    STANDARD = 0
    COINBASE = 1
    COINSTAKE = 2


class OutputType(IntEnum):
    """Output type tag written before each output payload."""
    NULL = 0
    STANDARD = 1
    CT = 2
    RINGCT = 3
    DATA = 4


class DataOutputType(IntEnum):
    """First byte of a DATA output payload."""
    NARR_PLAIN = 1
    NARR_CRYPT = 2
    STEALTH = 3
    STEALTH_PREFIX = 4
    VOTE = 5
    FEE = 6
    DEV_FUND_CFWD = 7
    FUND_MSG = 8


# ==============================================================================
# RING SIGNATURES
# ==============================================================================

MIN_RING_SIZE: Final[int] = 3
MAX_RING_SIZE: Final[int] = 32
DEFAULT_RING_SIZE: Final[int] = 11
MAX_ANON_INPUTS: Final[int] = 32
MLSAG_ROWS: Final[int] = 2               # [pubkey, commitment difference]
MAX_DECOY_INDEX: Final[int] = (1 << 63) - 1

# ==============================================================================
# AMOUNTS & FEES
# ==============================================================================

COIN: Final[int] = 100_000_000
MAX_MONEY: Final[int] = 300_000_000 * COIN
DUST_THRESHOLD: Final[int] = 1000
DEFAULT_FEE_PER_KB: Final[int] = 10_000
CONSOLIDATION_THRESHOLD: Final[int] = 10

# Linear size model (bytes)
TX_BASE_SIZE: Final[int] = 100
INPUT_OVERHEAD_SIZE: Final[int] = 100
OUTPUT_SELECTION_SIZE: Final[int] = 33 + 73 + 50
OUTPUT_ESTIMATE_SIZE: Final[int] = 156
SELECTION_OUTPUT_COUNT: Final[int] = 2   # recipient + change

# CT -> RingCT size model
CT_INPUT_SIZE: Final[int] = 150
CT_OUTPUT_SIZE: Final[int] = 5500
CT_BASE_SIZE: Final[int] = 10

# ==============================================================================
# RANGE PROOFS
# ==============================================================================

RANGE_PROOF_DEFAULT_MIN_BITS: Final[int] = 32
RANGE_PROOF_MAX_EXPONENT: Final[int] = 18
RANGE_PROOF_MAX_BITS: Final[int] = 64

# ==============================================================================
# STEALTH ADDRESSES
# ==============================================================================

STEALTH_ADDRESS_HRP: Final[str] = "sv"
STEALTH_ADDRESS_MAX_LENGTH: Final[int] = 122
STEALTH_PREFIX_BITFIELD_SIZE: Final[int] = 4

# ==============================================================================
# WATCH-ONLY SCANNING
# ==============================================================================

WATCH_ONLY_PAGE_SIZE: Final[int] = 1000
DEFAULT_KEY_IMAGE_BATCH_SIZE: Final[int] = 1000
MAX_KEY_IMAGE_BATCH_SIZE: Final[int] = 10_000

# ==============================================================================
# RPC
# ==============================================================================

DEFAULT_NODE_URL: Final[str] = "https://api.veil.zelcore.io"
DEFAULT_RPC_TIMEOUT_SEC: Final[float] = 30.0
