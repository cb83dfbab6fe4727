"""
RingCT Wallet Engine

Client-side construction, signing, serialization and watch-only scanning
of confidential (RingCT) transactions for Veil-style UTXO ledgers.

Amounts hidden by Pedersen commitments, senders hidden by MLSAG rings.
"""

__version__ = "0.4.0"
__author__ = "RingCT Wallet Team"

from ringct.constants import (
    TX_VERSION,
    DEFAULT_RING_SIZE,
    MIN_RING_SIZE,
    MAX_RING_SIZE,
    MAX_ANON_INPUTS,
    COIN,
)

__all__ = [
    "TX_VERSION",
    "DEFAULT_RING_SIZE",
    "MIN_RING_SIZE",
    "MAX_RING_SIZE",
    "MAX_ANON_INPUTS",
    "COIN",
    "__version__",
]
