"""
RingCT wallet operations: addressing, rings, building, planning and scanning.
"""

from ringct.wallet.stealth import (
    Wallet,
    create_wallet,
    restore_wallet,
    encode_stealth_address,
    decode_stealth_address,
    validate_address,
    is_valid_stealth_address,
    address_from_keys,
)
from ringct.wallet.decoys import Ring, build_rings
from ringct.wallet.scanner import ScannedOutput, scan_output, scan_transaction, scan_block
from ringct.wallet.watchonly import (
    WatchOnlyTx,
    parse_watch_only_transactions,
    parse_watch_only_transactions_ct,
)
from ringct.wallet.balance import (
    BalanceOptions,
    BalanceResult,
    get_balance,
    get_balance_ct,
    format_amount,
    to_coins,
    from_coins,
)
from ringct.wallet.planner import (
    select_coins,
    estimate_fee,
    analyze_utxos,
    get_wallet_health,
    plan_multi_transaction,
    plan_consolidation,
)
from ringct.wallet.builder import TransactionBuilder, BuildTransactionResult
from ringct.wallet.ct import send_stealth_to_ringct
from ringct.wallet.engine import WalletEngine, SendResult, ConsolidationResult

__all__ = [
    # Addresses
    "Wallet",
    "create_wallet",
    "restore_wallet",
    "encode_stealth_address",
    "decode_stealth_address",
    "validate_address",
    "is_valid_stealth_address",
    "address_from_keys",
    # Rings
    "Ring",
    "build_rings",
    # Scanning
    "ScannedOutput",
    "scan_output",
    "scan_transaction",
    "scan_block",
    "WatchOnlyTx",
    "parse_watch_only_transactions",
    "parse_watch_only_transactions_ct",
    # Balance
    "BalanceOptions",
    "BalanceResult",
    "get_balance",
    "get_balance_ct",
    "format_amount",
    "to_coins",
    "from_coins",
    # Planning
    "select_coins",
    "estimate_fee",
    "analyze_utxos",
    "get_wallet_health",
    "plan_multi_transaction",
    "plan_consolidation",
    # Building
    "TransactionBuilder",
    "BuildTransactionResult",
    "send_stealth_to_ringct",
    "WalletEngine",
    "SendResult",
    "ConsolidationResult",
]
