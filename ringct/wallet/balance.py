"""
Balance Reconciler

Pages through the node's watch-only records for a scan key, keeps the
outputs this wallet owns and drops the ones whose key image the node
reports as spent.

Usage:
    async with RpcClient(config.rpc) as rpc:
        result = await get_balance(keys, rpc)
        print(format_amount(result.total_balance))
"""

import inspect
import logging
import re
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Set, Tuple, Union

from ringct.constants import (
    COIN,
    DEFAULT_KEY_IMAGE_BATCH_SIZE,
    MAX_KEY_IMAGE_BATCH_SIZE,
    SECRET_KEY_SIZE,
    WATCH_ONLY_PAGE_SIZE,
)
from ringct.core.types import UTXO, UTXOCT, KeyPair
from ringct.crypto.provider import CryptoProvider, get_crypto_provider
from ringct.errors import ErrorCode, InvalidAmountError, InvalidKeyError, RpcError, ValidationError
from ringct.wallet.scanner import get_total_balance
from ringct.wallet.watchonly import parse_watch_only_transactions, parse_watch_only_transactions_ct

logger = logging.getLogger(__name__)

KEY_IMAGE_HEX = re.compile(r"^[0-9a-fA-F]{66}$")

UtxoCallback = Callable[[List[UTXO]], Union[None, Awaitable[None]]]
UtxoCTCallback = Callable[[List[UTXOCT]], Union[None, Awaitable[None]]]

__all__ = [
    "BalanceOptions",
    "BalanceResult",
    "BalanceCTOptions",
    "BalanceCTResult",
    "get_balance",
    "get_balance_ct",
    "get_total_balance",
    "format_amount",
    "to_coins",
    "from_coins",
]


# ==============================================================================
# AMOUNTS
# ==============================================================================

def to_coins(satoshis: int) -> Decimal:
    return Decimal(satoshis) / COIN


def from_coins(coins: Union[int, str, Decimal, float]) -> int:
    """Whole coins to satoshis, truncating below one satoshi."""
    try:
        value = Decimal(str(coins))
    except InvalidOperation as e:
        raise InvalidAmountError(coins) from e
    if not value.is_finite():
        raise InvalidAmountError(coins)
    return int((value * COIN).to_integral_value(rounding=ROUND_DOWN))


def format_amount(satoshis: int, decimals: int = 8) -> str:
    return f"{to_coins(satoshis):.{decimals}f} VEIL"


# ==============================================================================
# RESULTS & OPTIONS
# ==============================================================================

@dataclass
class BalanceOptions:
    known_spent_key_images: Iterable[str] = ()
    start_index: int = 0
    key_image_batch_size: int = DEFAULT_KEY_IMAGE_BATCH_SIZE
    page_size: int = WATCH_ONLY_PAGE_SIZE
    on_utxo_discovered: Optional[UtxoCallback] = None


@dataclass(frozen=True, slots=True)
class BalanceResult:
    total_balance: int
    utxos: Tuple[UTXO, ...]
    last_processed_index: int
    spent_key_images: Tuple[str, ...]
    total_outputs_scanned: int
    owned_outputs_found: int


@dataclass
class BalanceCTOptions:
    known_spent_outpoints: Iterable[str] = ()
    start_index: int = 0
    page_size: int = WATCH_ONLY_PAGE_SIZE
    on_utxo_discovered: Optional[UtxoCTCallback] = None


@dataclass(frozen=True, slots=True)
class BalanceCTResult:
    total_balance: int
    utxos: Tuple[UTXOCT, ...]
    last_processed_index: int
    total_outputs_scanned: int
    owned_outputs_found: int


def _validate_options(keys: KeyPair, options: BalanceOptions) -> Set[str]:
    """
    Raises:
        ValidationError: bad start index, batch size or known key image
    """
    for name, secret in (("spend secret", keys.spend_secret), ("scan secret", keys.scan_secret)):
        if len(secret) != SECRET_KEY_SIZE:
            raise InvalidKeyError(name, f"must be {SECRET_KEY_SIZE} bytes")

    if isinstance(options.start_index, bool) or not isinstance(options.start_index, int) or options.start_index < 0:
        raise ValidationError(f"start_index must be a non-negative integer, got {options.start_index!r}")
    if not 1 <= options.key_image_batch_size <= MAX_KEY_IMAGE_BATCH_SIZE:
        raise ValidationError(
            f"key_image_batch_size must be between 1 and {MAX_KEY_IMAGE_BATCH_SIZE}, "
            f"got {options.key_image_batch_size}"
        )
    if options.page_size < 1:
        raise ValidationError(f"page_size must be positive, got {options.page_size}")
    if options.on_utxo_discovered is not None and not callable(options.on_utxo_discovered):
        raise ValidationError("on_utxo_discovered must be callable")

    known = set()
    for key_image in options.known_spent_key_images:
        if not isinstance(key_image, str) or not KEY_IMAGE_HEX.match(key_image):
            raise ValidationError(
                f"Invalid key image in known_spent_key_images: {key_image!r} (must be 66-char hex string)",
                ErrorCode.INVALID_KEY,
            )
        known.add(key_image.lower())
    return known


async def _notify(callback: Optional[Callable], utxos: List[Any]) -> None:
    if callback is None or not utxos:
        return
    result = callback(utxos)
    if inspect.isawaitable(result):
        await result


async def _fetch_page(rpc: Any, scan_secret_hex: str, index: int, kind: str) -> List[Any]:
    response = await rpc.getwatchonlytxes(scan_secret_hex, index)
    if response is None:
        return []
    if not isinstance(response, dict):
        raise RpcError("getwatchonlytxes: expected object response")
    items = response.get(kind) or []
    if not isinstance(items, list):
        raise RpcError(f"getwatchonlytxes: '{kind}' is not an array")
    return items


def _next_index(items: List[Any], page_start: int) -> int:
    """Offset after a page; records without dbindex count positionally."""
    last = items[-1]
    if isinstance(last, dict) and last.get("dbindex") is not None:
        return int(last["dbindex"]) + 1
    return page_start + len(items)


async def _check_key_images(
    rpc: Any,
    key_images: List[str],
    spent: Set[str],
    batch_size: int,
) -> None:
    """Add every key image the node reports spent (on chain or in mempool) to spent."""
    unknown = [ki for ki in key_images if ki not in spent]
    for start in range(0, len(unknown), batch_size):
        batch = unknown[start:start + batch_size]
        statuses = await rpc.checkkeyimages(batch)
        for status in statuses:
            if status.is_spent:
                spent.add(status.key_image.lower())
        logger.debug(f"Checked {len(batch)} key images")


# ==============================================================================
# RINGCT
# ==============================================================================

async def get_balance(
    keys: KeyPair,
    rpc: Any,
    options: Optional[BalanceOptions] = None,
    provider: Optional[CryptoProvider] = None,
) -> BalanceResult:
    """
    Unspent RingCT balance of keys.

    rpc needs getwatchonlytxes and checkkeyimages (RpcClient or compatible).
    Scanning stops at the first page shorter than page_size; resume later
    from last_processed_index with the returned spent_key_images.

    Raises:
        ValidationError: invalid options
        RpcError: node failure
    """
    options = options or BalanceOptions()
    provider = provider or get_crypto_provider()
    spent = _validate_options(keys, options)

    scan_hex = keys.scan_secret.hex()
    index = options.start_index
    last_processed = options.start_index
    unspent: List[UTXO] = []
    scanned_count = 0
    owned_count = 0

    while True:
        items = await _fetch_page(rpc, scan_hex, index, "anon")
        if not items:
            break
        scanned_count += len(items)

        metadata = [
            {"amount": i.get("amount"), "blind": i.get("blind"), "ringct_index": i.get("ringct_index")}
            if isinstance(i, dict) else {}
            for i in items
        ]
        owned = parse_watch_only_transactions(items, keys, metadata, provider)
        owned_count += len(owned)

        await _check_key_images(
            rpc,
            [u.key_image.hex() for u in owned if u.key_image is not None],
            spent,
            options.key_image_batch_size,
        )

        page_unspent = [
            u for u in owned
            if u.spendable and u.key_image is not None and u.key_image.hex() not in spent
        ]
        unspent.extend(page_unspent)
        await _notify(options.on_utxo_discovered, page_unspent)

        last_processed = _next_index(items, index)
        logger.debug(
            f"Watch-only page at {index}: {len(items)} records, {len(owned)} owned, "
            f"{len(page_unspent)} unspent"
        )
        if len(items) < options.page_size:
            break
        index = last_processed

    total = sum(u.amount for u in unspent)
    logger.info(f"Balance: {format_amount(total)} in {len(unspent)} outputs ({scanned_count} scanned)")
    return BalanceResult(
        total_balance=total,
        utxos=tuple(unspent),
        last_processed_index=last_processed,
        spent_key_images=tuple(sorted(spent)),
        total_outputs_scanned=scanned_count,
        owned_outputs_found=owned_count,
    )


# ==============================================================================
# CT
# ==============================================================================

async def get_balance_ct(
    keys: KeyPair,
    rpc: Any,
    options: Optional[BalanceCTOptions] = None,
    provider: Optional[CryptoProvider] = None,
) -> BalanceCTResult:
    """
    Unspent CT (stealth) balance of keys.

    CT outputs have no key images; outputs listed in known_spent_outpoints
    as "txid:vout" are excluded.
    """
    options = options or BalanceCTOptions()
    provider = provider or get_crypto_provider()
    if options.start_index < 0:
        raise ValidationError(f"start_index must be non-negative, got {options.start_index}")
    if options.page_size < 1:
        raise ValidationError(f"page_size must be positive, got {options.page_size}")
    spent_outpoints = set(options.known_spent_outpoints)

    scan_hex = keys.scan_secret.hex()
    index = options.start_index
    last_processed = options.start_index
    unspent: List[UTXOCT] = []
    scanned_count = 0
    owned_count = 0

    while True:
        items = await _fetch_page(rpc, scan_hex, index, "stealth")
        if not items:
            break
        scanned_count += len(items)

        metadata = [
            {"amount": i.get("amount"), "blind": i.get("blind")} if isinstance(i, dict) else {}
            for i in items
        ]
        owned = parse_watch_only_transactions_ct(items, keys, metadata, provider)
        owned_count += len(owned)

        page_unspent = [u for u in owned if u.spendable and u.outpoint not in spent_outpoints]
        unspent.extend(page_unspent)
        await _notify(options.on_utxo_discovered, page_unspent)

        last_processed = _next_index(items, index)
        if len(items) < options.page_size:
            break
        index = last_processed

    total = sum(u.amount for u in unspent)
    logger.info(f"CT balance: {format_amount(total)} in {len(unspent)} outputs")
    return BalanceCTResult(
        total_balance=total,
        utxos=tuple(unspent),
        last_processed_index=last_processed,
        total_outputs_scanned=scanned_count,
        owned_outputs_found=owned_count,
    )
