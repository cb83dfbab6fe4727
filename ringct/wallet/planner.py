"""
Coin Selection & Planner

Input selection for a single send, UTXO set health analysis and planning
for sends or consolidations that need more than one transaction.

Size model (bytes), linear in inputs and outputs:
    100 + n_in * (ring_size * 33 + 100) + n_out * per_output

fee = ceil(size / 1000 * fee_per_kb)
"""

import logging
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from ringct.constants import (
    CONSOLIDATION_THRESHOLD,
    DEFAULT_FEE_PER_KB,
    DEFAULT_RING_SIZE,
    INPUT_OVERHEAD_SIZE,
    MAX_ANON_INPUTS,
    OUTPUT_ESTIMATE_SIZE,
    OUTPUT_SELECTION_SIZE,
    PUBLIC_KEY_SIZE,
    SELECTION_OUTPUT_COUNT,
    TX_BASE_SIZE,
)
from ringct.core.types import UTXO
from ringct.errors import (
    InsufficientFundsError,
    InvalidAmountError,
    TooManyInputsError,
    ValidationError,
)
from ringct.wallet.balance import format_amount

logger = logging.getLogger(__name__)

_sysrand = secrets.SystemRandom()


# ==============================================================================
# FEES
# ==============================================================================

def estimate_size(n_inputs: int, n_outputs: int, ring_size: int, output_size: int) -> int:
    return (
        TX_BASE_SIZE
        + n_inputs * (ring_size * PUBLIC_KEY_SIZE + INPUT_OVERHEAD_SIZE)
        + n_outputs * output_size
    )


def fee_for_size(size: int, fee_per_kb: int) -> int:
    """ceil(size / 1000 * fee_per_kb) in integer arithmetic."""
    return -(-size * fee_per_kb // 1000)


def estimate_fee(
    n_inputs: int,
    n_outputs: int,
    fee_per_kb: int = DEFAULT_FEE_PER_KB,
    ring_size: int = DEFAULT_RING_SIZE,
) -> int:
    """Fee for a transaction of n_inputs anonymous inputs and n_outputs outputs."""
    size = estimate_size(n_inputs, n_outputs, ring_size, OUTPUT_ESTIMATE_SIZE)
    return fee_for_size(size, fee_per_kb)


def _selection_fee(n_inputs: int, fee_per_kb: int, ring_size: int) -> int:
    size = estimate_size(n_inputs, SELECTION_OUTPUT_COUNT, ring_size, OUTPUT_SELECTION_SIZE)
    return fee_for_size(size, fee_per_kb)


def _by_value_desc(utxos: Sequence[UTXO]) -> List[UTXO]:
    return sorted(utxos, key=lambda u: u.amount, reverse=True)


# ==============================================================================
# COIN SELECTION
# ==============================================================================

@dataclass(frozen=True, slots=True)
class CoinSelection:
    """
    Selected inputs for one transaction.

    With subtract_fee the fee comes out of the recipients, so change is
    total_input - target; otherwise change is total_input - target - fee.
    """
    selected: Tuple[UTXO, ...]
    total_input: int
    target: int
    fee: int
    change: int
    subtract_fee: bool = False


def select_coins(
    utxos: Sequence[UTXO],
    target: int,
    fee_per_kb: int = DEFAULT_FEE_PER_KB,
    ring_size: int = DEFAULT_RING_SIZE,
    subtract_fee: bool = False,
) -> CoinSelection:
    """
    Pick inputs covering target plus fee.

    Spendable outputs are visited in CSPRNG-shuffled order and accumulated
    until they cover the target and the fee for the inputs taken so far.

    Raises:
        InvalidAmountError: non-positive target
        TooManyInputsError: more than 32 inputs would be needed
        InsufficientFundsError: all outputs together do not cover target plus fee
    """
    if not isinstance(target, int) or target <= 0:
        raise InvalidAmountError(target)

    candidates = [u for u in utxos if u.spendable]
    _sysrand.shuffle(candidates)

    selected: List[UTXO] = []
    total = 0
    fee = 0
    for utxo in candidates:
        if len(selected) >= MAX_ANON_INPUTS:
            raise TooManyInputsError(MAX_ANON_INPUTS, target + fee, total)

        selected.append(utxo)
        total += utxo.amount
        fee = _selection_fee(len(selected), fee_per_kb, ring_size)

        needed = target if subtract_fee else target + fee
        if total >= needed:
            change = total - needed
            logger.debug(
                f"Selected {len(selected)}/{len(candidates)} inputs: "
                f"total={total} target={target} fee={fee} change={change}"
            )
            return CoinSelection(
                selected=tuple(selected),
                total_input=total,
                target=target,
                fee=fee,
                change=change,
                subtract_fee=subtract_fee,
            )

    if not selected:
        fee = _selection_fee(1, fee_per_kb, ring_size)
    required = target if subtract_fee else target + fee
    raise InsufficientFundsError(required, total, fee)


# ==============================================================================
# ANALYSIS
# ==============================================================================

@dataclass(frozen=True, slots=True)
class UtxoAnalysis:
    total_utxos: int
    total_value: int
    average_value: int
    largest_utxo: int
    smallest_utxo: int
    is_fragmented: bool
    needs_consolidation: bool
    max_sendable_in_single_tx: int
    recommendation: str


def analyze_utxos(utxos: Sequence[UTXO], fee_per_kb: int = DEFAULT_FEE_PER_KB) -> UtxoAnalysis:
    """Count, value spread and single-transaction capacity of a UTXO set."""
    if not utxos:
        return UtxoAnalysis(
            total_utxos=0,
            total_value=0,
            average_value=0,
            largest_utxo=0,
            smallest_utxo=0,
            is_fragmented=False,
            needs_consolidation=False,
            max_sendable_in_single_tx=0,
            recommendation="No UTXOs available",
        )

    count = len(utxos)
    total_value = sum(u.amount for u in utxos)
    ordered = _by_value_desc(utxos)

    top = ordered[:MAX_ANON_INPUTS]
    top_value = sum(u.amount for u in top)
    fee = estimate_fee(len(top), 2, fee_per_kb)
    max_sendable = max(top_value - fee, 0)

    is_fragmented = count > CONSOLIDATION_THRESHOLD
    needs_consolidation = count > MAX_ANON_INPUTS

    if needs_consolidation:
        recommendation = (
            f"You have {count} UTXOs, but can only use {MAX_ANON_INPUTS} per transaction. "
            f"Strongly recommend consolidating to avoid issues sending large amounts."
        )
    elif is_fragmented:
        recommendation = (
            f"You have {count} UTXOs. Consider consolidating when fees are low "
            f"to improve transaction efficiency."
        )
    else:
        recommendation = "UTXO set is healthy."

    return UtxoAnalysis(
        total_utxos=count,
        total_value=total_value,
        average_value=total_value // count,
        largest_utxo=ordered[0].amount,
        smallest_utxo=ordered[-1].amount,
        is_fragmented=is_fragmented,
        needs_consolidation=needs_consolidation,
        max_sendable_in_single_tx=max_sendable,
        recommendation=recommendation,
    )


class HealthStatus(Enum):
    HEALTHY = "healthy"
    FRAGMENTED = "fragmented"
    CRITICAL = "critical"


@dataclass(frozen=True, slots=True)
class WalletHealth:
    status: HealthStatus
    utxo_count: int
    total_value: int
    max_sendable: int
    message: str
    should_consolidate: bool


def get_wallet_health(utxos: Sequence[UTXO], fee_per_kb: int = DEFAULT_FEE_PER_KB) -> WalletHealth:
    """Health summary for display."""
    analysis = analyze_utxos(utxos, fee_per_kb)

    if analysis.needs_consolidation:
        status = HealthStatus.CRITICAL
        message = (
            f"Critical: {analysis.total_utxos} UTXOs detected. You can only spend "
            f"{format_amount(analysis.max_sendable_in_single_tx)} at a time."
        )
    elif analysis.is_fragmented:
        status = HealthStatus.FRAGMENTED
        message = f"{analysis.total_utxos} UTXOs. Consider consolidating for better efficiency."
    else:
        status = HealthStatus.HEALTHY
        message = "Wallet is healthy"

    return WalletHealth(
        status=status,
        utxo_count=analysis.total_utxos,
        total_value=analysis.total_value,
        max_sendable=analysis.max_sendable_in_single_tx,
        message=message,
        should_consolidate=status is not HealthStatus.HEALTHY,
    )


@dataclass(frozen=True, slots=True)
class SingleTxCheck:
    can_send: bool
    required_inputs: int
    reason: Optional[str] = None


def can_send_in_single_transaction(
    utxos: Sequence[UTXO],
    amount: int,
    fee_per_kb: int = DEFAULT_FEE_PER_KB,
    ring_size: int = DEFAULT_RING_SIZE,
) -> SingleTxCheck:
    """Whether the largest 32 spendable outputs cover amount plus fee, and how many are needed."""
    total = 0
    count = 0
    for utxo in _by_value_desc([u for u in utxos if u.spendable]):
        if count >= MAX_ANON_INPUTS:
            break
        total += utxo.amount
        count += 1
        if total >= amount + estimate_fee(count, 2, fee_per_kb, ring_size):
            return SingleTxCheck(can_send=True, required_inputs=count)

    return SingleTxCheck(
        can_send=False,
        required_inputs=count,
        reason=(
            f"Cannot send {amount} in single transaction. "
            f"Max with {MAX_ANON_INPUTS} inputs: {total}"
        ),
    )


# ==============================================================================
# MULTI-TRANSACTION PLANS
# ==============================================================================

@dataclass(frozen=True, slots=True)
class PlannedTransaction:
    inputs: Tuple[UTXO, ...]
    amount: int
    estimated_fee: int


@dataclass(frozen=True, slots=True)
class MultiTransactionPlan:
    feasible: bool
    transactions: Tuple[PlannedTransaction, ...] = ()
    total_fees: int = 0
    error: Optional[str] = None


def plan_multi_transaction(
    utxos: Sequence[UTXO],
    amount: int,
    fee_per_kb: int = DEFAULT_FEE_PER_KB,
    ring_size: int = DEFAULT_RING_SIZE,
) -> MultiTransactionPlan:
    """
    Split a send over batches of at most 32 inputs, largest outputs first.

    Each batch sends min(remaining, batch value - batch fee). The plan is
    infeasible when a batch cannot cover its own fee or the outputs run out.
    """
    spendable = [u for u in utxos if u.spendable]
    total_value = sum(u.amount for u in spendable)
    if amount > total_value:
        return MultiTransactionPlan(
            feasible=False,
            error=f"Insufficient funds: need {amount}, have {total_value}",
        )

    available = _by_value_desc(spendable)
    remaining = amount
    total_fees = 0
    transactions: List[PlannedTransaction] = []

    while remaining > 0 and available:
        batch = available[:MAX_ANON_INPUTS]
        del available[:MAX_ANON_INPUTS]
        batch_value = sum(u.amount for u in batch)
        fee = estimate_fee(len(batch), 2, fee_per_kb, ring_size)

        if batch_value <= fee:
            return MultiTransactionPlan(feasible=False, error="UTXOs too small to cover fees")

        send_amount = min(remaining, batch_value - fee)
        transactions.append(PlannedTransaction(inputs=tuple(batch), amount=send_amount, estimated_fee=fee))
        total_fees += fee
        remaining -= send_amount

    if remaining > 0:
        return MultiTransactionPlan(
            feasible=False,
            error=f"Cannot send full amount even with multiple transactions. Short by: {remaining}",
        )

    logger.debug(f"Planned {len(transactions)} transactions for {amount}, fees {total_fees}")
    return MultiTransactionPlan(feasible=True, transactions=tuple(transactions), total_fees=total_fees)


@dataclass(frozen=True, slots=True)
class ConsolidationRound:
    """One consolidation transaction: all inputs into a single output to self."""
    inputs: Tuple[UTXO, ...]
    total_input: int
    fee: int

    @property
    def output_amount(self) -> int:
        return self.total_input - self.fee


@dataclass(frozen=True, slots=True)
class SetSummary:
    utxos: int
    value: int


@dataclass(frozen=True, slots=True)
class ConsolidationPlan:
    rounds: Tuple[ConsolidationRound, ...]
    before: SetSummary
    after: SetSummary

    @property
    def total_fees(self) -> int:
        return sum(r.fee for r in self.rounds)


def plan_consolidation(
    utxos: Sequence[UTXO],
    max_inputs: int = MAX_ANON_INPUTS,
    fee_per_kb: int = DEFAULT_FEE_PER_KB,
    ring_size: int = DEFAULT_RING_SIZE,
) -> ConsolidationPlan:
    """
    Group outputs into rounds of at most max_inputs, largest first.

    Rounds continue while more than one output is left unplanned; each
    round pays estimate_fee(n, 1) and returns the rest to the wallet.

    Raises:
        ValidationError: max_inputs outside [2, 32]
        InsufficientFundsError: a round's inputs do not cover its fee
    """
    if not 2 <= max_inputs <= MAX_ANON_INPUTS:
        raise ValidationError(f"max_inputs must be between 2 and {MAX_ANON_INPUTS}, got {max_inputs}")

    before = SetSummary(utxos=len(utxos), value=sum(u.amount for u in utxos))
    remaining = _by_value_desc(utxos)
    rounds: List[ConsolidationRound] = []

    while len(remaining) > 1:
        batch = remaining[:max_inputs]
        del remaining[:max_inputs]
        total = sum(u.amount for u in batch)
        fee = estimate_fee(len(batch), 1, fee_per_kb, ring_size)
        if total <= fee:
            raise InsufficientFundsError(fee + 1, total, fee)
        rounds.append(ConsolidationRound(inputs=tuple(batch), total_input=total, fee=fee))

    fees = sum(r.fee for r in rounds)
    after = SetSummary(utxos=len(remaining) + len(rounds), value=before.value - fees)
    return ConsolidationPlan(rounds=tuple(rounds), before=before, after=after)
