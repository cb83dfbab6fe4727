"""
Wallet Engine

High-level send and consolidate operations: analyze the UTXO set, plan,
fetch decoys from the node and build. Nothing is broadcast; callers submit
the returned transactions with RpcClient.sendrawtransaction.

Usage:
    async with RpcClient(config.rpc) as rpc:
        engine = WalletEngine(config, rpc)
        sent = await engine.send(keys, [Recipient(address, amount)], utxos)
        if sent.success:
            await rpc.sendrawtransaction(sent.result.tx_hex)
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

from ringct.api.rpc import RpcClient
from ringct.config import BuilderConfig, EngineConfig, ScanConfig
from ringct.constants import MAX_ANON_INPUTS
from ringct.core.types import UTXO, KeyPair, Recipient
from ringct.crypto.provider import CryptoProvider
from ringct.errors import CryptoVerificationError, RingCTError
from ringct.wallet.balance import (
    BalanceCTOptions,
    BalanceCTResult,
    BalanceOptions,
    BalanceResult,
    format_amount,
    get_balance,
    get_balance_ct,
)
from ringct.wallet.builder import BuildTransactionResult, TransactionBuilder
from ringct.wallet.planner import (
    MultiTransactionPlan,
    SetSummary,
    analyze_utxos,
    can_send_in_single_transaction,
    plan_consolidation,
    plan_multi_transaction,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SendResult:
    success: bool
    result: Optional[BuildTransactionResult] = None
    multi_tx_required: bool = False
    plan: Optional[MultiTransactionPlan] = None
    warning: Optional[str] = None
    error: Optional[str] = None
    recommendation: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ConsolidationResult:
    success: bool
    transactions: Tuple[BuildTransactionResult, ...] = ()
    total_fees: int = 0
    before: SetSummary = SetSummary(utxos=0, value=0)
    after: SetSummary = SetSummary(utxos=0, value=0)
    error: Optional[str] = None


class WalletEngine:
    """
    Send and consolidate on top of TransactionBuilder.

    Errors the caller can act on (funds, decoys, node failures) come back
    as unsuccessful results. CryptoVerificationError always propagates.
    """

    def __init__(
        self,
        config: Union[EngineConfig, BuilderConfig, None],
        rpc: RpcClient,
        provider: Optional[CryptoProvider] = None,
    ):
        self.scan = ScanConfig()
        if isinstance(config, EngineConfig):
            self.scan = config.scan
            config = config.builder
        self.config = config or BuilderConfig()
        self.rpc = rpc
        self.provider = provider
        self.builder = TransactionBuilder(self.config, provider)

    async def get_balance(self, keys: KeyPair, start_index: int = 0,
                          known_spent_key_images: Sequence[str] = ()) -> BalanceResult:
        """RingCT balance paged and batched per the engine's scan settings."""
        options = BalanceOptions(
            known_spent_key_images=known_spent_key_images,
            start_index=start_index,
            key_image_batch_size=self.scan.key_image_batch_size,
            page_size=self.scan.page_size,
        )
        return await get_balance(keys, self.rpc, options, self.provider)

    async def get_balance_ct(self, keys: KeyPair, start_index: int = 0,
                             known_spent_outpoints: Sequence[str] = ()) -> BalanceCTResult:
        options = BalanceCTOptions(
            known_spent_outpoints=known_spent_outpoints,
            start_index=start_index,
            page_size=self.scan.page_size,
        )
        return await get_balance_ct(keys, self.rpc, options, self.provider)

    async def send(
        self,
        keys: KeyPair,
        recipients: Sequence[Recipient],
        utxos: Sequence[UTXO],
    ) -> SendResult:
        analysis = analyze_utxos(utxos, self.config.fee_per_kb)
        total_amount = sum(r.amount for r in recipients)

        if total_amount > analysis.total_value:
            return SendResult(
                success=False,
                error=(
                    f"Insufficient funds: need {format_amount(total_amount)}, "
                    f"have {format_amount(analysis.total_value)}"
                ),
            )

        warning = None
        if analysis.needs_consolidation:
            warning = f"You have {analysis.total_utxos} UTXOs. Consider consolidating first for better efficiency."
        elif analysis.is_fragmented:
            warning = f"You have {analysis.total_utxos} UTXOs. Consider consolidating when fees are low."

        check = can_send_in_single_transaction(
            utxos, total_amount, self.config.fee_per_kb, self.config.ring_size
        )
        if not check.can_send:
            plan = plan_multi_transaction(utxos, total_amount, self.config.fee_per_kb, self.config.ring_size)
            if not plan.feasible:
                return SendResult(
                    success=False,
                    error=plan.error,
                    recommendation="Consider consolidating UTXOs first, then try sending again.",
                )
            return SendResult(
                success=False,
                multi_tx_required=True,
                plan=plan,
                warning=warning,
                recommendation=(
                    f"This send requires {len(plan.transactions)} separate transactions. "
                    f"Total fees: {format_amount(plan.total_fees)}. "
                    f"Consider consolidating UTXOs first to reduce fees and complexity."
                ),
            )

        try:
            selection, payments = self.builder.select_inputs(recipients, utxos)
            logger.debug(f"Fetching decoys for {len(selection.selected)} inputs")
            pool = await self.rpc.getanonoutputs(len(selection.selected), self.config.ring_size)
            result = self.builder.build_with_inputs(keys, payments, selection.selected, pool, selection.fee)
        except CryptoVerificationError:
            raise
        except RingCTError as e:
            logger.warning(f"Send failed: {e.message}")
            return SendResult(
                success=False,
                error=e.message,
                recommendation="Check your inputs and try again. If the error persists, try consolidating UTXOs first.",
            )

        return SendResult(success=True, result=result, warning=warning)

    async def consolidate(
        self,
        keys: KeyPair,
        utxos: Sequence[UTXO],
        max_inputs: int = MAX_ANON_INPUTS,
    ) -> ConsolidationResult:
        """
        Merge utxos into as few outputs as the input limit allows.

        Rounds run one after another; each is built and verified before the
        next round fetches its decoys.
        """
        if not utxos:
            return ConsolidationResult(success=False, error="No UTXOs to consolidate")
        if len(utxos) == 1:
            summary = SetSummary(utxos=1, value=utxos[0].amount)
            return ConsolidationResult(success=True, before=summary, after=summary)

        before = SetSummary(utxos=len(utxos), value=sum(u.amount for u in utxos))
        logger.debug(f"Consolidating {before.utxos} UTXOs worth {format_amount(before.value)}")

        transactions = []
        try:
            plan = plan_consolidation(utxos, max_inputs, self.config.fee_per_kb, self.config.ring_size)
            for n, round_ in enumerate(plan.rounds, 1):
                logger.debug(f"Round {n}: consolidating {len(round_.inputs)} UTXOs")
                pool = await self.rpc.getanonoutputs(len(round_.inputs), self.config.ring_size)
                tx = self.builder.build_consolidation(keys, round_.inputs, pool, round_.fee)
                transactions.append(tx)
                logger.debug(f"Round {n} complete: {tx.txid}, fee {format_amount(tx.fee)}")
        except CryptoVerificationError:
            raise
        except RingCTError as e:
            logger.warning(f"Consolidation stopped after {len(transactions)} rounds: {e.message}")
            return ConsolidationResult(success=False, before=before, after=before, error=e.message)

        total_fees = sum(tx.fee for tx in transactions)
        logger.info(
            f"Consolidated {plan.before.utxos} UTXOs into {plan.after.utxos} "
            f"with {len(transactions)} transactions, fees {format_amount(total_fees)}"
        )
        return ConsolidationResult(
            success=True,
            transactions=tuple(transactions),
            total_fees=total_fees,
            before=plan.before,
            after=SetSummary(utxos=plan.after.utxos, value=before.value - total_fees),
        )
