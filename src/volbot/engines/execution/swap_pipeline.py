"""
swap_pipeline.py - One directional swap: quote -> build -> sign -> submit -> confirm

Every call produces exactly one SwapAttemptRecord, which is counted in
TradeStats and appended to the journal before returning. Step failures never
escape swap(); they become a failed record whose transaction_id is set only
if submission got as far as a signature.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from loguru import logger
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from volbot.config.solana_tokens import SolanaToken
from volbot.domain.models import (
    AssetUnit,
    BaseAmount,
    Direction,
    Quote,
    Sizing,
    SwapAttemptRecord,
    TokenAmount,
    from_raw,
    to_raw,
)
from volbot.engines.execution.jupiter_client import JupiterClient
from volbot.engines.execution.solana_client import SolanaClient
from volbot.errors import (
    AmountResolutionError,
    ConfirmationFailure,
    SigningFailure,
    SwapError,
)
from volbot.stats.journal import TradeJournal
from volbot.stats.trade_stats import TradeStats


def resolve_input_raw(sizing: Sizing, input_token: SolanaToken) -> int:
    """Convert sizing to input smallest units (truncating)."""
    if isinstance(sizing, BaseAmount):
        amount = sizing.amount
    elif isinstance(sizing, TokenAmount):
        amount = sizing.quantity
    else:
        raise AmountResolutionError(f"unsupported sizing: {type(sizing).__name__}")

    raw = to_raw(amount, input_token.decimals)
    if raw <= 0:
        raise AmountResolutionError(
            f"amount {amount} {input_token.symbol} is below one smallest unit"
        )
    return raw


class SwapPipeline:
    def __init__(
        self,
        jupiter: JupiterClient,
        solana: SolanaClient,
        keypair: Keypair,
        stats: TradeStats,
        journal: TradeJournal,
    ):
        self.jupiter = jupiter
        self.solana = solana
        self.keypair = keypair
        self.stats = stats
        self.journal = journal
        self.user_pubkey = str(keypair.pubkey())

    def sign(self, tx_bytes: bytes) -> VersionedTransaction:
        """Deserialize the aggregator's payload and sign it with our keypair."""
        try:
            unsigned = VersionedTransaction.from_bytes(tx_bytes)
            return VersionedTransaction(unsigned.message, [self.keypair])
        except Exception as e:
            raise SigningFailure(f"cannot sign swap payload: {type(e).__name__}: {e}") from e

    async def swap(
        self,
        direction: Direction,
        input_token: SolanaToken,
        output_token: SolanaToken,
        sizing: Sizing,
        slippage_bps: int,
    ) -> SwapAttemptRecord:
        input_unit = AssetUnit.BASE if input_token.is_native else AssetUnit.TOKEN
        input_raw = 0
        quote: Optional[Quote] = None
        signature: Optional[str] = None
        error: Optional[str] = None

        logger.info(
            f"SWAP_START | {direction.value} | {input_token.symbol} -> {output_token.symbol} | "
            f"sizing={sizing}"
        )

        try:
            input_raw = resolve_input_raw(sizing, input_token)

            quote = await self.jupiter.get_quote(
                input_mint=input_token.mint,
                output_mint=output_token.mint,
                amount=input_raw,
                slippage_bps=slippage_bps,
            )
            logger.info(
                f"SWAP_QUOTE | {direction.value} | in={input_raw} | out={quote.out_amount_raw} "
                f"({from_raw(quote.out_amount_raw, output_token.decimals)} {output_token.symbol})"
            )

            tx_bytes = await self.jupiter.get_swap_transaction(quote, self.user_pubkey)
            signed = self.sign(tx_bytes)

            signature = await self.solana.submit(signed)
            await self.solana.wait_for_confirmation(signature)

        except ConfirmationFailure as e:
            signature = e.signature
            error = f"{e.step}:{e.reason}: {e}"
            if e.reason == ConfirmationFailure.TIMEOUT:
                logger.error(f"SWAP_UNCONFIRMED | {direction.value} | sig={signature} | {e}")
            else:
                logger.error(f"SWAP_REJECTED | {direction.value} | sig={signature} | {e}")
        except SigningFailure as e:
            error = f"{e.step}: {e}"
            logger.critical(f"SWAP_SIGN_DEFECT | {direction.value} | {e}")
        except SwapError as e:
            error = f"{e.step}: {e}"
            logger.error(f"SWAP_FAILED | {direction.value} | step={e.step} | {e}")
        except asyncio.CancelledError:
            error = "cancelled: shutdown before confirmation"
            logger.warning(f"SWAP_CANCELLED | {direction.value} | sig={signature}")
            self._finish(direction, input_token, output_token, input_unit, input_raw,
                         quote, sizing, signature, error)
            raise

        return self._finish(direction, input_token, output_token, input_unit, input_raw,
                            quote, sizing, signature, error)

    def _finish(
        self,
        direction: Direction,
        input_token: SolanaToken,
        output_token: SolanaToken,
        input_unit: AssetUnit,
        input_raw: int,
        quote: Optional[Quote],
        sizing: Sizing,
        signature: Optional[str],
        error: Optional[str],
    ) -> SwapAttemptRecord:
        success = error is None
        output_amount: Optional[Decimal] = None
        if quote is not None:
            output_amount = from_raw(quote.out_amount_raw, output_token.decimals)

        record = SwapAttemptRecord(
            timestamp=datetime.now(timezone.utc),
            direction=direction,
            input_mint=input_token.mint,
            output_mint=output_token.mint,
            input_amount=from_raw(input_raw, input_token.decimals),
            input_unit=input_unit,
            output_amount=output_amount,
            usd_notional=sizing.usd_notional,
            transaction_id=signature,
            success=success,
            error=error,
        )

        self.stats.record(record)
        try:
            self.journal.append(record)
        except OSError as e:
            # the swap already happened on-chain; engine state must still see it
            logger.error(
                f"JOURNAL_WRITE_FAILED | {direction.value} | sig={signature} | "
                f"{type(e).__name__}: {e} | record={record.to_dict()}"
            )

        if success:
            logger.success(
                f"SWAP_CONFIRMED | {direction.value} | sig={signature} | "
                f"{record.input_amount} {input_token.symbol} -> {output_amount} {output_token.symbol}"
            )
        return record
