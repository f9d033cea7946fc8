"""
volume_engine.py - Alternating BUY/SELL volume cycler for one token

Cycle (one per TRADE_INTERVAL):
1. Acquire cycle lock (an overlapping call returns False immediately)
2. Refresh SOL/USD on every BUY and every PRICE_REFRESH_CYCLES cycles
3. BUY:  spend TRADE_AMOUNT_USD worth of SOL, shrunk to balance - fee reserve
   SELL: sell tokens worth the last BUY's USD notional at the live rate,
         capped at the token balance
4. Flip direction after any attempted swap; a skipped SELL forces BUY
5. Log the statistics summary

Balance policy: a SOL balance under MIN_SOL_BALANCE skips the cycle and the
engine retries at the next interval. It never terminates the process.
"""

from __future__ import annotations

import asyncio
import sys
from decimal import Decimal
from typing import Optional

from loguru import logger

from volbot.config.settings import EngineConfig, load_config_or_exit
from volbot.config.solana_tokens import SOL, SolanaToken, target_token
from volbot.domain.models import (
    BaseAmount,
    Direction,
    TokenAmount,
    from_raw,
    to_raw,
)
from volbot.engines.execution.jupiter_client import JupiterClient
from volbot.engines.execution.solana_client import SolanaClient
from volbot.engines.execution.swap_pipeline import SwapPipeline
from volbot.engines.price_oracle import PriceOracle
from volbot.engines.state import EngineState
from volbot.errors import (
    BalanceUnavailable,
    ConfigError,
    InsufficientBalance,
    NoPriorPurchase,
    QuoteFailure,
    ZeroTokenBalance,
)
from volbot.stats.journal import TradeJournal
from volbot.utils.logging import setup_logging
from volbot.utils.shutdown import install_signal_handlers, stop_reason, stopping
from volbot.wallet.key_resolver import ResolvedKey


def plan_sell_quantity(target_usd: Decimal, unit_usd: Decimal, balance: Decimal) -> Decimal:
    """
    Token quantity whose value at unit_usd matches target_usd.

    Never more than balance.
    """
    if unit_usd <= 0:
        raise ValueError(f"unit_usd must be positive, got {unit_usd}")
    quantity = target_usd / unit_usd
    return min(quantity, balance)


class VolumeEngine:
    """
    Volume Engine

    Owns EngineState and is its only writer. Collaborators can be injected
    for tests; otherwise they are built from the config.
    """

    STOP_POLL_SECONDS = 0.5

    def __init__(
        self,
        cfg: EngineConfig,
        resolved_key: ResolvedKey,
        *,
        oracle: Optional[PriceOracle] = None,
        solana: Optional[SolanaClient] = None,
        jupiter: Optional[JupiterClient] = None,
        journal: Optional[TradeJournal] = None,
        token: Optional[SolanaToken] = None,
        state: Optional[EngineState] = None,
    ):
        self.cfg = cfg
        self.keypair = resolved_key.keypair

        self.oracle = oracle or PriceOracle(
            default_price=cfg.default_sol_price,
            base_url=cfg.coingecko_api_base,
            http_timeout=cfg.http_timeout_seconds,
        )
        self.solana = solana or SolanaClient(
            rpc_url=cfg.rpc_url,
            keypair=self.keypair,
            confirm_timeout=cfg.confirm_timeout_seconds,
            send_attempts=cfg.send_attempts,
        )
        self.jupiter = jupiter or JupiterClient(
            http_timeout=cfg.http_timeout_seconds,
            base_url=cfg.jupiter_api_base,
            priority_fee_lamports=cfg.priority_fee_lamports,
        )
        self.journal = journal or TradeJournal(cfg.journal_path)
        self.state = state or EngineState()

        if token is None and cfg.token_decimals is not None:
            token = target_token(cfg.token_mint, cfg.token_decimals)
        self.token = token

        self.pipeline = SwapPipeline(
            jupiter=self.jupiter,
            solana=self.solana,
            keypair=self.keypair,
            stats=self.state.stats,
            journal=self.journal,
        )

        self._cycle_lock = asyncio.Lock()

        logger.info(
            f"ENGINE_INIT | wallet={resolved_key.pubkey} | token={cfg.token_mint} | "
            f"trade_usd={cfg.trade_amount_usd} | interval={cfg.trade_interval_seconds}s"
        )

    # =========================================================================
    # STARTUP
    # =========================================================================

    async def start(self) -> None:
        """
        Connectivity check, token precision, journal, first price.

        Raises:
            ConfigError: RPC unreachable or token decimals unknown
        """
        version = await self.solana.check_connection()
        if version is None:
            raise ConfigError(f"RPC endpoint unreachable: {self.cfg.rpc_url}")

        if self.token is None:
            decimals = await self.solana.get_token_decimals(self.cfg.token_mint)
            if decimals is None:
                raise ConfigError(
                    f"cannot read decimals for {self.cfg.token_mint}; set TOKEN_DECIMALS"
                )
            try:
                self.token = target_token(self.cfg.token_mint, decimals)
            except ValueError as e:
                raise ConfigError(f"unusable token {self.cfg.token_mint}: {e}") from None
        logger.info(f"TOKEN | mint={self.token.mint} | decimals={self.token.decimals}")

        self.journal.open(
            wallet=str(self.keypair.pubkey()),
            token_mint=self.token.mint,
            trade_amount_usd=str(self.cfg.trade_amount_usd),
        )

        sample = await self.oracle.refresh()
        await self.log_balances(sample.value)

    async def log_balances(self, sol_price: Decimal) -> None:
        sol = await self.solana.get_sol_balance()
        tokens = await self.solana.get_token_balance(self.cfg.token_mint)
        if sol is None or tokens is None:
            logger.warning("BALANCE | unavailable at startup")
            return
        logger.info(f"BALANCE | SOL={sol} (≈ ${sol * sol_price:.2f}) | TOKEN={tokens}")
        if sol < self.cfg.min_sol_balance:
            logger.warning(
                f"BALANCE | SOL {sol} below minimum {self.cfg.min_sol_balance}; cycles will skip"
            )

    # =========================================================================
    # CYCLE
    # =========================================================================

    async def run_cycle(self) -> bool:
        """
        Run one trade cycle.

        Returns:
            True if a swap was attempted and confirmed, False otherwise
            (skipped, failed, or another cycle already in flight)
        """
        if self._cycle_lock.locked():
            logger.warning("CYCLE_SKIP | previous cycle still in flight")
            return False

        async with self._cycle_lock:
            if self.token is None:
                raise RuntimeError("engine not started")

            self.state.cycles += 1
            direction = self.state.next_direction
            logger.info(f"CYCLE | #{self.state.cycles} | {direction.value}")

            await self._maybe_refresh_price(direction)

            try:
                sol_balance = await self._operating_sol_balance()
                if direction is Direction.BUY:
                    ok = await self._run_buy(sol_balance)
                else:
                    ok = await self._run_sell()
            except InsufficientBalance as e:
                # same leg retried next interval
                logger.warning(f"CYCLE_SKIP | insufficient balance | {direction.value} | {e}")
                return False
            except BalanceUnavailable as e:
                logger.error(f"CYCLE_FAIL | balance unavailable | {e}")
                return False
            except (ZeroTokenBalance, NoPriorPurchase) as e:
                logger.warning(f"CYCLE_SKIP | {type(e).__name__} | {e} | next=BUY")
                self.state.next_direction = Direction.BUY
                return False

            self.state.next_direction = direction.flipped()
            for line in self.state.stats.format_summary(self.state.next_direction):
                logger.info(f"STATS | {line}")
            return ok

    async def _maybe_refresh_price(self, direction: Direction) -> None:
        due = self.state.cycles % self.cfg.price_refresh_cycles == 0
        if direction is Direction.BUY or due:
            await self.oracle.refresh()

    async def _operating_sol_balance(self) -> Decimal:
        """SOL balance, checked against the minimum both legs need for fees."""
        balance = await self.solana.get_sol_balance()
        if balance is None:
            raise BalanceUnavailable("SOL balance read failed")
        if balance < self.cfg.min_sol_balance:
            raise InsufficientBalance(
                f"SOL balance {balance} below minimum {self.cfg.min_sol_balance}"
            )
        return balance

    async def _run_buy(self, balance: Decimal) -> bool:
        price = self.oracle.latest.value

        spend = self.cfg.trade_amount_usd / price
        spendable = balance - self.cfg.fee_reserve_sol
        if spend > spendable:
            if spendable <= 0:
                raise InsufficientBalance(
                    f"SOL balance {balance} does not cover fee reserve {self.cfg.fee_reserve_sol}"
                )
            logger.warning(f"BUY_SHRINK | target={spend:.9f} SOL | spendable={spendable} SOL")
            spend = spendable

        usd_notional = spend * price
        logger.info(f"BUY | {spend:.9f} SOL (≈ ${usd_notional:.2f}) @ ${price}")

        record = await self.pipeline.swap(
            Direction.BUY,
            SOL,
            self.token,
            BaseAmount(amount=spend, usd_notional=usd_notional),
            self.cfg.slippage_bps,
        )
        if record.success:
            self.state.last_purchased_token_amount = record.output_amount
            self.state.last_trade_usd_notional = usd_notional
        return record.success

    async def _run_sell(self) -> bool:
        balance = await self.solana.get_token_balance(self.token.mint)
        if balance is None:
            raise BalanceUnavailable("token balance read failed")
        if balance <= 0:
            raise ZeroTokenBalance(f"no {self.token.symbol} to sell")
        if not self.state.has_purchase_reference:
            raise NoPriorPurchase("no successful BUY to unwind")

        target_usd = self.state.last_trade_usd_notional
        unit_usd = await self._token_unit_usd()

        if unit_usd is not None:
            quantity = plan_sell_quantity(target_usd, unit_usd, balance)
            usd_notional = quantity * unit_usd
        else:
            bought = self.state.last_purchased_token_amount
            if bought is None or bought <= 0:
                raise NoPriorPurchase("reference quote failed and no purchased quantity recorded")
            quantity = min(bought, balance)
            usd_notional = target_usd * quantity / bought
            logger.warning(f"SELL_FALLBACK | selling recorded quantity {quantity}")

        if quantity < balance:
            logger.info(f"SELL | {quantity} {self.token.symbol} (≈ ${usd_notional:.2f})")
        else:
            logger.info(f"SELL | full balance {quantity} {self.token.symbol} (≈ ${usd_notional:.2f})")

        record = await self.pipeline.swap(
            Direction.SELL,
            self.token,
            SOL,
            TokenAmount(quantity=quantity, usd_notional=usd_notional),
            self.cfg.slippage_bps,
        )
        return record.success

    async def _token_unit_usd(self) -> Optional[Decimal]:
        """USD value of one token from a live reference quote, or None."""
        ref_raw = to_raw(self.cfg.reference_quote_tokens, self.token.decimals)
        if ref_raw <= 0:
            logger.warning(f"SELL_RATE | reference amount rounds to zero at {self.token.decimals} decimals")
            return None
        try:
            quote = await self.jupiter.get_quote(
                input_mint=self.token.mint,
                output_mint=SOL.mint,
                amount=ref_raw,
                slippage_bps=self.cfg.slippage_bps,
            )
        except QuoteFailure as e:
            logger.warning(f"SELL_RATE | reference quote failed | {e}")
            return None

        sol_out = from_raw(quote.out_amount_raw, SOL.decimals)
        unit_usd = sol_out * self.oracle.latest.value / from_raw(ref_raw, self.token.decimals)
        logger.debug(f"SELL_RATE | 1 {self.token.symbol} ≈ ${unit_usd}")
        return unit_usd

    # =========================================================================
    # SCHEDULER
    # =========================================================================

    async def run(self):
        """
        Main loop - one cycle per interval until a stop is requested.

        A cycle still in flight at stop time gets shutdown_grace_seconds to
        finish before it is cancelled.
        """
        install_signal_handlers()
        try:
            await self.start()
            logger.info("ENGINE_START")

            while not stopping():
                loop = asyncio.get_event_loop()
                cycle_start = loop.time()

                try:
                    ok = await self._drive_cycle()
                except Exception as e:
                    logger.exception(f"CYCLE_ERROR | {type(e).__name__}: {e}")
                    ok = False
                if not ok:
                    logger.warning("CYCLE | not completed, continuing at next interval")

                elapsed = loop.time() - cycle_start
                await self._sleep_unless_stopped(self.cfg.trade_interval_seconds - elapsed)
        finally:
            await self.shutdown()

    async def _drive_cycle(self) -> bool:
        task = asyncio.ensure_future(self.run_cycle())
        while not task.done():
            if stopping():
                grace = self.cfg.shutdown_grace_seconds
                logger.warning(f"SHUTDOWN | waiting up to {grace}s for in-flight cycle")
                done, _ = await asyncio.wait({task}, timeout=grace)
                if not done:
                    task.cancel()
                    try:
                        await task
                    except asyncio.CancelledError:
                        logger.warning("SHUTDOWN | in-flight cycle cancelled")
                    return False
                break
            await asyncio.wait({task}, timeout=self.STOP_POLL_SECONDS)
        return task.result()

    async def _sleep_unless_stopped(self, seconds: float) -> None:
        loop = asyncio.get_event_loop()
        deadline = loop.time() + max(0.0, seconds)
        while not stopping():
            remaining = deadline - loop.time()
            if remaining <= 0:
                return
            await asyncio.sleep(min(remaining, self.STOP_POLL_SECONDS))

    async def shutdown(self):
        """Close the journal with final stats, then every network client."""
        for line in self.state.stats.format_summary(self.state.next_direction):
            logger.info(f"FINAL | {line}")
        self.journal.close({**self.state.stats.snapshot(), "stop_reason": stop_reason()})
        await self.oracle.close()
        await self.jupiter.close()
        await self.solana.close()
        logger.info("ENGINE_SHUTDOWN")


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

async def main():
    """Main entry point for the volume engine."""
    cfg, resolved = load_config_or_exit()
    setup_logging(cfg.log_level, cfg.log_file)
    logger.info(f"KEY | format={resolved.key_format.value} | wallet={resolved.pubkey}")

    engine = VolumeEngine(cfg, resolved)
    try:
        await engine.run()
    except ConfigError as e:
        logger.critical(f"FATAL | {e}")
        sys.exit(1)


def cli() -> int:
    asyncio.run(main())
    return 0


if __name__ == "__main__":
    raise SystemExit(cli())
