"""
solana_client.py - Ledger access for the volume engine

Features:
1. Balance inspection (native SOL, SPL token by mint)
2. Submission with a bounded retry budget and linear backoff
3. Bounded confirmation polling that keeps the signature on timeout
4. Error classification so deterministic failures are not resent

Usage:
    client = SolanaClient(rpc_url, keypair, confirm_timeout=60.0)

    sol = await client.get_sol_balance()
    signature = await client.submit(signed_tx)          # SubmissionFailure
    await client.wait_for_confirmation(signature)       # ConfirmationFailure
"""

from __future__ import annotations

import asyncio
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from loguru import logger
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TokenAccountOpts, TxOpts
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction
from solders.transaction_status import TransactionConfirmationStatus

from volbot.domain.models import from_raw
from volbot.errors import ConfirmationFailure, SubmissionFailure

LAMPORTS_PER_SOL = 1_000_000_000


class TxFailureReason(Enum):
    """Specific failure reasons for error tracking."""
    BLOCKHASH_EXPIRED = "blockhash_expired"
    SIMULATION_FAILED = "simulation_failed"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    SLIPPAGE_EXCEEDED = "slippage_exceeded"
    PROGRAM_ERROR = "program_error"
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


# Reasons where resending the same signed bytes can still succeed.
RETRYABLE_REASONS = frozenset({
    TxFailureReason.NETWORK_ERROR,
    TxFailureReason.TIMEOUT,
    TxFailureReason.UNKNOWN,
})

_CONFIRMED_LEVELS = (
    TransactionConfirmationStatus.Confirmed,
    TransactionConfirmationStatus.Finalized,
)


def classify_error(error_msg: str) -> TxFailureReason:
    """Classify error message into failure reason."""
    error_lower = error_msg.lower()

    if "blockhash" in error_lower:
        return TxFailureReason.BLOCKHASH_EXPIRED
    if "simulation" in error_lower:
        return TxFailureReason.SIMULATION_FAILED
    if "insufficient" in error_lower or "not enough" in error_lower:
        return TxFailureReason.INSUFFICIENT_FUNDS
    if "slippage" in error_lower or "exceeds" in error_lower:
        return TxFailureReason.SLIPPAGE_EXCEEDED
    if "program" in error_lower:
        return TxFailureReason.PROGRAM_ERROR
    if "timeout" in error_lower or "timed out" in error_lower:
        return TxFailureReason.TIMEOUT
    if "connection" in error_lower or "network" in error_lower:
        return TxFailureReason.NETWORK_ERROR

    return TxFailureReason.UNKNOWN


class SolanaClient:
    """
    RPC client bound to the engine's wallet.

    Balance reads return None on RPC failure; the engine decides what a
    missing balance means for the cycle. Submission and confirmation raise
    typed SwapErrors for the pipeline.
    """

    def __init__(
        self,
        rpc_url: str,
        keypair: Keypair,
        confirm_timeout: float = 60.0,
        send_attempts: int = 3,
        send_backoff_seconds: float = 1.0,
        poll_interval: float = 0.5,
        client: Optional[Any] = None,
    ):
        if send_attempts < 1:
            raise ValueError("send_attempts must be >= 1")
        self.rpc_url = rpc_url
        self.keypair = keypair
        self.confirm_timeout = confirm_timeout
        self.send_attempts = send_attempts
        self.send_backoff_seconds = send_backoff_seconds
        self.poll_interval = poll_interval

        self._client = client
        self.pubkey = keypair.pubkey()

        logger.info(
            f"SOLANA_CLIENT | init | wallet={str(self.pubkey)[:8]}... | "
            f"confirm_timeout={confirm_timeout}s | send_attempts={send_attempts}"
        )

    async def _get_client(self) -> AsyncClient:
        """Get or create RPC client."""
        if self._client is None:
            self._client = AsyncClient(self.rpc_url, commitment=Confirmed)
        return self._client

    async def close(self):
        """Close RPC client."""
        if self._client:
            await self._client.close()
            self._client = None

    async def check_connection(self) -> Optional[str]:
        """Return the node version, or None if the RPC is unreachable."""
        try:
            client = await self._get_client()
            resp = await client.get_version()
            version = resp.value.solana_core
            logger.info(f"RPC_CONNECTED | {self.rpc_url} | version={version}")
            return version
        except Exception as e:
            logger.error(f"RPC_CONNECT | error | {self.rpc_url} | {type(e).__name__}: {e}")
            return None

    # =========================================================================
    # BALANCE OPERATIONS
    # =========================================================================

    async def get_sol_balance(self) -> Optional[Decimal]:
        """Get SOL balance in SOL (not lamports)."""
        try:
            client = await self._get_client()
            result = await client.get_balance(self.pubkey)
            return from_raw(result.value, 9)
        except Exception as e:
            logger.error(f"SOL_BALANCE | error | {type(e).__name__}: {e}")
            return None

    async def get_token_balance(self, mint: str) -> Optional[Decimal]:
        """
        Get SPL token balance in token units.

        Sums every token account the wallet holds for the mint; a wallet with
        no account for the mint has a zero balance.
        """
        try:
            client = await self._get_client()
            result = await client.get_token_accounts_by_owner_json_parsed(
                self.pubkey,
                TokenAccountOpts(mint=Pubkey.from_string(mint)),
            )

            total = Decimal(0)
            for account in result.value:
                info = account.account.data.parsed["info"]
                amount = info["tokenAmount"]
                total += from_raw(int(amount["amount"]), int(amount["decimals"]))
            return total

        except Exception as e:
            logger.error(f"TOKEN_BALANCE | error | mint={mint[:8]}... | {type(e).__name__}: {e}")
            return None

    async def get_token_decimals(self, mint: str) -> Optional[int]:
        """Read a mint's decimal precision from its supply record."""
        try:
            client = await self._get_client()
            result = await client.get_token_supply(Pubkey.from_string(mint))
            return int(result.value.decimals)
        except Exception as e:
            logger.error(f"TOKEN_DECIMALS | error | mint={mint[:8]}... | {type(e).__name__}: {e}")
            return None

    # =========================================================================
    # SUBMISSION
    # =========================================================================

    async def submit(self, tx: VersionedTransaction) -> str:
        """
        Broadcast a signed transaction.

        Retries transport-level failures up to send_attempts times with a
        linearly growing delay. Deterministic rejections (simulation,
        funds, slippage, expired blockhash) fail immediately.

        Raises:
            SubmissionFailure: no signature was obtained
        """
        client = await self._get_client()
        opts = TxOpts(
            skip_preflight=False,
            preflight_commitment=Confirmed,
            max_retries=self.send_attempts,
        )
        last_error = "no_attempt"

        for attempt in range(1, self.send_attempts + 1):
            try:
                resp = await client.send_transaction(tx, opts=opts)
                signature = str(resp.value)
                logger.info(f"TX_SENT | sig={signature} | attempt={attempt}")
                return signature
            except Exception as e:
                last_error = f"{type(e).__name__}: {e}"
                reason = classify_error(str(e))
                logger.warning(
                    f"TX_SEND | attempt {attempt}/{self.send_attempts} failed | "
                    f"reason={reason.value} | {last_error}"
                )
                if reason not in RETRYABLE_REASONS:
                    raise SubmissionFailure(f"send rejected ({reason.value}): {last_error}") from e

            if attempt < self.send_attempts:
                await asyncio.sleep(self.send_backoff_seconds * attempt)

        raise SubmissionFailure(f"send failed after {self.send_attempts} attempts: {last_error}")

    # =========================================================================
    # SIGNATURE STATUS
    # =========================================================================

    async def get_signature_status(self, signature: str) -> Optional[dict]:
        """
        Get status of a transaction signature.

        Returns dict with:
            - confirmed: bool
            - error: Optional[str]
        or None if the signature is not yet visible / the RPC call failed.
        """
        try:
            client = await self._get_client()
            result = await client.get_signature_statuses([Signature.from_string(signature)])

            if not result.value or not result.value[0]:
                return None

            status = result.value[0]
            return {
                "confirmed": status.confirmation_status in _CONFIRMED_LEVELS,
                "error": str(status.err) if status.err else None,
            }

        except Exception as e:
            logger.warning(f"SIG_STATUS | error | sig={signature[:16]}... | {type(e).__name__}: {e}")
            return None

    async def wait_for_confirmation(self, signature: str) -> None:
        """
        Block until the transaction is confirmed, rejected, or the timeout passes.

        Raises:
            ConfirmationFailure: reason REJECTED on an on-chain error,
                reason TIMEOUT when confirm_timeout elapsed first
        """
        loop = asyncio.get_event_loop()
        start = loop.time()

        while True:
            status = await self.get_signature_status(signature)

            if status is not None:
                if status["error"]:
                    logger.error(f"TX_REJECTED | sig={signature} | error={status['error']}")
                    raise ConfirmationFailure(
                        f"transaction rejected on-chain: {status['error']}",
                        signature=signature,
                        reason=ConfirmationFailure.REJECTED,
                    )
                if status["confirmed"]:
                    logger.info(f"TX_CONFIRMED | sig={signature}")
                    return

            elapsed = loop.time() - start
            if elapsed >= self.confirm_timeout:
                logger.warning(f"TX_TIMEOUT | sig={signature} | elapsed={elapsed:.1f}s")
                raise ConfirmationFailure(
                    f"confirmation timeout after {elapsed:.1f}s",
                    signature=signature,
                    reason=ConfirmationFailure.TIMEOUT,
                )

            await asyncio.sleep(self.poll_interval)
