"""
jupiter_client.py - Jupiter v6 quote + swap-build client

Policy:
1. Jupiter picks the route - NO manual routing
2. GET /quote - returns route and amounts
3. POST /swap - returns an unsigned transaction for our wallet
4. Validate response schema before using
5. On any failure: raise QuoteFailure / TransactionBuildFailure (the
   pipeline turns these into a failed attempt)
"""

from __future__ import annotations

import asyncio
import base64
import binascii
from typing import Optional

import httpx
from loguru import logger

from volbot.domain.models import Quote
from volbot.errors import QuoteFailure, TransactionBuildFailure


class JupiterClient:
    """Jupiter DEX client for quotes and swap transactions."""

    BASE_URL = "https://quote-api.jup.ag/v6"

    QUOTE_ATTEMPTS = 3

    def __init__(
        self,
        http_timeout: float = 30.0,
        base_url: Optional[str] = None,
        priority_fee_lamports: Optional[int] = None,
        retry_delay_base: float = 1.0,
        session: Optional[httpx.AsyncClient] = None,
    ):
        self.http_timeout = http_timeout
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.priority_fee_lamports = priority_fee_lamports
        self.retry_delay_base = retry_delay_base
        self._client = session

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.http_timeout)
        return self._client

    async def close(self):
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    @staticmethod
    def _parse_quote(data: object, input_mint: str, output_mint: str, slippage_bps: int) -> Quote:
        if not isinstance(data, dict):
            raise QuoteFailure("invalid quote response: body is not an object")
        out_amount = data.get("outAmount")
        if out_amount is None:
            raise QuoteFailure("invalid quote response: missing outAmount")
        try:
            out_raw = int(str(out_amount))
            in_raw = int(str(data.get("inAmount", "0")))
        except ValueError as e:
            raise QuoteFailure(f"invalid quote response: non-integer amount ({out_amount})") from e
        if out_raw <= 0:
            raise QuoteFailure(f"invalid quote response: outAmount={out_raw}")
        return Quote(
            input_mint=input_mint,
            output_mint=output_mint,
            in_amount_raw=in_raw,
            out_amount_raw=out_raw,
            slippage_bps=slippage_bps,
            payload=data,
        )

    async def get_quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage_bps: int,
    ) -> Quote:
        """
        Get quote from Jupiter.

        Policy:
        - Retry 429 / 5xx / timeouts up to 3x with exponential backoff
        - Any other non-2xx or a malformed body fails immediately

        Args:
            input_mint: Input token mint address
            output_mint: Output token mint address
            amount: Amount in smallest unit (lamports/decimals)
            slippage_bps: Slippage tolerance in basis points

        Raises:
            QuoteFailure
        """
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(amount),
            "slippageBps": str(slippage_bps),
        }

        client = await self._get_client()
        last_error = "no_attempt"

        for attempt in range(self.QUOTE_ATTEMPTS):
            is_last = attempt == self.QUOTE_ATTEMPTS - 1
            try:
                resp = await client.get(f"{self.base_url}/quote", params=params)
            except httpx.TimeoutException:
                last_error = "timeout"
                logger.warning(f"JUPITER_QUOTE | timeout (attempt {attempt + 1}/{self.QUOTE_ATTEMPTS})")
                if not is_last:
                    await asyncio.sleep(self.retry_delay_base * 2 ** attempt)
                continue
            except httpx.HTTPError as e:
                raise QuoteFailure(f"transport error: {type(e).__name__}: {e}") from e

            if resp.status_code == 429 or resp.status_code >= 500:
                last_error = f"http_{resp.status_code}"
                logger.warning(
                    f"JUPITER_QUOTE | {last_error} (attempt {attempt + 1}/{self.QUOTE_ATTEMPTS})"
                )
                if not is_last:
                    await asyncio.sleep(self.retry_delay_base * 2 ** attempt)
                continue

            if resp.status_code >= 400:
                raise QuoteFailure(f"http_{resp.status_code}: {resp.text[:200]}")

            try:
                data = resp.json()
            except ValueError as e:
                raise QuoteFailure("invalid quote response: not JSON") from e

            quote = self._parse_quote(data, input_mint, output_mint, slippage_bps)
            logger.debug(f"JUPITER_QUOTE | success | in={quote.in_amount_raw} out={quote.out_amount_raw}")
            return quote

        raise QuoteFailure(f"quote unavailable after {self.QUOTE_ATTEMPTS} attempts: {last_error}")

    async def get_swap_transaction(self, quote: Quote, user_pubkey: str) -> bytes:
        """
        Get unsigned swap transaction for a quote.

        Policy:
        - POST with wrapAndUnwrapSol=True and the configured priority fee
          ("auto" when none is configured)
        - Validate swapTransaction exists and is base64

        Raises:
            TransactionBuildFailure
        """
        payload = {
            "quoteResponse": quote.payload,
            "userPublicKey": user_pubkey,
            "wrapAndUnwrapSol": True,
            "prioritizationFeeLamports": (
                self.priority_fee_lamports if self.priority_fee_lamports is not None else "auto"
            ),
        }

        client = await self._get_client()

        try:
            resp = await client.post(f"{self.base_url}/swap", json=payload)
        except httpx.HTTPError as e:
            raise TransactionBuildFailure(f"transport error: {type(e).__name__}: {e}") from e

        if resp.status_code >= 400:
            raise TransactionBuildFailure(f"http_{resp.status_code}: {resp.text[:200]}")

        try:
            data = resp.json()
        except ValueError as e:
            raise TransactionBuildFailure("invalid swap response: not JSON") from e

        tx_b64 = data.get("swapTransaction") if isinstance(data, dict) else None
        if not tx_b64:
            raise TransactionBuildFailure("invalid swap response: missing swapTransaction")

        try:
            tx_bytes = base64.b64decode(tx_b64, validate=True)
        except (binascii.Error, TypeError, ValueError) as e:
            raise TransactionBuildFailure("invalid swap response: swapTransaction is not base64") from e

        logger.debug(f"JUPITER_SWAP | success | tx_size={len(tx_bytes)} bytes")
        return tx_bytes
