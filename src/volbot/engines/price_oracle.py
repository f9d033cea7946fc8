"""
price_oracle.py - SOL/USD price with stale-but-available fallback

Policy:
1. CoinGecko /simple/price is the only source
2. refresh() NEVER raises: on any failure it returns the last live sample
   (marked STALE) or the configured default (marked DEFAULT)
3. Every returned value is > 0 and finite
4. No autonomous polling - the engine decides when to refresh
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

import httpx
from loguru import logger

from volbot.domain.models import PriceSample, PriceSource
from volbot.errors import PriceUnavailable


class PriceOracle:
    """Fetches and caches the SOL/USD price."""

    BASE_URL = "https://api.coingecko.com/api/v3"
    COIN_ID = "solana"
    VS_CURRENCY = "usd"

    def __init__(
        self,
        default_price: Decimal = Decimal("150"),
        base_url: Optional[str] = None,
        http_timeout: float = 10.0,
        session: Optional[httpx.AsyncClient] = None,
    ):
        if default_price <= 0:
            raise ValueError("default_price must be positive")
        self.default_price = Decimal(default_price)
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.http_timeout = http_timeout
        self._client = session
        self._last_live: Optional[PriceSample] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.http_timeout)
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    @property
    def latest(self) -> PriceSample:
        """Best known sample without touching the network."""
        if self._last_live is not None:
            return self._last_live
        return self._default_sample()

    def _default_sample(self) -> PriceSample:
        return PriceSample(
            value=self.default_price,
            observed_at=datetime.now(timezone.utc),
            source=PriceSource.DEFAULT,
        )

    async def _fetch(self) -> Decimal:
        client = await self._get_client()
        try:
            resp = await client.get(
                f"{self.base_url}/simple/price",
                params={"ids": self.COIN_ID, "vs_currencies": self.VS_CURRENCY},
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as e:
            raise PriceUnavailable(f"{type(e).__name__}: {e}") from e
        except ValueError as e:
            raise PriceUnavailable("response_not_json") from e

        try:
            raw = data[self.COIN_ID][self.VS_CURRENCY]
            price = Decimal(str(raw))
        except (KeyError, TypeError, InvalidOperation) as e:
            raise PriceUnavailable("missing_price_field") from e

        if not price.is_finite() or price <= 0:
            raise PriceUnavailable(f"price_out_of_bounds:{price}")
        return price

    async def refresh(self) -> PriceSample:
        """Fetch a live price; fall back to last-known or default on failure."""
        try:
            price = await self._fetch()
        except PriceUnavailable as e:
            if self._last_live is not None:
                logger.warning(
                    f"PRICE_STALE | fetch failed ({e}) | using last known "
                    f"${self._last_live.value} from {self._last_live.observed_at.isoformat()}"
                )
                return PriceSample(
                    value=self._last_live.value,
                    observed_at=self._last_live.observed_at,
                    source=PriceSource.STALE,
                )
            sample = self._default_sample()
            logger.warning(f"PRICE_DEFAULT | fetch failed ({e}) | using default ${sample.value}")
            return sample

        self._last_live = PriceSample(
            value=price,
            observed_at=datetime.now(timezone.utc),
            source=PriceSource.LIVE,
        )
        logger.info(f"PRICE | SOL=${price}")
        return self._last_live

