from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import List

import httpx


def _oracle(responses: List[httpx.Response]):
    from volbot.engines.price_oracle import PriceOracle

    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        resp = responses.pop(0)
        if isinstance(resp, Exception):
            raise resp
        return resp

    session = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PriceOracle(default_price=Decimal("150"), session=session), seen


def test_live_price_is_parsed_as_decimal() -> None:
    from volbot.domain.models import PriceSource

    oracle, seen = _oracle([httpx.Response(200, json={"solana": {"usd": 171.35}})])
    sample = asyncio.run(oracle.refresh())

    assert sample.value == Decimal("171.35")
    assert sample.source is PriceSource.LIVE
    assert not sample.is_fallback
    assert seen[0].url.params["ids"] == "solana"
    assert seen[0].url.params["vs_currencies"] == "usd"
    assert oracle.latest == sample


def test_default_used_when_no_prior_sample() -> None:
    from volbot.domain.models import PriceSource

    oracle, _ = _oracle([httpx.Response(503, text="unavailable")])
    sample = asyncio.run(oracle.refresh())

    assert sample.value == Decimal("150")
    assert sample.source is PriceSource.DEFAULT
    assert sample.is_fallback


def test_last_live_reused_unchanged_after_failure() -> None:
    from volbot.domain.models import PriceSource

    oracle, _ = _oracle([
        httpx.Response(200, json={"solana": {"usd": 180}}),
        httpx.ConnectError("down"),
    ])

    async def _run():
        first = await oracle.refresh()
        second = await oracle.refresh()
        return first, second

    first, second = asyncio.run(_run())

    assert second.value == first.value == Decimal("180")
    assert second.observed_at == first.observed_at
    assert second.source is PriceSource.STALE


def test_malformed_bodies_fall_back() -> None:
    from volbot.domain.models import PriceSource

    bodies = [
        httpx.Response(200, json={"bitcoin": {"usd": 1}}),
        httpx.Response(200, json={"solana": {"usd": None}}),
        httpx.Response(200, text="<html>rate limited</html>"),
    ]
    oracle, _ = _oracle(list(bodies))

    async def _run():
        return [await oracle.refresh() for _ in bodies]

    for sample in asyncio.run(_run()):
        assert sample.source is PriceSource.DEFAULT
        assert sample.value == Decimal("150")


def test_non_positive_price_is_never_returned() -> None:
    oracle, _ = _oracle([
        httpx.Response(200, json={"solana": {"usd": 0}}),
        httpx.Response(200, json={"solana": {"usd": -3.2}}),
    ])

    async def _run():
        return [await oracle.refresh(), await oracle.refresh()]

    for sample in asyncio.run(_run()):
        assert sample.value > 0


def test_latest_without_fetch_is_default() -> None:
    from volbot.domain.models import PriceSource
    from volbot.engines.price_oracle import PriceOracle

    oracle = PriceOracle(default_price=Decimal("99"))
    assert oracle.latest.value == Decimal("99")
    assert oracle.latest.source is PriceSource.DEFAULT
