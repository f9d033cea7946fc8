from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_DOWN, Decimal
from enum import Enum
from typing import Any, Dict, Optional, Union


class Direction(Enum):
    BUY = "BUY"
    SELL = "SELL"

    def flipped(self) -> "Direction":
        return Direction.SELL if self is Direction.BUY else Direction.BUY


class AssetUnit(Enum):
    """Which side of the pair an amount is denominated in."""
    BASE = "BASE"
    TOKEN = "TOKEN"


class PriceSource(Enum):
    LIVE = "live"
    STALE = "stale"      # last live value reused after a failed refresh
    DEFAULT = "default"  # no live value ever obtained


# =============================================================================
# AMOUNT CONVERSION
# =============================================================================

def to_raw(amount: Decimal, decimals: int) -> int:
    """Convert a UI amount to smallest units. Always truncates toward zero."""
    scaled = Decimal(amount).scaleb(decimals)
    return int(scaled.to_integral_value(rounding=ROUND_DOWN))


def from_raw(raw: int, decimals: int) -> Decimal:
    return Decimal(int(raw)).scaleb(-decimals)


# =============================================================================
# VALUE TYPES
# =============================================================================

@dataclass(frozen=True)
class PriceSample:
    """SOL/USD price. value is strictly positive on every path."""
    value: Decimal
    observed_at: datetime
    source: PriceSource

    @property
    def is_fallback(self) -> bool:
        return self.source is not PriceSource.LIVE

    @property
    def age_seconds(self) -> float:
        return (datetime.now(timezone.utc) - self.observed_at).total_seconds()


@dataclass(frozen=True)
class Quote:
    """
    Aggregator quote for one swap attempt.

    payload is the untouched response body; the build endpoint needs it back
    verbatim. Quotes are never reused across attempts.
    """
    input_mint: str
    output_mint: str
    in_amount_raw: int
    out_amount_raw: int
    slippage_bps: int
    payload: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class BaseAmount:
    """Sizing in input-asset units (BUY legs: SOL computed from the USD target)."""
    amount: Decimal
    usd_notional: Optional[Decimal] = None


@dataclass(frozen=True)
class TokenAmount:
    """Explicit quantity of the input token (SELL legs)."""
    quantity: Decimal
    usd_notional: Optional[Decimal] = None


Sizing = Union[BaseAmount, TokenAmount]


@dataclass(frozen=True)
class SwapAttemptRecord:
    """One pipeline invocation. Written to the journal once, never mutated."""
    timestamp: datetime
    direction: Direction
    input_mint: str
    output_mint: str
    input_amount: Decimal
    input_unit: AssetUnit
    output_amount: Optional[Decimal]
    usd_notional: Optional[Decimal]
    transaction_id: Optional[str]
    success: bool
    error: Optional[str] = None

    @property
    def output_unit(self) -> AssetUnit:
        return AssetUnit.TOKEN if self.input_unit is AssetUnit.BASE else AssetUnit.BASE

    def to_dict(self) -> Dict[str, Any]:
        def _num(v: Optional[Decimal]) -> Optional[str]:
            return None if v is None else str(v)

        return {
            "timestamp": self.timestamp.isoformat(),
            "type": self.direction.value,
            "fromMint": self.input_mint,
            "toMint": self.output_mint,
            "inputAmount": _num(self.input_amount),
            "inputType": self.input_unit.value,
            "outputAmount": _num(self.output_amount),
            "outputType": self.output_unit.value,
            "amountUSD": _num(self.usd_notional),
            "txid": self.transaction_id,
            "success": self.success,
            "error": self.error,
        }
