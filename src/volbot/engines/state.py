from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from volbot.domain.models import Direction
from volbot.stats.trade_stats import TradeStats


@dataclass
class EngineState:
    """
    Mutable engine state. Owned and written only by VolumeEngine.

    The purchase reference (token amount + USD notional) is set only by a
    successful BUY and is what the following SELL tries to unwind.
    """
    next_direction: Direction = Direction.BUY
    last_purchased_token_amount: Optional[Decimal] = None
    last_trade_usd_notional: Optional[Decimal] = None
    cycles: int = 0
    stats: TradeStats = field(default_factory=TradeStats)

    @property
    def has_purchase_reference(self) -> bool:
        return self.last_trade_usd_notional is not None and self.last_trade_usd_notional > 0
