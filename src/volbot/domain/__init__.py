from .models import (
    AssetUnit,
    BaseAmount,
    Direction,
    PriceSample,
    PriceSource,
    Quote,
    Sizing,
    SwapAttemptRecord,
    TokenAmount,
    from_raw,
    to_raw,
)

__all__ = [
    "AssetUnit",
    "BaseAmount",
    "Direction",
    "PriceSample",
    "PriceSource",
    "Quote",
    "Sizing",
    "SwapAttemptRecord",
    "TokenAmount",
    "from_raw",
    "to_raw",
]
