"""
Error kinds for the volume engine.

Only ConfigError and InvalidKeyError are fatal, and only at startup.
SwapError subclasses are recovered at the pipeline boundary into a failed
SwapAttemptRecord. The balance/reference errors are recovered by the engine
by skipping the cycle.
"""

from __future__ import annotations

from typing import Optional


class VolbotError(Exception):
    """Base class for all engine errors."""


class ConfigError(VolbotError):
    """Missing or invalid configuration value."""


class InvalidKeyError(VolbotError):
    """Secret key string matched none of the supported encodings."""


class PriceUnavailable(VolbotError):
    """Live price fetch failed. Never escapes PriceOracle."""


# =============================================================================
# SWAP PIPELINE FAILURES
# =============================================================================

class SwapError(VolbotError):
    """A swap attempt failed at one of the pipeline steps."""

    step = "swap"

    def __init__(self, message: str, signature: Optional[str] = None):
        super().__init__(message)
        self.signature = signature


class AmountResolutionError(SwapError):
    step = "amount"


class QuoteFailure(SwapError):
    step = "quote"


class TransactionBuildFailure(SwapError):
    step = "build"


class SigningFailure(SwapError):
    step = "sign"


class SubmissionFailure(SwapError):
    step = "submit"


class ConfirmationFailure(SwapError):
    """
    Transaction was submitted but not confirmed.

    reason is "rejected" for an on-chain error and "timeout" when the
    confirmation ceiling was hit. The signature is always set.
    """

    step = "confirm"

    REJECTED = "rejected"
    TIMEOUT = "timeout"

    def __init__(self, message: str, signature: str, reason: str):
        super().__init__(message, signature=signature)
        self.reason = reason


# =============================================================================
# CYCLE SKIPS
# =============================================================================

class InsufficientBalance(VolbotError):
    """SOL balance below the operating minimum or unable to cover fees."""


class BalanceUnavailable(VolbotError):
    """Balance RPC read failed."""


class NoPriorPurchase(VolbotError):
    """SELL requested before any successful BUY."""


class ZeroTokenBalance(VolbotError):
    """SELL requested with no tokens held."""


__all__ = [
    "VolbotError",
    "ConfigError",
    "InvalidKeyError",
    "PriceUnavailable",
    "SwapError",
    "AmountResolutionError",
    "QuoteFailure",
    "TransactionBuildFailure",
    "SigningFailure",
    "SubmissionFailure",
    "ConfirmationFailure",
    "InsufficientBalance",
    "BalanceUnavailable",
    "NoPriorPurchase",
    "ZeroTokenBalance",
]
