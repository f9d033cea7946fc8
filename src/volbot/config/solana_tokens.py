"""
Token metadata for the traded pair.

SOL is fixed. The target token is built at boot from TOKEN_MINT and its
decimals (configured, or read from the mint via RPC).
"""

from __future__ import annotations

from dataclasses import dataclass

from solders.pubkey import Pubkey


@dataclass(frozen=True)
class SolanaToken:
    symbol: str
    mint: str
    decimals: int

    @property
    def is_native(self) -> bool:
        return self.mint == SOL.mint


# Wrapped SOL mint; Jupiter wraps/unwraps native SOL around it.
SOL = SolanaToken(symbol="SOL", mint="So11111111111111111111111111111111111111112", decimals=9)


def target_token(mint: str, decimals: int, symbol: str = "TOKEN") -> SolanaToken:
    """Build the traded token, rejecting malformed mints and precisions."""
    mint = mint.strip()
    Pubkey.from_string(mint)  # raises ValueError on a malformed mint
    if mint == SOL.mint:
        raise ValueError("target token cannot be the SOL mint")
    if not 0 <= int(decimals) <= 18:
        raise ValueError(f"token decimals out of range: {decimals}")
    return SolanaToken(symbol=symbol, mint=mint, decimals=int(decimals))


__all__ = [
    "SolanaToken",
    "SOL",
    "target_token",
]
