"""Volbot: alternating BUY/SELL volume engine for a single Solana token via Jupiter."""

__version__ = "0.1.0"
