"""
Engine configuration (SINGLE SOURCE OF TRUTH)

Policy:
- load_config() is the only place environment variables are read
- EngineConfig is frozen after boot; runtime code reads it, never os.environ
- Missing/invalid secret key or token mint fails fast with a descriptive error
- The secret key is resolved here and never stored on EngineConfig
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Mapping, Optional, Tuple

from dotenv import load_dotenv
from solders.pubkey import Pubkey

from volbot.errors import ConfigError, InvalidKeyError
from volbot.wallet.key_resolver import ResolvedKey, resolve_key

DEFAULT_RPC = "https://api.mainnet-beta.solana.com"


@dataclass(frozen=True)
class EngineConfig:
    wallet_pubkey: str
    token_mint: str
    token_decimals: Optional[int] = None
    rpc_url: str = DEFAULT_RPC
    trade_amount_usd: Decimal = Decimal("1")
    trade_interval_seconds: float = 20.0
    slippage_bps: int = 100
    priority_fee_lamports: int = 1_000_000
    min_sol_balance: Decimal = Decimal("0.005")
    fee_reserve_sol: Decimal = Decimal("0.005")
    confirm_timeout_seconds: float = 60.0
    send_attempts: int = 3
    price_refresh_cycles: int = 10
    default_sol_price: Decimal = Decimal("150")
    reference_quote_tokens: Decimal = Decimal("1")
    http_timeout_seconds: float = 30.0
    shutdown_grace_seconds: float = 30.0
    journal_path: str = "transactions.jsonl"
    log_level: str = "INFO"
    log_file: Optional[str] = "trading.log"
    jupiter_api_base: Optional[str] = None
    coingecko_api_base: Optional[str] = None

    def __post_init__(self):
        if not self.rpc_url:
            raise ConfigError("rpc_url is required")
        if self.token_decimals is not None and not 0 <= self.token_decimals <= 18:
            raise ConfigError(f"TOKEN_DECIMALS must be in 0..18, got {self.token_decimals}")
        if self.trade_amount_usd <= 0:
            raise ConfigError("TRADE_AMOUNT_USD must be positive")
        if self.trade_interval_seconds <= 0:
            raise ConfigError("TRADE_INTERVAL must be positive")
        if not 0 < self.slippage_bps <= 10_000:
            raise ConfigError("SLIPPAGE_BPS must be in 1..10000")
        if self.priority_fee_lamports < 0:
            raise ConfigError("PRIORITY_FEE cannot be negative")
        if self.min_sol_balance < 0 or self.fee_reserve_sol < 0:
            raise ConfigError("MIN_SOL_BALANCE and FEE_RESERVE_SOL cannot be negative")
        if self.send_attempts < 1:
            raise ConfigError("SEND_ATTEMPTS must be >= 1")
        if self.price_refresh_cycles < 1:
            raise ConfigError("PRICE_REFRESH_CYCLES must be >= 1")
        if self.default_sol_price <= 0 or self.reference_quote_tokens <= 0:
            raise ConfigError("DEFAULT_SOL_PRICE and REFERENCE_QUOTE_TOKENS must be positive")
        if self.confirm_timeout_seconds <= 0:
            raise ConfigError("CONFIRM_TIMEOUT must be positive")


def _get(env: Mapping[str, str], name: str, default: str = "") -> str:
    return (env.get(name) or default).strip()


def _decimal(env: Mapping[str, str], name: str, default: str) -> Decimal:
    raw = _get(env, name, default)
    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None
    if not value.is_finite():
        raise ConfigError(f"{name} must be finite, got {raw!r}")
    return value


def _int(env: Mapping[str, str], name: str, default: str) -> int:
    raw = _get(env, name, default)
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def _float(env: Mapping[str, str], name: str, default: str) -> float:
    raw = _get(env, name, default)
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None


def load_config(environ: Optional[Mapping[str, str]] = None) -> Tuple[EngineConfig, ResolvedKey]:
    """
    Build config and signing identity from the environment.

    Raises:
        ConfigError: a required value is missing or malformed
        InvalidKeyError: WALLET_PRIVATE_KEY matches no supported encoding
    """
    env = os.environ if environ is None else environ

    private_key = _get(env, "WALLET_PRIVATE_KEY")
    if not private_key:
        raise ConfigError("WALLET_PRIVATE_KEY not set")

    token_mint = _get(env, "TOKEN_MINT")
    if not token_mint:
        raise ConfigError("TOKEN_MINT not set")
    try:
        Pubkey.from_string(token_mint)
    except ValueError:
        raise ConfigError(f"TOKEN_MINT is not a valid address: {token_mint!r}") from None

    resolved = resolve_key(private_key)

    decimals_raw = _get(env, "TOKEN_DECIMALS")
    log_file = env.get("LOG_FILE", "trading.log").strip()

    config = EngineConfig(
        wallet_pubkey=resolved.pubkey,
        token_mint=token_mint,
        token_decimals=_int(env, "TOKEN_DECIMALS", "0") if decimals_raw else None,
        rpc_url=_get(env, "RPC_ENDPOINT", DEFAULT_RPC),
        trade_amount_usd=_decimal(env, "TRADE_AMOUNT_USD", "1"),
        trade_interval_seconds=_float(env, "TRADE_INTERVAL", "20000") / 1000.0,
        slippage_bps=_int(env, "SLIPPAGE_BPS", "100"),
        priority_fee_lamports=_int(env, "PRIORITY_FEE", "1000000"),
        min_sol_balance=_decimal(env, "MIN_SOL_BALANCE", "0.005"),
        fee_reserve_sol=_decimal(env, "FEE_RESERVE_SOL", "0.005"),
        confirm_timeout_seconds=_float(env, "CONFIRM_TIMEOUT", "60"),
        send_attempts=_int(env, "SEND_ATTEMPTS", "3"),
        price_refresh_cycles=_int(env, "PRICE_REFRESH_CYCLES", "10"),
        default_sol_price=_decimal(env, "DEFAULT_SOL_PRICE", "150"),
        reference_quote_tokens=_decimal(env, "REFERENCE_QUOTE_TOKENS", "1"),
        http_timeout_seconds=_float(env, "HTTP_TIMEOUT", "30"),
        shutdown_grace_seconds=_float(env, "SHUTDOWN_GRACE_SECONDS", "30"),
        journal_path=_get(env, "JOURNAL_PATH", "transactions.jsonl"),
        log_level=_get(env, "LOG_LEVEL", "INFO").upper(),
        log_file=log_file or None,
        jupiter_api_base=_get(env, "JUPITER_API_BASE") or None,
        coingecko_api_base=_get(env, "COINGECKO_API_BASE") or None,
    )
    return config, resolved


def load_config_or_exit() -> Tuple[EngineConfig, ResolvedKey]:
    """Load .env once, then build config. Exits with code 1 on any error."""
    load_dotenv()
    try:
        return load_config()
    except (ConfigError, InvalidKeyError) as e:
        print(f"FATAL: {e}", file=sys.stderr)
        sys.exit(1)
