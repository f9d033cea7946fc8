"""
key_resolver.py - Accept a Solana secret key in any common text encoding

Supported encodings of the 64-byte secret (seed + pubkey):
1. base58            (Phantom / Solflare export)
2. base64
3. hex               (128 characters)
4. decimal array     ("12,34,..." or the solana-keygen JSON "[12,34,...]")

Policy:
- Strategies run in that fixed order; the first one that yields 64 bytes
  forming a consistent keypair wins.
- Each strategy returns bytes or None. No exception-driven fallthrough.
- NEVER LOG: the raw string, the decoded bytes or the canonical re-encoding.
"""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Tuple

import base58
from solders.keypair import Keypair

from volbot.errors import InvalidKeyError

SECRET_KEY_LENGTH = 64

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")
_DIGITS_RE = re.compile(r"^[0-9]+$")


class KeyFormat(Enum):
    BASE58 = "base58"
    BASE64 = "base64"
    HEX = "hex"
    ARRAY = "array"


@dataclass(frozen=True)
class ResolvedKey:
    """Signing identity plus the encoding it was supplied in."""
    keypair: Keypair = field(repr=False)
    key_format: KeyFormat
    canonical_b58: str = field(repr=False)

    @property
    def pubkey(self) -> str:
        return str(self.keypair.pubkey())


# =============================================================================
# DECODE STRATEGIES
# =============================================================================

def _decode_base58(raw: str) -> Optional[bytes]:
    try:
        return base58.b58decode(raw)
    except ValueError:
        return None


def _decode_base64(raw: str) -> Optional[bytes]:
    try:
        return base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError):
        return None


def _decode_hex(raw: str) -> Optional[bytes]:
    if not _HEX_RE.match(raw) or len(raw) != SECRET_KEY_LENGTH * 2:
        return None
    return bytes.fromhex(raw)


def _decode_array(raw: str) -> Optional[bytes]:
    body = raw
    if body.startswith("[") and body.endswith("]"):
        body = body[1:-1]
    parts = [p.strip() for p in body.split(",")]
    if len(parts) != SECRET_KEY_LENGTH or not all(_DIGITS_RE.match(p) for p in parts):
        return None
    values = [int(p) for p in parts]
    if any(v > 255 for v in values):
        return None
    return bytes(values)


_STRATEGIES: Tuple[Tuple[KeyFormat, Callable[[str], Optional[bytes]]], ...] = (
    (KeyFormat.BASE58, _decode_base58),
    (KeyFormat.BASE64, _decode_base64),
    (KeyFormat.HEX, _decode_hex),
    (KeyFormat.ARRAY, _decode_array),
)


def _keypair_from_secret(secret: Optional[bytes]) -> Optional[Keypair]:
    """Build a keypair only if the trailing 32 bytes match the seed's pubkey."""
    if secret is None or len(secret) != SECRET_KEY_LENGTH:
        return None
    keypair = Keypair.from_seed(secret[:32])
    if bytes(keypair.pubkey()) != secret[32:]:
        return None
    return keypair


def resolve_key(raw_key: str) -> ResolvedKey:
    """
    Resolve a secret key string into a keypair.

    Raises:
        InvalidKeyError: no strategy produced a valid 64-byte keypair
    """
    if not raw_key or not raw_key.strip():
        raise InvalidKeyError("Private key is empty")

    raw = raw_key.strip()

    for key_format, decode in _STRATEGIES:
        keypair = _keypair_from_secret(decode(raw))
        if keypair is not None:
            return ResolvedKey(
                keypair=keypair,
                key_format=key_format,
                canonical_b58=base58.b58encode(bytes(keypair)).decode("ascii"),
            )

    raise InvalidKeyError("Unable to decode private key in any known format")
