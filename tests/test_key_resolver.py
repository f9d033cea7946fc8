from __future__ import annotations

import base64

import base58
import pytest
from solders.keypair import Keypair

_SEED = bytes(range(1, 33))


def _secret() -> bytes:
    return bytes(Keypair.from_seed(_SEED))


def _encodings(secret: bytes) -> dict:
    return {
        "base58": base58.b58encode(secret).decode(),
        "base64": base64.b64encode(secret).decode(),
        "hex": secret.hex(),
        "array": ",".join(str(b) for b in secret),
    }


@pytest.mark.parametrize("fmt", ["base58", "base64", "hex", "array"])
def test_each_encoding_resolves_to_same_wallet(fmt: str) -> None:
    from volbot.wallet.key_resolver import KeyFormat, resolve_key

    secret = _secret()
    resolved = resolve_key(_encodings(secret)[fmt])

    assert resolved.key_format == KeyFormat(fmt)
    assert resolved.pubkey == str(Keypair.from_seed(_SEED).pubkey())
    assert resolved.canonical_b58 == base58.b58encode(secret).decode()


def test_array_accepts_json_brackets_and_spaces() -> None:
    from volbot.wallet.key_resolver import KeyFormat, resolve_key

    secret = _secret()
    raw = "[" + ", ".join(str(b) for b in secret) + "]"

    resolved = resolve_key(raw)
    assert resolved.key_format is KeyFormat.ARRAY
    assert bytes(resolved.keypair) == secret


def test_surrounding_whitespace_is_ignored() -> None:
    from volbot.wallet.key_resolver import resolve_key

    secret = _secret()
    resolved = resolve_key("  " + secret.hex() + "\n")
    assert bytes(resolved.keypair) == secret


@pytest.mark.parametrize("raw", ["", "   "])
def test_empty_key_is_rejected(raw: str) -> None:
    from volbot.errors import InvalidKeyError
    from volbot.wallet.key_resolver import resolve_key

    with pytest.raises(InvalidKeyError, match="empty"):
        resolve_key(raw)


def test_wrong_length_is_rejected_in_every_format() -> None:
    from volbot.errors import InvalidKeyError
    from volbot.wallet.key_resolver import resolve_key

    short = _secret()[:63]
    for raw in _encodings(short).values():
        with pytest.raises(InvalidKeyError, match="any known format"):
            resolve_key(raw)


def test_secret_with_mismatched_pubkey_half_is_rejected() -> None:
    from volbot.errors import InvalidKeyError
    from volbot.wallet.key_resolver import resolve_key

    secret = bytearray(_secret())
    secret[-1] ^= 0xFF

    with pytest.raises(InvalidKeyError):
        resolve_key(base58.b58encode(bytes(secret)).decode())


def test_array_value_above_255_is_rejected() -> None:
    from volbot.errors import InvalidKeyError
    from volbot.wallet.key_resolver import resolve_key

    values = [str(b) for b in _secret()]
    values[0] = "256"

    with pytest.raises(InvalidKeyError):
        resolve_key(",".join(values))


@pytest.mark.parametrize("digit", ["²", "٣", "１"])
def test_array_with_non_ascii_digits_is_invalid_key(digit: str) -> None:
    from volbot.errors import InvalidKeyError
    from volbot.wallet.key_resolver import resolve_key

    values = [str(b) for b in _secret()]
    values[0] = digit

    with pytest.raises(InvalidKeyError, match="any known format"):
        resolve_key(",".join(values))


def test_repr_does_not_leak_secret() -> None:
    from volbot.wallet.key_resolver import resolve_key

    secret = _secret()
    resolved = resolve_key(secret.hex())

    text = repr(resolved)
    assert base58.b58encode(secret).decode() not in text
    assert secret.hex() not in text
