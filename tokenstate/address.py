"""Bech32 addresses for ED25519 public keys."""

from __future__ import annotations

from collections.abc import Iterable

HRP = "token"
PUBLIC_KEY_LEN = 32

_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_CHARSET_INDEX = {char: index for index, char in enumerate(_CHARSET)}
_GENERATOR = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)
_MAX_LENGTH = 90
_CHECKSUM_LEN = 6


def _polymod(values: Iterable[int]) -> int:
    chk = 1
    for value in values:
        top = chk >> 25
        chk = ((chk & 0x1FFFFFF) << 5) ^ value
        for bit, generator in enumerate(_GENERATOR):
            if (top >> bit) & 1:
                chk ^= generator
    return chk


def _hrp_expand(hrp: str) -> list[int]:
    return [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]


def _create_checksum(hrp: str, data: list[int]) -> list[int]:
    mod = _polymod(_hrp_expand(hrp) + data + [0] * _CHECKSUM_LEN) ^ 1
    return [(mod >> 5 * (5 - i)) & 31 for i in range(_CHECKSUM_LEN)]


def _convert_bits(data: Iterable[int], from_bits: int, to_bits: int, pad: bool) -> list[int]:
    acc = 0
    bits = 0
    out = []
    max_value = (1 << to_bits) - 1
    max_acc = (1 << (from_bits + to_bits - 1)) - 1
    for value in data:
        acc = ((acc << from_bits) | value) & max_acc
        bits += from_bits
        while bits >= to_bits:
            bits -= to_bits
            out.append((acc >> bits) & max_value)
    if pad:
        if bits:
            out.append((acc << (to_bits - bits)) & max_value)
    elif bits >= from_bits or (acc << (to_bits - bits)) & max_value:
        raise ValueError("invalid padding in bech32 data")
    return out


def _check_hrp(hrp: str) -> None:
    if not hrp:
        raise ValueError("human-readable part is empty")
    if any(not 33 <= ord(c) <= 126 for c in hrp):
        raise ValueError("invalid character in human-readable part")


def bech32_encode(hrp: str, data: bytes) -> str:
    """Encode 8-bit data under a human-readable part."""
    _check_hrp(hrp)
    hrp = hrp.lower()
    five_bit = _convert_bits(bytes(data), 8, 5, True)
    combined = five_bit + _create_checksum(hrp, five_bit)
    text = hrp + "1" + "".join(_CHARSET[v] for v in combined)
    if len(text) > _MAX_LENGTH:
        raise ValueError(f"bech32 string exceeds {_MAX_LENGTH} characters")
    return text


def bech32_decode(text: str) -> tuple[str, bytes]:
    """Decode a bech32 string into its human-readable part and 8-bit data."""
    if not 8 <= len(text) <= _MAX_LENGTH:
        raise ValueError("invalid bech32 string length")
    if any(not 33 <= ord(c) <= 126 for c in text):
        raise ValueError("invalid character in bech32 string")
    if text.lower() != text and text.upper() != text:
        raise ValueError("bech32 string has mixed case")
    text = text.lower()
    separator = text.rfind("1")
    if separator < 1 or separator + _CHECKSUM_LEN + 1 > len(text):
        raise ValueError("invalid bech32 separator position")
    hrp = text[:separator]
    try:
        data = [_CHARSET_INDEX[c] for c in text[separator + 1 :]]
    except KeyError as exc:
        raise ValueError(f"invalid bech32 character {exc.args[0]!r}") from None
    if _polymod(_hrp_expand(hrp) + data) != 1:
        raise ValueError("invalid bech32 checksum")
    return hrp, bytes(_convert_bits(data[:-_CHECKSUM_LEN], 5, 8, False))


def address(public_key: bytes, hrp: str = HRP) -> str:
    """Return the bech32 address of a public key."""
    key = bytes(public_key)
    if len(key) != PUBLIC_KEY_LEN:
        raise ValueError(f"public key must be {PUBLIC_KEY_LEN} bytes, got {len(key)}")
    return bech32_encode(hrp, key)


def parse_address(text: str, hrp: str = HRP) -> bytes:
    """Return the public key held in a bech32 address."""
    parsed_hrp, key = bech32_decode(text)
    if parsed_hrp != hrp:
        raise ValueError(f"incorrect hrp: expected {hrp!r}, got {parsed_hrp!r}")
    if len(key) != PUBLIC_KEY_LEN:
        raise ValueError("invalid address length")
    return key