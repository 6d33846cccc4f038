"""Fixed-size identifiers and their CB58 text form."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

ID_LEN = 32

_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_INDEX = {char: index for index, char in enumerate(_ALPHABET)}
_CHECKSUM_LEN = 4


def _b58encode(data: bytes) -> str:
    zeros = len(data) - len(data.lstrip(b"\0"))
    number = int.from_bytes(data, "big")
    chars = []
    while number:
        number, remainder = divmod(number, 58)
        chars.append(_ALPHABET[remainder])
    return "1" * zeros + "".join(reversed(chars))


def _b58decode(text: str) -> bytes:
    number = 0
    for char in text:
        try:
            number = number * 58 + _INDEX[char]
        except KeyError:
            raise ValueError(f"invalid base58 character {char!r}") from None
    zeros = len(text) - len(text.lstrip("1"))
    body = number.to_bytes((number.bit_length() + 7) // 8, "big") if number else b""
    return b"\0" * zeros + body


def _checksum(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()[-_CHECKSUM_LEN:]


def cb58_encode(data: bytes) -> str:
    """Encode bytes as base58 with a trailing four-byte SHA-256 checksum."""
    payload = bytes(data)
    return _b58encode(payload + _checksum(payload))


def cb58_decode(text: str) -> bytes:
    """Decode a CB58 string, verifying its checksum."""
    raw = _b58decode(text)
    if len(raw) < _CHECKSUM_LEN:
        raise ValueError("input string is smaller than the checksum size")
    payload, checksum = raw[:-_CHECKSUM_LEN], raw[-_CHECKSUM_LEN:]
    if _checksum(payload) != checksum:
        raise ValueError("invalid input checksum")
    return payload


@dataclass(frozen=True, order=True)
class ID:
    """A 32-byte identifier, printed in CB58."""

    raw: bytes = bytes(ID_LEN)

    def __post_init__(self) -> None:
        raw = bytes(self.raw)
        if len(raw) != ID_LEN:
            raise ValueError(f"ID must be {ID_LEN} bytes, got {len(raw)}")
        object.__setattr__(self, "raw", raw)

    @classmethod
    def from_string(cls, text: str) -> ID:
        return cls(cb58_decode(text))

    def __str__(self) -> str:
        return cb58_encode(self.raw)

    def __bytes__(self) -> bytes:
        return self.raw


EMPTY_ID = ID()