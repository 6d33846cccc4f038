"""Key layout and value encoding of the token state database."""

from __future__ import annotations

import struct
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Protocol

from .address import PUBLIC_KEY_LEN, address
from .errors import InvalidBalanceError, NotFoundError
from .ids import ID, ID_LEN

UINT64_MAX = 2**64 - 1
UINT16_MAX = 2**16 - 1

_TX_PREFIX = 0x0

_BALANCE_PREFIX = 0x0
_ASSET_PREFIX = 0x1
_ORDER_PREFIX = 0x2
_LOAN_PREFIX = 0x3
_HEIGHT_PREFIX = 0x4
_INCOMING_WARP_PREFIX = 0x5
_OUTGOING_WARP_PREFIX = 0x6

_FAILURE_BYTE = 0x0
_SUCCESS_BYTE = 0x1

_UINT64 = struct.Struct(">Q")
_INT64 = struct.Struct(">q")
_UINT16 = struct.Struct(">H")

ReadState = Callable[[Sequence[bytes]], Sequence["bytes | None"]]


class _Database(Protocol):
    def get_value(self, key: bytes) -> bytes: ...

    def insert(self, key: bytes, value: bytes) -> None: ...

    def remove(self, key: bytes) -> None: ...


class MemoryDatabase:
    """A dictionary-backed key/value store."""

    def __init__(self, items: Mapping[bytes, bytes] | None = None) -> None:
        self._data: dict[bytes, bytes] = {bytes(k): bytes(v) for k, v in (items or {}).items()}

    def get_value(self, key: bytes) -> bytes:
        try:
            return self._data[bytes(key)]
        except KeyError:
            raise NotFoundError() from None

    def insert(self, key: bytes, value: bytes) -> None:
        self._data[bytes(key)] = bytes(value)

    def remove(self, key: bytes) -> None:
        self._data.pop(bytes(key), None)

    def read_state(self, keys: Sequence[bytes]) -> list[bytes | None]:
        """Return the value of each key, or None where it is missing."""
        return [self._data.get(bytes(key)) for key in keys]

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, (bytes, bytearray)) and bytes(key) in self._data

    def __iter__(self) -> Iterator[bytes]:
        return iter(self._data)


@dataclass(frozen=True)
class TransactionRecord:
    timestamp: int
    success: bool
    units: int


@dataclass(frozen=True)
class AssetRecord:
    metadata: bytes
    supply: int
    owner: bytes
    warp: bool


@dataclass(frozen=True)
class OrderRecord:
    in_asset: ID
    in_tick: int
    out_asset: ID
    out_tick: int
    remaining: int
    owner: bytes


def _id_bytes(value: ID | bytes) -> bytes:
    raw = bytes(value)
    if len(raw) != ID_LEN:
        raise ValueError(f"ID must be {ID_LEN} bytes, got {len(raw)}")
    return raw


def _key_bytes(value: bytes) -> bytes:
    raw = bytes(value)
    if len(raw) != PUBLIC_KEY_LEN:
        raise ValueError(f"public key must be {PUBLIC_KEY_LEN} bytes, got {len(raw)}")
    return raw


def _uint64(value: int, what: str) -> int:
    if not 0 <= value <= UINT64_MAX:
        raise ValueError(f"{what} must fit in an unsigned 64-bit integer")
    return value


def _describe(value: ID | bytes) -> str:
    return str(ID(_id_bytes(value)))


def _decode_uint64(value: bytes | None) -> int:
    if value is None:
        return 0
    return _UINT64.unpack_from(value)[0]


def _lookup(db: _Database, key: bytes) -> bytes | None:
    try:
        return db.get_value(key)
    except NotFoundError:
        return None


# Transactions


def prefix_tx_key(tx_id: ID | bytes) -> bytes:
    return bytes([_TX_PREFIX]) + _id_bytes(tx_id)


def store_transaction(
    db: _Database, tx_id: ID | bytes, timestamp: int, success: bool, units: int
) -> None:
    flag = _SUCCESS_BYTE if success else _FAILURE_BYTE
    value = _INT64.pack(timestamp) + bytes([flag]) + _UINT64.pack(_uint64(units, "units"))
    db.insert(prefix_tx_key(tx_id), value)


def get_transaction(db: _Database, tx_id: ID | bytes) -> TransactionRecord | None:
    """Return the stored transaction, or None if it is unknown."""
    value = _lookup(db, prefix_tx_key(tx_id))
    if value is None:
        return None
    (timestamp,) = _INT64.unpack_from(value)
    success = value[_INT64.size] != _FAILURE_BYTE
    (units,) = _UINT64.unpack_from(value, _INT64.size + 1)
    return TransactionRecord(timestamp, success, units)


# Balances


def prefix_balance_key(public_key: bytes, asset: ID | bytes) -> bytes:
    return bytes([_BALANCE_PREFIX]) + _key_bytes(public_key) + _id_bytes(asset)


def get_balance(db: _Database, public_key: bytes, asset: ID | bytes) -> int:
    """Return the balance, which is 0 for an account that does not exist."""
    return _decode_uint64(_lookup(db, prefix_balance_key(public_key, asset)))


def get_balance_from_state(read_state: ReadState, public_key: bytes, asset: ID | bytes) -> int:
    (value,) = read_state([prefix_balance_key(public_key, asset)])
    return _decode_uint64(value)


def set_balance(db: _Database, public_key: bytes, asset: ID | bytes, balance: int) -> None:
    db.insert(prefix_balance_key(public_key, asset), _UINT64.pack(_uint64(balance, "balance")))


def delete_balance(db: _Database, public_key: bytes, asset: ID | bytes) -> None:
    db.remove(prefix_balance_key(public_key, asset))


def add_balance(db: _Database, public_key: bytes, asset: ID | bytes, amount: int) -> None:
    _uint64(amount, "amount")
    balance = get_balance(db, public_key, asset)
    new_balance = balance + amount
    if new_balance > UINT64_MAX:
        raise InvalidBalanceError(
            f"could not add balance (asset={_describe(asset)}, bal={balance}, "
            f"addr={address(public_key)}, amount={amount})"
        )
    set_balance(db, public_key, asset, new_balance)


def sub_balance(db: _Database, public_key: bytes, asset: ID | bytes, amount: int) -> None:
    _uint64(amount, "amount")
    balance = get_balance(db, public_key, asset)
    if amount > balance:
        raise InvalidBalanceError(
            f"could not subtract balance (asset={_describe(asset)}, bal={balance}, "
            f"addr={address(public_key)}, amount={amount})"
        )
    new_balance = balance - amount
    if new_balance == 0:
        # An empty balance is removed rather than stored as zero.
        delete_balance(db, public_key, asset)
    else:
        set_balance(db, public_key, asset, new_balance)


# Assets


def prefix_asset_key(asset: ID | bytes) -> bytes:
    return bytes([_ASSET_PREFIX]) + _id_bytes(asset)


def _decode_asset(value: bytes | None) -> AssetRecord | None:
    if value is None:
        return None
    (metadata_len,) = _UINT16.unpack_from(value)
    offset = _UINT16.size
    metadata = value[offset : offset + metadata_len]
    offset += metadata_len
    (supply,) = _UINT64.unpack_from(value, offset)
    offset += _UINT64.size
    owner = value[offset : offset + PUBLIC_KEY_LEN]
    warp = value[offset + PUBLIC_KEY_LEN] == 0x1
    return AssetRecord(metadata, supply, owner, warp)


def get_asset_from_state(read_state: ReadState, asset: ID | bytes) -> AssetRecord | None:
    (value,) = read_state([prefix_asset_key(asset)])
    return _decode_asset(value)


def get_asset(db: _Database, asset: ID | bytes) -> AssetRecord | None:
    """Return the asset, or None if it does not exist."""
    return _decode_asset(_lookup(db, prefix_asset_key(asset)))


def set_asset(
    db: _Database,
    asset: ID | bytes,
    metadata: bytes,
    supply: int,
    owner: bytes,
    warp: bool,
) -> None:
    metadata = bytes(metadata)
    if len(metadata) > UINT16_MAX:
        raise ValueError(f"metadata must be at most {UINT16_MAX} bytes")
    value = (
        _UINT16.pack(len(metadata))
        + metadata
        + _UINT64.pack(_uint64(supply, "supply"))
        + _key_bytes(owner)
        + bytes([0x1 if warp else 0x0])
    )
    db.insert(prefix_asset_key(asset), value)


def delete_asset(db: _Database, asset: ID | bytes) -> None:
    db.remove(prefix_asset_key(asset))


# Orders


def prefix_order_key(tx_id: ID | bytes) -> bytes:
    return bytes([_ORDER_PREFIX]) + _id_bytes(tx_id)


def set_order(
    db: _Database,
    tx_id: ID | bytes,
    in_asset: ID | bytes,
    in_tick: int,
    out_asset: ID | bytes,
    out_tick: int,
    supply: int,
    owner: bytes,
) -> None:
    value = (
        _id_bytes(in_asset)
        + _UINT64.pack(_uint64(in_tick, "in tick"))
        + _id_bytes(out_asset)
        + _UINT64.pack(_uint64(out_tick, "out tick"))
        + _UINT64.pack(_uint64(supply, "supply"))
        + _key_bytes(owner)
    )
    db.insert(prefix_order_key(tx_id), value)


def get_order(db: _Database, order: ID | bytes) -> OrderRecord | None:
    """Return the order, or None if it does not exist."""
    value = _lookup(db, prefix_order_key(order))
    if value is None:
        return None
    in_asset = ID(value[:ID_LEN])
    (in_tick,) = _UINT64.unpack_from(value, ID_LEN)
    offset = ID_LEN + _UINT64.size
    out_asset = ID(value[offset : offset + ID_LEN])
    offset += ID_LEN
    (out_tick,) = _UINT64.unpack_from(value, offset)
    offset += _UINT64.size
    (remaining,) = _UINT64.unpack_from(value, offset)
    offset += _UINT64.size
    owner = value[offset : offset + PUBLIC_KEY_LEN]
    return OrderRecord(in_asset, in_tick, out_asset, out_tick, remaining, owner)


def delete_order(db: _Database, order: ID | bytes) -> None:
    db.remove(prefix_order_key(order))


# Loans


def prefix_loan_key(asset: ID | bytes, destination: ID | bytes) -> bytes:
    return bytes([_LOAN_PREFIX]) + _id_bytes(asset) + _id_bytes(destination)


def get_loan_from_state(
    read_state: ReadState, asset: ID | bytes, destination: ID | bytes
) -> int:
    (value,) = read_state([prefix_loan_key(asset, destination)])
    return _decode_uint64(value)


def get_loan(db: _Database, asset: ID | bytes, destination: ID | bytes) -> int:
    return _decode_uint64(_lookup(db, prefix_loan_key(asset, destination)))


def set_loan(db: _Database, asset: ID | bytes, destination: ID | bytes, amount: int) -> None:
    db.insert(prefix_loan_key(asset, destination), _UINT64.pack(_uint64(amount, "amount")))


def add_loan(db: _Database, asset: ID | bytes, destination: ID | bytes, amount: int) -> None:
    _uint64(amount, "amount")
    new_loan = get_loan(db, asset, destination) + amount
    if new_loan > UINT64_MAX:
        raise InvalidBalanceError(
            f"could not add loan (asset={_describe(asset)}, "
            f"destination={_describe(destination)}, amount={amount})"
        )
    set_loan(db, asset, destination, new_loan)


def sub_loan(db: _Database, asset: ID | bytes, destination: ID | bytes, amount: int) -> None:
    _uint64(amount, "amount")
    loan = get_loan(db, asset, destination)
    if amount > loan:
        raise InvalidBalanceError(
            f"could not subtract loan (asset={_describe(asset)}, "
            f"destination={_describe(destination)}, amount={amount})"
        )
    new_loan = loan - amount
    if new_loan == 0:
        # An empty loan is removed rather than stored as zero.
        db.remove(prefix_loan_key(asset, destination))
    else:
        set_loan(db, asset, destination, new_loan)


# Chain bookkeeping


def height_key() -> bytes:
    return bytes([_HEIGHT_PREFIX])


def incoming_warp_key_prefix(source_chain_id: ID | bytes, msg_id: ID | bytes) -> bytes:
    return bytes([_INCOMING_WARP_PREFIX]) + _id_bytes(source_chain_id) + _id_bytes(msg_id)


def outgoing_warp_key_prefix(tx_id: ID | bytes) -> bytes:
    return bytes([_OUTGOING_WARP_PREFIX]) + _id_bytes(tx_id)