# tokenstate

`tokenstate` describes how a small token ledger keeps its state in a
key/value database. The state covers balances, assets, trading orders,
cross-chain loans and transaction records. The package also has a JSON-RPC
server and client for reading that state. It depends only on the standard
library.

## Installing

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Modules

### `tokenstate.ids`

- `ID` is a frozen, orderable 32-byte identifier. An empty `ID()` is all
  zeros, and `EMPTY_ID` is that value.
- `str(id)` gives the CB58 text form. `ID.from_string(text)` parses it
  back, and `bytes(id)` gives the raw bytes.
- `cb58_encode(data)` and `cb58_decode(text)` convert between bytes and
  base58 text that ends in a four-byte SHA-256 checksum. Decoding raises
  `ValueError` when the characters or the checksum are bad.

### `tokenstate.address`

- `bech32_encode(hrp, data)` and `bech32_decode(text)` implement bech32
  for 8-bit data.
- `address(public_key, hrp="token")` turns a 32-byte public key into an
  address.
- `parse_address(text, hrp="token")` turns an address back into a key. It
  raises `ValueError` if the human-readable part or the key length is
  wrong.

### `tokenstate.storage`

This module builds database keys, encodes values, and offers typed
read/write helpers. The helpers work with any object that has three
methods:

- `get_value(key)`, which raises `NotFoundError` when the key is missing;
- `insert(key, value)`;
- `remove(key)`.

`MemoryDatabase` is a dictionary-backed store of that kind. Its
`read_state(keys)` method returns one value per key, with `None` for a
missing key. You can pass it to the `*_from_state` readers.

Keys:

| Entry | Key | Builder |
| --- | --- | --- |
| Transaction | `0x0` + tx ID | `prefix_tx_key` |
| Balance | `0x0` + public key + asset ID | `prefix_balance_key` |
| Asset | `0x1` + asset ID | `prefix_asset_key` |
| Order | `0x2` + tx ID | `prefix_order_key` |
| Loan | `0x3` + asset ID + destination ID | `prefix_loan_key` |
| Height | `0x4` | `height_key` |
| Incoming warp message | `0x5` + source chain ID + message ID | `incoming_warp_key_prefix` |
| Outgoing warp message | `0x6` + tx ID | `outgoing_warp_key_prefix` |

Helpers:

- Transactions: `store_transaction` and `get_transaction`.
  `get_transaction` returns a `TransactionRecord` or `None`.
- Balances: `get_balance`, `get_balance_from_state`, `set_balance`,
  `delete_balance`, `add_balance` and `sub_balance`.
- Assets: `get_asset`, `get_asset_from_state`, `set_asset` and
  `delete_asset`. The readers return an `AssetRecord` or `None`.
- Orders: `set_order`, `get_order` and `delete_order`. `get_order`
  returns an `OrderRecord` or `None`.
- Loans: `get_loan`, `get_loan_from_state`, `set_loan`, `add_loan` and
  `sub_loan`.

Behaviour:

- Integers are stored big-endian.
- A missing balance or loan reads as 0.
- If a subtraction brings a balance or loan to zero, the entry is removed
  rather than stored as zero.
- An addition past 2**64 - 1 raises `InvalidBalanceError`. So does a
  subtraction below zero.
- An asset value holds, in order: the metadata length (16-bit), the
  metadata, the supply, the owner key and a warp flag byte.
- Values of the wrong length, and integers outside their range, raise
  `ValueError`.

### `tokenstate.server`

`JSONRPCServer(controller, service="tokenvm")` answers these methods:
`<service>.genesis`, `.tx`, `.asset`, `.balance`, `.orders` and `.loan`.
Each one is also a Python method on the server.

- The controller is any object that follows the `Controller` protocol. It
  supplies `genesis`, `get_transaction`, `get_asset_from_state`,
  `get_balance_from_state`, `orders` and `get_loan_from_state`.
- `handle(request)` answers a request that has already been decoded from
  JSON.
- The server instance is also a WSGI application. It accepts `POST` only
  and answers every other method with 405.
- Failures come back as JSON-RPC error objects:
  - unknown transactions answer with "tx not found";
  - unknown assets answer with "asset not found".
- `orders` asks the controller for at most `ORDERS_TO_SEND` (128) orders.
- IDs are sent as CB58 text and bytes as base64. The helper `to_json`
  performs this conversion.
- `JSON_RPC_ENDPOINT` is `"/tokenapi"`.

### `tokenstate.client`

`JSONRPCClient(uri, chain_id, service="tokenvm", timeout=10.0,
poll_interval=1.0)` posts requests to `uri` + `/tokenapi`.

- It offers `genesis`, `tx`, `asset`, `balance`, `orders` and `loan`.
  `genesis` is fetched once and then cached.
- `tx` returns a `TransactionRecord` or `None`.
- `asset` returns an `AssetInfo` or `None`. Its `owner` is an address
  string.
- Any other server error raises `RPCError`.
- `wait_for_balance(address, asset, minimum, timeout=None)` polls until
  the condition holds. It raises `TimeoutError` if the timeout runs out.
- `wait_for_transaction(tx_id, timeout=None)` polls the same way and
  returns whether the transaction succeeded. It also raises
  `TimeoutError` when the timeout runs out.

### `tokenstate.errors`

- `TokenStateError` is the base class.
- `InvalidBalanceError` signals balance or loan overflow and underflow.
- `NotFoundError` means a key is missing from a database.
- `TxNotFoundError` and `AssetNotFoundError` are raised by the server.
- The three not-found errors are also `LookupError`s.

## What the package does not do

- It keeps state only in memory through `MemoryDatabase`. It has no
  persistent database.
- It provides no `Controller` implementation. You supply the genesis, the
  order book and the state reads.
- It does not build, sign or submit transactions.
- It has no command-line program. The server runs only inside a WSGI host
  you choose.