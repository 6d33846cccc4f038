import base64
import io
import json
from dataclasses import dataclass
from wsgiref.util import setup_testing_defaults

import pytest

from tokenstate.address import address
from tokenstate.errors import AssetNotFoundError, TxNotFoundError
from tokenstate.ids import EMPTY_ID, ID
from tokenstate.server import (
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    ORDERS_TO_SEND,
    PARSE_ERROR,
    SERVER_ERROR,
    JSONRPCServer,
    to_json,
)
from tokenstate.storage import (
    MemoryDatabase,
    get_asset_from_state,
    get_balance_from_state,
    get_loan_from_state,
    get_transaction,
    set_asset,
    set_balance,
    set_loan,
    store_transaction,
)

PUBLIC_KEY = bytes(range(32))
ASSET = ID(bytes([7]) * 32)
TX = ID(bytes([9]) * 32)
DEST = ID(bytes([3]) * 32)


class StateController:
    def __init__(self, db, genesis=None, book=None):
        self.db = db
        self.genesis_value = genesis if genesis is not None else {"symbol": "TKN"}
        self.book = book or {}
        self.order_requests = []

    def genesis(self):
        return self.genesis_value

    def get_transaction(self, tx_id):
        return get_transaction(self.db, tx_id)

    def get_asset_from_state(self, asset):
        return get_asset_from_state(self.db.read_state, asset)

    def get_balance_from_state(self, public_key, asset):
        return get_balance_from_state(self.db.read_state, public_key, asset)

    def orders(self, pair, limit):
        self.order_requests.append((pair, limit))
        return self.book.get(pair, [])[:limit]

    def get_loan_from_state(self, asset, destination):
        return get_loan_from_state(self.db.read_state, asset, destination)


@pytest.fixture
def db():
    return MemoryDatabase()


@pytest.fixture
def controller(db):
    return StateController(db)


@pytest.fixture
def server(controller):
    return JSONRPCServer(controller)


def test_orders_truncated_to_limit(server, controller):
    controller.book["x-y"] = [{"remaining": n} for n in range(200)]
    reply = server.orders("x-y")
    assert len(reply["orders"]) == 128
    assert controller.order_requests == [("x-y", 128)]


def test_genesis_wraps_controller_value(server):
    assert server.genesis() == {"genesis": {"symbol": "TKN"}}


def test_tx_missing_raises(server):
    with pytest.raises(TxNotFoundError):
        server.tx(TX)


def test_tx_returns_stored_values(server, db):
    store_transaction(db, TX, 1700, False, 472)
    assert server.tx(TX) == {"timestamp": 1700, "success": False, "units": 472}


def test_asset_missing_raises(server):
    with pytest.raises(AssetNotFoundError):
        server.asset(ASSET)


def test_asset_reply_encodes_metadata_and_owner(server, db):
    set_asset(db, ASSET, b"blah", 15, PUBLIC_KEY, True)
    reply = server.asset(ASSET)
    assert base64.b64decode(reply["metadata"]) == b"blah"
    assert reply["supply"] == 15
    assert reply["owner"] == address(PUBLIC_KEY)
    assert reply["warp"] is True


def test_balance_by_address(server, db):
    set_balance(db, PUBLIC_KEY, ASSET, 100_000)
    assert server.balance(address(PUBLIC_KEY), ASSET) == {"amount": 100_000}
    assert server.balance(address(PUBLIC_KEY), EMPTY_ID) == {"amount": 0}


def test_balance_rejects_bad_address(server):
    with pytest.raises(ValueError):
        server.balance("not-an-address", ASSET)


def test_orders_requests_limit(server, controller):
    controller.book["a-b"] = [{"id": TX, "remaining": 4}]
    reply = server.orders("a-b")
    assert reply == {"orders": [{"id": str(TX), "remaining": 4}]}
    assert controller.order_requests == [("a-b", ORDERS_TO_SEND)]


def test_loan(server, db):
    set_loan(db, ASSET, DEST, 110)
    assert server.loan(ASSET, DEST) == {"amount": 110}
    assert server.loan(DEST, ASSET) == {"amount": 0}


def test_to_json_handles_dataclass_ids_and_bytes():
    @dataclass
    class Entry:
        ident: ID
        blob: bytes
        items: list

    value = to_json(Entry(TX, b"\x00\x01", [ASSET]))
    assert value == {
        "ident": str(TX),
        "blob": base64.b64encode(b"\x00\x01").decode(),
        "items": [str(ASSET)],
    }


def test_handle_balance_request(server, db):
    set_balance(db, PUBLIC_KEY, ASSET, 55)
    response = server.handle(
        {
            "jsonrpc": "2.0",
            "method": "tokenvm.balance",
            "params": [{"address": address(PUBLIC_KEY), "asset": str(ASSET)}],
            "id": 5,
        }
    )
    assert response == {"jsonrpc": "2.0", "result": {"amount": 55}, "id": 5}


def test_handle_accepts_object_params(server, db):
    store_transaction(db, TX, 10, True, 1)
    response = server.handle(
        {"jsonrpc": "2.0", "method": "tokenvm.tx", "params": {"txId": str(TX)}, "id": 1}
    )
    assert response["result"] == {"timestamp": 10, "success": True, "units": 1}


def test_handle_tx_not_found_is_server_error(server):
    response = server.handle(
        {"jsonrpc": "2.0", "method": "tokenvm.tx", "params": [{"txId": str(TX)}], "id": 2}
    )
    assert response["error"]["code"] == SERVER_ERROR
    assert "tx not found" in response["error"]["message"]


def test_handle_unknown_method(server):
    response = server.handle({"jsonrpc": "2.0", "method": "tokenvm.nothing", "id": 3})
    assert response["error"]["code"] == METHOD_NOT_FOUND


def test_handle_wrong_service(server):
    response = server.handle({"jsonrpc": "2.0", "method": "other.genesis", "id": 3})
    assert response["error"]["code"] == METHOD_NOT_FOUND


def test_handle_bad_id_param(server):
    response = server.handle(
        {"jsonrpc": "2.0", "method": "tokenvm.asset", "params": [{"asset": "???"}], "id": 4}
    )
    assert response["error"]["code"] == INVALID_REQUEST


def _environ(method, body=b""):
    environ = {}
    setup_testing_defaults(environ)
    environ.update(
        REQUEST_METHOD=method,
        CONTENT_LENGTH=str(len(body)),
        CONTENT_TYPE="application/json",
    )
    environ["wsgi.input"] = io.BytesIO(body)
    return environ


def _call(server, environ):
    captured = {}

    def start_response(status, headers):
        captured["status"] = status
        captured["headers"] = dict(headers)

    body = b"".join(server(environ, start_response))
    return captured, body


def test_wsgi_post_genesis(server):
    body = json.dumps({"jsonrpc": "2.0", "method": "tokenvm.genesis", "id": 7}).encode()
    captured, payload = _call(server, _environ("POST", body))
    assert captured["status"].startswith("200")
    assert captured["headers"]["Content-Type"] == "application/json"
    assert json.loads(payload) == {"jsonrpc": "2.0", "result": {"genesis": {"symbol": "TKN"}}, "id": 7}


def test_wsgi_invalid_json(server):
    _, payload = _call(server, _environ("POST", b"{not json"))
    assert json.loads(payload)["error"]["code"] == PARSE_ERROR


def test_wsgi_rejects_get(server):
    captured, _ = _call(server, _environ("GET"))
    assert captured["status"].startswith("405")