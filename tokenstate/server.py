"""JSON-RPC service answering token state queries."""

from __future__ import annotations

import base64
import dataclasses
import json
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any, Protocol

from .address import address as encode_address
from .address import parse_address
from .errors import AssetNotFoundError, TokenStateError, TxNotFoundError
from .ids import EMPTY_ID, ID
from .storage import AssetRecord, TransactionRecord

JSON_RPC_ENDPOINT = "/tokenapi"
ORDERS_TO_SEND = 128
DEFAULT_SERVICE = "tokenvm"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
SERVER_ERROR = -32000


class Controller(Protocol):
    """The state a server reads from."""

    def genesis(self) -> Any: ...

    def get_transaction(self, tx_id: ID) -> TransactionRecord | None: ...

    def get_asset_from_state(self, asset: ID) -> AssetRecord | None: ...

    def get_balance_from_state(self, public_key: bytes, asset: ID) -> int: ...

    def orders(self, pair: str, limit: int) -> Sequence[Any]: ...

    def get_loan_from_state(self, asset: ID, destination: ID) -> int: ...


def to_json(value: Any) -> Any:
    """Convert a value into plain JSON data: IDs as CB58, bytes as base64."""
    if isinstance(value, ID):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_json(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Mapping):
        return {str(key): to_json(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json(item) for item in value]
    return value


class _RequestError(Exception):
    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


def _error(request_id: Any, code: int, message: str) -> dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "error": {"code": code, "message": message, "data": None},
        "id": request_id,
    }


def _params(request: Mapping[str, Any]) -> Mapping[str, Any]:
    params = request.get("params")
    if params is None:
        return {}
    if isinstance(params, list):
        if not params:
            return {}
        params = params[0]
    if not isinstance(params, Mapping):
        raise _RequestError(INVALID_REQUEST, "params must be an object")
    return params


def _id_param(params: Mapping[str, Any], name: str) -> ID:
    raw = params.get(name)
    if raw is None or raw == "":
        return EMPTY_ID
    if not isinstance(raw, str):
        raise _RequestError(INVALID_REQUEST, f"{name} must be a string")
    try:
        return ID.from_string(raw)
    except ValueError as exc:
        raise _RequestError(INVALID_REQUEST, f"invalid {name}: {exc}") from None


def _str_param(params: Mapping[str, Any], name: str) -> str:
    raw = params.get(name, "")
    if raw is None:
        return ""
    if not isinstance(raw, str):
        raise _RequestError(INVALID_REQUEST, f"{name} must be a string")
    return raw


class JSONRPCServer:
    """Serves token state over JSON-RPC, directly or as a WSGI application."""

    def __init__(self, controller: Controller, service: str = DEFAULT_SERVICE) -> None:
        self._controller = controller
        self._service = service
        self._methods: dict[str, Callable[[Mapping[str, Any]], Any]] = {
            "genesis": lambda p: self.genesis(),
            "tx": lambda p: self.tx(_id_param(p, "txId")),
            "asset": lambda p: self.asset(_id_param(p, "asset")),
            "balance": lambda p: self.balance(_str_param(p, "address"), _id_param(p, "asset")),
            "orders": lambda p: self.orders(_str_param(p, "pair")),
            "loan": lambda p: self.loan(_id_param(p, "asset"), _id_param(p, "destination")),
        }

    def genesis(self) -> dict[str, Any]:
        return {"genesis": to_json(self._controller.genesis())}

    def tx(self, tx_id: ID) -> dict[str, Any]:
        record = self._controller.get_transaction(tx_id)
        if record is None:
            raise TxNotFoundError()
        return {"timestamp": record.timestamp, "success": record.success, "units": record.units}

    def asset(self, asset: ID) -> dict[str, Any]:
        record = self._controller.get_asset_from_state(asset)
        if record is None:
            raise AssetNotFoundError()
        return {
            "metadata": to_json(record.metadata),
            "supply": record.supply,
            "owner": encode_address(record.owner),
            "warp": record.warp,
        }

    def balance(self, address: str, asset: ID) -> dict[str, Any]:
        public_key = parse_address(address)
        return {"amount": self._controller.get_balance_from_state(public_key, asset)}

    def orders(self, pair: str) -> dict[str, Any]:
        found: Iterable[Any] = self._controller.orders(pair, ORDERS_TO_SEND)
        return {"orders": to_json(list(found))}

    def loan(self, asset: ID, destination: ID) -> dict[str, Any]:
        return {"amount": self._controller.get_loan_from_state(asset, destination)}

    def handle(self, request: Any) -> dict[str, Any]:
        """Answer one decoded JSON-RPC request with a response object."""
        request_id = request.get("id") if isinstance(request, Mapping) else None
        try:
            if not isinstance(request, Mapping):
                raise _RequestError(INVALID_REQUEST, "request must be an object")
            method = request.get("method")
            if not isinstance(method, str):
                raise _RequestError(INVALID_REQUEST, "method must be a string")
            service, _, name = method.rpartition(".")
            handler = self._methods.get(name.lower()) if service == self._service else None
            if handler is None:
                raise _RequestError(METHOD_NOT_FOUND, f"method {method!r} not found")
            result = handler(_params(request))
        except _RequestError as exc:
            return _error(request_id, exc.code, exc.message)
        except (TokenStateError, ValueError) as exc:
            return _error(request_id, SERVER_ERROR, str(exc))
        return {"jsonrpc": "2.0", "result": result, "id": request_id}

    def __call__(self, environ: dict[str, Any], start_response: Callable[..., Any]) -> list[bytes]:
        if environ.get("REQUEST_METHOD") != "POST":
            start_response(
                "405 Method Not Allowed",
                [("Allow", "POST"), ("Content-Type", "text/plain")],
            )
            return [b"method not allowed"]
        try:
            length = int(environ.get("CONTENT_LENGTH") or 0)
        except ValueError:
            length = 0
        body = environ["wsgi.input"].read(length) if length > 0 else b""
        try:
            request = json.loads(body)
        except ValueError:
            response = _error(None, PARSE_ERROR, "invalid JSON")
        else:
            response = self.handle(request)
        payload = json.dumps(response).encode("utf-8")
        start_response(
            "200 OK",
            [("Content-Type", "application/json"), ("Content-Length", str(len(payload)))],
        )
        return [payload]