"""Client for the token state JSON-RPC service."""

from __future__ import annotations

import base64
import itertools
import json
import logging
import time
import urllib.request
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .errors import AssetNotFoundError, TxNotFoundError
from .ids import ID
from .server import DEFAULT_SERVICE, JSON_RPC_ENDPOINT
from .storage import TransactionRecord

VERSION = "0.0.1"

_log = logging.getLogger(__name__)


class RPCError(Exception):
    """The server answered with a JSON-RPC error."""

    def __init__(self, code: int | None, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data


@dataclass(frozen=True)
class AssetInfo:
    metadata: bytes
    supply: int
    owner: str
    warp: bool


class JSONRPCClient:
    """Queries a token state server over HTTP."""

    def __init__(
        self,
        uri: str,
        chain_id: ID,
        *,
        service: str = DEFAULT_SERVICE,
        timeout: float = 10.0,
        poll_interval: float = 1.0,
    ) -> None:
        self.uri = uri.removesuffix("/") + JSON_RPC_ENDPOINT
        self.chain_id = chain_id
        self._service = service
        self._timeout = timeout
        self._poll_interval = poll_interval
        self._genesis: Any = None
        self._request_ids = itertools.count(1)

    def _send(self, method: str, params: dict[str, Any] | None = None) -> Any:
        body = json.dumps(
            {
                "jsonrpc": "2.0",
                "method": f"{self._service}.{method}",
                "params": [params or {}],
                "id": next(self._request_ids),
            }
        ).encode("utf-8")
        request = urllib.request.Request(
            self.uri,
            data=body,
            headers={
                "Content-Type": "application/json",
                "User-Agent": f"tokenstate/{VERSION}",
            },
            method="POST",
        )
        with urllib.request.urlopen(request, timeout=self._timeout) as response:
            reply = json.load(response)
        error = reply.get("error")
        if error:
            raise RPCError(error.get("code"), error.get("message", ""), error.get("data"))
        return reply.get("result")

    def genesis(self) -> Any:
        """Return the chain genesis, fetched once and then cached."""
        if self._genesis is None:
            self._genesis = self._send("genesis")["genesis"]
        return self._genesis

    def tx(self, tx_id: ID) -> TransactionRecord | None:
        """Return the transaction's outcome, or None if it is not known."""
        try:
            reply = self._send("tx", {"txId": str(tx_id)})
        except RPCError as exc:
            # Matched on text: the error arrives as a message, not a type.
            if TxNotFoundError.default_message in exc.message:
                return None
            raise
        return TransactionRecord(reply["timestamp"], reply["success"], reply["units"])

    def asset(self, asset: ID) -> AssetInfo | None:
        """Return the asset, or None if it does not exist."""
        try:
            reply = self._send("asset", {"asset": str(asset)})
        except RPCError as exc:
            if AssetNotFoundError.default_message in exc.message:
                return None
            raise
        metadata = base64.b64decode(reply["metadata"]) if reply.get("metadata") else b""
        return AssetInfo(metadata, reply["supply"], reply["owner"], reply["warp"])

    def balance(self, address: str, asset: ID) -> int:
        return self._send("balance", {"address": address, "asset": str(asset)})["amount"]

    def orders(self, pair: str) -> list[Any]:
        return self._send("orders", {"pair": pair})["orders"] or []

    def loan(self, asset: ID, destination: ID) -> int:
        reply = self._send("loan", {"asset": str(asset), "destination": str(destination)})
        return reply["amount"]

    def _wait(self, done: Callable[[], bool], timeout: float | None) -> None:
        deadline = None if timeout is None else time.monotonic() + timeout
        while not done():
            if deadline is not None and time.monotonic() >= deadline:
                raise TimeoutError("condition not met before timeout")
            time.sleep(self._poll_interval)

    def wait_for_balance(
        self, address: str, asset: ID, minimum: int, timeout: float | None = None
    ) -> None:
        """Block until the address holds at least ``minimum`` of the asset."""

        def reached() -> bool:
            if self.balance(address, asset) >= minimum:
                return True
            _log.info("waiting for %d balance: %s", minimum, address)
            return False

        self._wait(reached, timeout)

    def wait_for_transaction(self, tx_id: ID, timeout: float | None = None) -> bool:
        """Block until the transaction is known and return whether it succeeded."""
        success = False

        def found() -> bool:
            nonlocal success
            record = self.tx(tx_id)
            if record is None:
                return False
            success = record.success
            return True

        self._wait(found, timeout)
        return success