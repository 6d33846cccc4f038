"""Exceptions raised by the token state layer and its RPC surface."""

from __future__ import annotations


class TokenStateError(Exception):
    """Base class for every error raised by this package."""

    default_message = "token state error"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail
        if detail is None:
            message = self.default_message
        else:
            message = f"{self.default_message}: {detail}"
        super().__init__(message)


class InvalidBalanceError(TokenStateError):
    """A balance or loan update would overflow or go below zero."""

    default_message = "invalid balance"


class NotFoundError(TokenStateError, LookupError):
    """A key is missing from the underlying database."""

    default_message = "not found"


class TxNotFoundError(TokenStateError, LookupError):
    """The requested transaction is not known."""

    default_message = "tx not found"


class AssetNotFoundError(TokenStateError, LookupError):
    """The requested asset is not known."""

    default_message = "asset not found"