"""Token ledger state layout and storage helpers, with a JSON-RPC server and client."""

__version__ = "0.0.1"

__all__ = ["address", "client", "errors", "ids", "server", "storage"]