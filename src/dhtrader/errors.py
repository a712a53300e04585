"""Error kinds raised by the rebalancer. None of them are retried."""


class DHTraderError(Exception):
    """Base class for every failure that aborts a rebalance run."""


class TransportError(DHTraderError):
    """Raised when an RPC round trip fails (connection, timeout, malformed response)."""


class RpcError(TransportError):
    """Raised when the node answers a request with a JSON-RPC error object."""

    def __init__(self, code: int, message: str, method: str = ""):
        self.code = code
        self.message = message
        self.method = method
        super().__init__(f"{method or 'rpc'} failed with code {code}: {message}")


class DecodeError(DHTraderError):
    """Raised when an on-chain value is not a valid symbol or fixed-point number."""


class EncodeError(DHTraderError):
    """Raised when a domain value cannot be represented on-chain."""


class PreconditionError(DHTraderError):
    """Raised when the snapshot does not cover the configured target weights."""


class ChainRejection(DHTraderError):
    """Raised when the node rejects a submitted transaction."""
