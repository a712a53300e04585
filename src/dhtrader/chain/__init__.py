"""Blockchain access for the pool contract."""

from dhtrader.chain.client import ChainClient
from dhtrader.chain.contract import PoolContract
from dhtrader.chain.transport import RpcTransport

__all__ = [
    "ChainClient",
    "PoolContract",
    "RpcTransport",
]
