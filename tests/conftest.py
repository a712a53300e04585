"""Shared test fixtures."""

import asyncio
from typing import Any

import pytest
from eth_abi import encode

from dhtrader.codec import encode_symbol
from dhtrader.config import AppConfig, Secrets
from dhtrader.models import Asset

POOL_ADDRESS = "0x53523de8a90053ddb1d330499d3dc080b909edb9"
MANAGER_ADDRESS = "0x" + "ab" * 20


class FakeTransport:
    """In-memory stand-in for RpcTransport.

    Responses are scripted per method as a list consumed in call order.
    An exception in place of a value fails that call.
    """

    def __init__(self, responses: dict[str, Any] | None = None):
        self.responses = dict(responses or {})
        self.pending: list[tuple[str, list, asyncio.Future]] = []
        self.flushes: list[list[tuple[str, list]]] = []
        self.closed = False

    @property
    def requests(self) -> list[tuple[str, list]]:
        return [call for batch in self.flushes for call in batch]

    def request(self, method, params=()):
        future = asyncio.get_running_loop().create_future()
        self.pending.append((method, list(params), future))
        return future

    async def flush(self):
        if not self.pending:
            raise RuntimeError("flush() called with no pending requests")
        calls, self.pending = self.pending, []
        self.flushes.append([(method, params) for method, params, _ in calls])
        for method, params, future in calls:
            value = self._next(method)
            if isinstance(value, Exception):
                future.set_exception(value)
            else:
                future.set_result(value)

    async def call(self, method, params=()):
        future = self.request(method, params)
        await self.flush()
        return await future

    async def close(self):
        self.closed = True

    def _next(self, method):
        return self.responses[method].pop(0)


@pytest.fixture
def test_config() -> AppConfig:
    """Provide a test configuration with safe defaults."""
    return AppConfig(
        chain={
            "rpc_url": "http://127.0.0.1:8545",
            "pool_address": POOL_ADDRESS,
            "manager_address": MANAGER_ADDRESS,
        },
        rebalancing={
            "expected_shares": {
                "sBTC": 0.20,
                "sETH": 0.20,
                "sUSD": 0.20,
                "sBNB": 0.20,
                "sLTC": 0.20,
            },
            "min_trade_value": 1.0,
        },
        logging={
            "level": "DEBUG",
            "app_log": "/tmp/test_dhtrader.log",
            "trade_log": "/tmp/test_trades.log",
        },
    )


@pytest.fixture
def mock_secrets() -> Secrets:
    """Provide secrets without an unlock password."""
    return Secrets(manager_password="")


@pytest.fixture
def sample_assets() -> dict[str, Asset]:
    """Five-asset fund, far from equal weights."""
    return {
        "sBTC": Asset(balance=0.9, rate=10000.0),
        "sETH": Asset(balance=20.2, rate=200.0),
        "sUSD": Asset(balance=100.0, rate=1.0),
        "sBNB": Asset(balance=50.0, rate=18.0),
        "sLTC": Asset(balance=10.0, rate=45.0),
    }


@pytest.fixture
def make_transport():
    """Build a FakeTransport from scripted responses."""
    return FakeTransport


@pytest.fixture
def encode_composition():
    """Encode (symbol, balance, rate) rows as a getFundComposition return value."""

    def _encode(rows) -> str:
        return "0x" + encode(
            ["bytes32[]", "uint256[]", "uint256[]"],
            [
                [encode_symbol(s) for s, _, _ in rows],
                [b for _, b, _ in rows],
                [r for _, _, r in rows],
            ],
        ).hex()

    return _encode
