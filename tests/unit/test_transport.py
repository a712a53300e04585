"""Tests for the batching JSON-RPC transport with a mocked aiohttp session."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from dhtrader.chain.transport import RpcTransport
from dhtrader.errors import RpcError, TransportError


def _response(body):
    response = MagicMock()
    response.raise_for_status = MagicMock()
    response.json = AsyncMock(return_value=body)
    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=response)
    ctx.__aexit__ = AsyncMock(return_value=False)
    return ctx


def _session(*bodies):
    """Mock ClientSession whose post() answers with the given JSON bodies in turn."""
    session = MagicMock()
    session.post.side_effect = [_response(body) for body in bodies]
    session.close = AsyncMock()
    return session


def _sent(session, call_index=0):
    return session.post.call_args_list[call_index].kwargs["json"]


class TestBatching:
    def test_request_is_queued_until_flush(self):
        async def scenario():
            session = _session([{"jsonrpc": "2.0", "id": 1, "result": "0x1"}])
            transport = RpcTransport("http://node", session=session)

            future = transport.request("eth_chainId")

            assert transport.pending_count == 1
            assert not future.done()
            session.post.assert_not_called()

            await transport.flush()
            assert future.done()
            assert await future == "0x1"
            assert transport.pending_count == 0

        asyncio.run(scenario())

    def test_flush_sends_one_batch(self):
        async def scenario():
            session = _session([
                {"jsonrpc": "2.0", "id": 2, "result": "second"},
                {"jsonrpc": "2.0", "id": 1, "result": "first"},
            ])
            transport = RpcTransport("http://node", session=session)

            first = transport.request("eth_accounts")
            second = transport.request("eth_getTransactionCount", ["0xabc", "pending"])
            await transport.flush()

            session.post.assert_called_once()
            payload = _sent(session)
            assert [p["method"] for p in payload] == ["eth_accounts", "eth_getTransactionCount"]
            assert [p["id"] for p in payload] == [1, 2]
            assert payload[1]["params"] == ["0xabc", "pending"]
            assert payload[0]["jsonrpc"] == "2.0"
            # Matched by id, not by position in the response
            assert await first == "first"
            assert await second == "second"

        asyncio.run(scenario())

    def test_unbatched_sends_in_queue_order(self):
        async def scenario():
            session = _session(
                {"jsonrpc": "2.0", "id": 1, "result": "a"},
                {"jsonrpc": "2.0", "id": 2, "result": "b"},
            )
            transport = RpcTransport("http://node", batch=False, session=session)

            first = transport.request("m1")
            second = transport.request("m2")
            await transport.flush()

            assert session.post.call_count == 2
            assert _sent(session, 0)["method"] == "m1"
            assert _sent(session, 1)["method"] == "m2"
            assert (await first, await second) == ("a", "b")

        asyncio.run(scenario())

    def test_unbatched_failure_keeps_earlier_results(self):
        async def scenario():
            session = _session()
            session.post.side_effect = [
                _response({"jsonrpc": "2.0", "id": 1, "result": "0xaa"}),
                aiohttp.ClientConnectionError("reset"),
            ]
            transport = RpcTransport("http://node", batch=False, session=session)

            first = transport.request("eth_sendTransaction", [{}])
            second = transport.request("eth_sendTransaction", [{}])
            third = transport.request("eth_sendTransaction", [{}])
            with pytest.raises(TransportError, match="reset"):
                await transport.flush()

            assert session.post.call_count == 2
            assert await first == "0xaa"
            for future in (second, third):
                with pytest.raises(TransportError, match="reset"):
                    await future

        asyncio.run(scenario())

    def test_flush_without_pending_requests(self):
        async def scenario():
            transport = RpcTransport("http://node", session=_session())
            with pytest.raises(RuntimeError, match="no pending"):
                await transport.flush()

        asyncio.run(scenario())

    def test_call_queues_and_flushes(self):
        async def scenario():
            session = _session([{"jsonrpc": "2.0", "id": 1, "result": ["0xabc"]}])
            transport = RpcTransport("http://node", session=session)
            assert await transport.call("eth_accounts") == ["0xabc"]

        asyncio.run(scenario())


class TestErrors:
    def test_rpc_error_fails_only_that_call(self):
        async def scenario():
            session = _session([
                {"jsonrpc": "2.0", "id": 1, "result": "0xhash"},
                {"jsonrpc": "2.0", "id": 2, "error": {"code": -32000, "message": "nonce too low"}},
            ])
            transport = RpcTransport("http://node", session=session)

            ok = transport.request("eth_sendTransaction", [{}])
            bad = transport.request("eth_sendTransaction", [{}])
            await transport.flush()

            assert await ok == "0xhash"
            with pytest.raises(RpcError) as excinfo:
                await bad
            assert excinfo.value.code == -32000
            assert excinfo.value.message == "nonce too low"
            assert excinfo.value.method == "eth_sendTransaction"

        asyncio.run(scenario())

    def test_missing_response_entry(self):
        async def scenario():
            session = _session([{"jsonrpc": "2.0", "id": 1, "result": "0x1"}])
            transport = RpcTransport("http://node", session=session)

            transport.request("m1")
            lost = transport.request("m2")
            await transport.flush()

            with pytest.raises(TransportError, match="No response"):
                await lost

        asyncio.run(scenario())

    def test_non_list_batch_response(self):
        async def scenario():
            session = _session({"jsonrpc": "2.0", "id": None, "error": {"code": -32600}})
            transport = RpcTransport("http://node", session=session)

            future = transport.request("m1")
            with pytest.raises(TransportError, match="batch response"):
                await transport.flush()
            with pytest.raises(TransportError):
                await future

        asyncio.run(scenario())

    def test_connection_failure(self):
        async def scenario():
            session = _session()
            session.post.side_effect = aiohttp.ClientConnectionError("connection refused")
            transport = RpcTransport("http://node", session=session)

            future = transport.request("eth_call", [{}, "latest"])
            with pytest.raises(TransportError, match="connection refused"):
                await transport.flush()
            with pytest.raises(TransportError):
                await future

        asyncio.run(scenario())

    def test_timeout(self):
        async def scenario():
            session = _session()
            session.post.side_effect = asyncio.TimeoutError()
            transport = RpcTransport("http://node", session=session)

            future = transport.request("eth_call", [{}, "latest"])
            with pytest.raises(TransportError, match="timed out"):
                await transport.flush()
            with pytest.raises(TransportError):
                await future

        asyncio.run(scenario())


class TestLifecycle:
    def test_injected_session_is_not_closed(self):
        async def scenario():
            session = _session()
            async with RpcTransport("http://node", session=session):
                pass
            session.close.assert_not_awaited()

        asyncio.run(scenario())

    def test_owned_session_is_closed(self):
        async def scenario():
            transport = RpcTransport("http://node")
            session = _session()
            transport._session = session
            await transport.close()
            session.close.assert_awaited_once()

        asyncio.run(scenario())
