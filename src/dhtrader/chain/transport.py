"""JSON-RPC over HTTP with explicit batching.

Requests are queued with ``request()`` and only sent by ``flush()``. Each
request gets a future that resolves after the flush that carried it has
received its response, in the order the requests were queued.

When a flush fails at the transport level, every call without a response
fails with the same ``TransportError``. Without batching, calls answered
before the failure keep their results.
"""

import asyncio
import itertools
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import aiohttp
import structlog

from dhtrader.errors import RpcError, TransportError

logger = structlog.get_logger(__name__)


@dataclass
class _PendingCall:
    id: int
    method: str
    params: list
    future: asyncio.Future

    def payload(self) -> dict:
        return {"jsonrpc": "2.0", "id": self.id, "method": self.method, "params": self.params}


class RpcTransport:
    """Queues JSON-RPC calls and sends them to the node on flush."""

    def __init__(
        self,
        url: str,
        *,
        batch: bool = True,
        timeout_seconds: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self._url = url
        self._batch = batch
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session = session
        self._owns_session = session is None
        self._ids = itertools.count(1)
        self._pending: list[_PendingCall] = []

    @property
    def supports_batching(self) -> bool:
        return self._batch

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def __aenter__(self) -> "RpcTransport":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    def request(self, method: str, params: Sequence[Any] = ()) -> asyncio.Future:
        """Queue a call. The returned future resolves after the next flush."""
        future = asyncio.get_running_loop().create_future()
        self._pending.append(_PendingCall(next(self._ids), method, list(params), future))
        return future

    async def flush(self) -> None:
        """Send every queued call and resolve their futures in queue order."""
        if not self._pending:
            raise RuntimeError("flush() called with no pending requests")

        calls, self._pending = self._pending, []
        logger.debug(
            "rpc.flush",
            requests=len(calls),
            batched=self._batch,
            methods=[c.method for c in calls],
        )

        if self._batch:
            await self._flush_batch(calls)
        else:
            await self._flush_each(calls)

    async def _flush_batch(self, calls: list[_PendingCall]) -> None:
        try:
            responses = await self._post([c.payload() for c in calls])
            if not isinstance(responses, list):
                raise TransportError(
                    f"Expected a JSON-RPC batch response, got {type(responses).__name__}"
                )
        except TransportError as e:
            self._fail(calls, e)
            raise

        by_id = {r.get("id"): r for r in responses if isinstance(r, dict)}
        for call in calls:
            self._resolve(call, by_id.get(call.id))

    async def _flush_each(self, calls: list[_PendingCall]) -> None:
        # Calls answered before a failure keep their results
        for index, call in enumerate(calls):
            try:
                response = await self._post(call.payload())
            except TransportError as e:
                self._fail(calls[index:], e)
                raise
            matches = isinstance(response, dict) and response.get("id") == call.id
            self._resolve(call, response if matches else None)

    def _fail(self, calls: list[_PendingCall], error: TransportError) -> None:
        logger.error("rpc.flush_failed", url=self._url, requests=len(calls), error=str(error))
        for call in calls:
            call.future.set_exception(error)

    async def call(self, method: str, params: Sequence[Any] = ()) -> Any:
        """Queue a single call, flush and return its result."""
        future = self.request(method, params)
        await self.flush()
        return await future

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def _post(self, payload: Any) -> Any:
        session = self._get_session()
        try:
            async with session.post(self._url, json=payload) as response:
                response.raise_for_status()
                return await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise TransportError(f"RPC request to {self._url} timed out") from e
        except aiohttp.ClientError as e:
            raise TransportError(f"RPC request to {self._url} failed: {e}") from e
        except ValueError as e:
            raise TransportError(f"RPC response from {self._url} is not valid JSON") from e

    @staticmethod
    def _resolve(call: _PendingCall, response: Optional[dict]) -> None:
        if response is None:
            call.future.set_exception(
                TransportError(f"No response for {call.method} (id {call.id})")
            )
        elif response.get("error") is not None:
            error = response["error"]
            if isinstance(error, dict):
                code, message = error.get("code", 0), str(error.get("message", ""))
            else:
                code, message = 0, str(error)
            call.future.set_exception(RpcError(code, message, call.method))
        elif "result" in response:
            call.future.set_result(response["result"])
        else:
            call.future.set_exception(
                TransportError(f"Malformed response for {call.method}: {response}")
            )
