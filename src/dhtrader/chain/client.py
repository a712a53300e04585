"""Pool contract client: reads the fund composition and submits swaps."""

import asyncio
from typing import Optional, Sequence

import structlog
from eth_utils import is_hex_address, to_checksum_address

from dhtrader.chain.contract import PoolContract
from dhtrader.chain.transport import RpcTransport
from dhtrader.config import ChainConfig, Secrets
from dhtrader.errors import ChainRejection, PreconditionError, RpcError, TransportError
from dhtrader.logging_config import get_trade_logger
from dhtrader.models import Asset, Swap, Symbol

logger = structlog.get_logger(__name__)


class ChainClient:
    """Talks to the pool contract through one manager account.

    Nonces are assigned locally from a single read per submission round, so
    no other process may send transactions from the manager account while a
    rebalance is running.
    """

    def __init__(self, transport: RpcTransport, contract: PoolContract, manager: str):
        self._transport = transport
        self._contract = contract
        self._manager = manager
        self._trade_log = get_trade_logger()

    @classmethod
    async def connect(
        cls,
        config: ChainConfig,
        secrets: Secrets,
        transport: Optional[RpcTransport] = None,
    ) -> "ChainClient":
        """Create a client and resolve the manager account once."""
        if transport is None:
            transport = RpcTransport(
                config.rpc_url,
                batch=config.batch_requests,
                timeout_seconds=config.request_timeout_seconds,
            )
        contract = PoolContract(config.pool_address)

        try:
            manager = await cls._resolve_manager(transport, config)
            if secrets.manager_password:
                await cls._unlock(transport, manager, secrets.manager_password,
                                  config.unlock_duration_seconds)
        except Exception:
            await transport.close()
            raise

        logger.info("chain.manager_account", manager=manager, pool=contract.address)
        return cls(transport, contract, manager)

    @staticmethod
    async def _resolve_manager(transport: RpcTransport, config: ChainConfig) -> str:
        if config.manager_address:
            return config.manager_address

        accounts = await transport.call("eth_accounts")
        if not accounts:
            raise PreconditionError("Node reports no accounts to use as manager")
        if not isinstance(accounts, list) or not is_hex_address(accounts[0]):
            raise TransportError(f"Malformed eth_accounts response: {accounts!r}")
        return to_checksum_address(accounts[0])

    @staticmethod
    async def _unlock(transport: RpcTransport, manager: str, password: str, duration: int) -> None:
        try:
            unlocked = await transport.call("personal_unlockAccount", [manager, password, duration])
        except RpcError as e:
            raise ChainRejection(f"Node refused to unlock {manager}: {e.message}") from e
        if unlocked is not True:
            raise ChainRejection(f"Node refused to unlock {manager}")
        logger.info("chain.account_unlocked", manager=manager, duration_seconds=duration)

    @property
    def manager(self) -> str:
        return self._manager

    @property
    def contract(self) -> PoolContract:
        return self._contract

    async def read_snapshot(self) -> dict[Symbol, Asset]:
        """Read the fund composition via getFundComposition()."""
        logger.info("chain.reading_composition", pool=self._contract.address)

        result = self._transport.request("eth_call", [self._contract.composition_call(), "latest"])
        await self._transport.flush()
        assets = self._contract.decode_composition(await result)

        for symbol, asset in assets.items():
            logger.info("chain.asset", symbol=symbol, balance=asset.balance, rate=asset.rate)
        logger.info("chain.composition_read", assets=len(assets))
        return assets

    async def get_nonce(self) -> int:
        """Current transaction count of the manager account."""
        result = self._transport.request("eth_getTransactionCount", [self._manager, "pending"])
        await self._transport.flush()
        raw = await result
        try:
            return int(raw, 16)
        except (TypeError, ValueError) as e:
            raise TransportError(f"Malformed transaction count: {raw!r}") from e

    async def submit_swaps(self, swaps: Sequence[Swap]) -> list[str]:
        """Submit one exchange transaction per swap in a single batch.

        Returns the transaction hashes in the order of ``swaps``. If any swap
        fails, every accepted one is still logged to the trade log before
        ``ChainRejection`` is raised for the first rejection; accepted swaps
        are not undone.
        """
        if not swaps:
            return []

        # Encode everything before queuing so an encoding failure sends nothing
        calldata = [self._contract.exchange_data(swap) for swap in swaps]

        nonce = await self.get_nonce()
        logger.info("chain.submitting_swaps", count=len(swaps), first_nonce=nonce)

        pending = []
        for offset, data in enumerate(calldata):
            tx = {
                "from": self._manager,
                "to": self._contract.address,
                "data": data,
                "nonce": hex(nonce + offset),
            }
            pending.append(self._transport.request("eth_sendTransaction", [tx]))

        flush_error: Optional[TransportError] = None
        try:
            await self._transport.flush()
        except TransportError as e:
            flush_error = e

        # Accepted swaps are reported even when an earlier one failed
        outcomes = await asyncio.gather(*pending, return_exceptions=True)

        hashes: list[str] = []
        failures: list[tuple[Swap, Exception]] = []
        for offset, (swap, outcome) in enumerate(zip(swaps, outcomes)):
            if isinstance(outcome, Exception):
                logger.error(
                    "chain.swap_rejected" if isinstance(outcome, RpcError) else "chain.swap_failed",
                    from_symbol=swap.from_symbol,
                    to_symbol=swap.to_symbol,
                    nonce=nonce + offset,
                    error=outcome.message if isinstance(outcome, RpcError) else str(outcome),
                )
                failures.append((swap, outcome))
                continue

            self._trade_log.info(
                "trade.swap_submitted",
                from_symbol=swap.from_symbol,
                to_symbol=swap.to_symbol,
                from_amount=swap.from_amount,
                nonce=nonce + offset,
                tx_hash=outcome,
            )
            hashes.append(outcome)

        if not failures:
            return hashes

        logger.error(
            "chain.swaps_partially_submitted",
            submitted=len(hashes),
            failed=len(failures),
            tx_hashes=hashes,
        )
        if flush_error is not None:
            raise flush_error

        swap, error = failures[0]
        if isinstance(error, RpcError):
            raise ChainRejection(
                f"Exchange {swap.from_amount} {swap.from_symbol} -> {swap.to_symbol} "
                f"rejected: {error.message}; submitted {len(hashes)} of {len(swaps)} "
                f"swaps: {', '.join(hashes) or 'none'}"
            ) from error
        raise error

    async def close(self) -> None:
        await self._transport.close()

    async def __aenter__(self) -> "ChainClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()
