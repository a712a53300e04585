"""Rebalancing engine - one read, plan, submit cycle against the pool contract."""

from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

import structlog

from dhtrader.chain.client import ChainClient
from dhtrader.config import AppConfig, ChainConfig, Secrets
from dhtrader.errors import DHTraderError
from dhtrader.logging_config import bind_run_context, clear_run_context
from dhtrader.rebalancing.pool import Pool

logger = structlog.get_logger(__name__)

ClientFactory = Callable[[ChainConfig, Secrets], Awaitable[ChainClient]]


class RebalancingEngine:
    """Moves the fund toward its configured target weights.

    Reads the fund composition, plans swaps against that single snapshot and
    submits them. Any failure aborts the run; swaps already accepted by the
    node stay in place.
    """

    def __init__(
        self,
        config: AppConfig,
        secrets: Secrets,
        client_factory: Optional[ClientFactory] = None,
    ):
        self._config = config
        self._secrets = secrets
        self._client_factory = client_factory or ChainClient.connect

    async def run(self) -> int:
        """Run one rebalance.

        Returns:
            Exit code (0 for success, 1 for failure)
        """
        start_time = datetime.now(timezone.utc)
        rebal_config = self._config.rebalancing
        logger.info(
            "rebalancer.starting",
            timestamp=start_time.isoformat(),
            pool=self._config.chain.pool_address,
            targets=rebal_config.expected_shares,
            min_trade_value=rebal_config.min_trade_value,
            dry_run=rebal_config.dry_run,
        )

        stage = "connect"
        client: Optional[ChainClient] = None
        try:
            client = await self._client_factory(self._config.chain, self._secrets)
            bind_run_context(pool=client.contract.address, manager=client.manager)

            stage = "read_snapshot"
            snapshot = await client.read_snapshot()

            stage = "plan"
            pool = Pool(rebal_config.expected_shares, snapshot, rebal_config.min_trade_value)
            swaps = pool.log_status()

            if not swaps:
                logger.info("rebalancer.already_balanced")
                return 0

            if rebal_config.dry_run:
                logger.info("rebalancer.dry_run", swaps=len(swaps))
                return 0

            stage = "submit"
            hashes = await client.submit_swaps(swaps)

            duration = (datetime.now(timezone.utc) - start_time).total_seconds()
            logger.info(
                "rebalancer.completed",
                duration_seconds=round(duration, 2),
                swaps=len(hashes),
                tx_hashes=hashes,
            )
            return 0

        except DHTraderError as e:
            logger.error(
                "rebalancer.failed",
                stage=stage,
                error_kind=type(e).__name__,
                error=str(e),
            )
            return 1
        finally:
            clear_run_context()
            if client is not None:
                await client.close()
