"""Rebalance planning - turn a fund snapshot into an ordered list of swaps."""

from types import MappingProxyType
from typing import Mapping, Sequence

import structlog

from dhtrader.errors import PreconditionError
from dhtrader.models import Asset, AssetStatus, Swap, Symbol

logger = structlog.get_logger(__name__)


class Pool:
    """Fund composition measured against target weights.

    Only symbols listed in the expected shares take part in valuation and
    planning. Every one of them must be present in the snapshot.
    """

    def __init__(
        self,
        expected_shares: Mapping[Symbol, float],
        assets: Mapping[Symbol, Asset],
        min_trade_value: float,
    ):
        if not assets:
            raise PreconditionError("Fund snapshot is empty")
        missing = sorted(s for s in expected_shares if s not in assets)
        if missing:
            raise PreconditionError(f"Snapshot is missing target symbols: {missing}")
        unpriced = sorted(s for s in expected_shares if assets[s].rate <= 0)
        if unpriced:
            raise PreconditionError(f"Target symbols without a positive rate: {unpriced}")

        self._expected_shares = MappingProxyType(dict(expected_shares))
        self._assets = MappingProxyType(dict(assets))
        self._min_trade_value = min_trade_value

    @property
    def assets(self) -> Mapping[Symbol, Asset]:
        return self._assets

    @property
    def min_trade_value(self) -> float:
        return self._min_trade_value

    def symbols(self) -> list[Symbol]:
        return sorted(self._expected_shares)

    def balance(self, symbol: Symbol) -> float:
        return self._assets[symbol].balance

    def rate(self, symbol: Symbol) -> float:
        return self._assets[symbol].rate

    def value(self, symbol: Symbol) -> float:
        return self.balance(symbol) * self.rate(symbol)

    def total_value(self) -> float:
        return sum(self.value(symbol) for symbol in self.symbols())

    def share(self, symbol: Symbol) -> float:
        total = self.total_value()
        return self.value(symbol) / total if total else 0.0

    def expected_share(self, symbol: Symbol) -> float:
        return self._expected_shares[symbol]

    def expected_value(self, symbol: Symbol) -> float:
        return self.total_value() * self.expected_share(symbol)

    def expected_value_change(self, symbol: Symbol) -> float:
        return self.expected_value(symbol) - self.value(symbol)

    def expected_balance_change(self, symbol: Symbol) -> float:
        return self.expected_value_change(symbol) / self.rate(symbol)

    def rebalance_plan(self) -> list[Swap]:
        """Greedy pairwise matching of the most overweight and underweight assets.

        Each round pairs the asset with the most negative expected value change
        (seller) with the one with the most positive change (buyer), trades the
        larger of the two magnitudes and drops both from further matching.
        """
        changes = {symbol: self.expected_value_change(symbol) for symbol in self.symbols()}
        ordered = sorted(changes, key=lambda s: (changes[s], s))

        swaps: list[Swap] = []
        while len(ordered) > 1:
            seller, buyer = ordered[0], ordered[-1]
            seller_change = changes[seller]
            buyer_change = changes[buyer]

            if buyer_change <= 0 or seller_change >= 0:
                break

            trade_value = max(abs(seller_change), buyer_change)
            if trade_value < self._min_trade_value:
                break

            swaps.append(
                Swap(
                    from_symbol=seller,
                    to_symbol=buyer,
                    from_amount=trade_value / self.rate(seller),
                )
            )
            ordered = ordered[1:-1]

        return swaps

    def balanced(self) -> bool:
        return len(self.rebalance_plan()) == 0

    def apply_swaps(self, swaps: Sequence[Swap]) -> "Pool":
        """Return the pool as it would look after executing swaps at current rates."""
        balances = {symbol: asset.balance for symbol, asset in self._assets.items()}
        for swap in swaps:
            to_amount = swap.from_amount * self.rate(swap.from_symbol) / self.rate(swap.to_symbol)
            balances[swap.from_symbol] -= swap.from_amount
            balances[swap.to_symbol] += to_amount

        assets = {
            symbol: Asset(balance=balances[symbol], rate=asset.rate)
            for symbol, asset in self._assets.items()
        }
        return Pool(self._expected_shares, assets, self._min_trade_value)

    def status(self) -> list[AssetStatus]:
        return [
            AssetStatus(
                symbol=symbol,
                balance=self.balance(symbol),
                rate=self.rate(symbol),
                value=self.value(symbol),
                share=self.share(symbol),
                expected_share=self.expected_share(symbol),
                expected_value=self.expected_value(symbol),
                expected_balance_change=self.expected_balance_change(symbol),
                expected_value_change=self.expected_value_change(symbol),
            )
            for symbol in self.symbols()
        ]

    def log_status(self) -> list[Swap]:
        """Log the per-asset status table and the rebalance plan. Returns the plan."""
        logger.info("pool.status", total_value=round(self.total_value(), 5))
        for row in self.status():
            logger.info(
                "pool.asset_status",
                symbol=row.symbol,
                balance=round(row.balance, 5),
                rate=round(row.rate, 5),
                value=round(row.value, 5),
                share=round(row.share, 5),
                expected_share=round(row.expected_share, 5),
                expected_value=round(row.expected_value, 5),
                expected_balance_change=round(row.expected_balance_change, 5),
                expected_value_change=round(row.expected_value_change, 5),
            )

        swaps = self.rebalance_plan()
        logger.info("pool.rebalance_plan", actions_required=len(swaps))
        for swap in swaps:
            logger.info(
                "pool.planned_swap",
                from_symbol=swap.from_symbol,
                to_symbol=swap.to_symbol,
                from_amount=round(swap.from_amount, 5),
                value=round(swap.from_amount * self.rate(swap.from_symbol), 5),
            )
        return swaps
