"""Rebalancing module for target-weight fund management."""

from dhtrader.rebalancing.pool import Pool

__all__ = [
    "Pool",
]
