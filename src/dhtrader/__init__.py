"""dhtrader - on-chain fund rebalancer."""

__version__ = "0.1.0"
