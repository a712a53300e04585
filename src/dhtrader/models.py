"""Domain models for the fund rebalancer."""

from typing import Mapping

from pydantic import BaseModel

Symbol = str


class Asset(BaseModel):
    """Current holding of one fund asset and its price in the common unit."""

    balance: float
    rate: float

    model_config = {"frozen": True}

    @property
    def value(self) -> float:
        return self.balance * self.rate


# Point-in-time fund composition, symbol -> asset
Snapshot = Mapping[Symbol, Asset]


class Swap(BaseModel):
    """Exchange from_amount of from_symbol for the same value of to_symbol."""

    from_symbol: Symbol
    to_symbol: Symbol
    from_amount: float

    model_config = {"frozen": True}


class AssetStatus(BaseModel):
    """One row of the pool status report."""

    symbol: Symbol
    balance: float
    rate: float
    value: float
    share: float
    expected_share: float
    expected_value: float
    expected_balance_change: float
    expected_value_change: float
