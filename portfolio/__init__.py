from .holdings import (
    ExchangeHolding,
    HoldingsAggregator,
    HoldingsSnapshot,
    aggregate_holdings,
)

__all__ = [
    "ExchangeHolding",
    "HoldingsAggregator",
    "HoldingsSnapshot",
    "aggregate_holdings",
]
