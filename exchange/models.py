from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

PriceLevel = Tuple[float, float]  # (price, amount)


@dataclass(frozen=True)
class VenueMarket:
    symbol: str  # venue wire symbol, e.g. 'BTC/USDT'
    base: str
    quote: str
    active: bool
    min_amount: Optional[float] = None
    max_amount: Optional[float] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    min_cost: Optional[float] = None
    amount_step: Optional[float] = None
    price_step: Optional[float] = None
    maker: Optional[float] = None
    taker: Optional[float] = None


@dataclass(frozen=True)
class Ticker:
    symbol: str
    last: float
    bid: Optional[float] = None
    ask: Optional[float] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class OrderBook:
    symbol: str
    bids: List[PriceLevel] = field(default_factory=list)  # best (highest) first
    asks: List[PriceLevel] = field(default_factory=list)  # best (lowest) first

    def side_for(self, order_side: str) -> List[PriceLevel]:
        """Levels a taker on ``order_side`` consumes: asks for BUY, bids for SELL."""
        return self.asks if order_side.upper() == "BUY" else self.bids


@dataclass(frozen=True)
class Balance:
    free: Dict[str, float] = field(default_factory=dict)
    total: Dict[str, float] = field(default_factory=dict)

    def available(self, currency: str) -> float:
        return float(self.free.get(currency.upper(), 0.0) or 0.0)


@dataclass(frozen=True)
class TradingFee:
    symbol: str
    maker: float
    taker: float


@dataclass(frozen=True)
class VenueOrderAck:
    id: str
    symbol: str
    side: str  # 'buy' or 'sell'
    type: str  # venue order type, e.g. 'limit', 'market', 'stop_loss'
    status: Optional[str] = None  # raw venue status: 'open', 'closed', 'canceled', ...
    client_order_id: Optional[str] = None
    amount: Optional[float] = None
    filled: Optional[float] = None
    price: Optional[float] = None
    average: Optional[float] = None
    cost: Optional[float] = None
    fee: Optional[float] = None
    fee_currency: Optional[str] = None
    timestamp: Optional[datetime] = None
