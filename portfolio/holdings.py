from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from catalog.models import Coin, User
from storage.database import Database
from storage.models import OrderRecord


@dataclass(frozen=True)
class ExchangeHolding:
    exchange_slug: str
    amount: float
    last_updated: Optional[datetime]


@dataclass(frozen=True)
class HoldingsSnapshot:
    coin_id: str
    coin_symbol: str
    total_amount: float = 0.0
    average_buy_price: float = 0.0
    current_price: float = 0.0
    current_value: float = 0.0
    invested_amount: float = 0.0
    profit_loss: float = 0.0
    profit_loss_percentage: float = 0.0
    exchanges: List[ExchangeHolding] = field(default_factory=list)


@dataclass
class _VenueRunning:
    amount: float = 0.0
    last_updated: Optional[datetime] = None


def aggregate_holdings(coin: Coin, orders: Iterable[OrderRecord]) -> HoldingsSnapshot:
    """Fold filled orders (oldest first) into a position.

    Sells reduce the amount but never the cost basis, so the average buy
    price only moves on buys.
    """
    total_bought = 0.0
    total_sold = 0.0
    cost_basis = 0.0
    venues: Dict[str, _VenueRunning] = {}

    for order in orders:
        qty = order.executed_quantity or 0.0
        venue = venues.setdefault(order.exchange_slug, _VenueRunning())
        if order.side == "BUY":
            total_bought += qty
            cost_basis += order.cost or 0.0
            venue.amount += qty
        else:
            total_sold += qty
            venue.amount -= qty
        stamp = order.transact_time
        if stamp is not None and (venue.last_updated is None or stamp > venue.last_updated):
            venue.last_updated = stamp

    if not venues:
        return HoldingsSnapshot(coin_id=coin.id, coin_symbol=coin.symbol)

    average_buy_price = cost_basis / total_bought if total_bought > 0 else 0.0
    total_amount = total_bought - total_sold
    current_price = coin.current_price or 0.0
    current_value = total_amount * current_price
    invested = total_amount * average_buy_price
    profit_loss = current_value - invested
    profit_loss_pct = profit_loss / invested * 100 if invested else 0.0

    return HoldingsSnapshot(
        coin_id=coin.id,
        coin_symbol=coin.symbol,
        total_amount=total_amount,
        average_buy_price=average_buy_price,
        current_price=current_price,
        current_value=current_value,
        invested_amount=invested,
        profit_loss=profit_loss,
        profit_loss_percentage=profit_loss_pct,
        exchanges=[
            ExchangeHolding(exchange_slug=slug, amount=v.amount, last_updated=v.last_updated)
            for slug, v in venues.items()
            if v.amount > 0
        ],
    )


class HoldingsAggregator:
    def __init__(self, db: Database):
        self.db = db

    async def get_holdings_by_coin(self, user: User, coin: Coin) -> HoldingsSnapshot:
        orders = await self.db.get_filled_orders_for_coin(user.id, coin.id)
        return aggregate_holdings(coin, orders)
