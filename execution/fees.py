from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from exchange.capabilities import GLOBAL_DEFAULT_FEE, default_fee_rates
from exchange.connector import Connector
from exchange.models import OrderBook, PriceLevel

from .models import OrderSide, OrderType

logger = logging.getLogger(__name__)

FEE_SOURCE_API = "api"
FEE_SOURCE_MARKET = "market"
FEE_SOURCE_DEFAULT = "default"


@dataclass(frozen=True)
class FeeRate:
    rate: float
    maker: float
    taker: float
    source: str


@dataclass(frozen=True)
class FeeEstimate:
    rate: float
    amount: float
    currency: str
    source: str


def _pick(order_type: OrderType, maker: float, taker: float) -> float:
    # Only a resting LIMIT order adds liquidity; everything else executes as a taker.
    return maker if order_type == OrderType.LIMIT else taker


class FeeEstimator:
    """Resolves maker/taker rates: live fee endpoint, then loaded market metadata, then static tables."""

    def __init__(self, default_rates: Tuple[float, float] = GLOBAL_DEFAULT_FEE):
        self.default_rates = default_rates

    async def resolve_fee_rate(
        self,
        connector: Connector,
        exchange_slug: str,
        order_type: OrderType,
        symbol: Optional[str] = None,
    ) -> FeeRate:
        try:
            fees = await connector.fetch_trading_fees()
            entry = fees.get(symbol) if symbol else None
            if entry is None and fees:
                entry = next(iter(fees.values()))
            if entry is not None:
                return FeeRate(
                    rate=_pick(order_type, entry.maker, entry.taker),
                    maker=entry.maker,
                    taker=entry.taker,
                    source=FEE_SOURCE_API,
                )
        except Exception as e:
            logger.warning("Trading fee lookup failed on %s, falling back: %s", exchange_slug, e)

        markets = connector.markets
        if not markets:
            try:
                await connector.fetch_markets()
                markets = connector.markets
            except Exception as e:
                logger.warning("Market metadata load failed on %s, falling back: %s", exchange_slug, e)
        markets = markets or {}
        candidates = [markets[symbol]] if symbol in markets else []
        candidates.extend(markets.values())
        for market in candidates:
            if market.maker is not None and market.taker is not None:
                return FeeRate(
                    rate=_pick(order_type, market.maker, market.taker),
                    maker=market.maker,
                    taker=market.taker,
                    source=FEE_SOURCE_MARKET,
                )

        maker, taker = default_fee_rates(exchange_slug, self.default_rates)
        return FeeRate(rate=_pick(order_type, maker, taker), maker=maker, taker=taker, source=FEE_SOURCE_DEFAULT)

    async def estimate_fee(
        self,
        connector: Connector,
        exchange_slug: str,
        order_type: OrderType,
        order_value: float,
        currency: str,
        symbol: Optional[str] = None,
    ) -> FeeEstimate:
        fee_rate = await self.resolve_fee_rate(connector, exchange_slug, order_type, symbol)
        return FeeEstimate(
            rate=fee_rate.rate,
            amount=order_value * fee_rate.rate,
            currency=currency,
            source=fee_rate.source,
        )


def weighted_fill_price(levels: Sequence[PriceLevel], quantity: float) -> Optional[float]:
    """Quantity-weighted average price of consuming ``levels`` up to ``quantity``.

    Stops at the available depth, so a thin book prices only the filled part.
    """
    remaining = quantity
    filled = 0.0
    notional = 0.0
    for price, amount in levels:
        if remaining <= 0:
            break
        take = min(amount, remaining)
        notional += take * price
        filled += take
        remaining -= take
    if filled <= 0:
        return None
    return notional / filled


def estimate_slippage(order_book: OrderBook, side: OrderSide, quantity: float) -> float:
    """Percent distance between the best quote and the achievable average price, 2 dp."""
    levels = order_book.side_for(side.value)
    if not levels or quantity <= 0:
        return 0.0
    best_price = levels[0][0]
    if best_price == 0:
        return 0.0
    avg_price = weighted_fill_price(levels, quantity)
    if avg_price is None:
        return 0.0
    return round(abs(avg_price - best_price) / best_price * 100, 2)
