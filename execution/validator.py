from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal
from typing import Iterable, Optional

from exchange.capabilities import is_order_type_supported
from exchange.connector import Connector
from exchange.models import VenueMarket

from .errors import OrderValidationError
from .models import OrderRequest, OrderType


def floor_to_step(value: float, step: Optional[float]) -> float:
    """Floor ``value`` to a multiple of ``step``; no-op without a usable step."""
    if not step or step <= 0:
        return float(value)
    d_step = Decimal(str(step))
    steps = (Decimal(str(value)) / d_step).to_integral_value(rounding=ROUND_FLOOR)
    return float(steps * d_step)


@dataclass(frozen=True)
class ValidatedOrder:
    symbol: str
    quantity: float
    price: Optional[float]
    reference_price: Optional[float]
    market: VenueMarket


class OrderValidator:
    """Checks a candidate order against the venue's live market definition."""

    async def validate(
        self,
        request: OrderRequest,
        symbol: str,
        connector: Connector,
        markets: Optional[Iterable[VenueMarket]] = None,
    ) -> ValidatedOrder:
        if markets is None:
            markets = await connector.fetch_markets()
        market = self._find_market(markets, symbol)

        if not market.active:
            raise OrderValidationError(f"Trading is suspended for {symbol}")

        quantity = self._check_quantity(request.quantity, market)

        price = request.price
        if price is not None:
            price = self._check_price(price, market)

        reference_price = price or request.stop_price or request.take_profit_price
        if reference_price is not None:
            if price is None:
                self._check_price(reference_price, market)
            self._check_notional(quantity, reference_price, market)

        return ValidatedOrder(
            symbol=symbol,
            quantity=quantity,
            price=price,
            reference_price=reference_price,
            market=market,
        )

    def ensure_order_type_supported(self, exchange_slug: str, order_type: OrderType) -> None:
        if not is_order_type_supported(exchange_slug, order_type.value):
            raise OrderValidationError(f"Order type {order_type.value} is not supported on {exchange_slug}")

    @staticmethod
    def _find_market(markets: Iterable[VenueMarket], symbol: str) -> VenueMarket:
        for market in markets:
            if market.symbol == symbol:
                return market
        raise OrderValidationError(f"Trading pair {symbol} not found on exchange")

    @staticmethod
    def _check_quantity(quantity: float, market: VenueMarket) -> float:
        adjusted = floor_to_step(quantity, market.amount_step)
        if adjusted <= 0:
            raise OrderValidationError(f"Quantity {quantity} is below the step size {market.amount_step}")
        if market.min_amount is not None and adjusted < market.min_amount:
            raise OrderValidationError(f"Quantity {adjusted} is below minimum {market.min_amount}")
        if market.max_amount is not None and adjusted > market.max_amount:
            raise OrderValidationError(f"Quantity {adjusted} exceeds maximum {market.max_amount}")
        return adjusted

    @staticmethod
    def _check_price(price: float, market: VenueMarket) -> float:
        adjusted = floor_to_step(price, market.price_step)
        if adjusted <= 0:
            raise OrderValidationError(f"Price {price} is below the tick size {market.price_step}")
        if market.min_price is not None and adjusted < market.min_price:
            raise OrderValidationError(f"Price {adjusted} is below minimum {market.min_price}")
        if market.max_price is not None and adjusted > market.max_price:
            raise OrderValidationError(f"Price {adjusted} exceeds maximum {market.max_price}")
        return adjusted

    @staticmethod
    def _check_notional(quantity: float, price: float, market: VenueMarket) -> None:
        notional = quantity * price
        if market.min_cost is not None and notional < market.min_cost:
            raise OrderValidationError(f"Order value {notional} is below minimum {market.min_cost}")
