from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple

import ccxt.async_support as ccxt
from ccxt.base.decimal_to_precision import DECIMAL_PLACES, TICK_SIZE

from .models import Balance, OrderBook, Ticker, TradingFee, VenueMarket, VenueOrderAck


class Connector(Protocol):
    """Capability-bearing client bound to one venue and one user."""

    slug: str

    @property
    def markets(self) -> Dict[str, VenueMarket]: ...

    async def fetch_markets(self) -> List[VenueMarket]: ...

    async def fetch_ticker(self, symbol: str) -> Ticker: ...

    async def fetch_order_book(self, symbol: str, depth: int = 20) -> OrderBook: ...

    async def fetch_balance(self) -> Balance: ...

    async def fetch_trading_fees(self) -> Dict[str, TradingFee]: ...

    async def submit_order(
        self,
        symbol: str,
        order_type: str,
        side: str,
        quantity: float,
        price: Optional[float] = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> VenueOrderAck: ...

    async def cancel_order(self, venue_order_id: str, symbol: str) -> Optional[VenueOrderAck]: ...


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _from_ms(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc).replace(tzinfo=None)


class CcxtConnector:
    """ccxt async client wrapper normalizing venue payloads into frozen dataclasses."""

    def __init__(self, slug: str, client: ccxt.Exchange):
        self.slug = slug
        self._client = client
        self._markets: Dict[str, VenueMarket] = {}

    @property
    def markets(self) -> Dict[str, VenueMarket]:
        return self._markets

    async def fetch_markets(self) -> List[VenueMarket]:
        raw = await self._client.load_markets()
        self._markets = {symbol: self._parse_market(m) for symbol, m in raw.items()}
        return list(self._markets.values())

    async def fetch_ticker(self, symbol: str) -> Ticker:
        data = await self._client.fetch_ticker(symbol)
        last = _to_float(data.get("last")) or _to_float(data.get("close")) or 0.0
        return Ticker(
            symbol=data.get("symbol", symbol),
            last=last,
            bid=_to_float(data.get("bid")),
            ask=_to_float(data.get("ask")),
            timestamp=_from_ms(data.get("timestamp")),
        )

    async def fetch_order_book(self, symbol: str, depth: int = 20) -> OrderBook:
        data = await self._client.fetch_order_book(symbol, depth)
        return OrderBook(
            symbol=symbol,
            bids=self._parse_levels(data.get("bids", [])),
            asks=self._parse_levels(data.get("asks", [])),
        )

    async def fetch_balance(self) -> Balance:
        data = await self._client.fetch_balance()
        free = {k: float(v) for k, v in (data.get("free") or {}).items() if v is not None}
        total = {k: float(v) for k, v in (data.get("total") or {}).items() if v is not None}
        return Balance(free=free, total=total)

    async def fetch_trading_fees(self) -> Dict[str, TradingFee]:
        data = await self._client.fetch_trading_fees()
        fees: Dict[str, TradingFee] = {}
        for symbol, item in data.items():
            if not isinstance(item, dict):
                continue
            maker = _to_float(item.get("maker"))
            taker = _to_float(item.get("taker"))
            if maker is None or taker is None:
                continue
            fees[symbol] = TradingFee(symbol=symbol, maker=maker, taker=taker)
        return fees

    async def submit_order(
        self,
        symbol: str,
        order_type: str,
        side: str,
        quantity: float,
        price: Optional[float] = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> VenueOrderAck:
        ccxt_type, ccxt_price, ccxt_params = self._shape_order(order_type, price, dict(params or {}))
        data = await self._client.create_order(symbol, ccxt_type, side.lower(), quantity, ccxt_price, ccxt_params)
        return self._parse_order(data, symbol=symbol, side=side, order_type=ccxt_type)

    async def cancel_order(self, venue_order_id: str, symbol: str) -> Optional[VenueOrderAck]:
        data = await self._client.cancel_order(venue_order_id, symbol)
        if not data:
            return None
        return self._parse_order(data, symbol=symbol)

    async def close(self) -> None:
        await self._client.close()

    def _shape_order(
        self, order_type: str, price: Optional[float], params: Dict[str, Any]
    ) -> Tuple[str, Optional[float], Dict[str, Any]]:
        """Translate an engine order type plus its conditional fields into ccxt unified arguments."""
        out: Dict[str, Any] = {}
        if params.get("client_order_id"):
            out["clientOrderId"] = params["client_order_id"]
        if params.get("time_in_force"):
            out["timeInForce"] = params["time_in_force"]

        order_type = order_type.upper()
        if order_type == "MARKET":
            return "market", None, out
        if order_type == "LIMIT":
            return "limit", price, out
        if order_type == "STOP_LOSS":
            out["stopLossPrice"] = params["stop_price"]
            return "market", None, out
        if order_type == "STOP_LIMIT":
            out["triggerPrice"] = params["stop_price"]
            return "limit", price, out
        if order_type == "TAKE_PROFIT":
            out["takeProfitPrice"] = params["take_profit_price"]
            return ("limit", price, out) if price else ("market", None, out)
        if order_type == "TRAILING_STOP":
            if params.get("trailing_type") == "PERCENTAGE":
                out["trailingPercent"] = params["trailing_amount"]
            else:
                out["trailingAmount"] = params["trailing_amount"]
            return "market", None, out
        raise ValueError(f"Unsupported order type for {self.slug}: {order_type}")

    def _step(self, value: Any) -> Optional[float]:
        """ccxt reports precision either as a tick size or as a number of decimals."""
        value = _to_float(value)
        if value is None:
            return None
        if self._client.precisionMode == TICK_SIZE:
            return value
        if self._client.precisionMode == DECIMAL_PLACES:
            return 10 ** -int(value)
        return None

    def _parse_market(self, m: Dict[str, Any]) -> VenueMarket:
        limits = m.get("limits") or {}
        precision = m.get("precision") or {}
        return VenueMarket(
            symbol=m["symbol"],
            base=m.get("base", ""),
            quote=m.get("quote", ""),
            active=m.get("active") is not False,
            min_amount=_to_float((limits.get("amount") or {}).get("min")),
            max_amount=_to_float((limits.get("amount") or {}).get("max")),
            min_price=_to_float((limits.get("price") or {}).get("min")),
            max_price=_to_float((limits.get("price") or {}).get("max")),
            min_cost=_to_float((limits.get("cost") or {}).get("min")),
            amount_step=self._step(precision.get("amount")),
            price_step=self._step(precision.get("price")),
            maker=_to_float(m.get("maker")),
            taker=_to_float(m.get("taker")),
        )

    @staticmethod
    def _parse_levels(levels: List[List[Any]]) -> List[Tuple[float, float]]:
        return [(float(level[0]), float(level[1])) for level in levels if len(level) >= 2]

    @staticmethod
    def _parse_order(
        data: Dict[str, Any],
        *,
        symbol: str,
        side: Optional[str] = None,
        order_type: Optional[str] = None,
    ) -> VenueOrderAck:
        fee = data.get("fee") or {}
        fee_cost = _to_float(fee.get("cost"))
        fee_currency = fee.get("currency")
        if fee_cost is None and data.get("trades"):
            trade_fees = [t.get("fee") or {} for t in data["trades"]]
            fee_cost = sum(_to_float(f.get("cost")) or 0.0 for f in trade_fees)
            fee_currency = next((f.get("currency") for f in trade_fees if f.get("currency")), None)

        return VenueOrderAck(
            id=str(data["id"]),
            symbol=data.get("symbol") or symbol,
            side=data.get("side") or (side or "").lower(),
            type=data.get("type") or order_type or "",
            status=data.get("status"),
            client_order_id=data.get("clientOrderId"),
            amount=_to_float(data.get("amount")),
            filled=_to_float(data.get("filled")),
            price=_to_float(data.get("price")),
            average=_to_float(data.get("average")),
            cost=_to_float(data.get("cost")),
            fee=fee_cost,
            fee_currency=fee_currency,
            timestamp=_from_ms(data.get("timestamp")),
        )
