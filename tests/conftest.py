from __future__ import annotations

import itertools
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

import pytest
import pytest_asyncio

from catalog import Coin, ExchangeCredential, InMemoryCoinCatalog, InMemoryCredentialStore, User
from config import Settings
from exchange import CcxtConnectorRegistry
from exchange.models import Balance, OrderBook, Ticker, TradingFee, VenueMarket, VenueOrderAck
from execution import OrderService
from storage import Database


class FakeConnector:
    """In-process venue: records every call, answers from canned data."""

    def __init__(
        self,
        slug: str = "binance",
        markets: Optional[List[VenueMarket]] = None,
        last_price: float = 100.0,
        order_book: Optional[OrderBook] = None,
        balance: Optional[Balance] = None,
        fees: Optional[Dict[str, TradingFee]] = None,
    ):
        self.slug = slug
        self.market_list = markets if markets is not None else [btc_usdt_market()]
        self._markets: Dict[str, VenueMarket] = {}
        self.last_price = last_price
        self.order_book = order_book or OrderBook(symbol="BTC/USDT", bids=[(99.0, 5.0)], asks=[(101.0, 5.0)])
        self.balance = balance or Balance(free={"USDT": 100000.0, "BTC": 10.0})
        self.fees = fees if fees is not None else {}
        self.fee_error: Optional[Exception] = None
        self.balance_error: Optional[Exception] = None

        self.ack_status = "open"
        self.ack_filled: Optional[float] = 0.0
        self.ack_average: Optional[float] = None
        self.ack_cost: Optional[float] = None
        self.submit_errors: Dict[str, Exception] = {}
        self.cancel_error: Optional[Exception] = None
        self.cancel_status = "canceled"

        self.submitted: List[Dict[str, Any]] = []
        self.canceled: List[str] = []
        self._ids = itertools.count(1)

    @property
    def markets(self) -> Dict[str, VenueMarket]:
        return self._markets

    async def fetch_markets(self) -> List[VenueMarket]:
        self._markets = {m.symbol: m for m in self.market_list}
        return list(self.market_list)

    async def fetch_ticker(self, symbol: str) -> Ticker:
        return Ticker(symbol=symbol, last=self.last_price)

    async def fetch_order_book(self, symbol: str, depth: int = 20) -> OrderBook:
        return self.order_book

    async def fetch_balance(self) -> Balance:
        if self.balance_error:
            raise self.balance_error
        return self.balance

    async def fetch_trading_fees(self) -> Dict[str, TradingFee]:
        if self.fee_error:
            raise self.fee_error
        return self.fees

    async def submit_order(
        self,
        symbol: str,
        order_type: str,
        side: str,
        quantity: float,
        price: Optional[float] = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> VenueOrderAck:
        params = dict(params or {})
        self.submitted.append(
            {"symbol": symbol, "type": order_type, "side": side, "quantity": quantity, "price": price, "params": params}
        )
        if order_type in self.submit_errors:
            raise self.submit_errors[order_type]
        return VenueOrderAck(
            id=f"venue-{next(self._ids)}",
            symbol=symbol,
            side=side.lower(),
            type=order_type.lower(),
            status=self.ack_status,
            client_order_id=params.get("client_order_id"),
            amount=quantity,
            filled=self.ack_filled,
            price=price,
            average=self.ack_average,
            cost=self.ack_cost,
            timestamp=datetime(2025, 1, 1, 12, 0, 0),
        )

    async def cancel_order(self, venue_order_id: str, symbol: str) -> Optional[VenueOrderAck]:
        if self.cancel_error:
            raise self.cancel_error
        self.canceled.append(venue_order_id)
        return VenueOrderAck(id=venue_order_id, symbol=symbol, side="", type="", status=self.cancel_status)


class FakeRegistry(CcxtConnectorRegistry):
    def __init__(self, connector: FakeConnector):
        super().__init__()
        self.connector = connector

    def resolve(self, venue_slug, user, credential=None):
        return self.connector


def btc_usdt_market(**overrides: Any) -> VenueMarket:
    values = dict(
        symbol="BTC/USDT",
        base="BTC",
        quote="USDT",
        active=True,
        min_amount=0.001,
        max_amount=1000.0,
        min_price=0.01,
        max_price=1000000.0,
        min_cost=10.0,
        amount_step=0.001,
        price_step=0.01,
    )
    values.update(overrides)
    return VenueMarket(**values)


# ===== Fixture Setup =====


@pytest.fixture
def settings():
    return Settings(database_url="sqlite+aiosqlite:///:memory:")


@pytest_asyncio.fixture
async def db():
    """In-memory SQLite database for testing."""
    database = Database("sqlite+aiosqlite:///:memory:")
    await database.init_db()
    yield database
    await database.close()


@pytest.fixture
def user():
    return User(id="user-1", email="trader@example.com")


@pytest.fixture
def other_user():
    return User(id="user-2")


@pytest.fixture
def coins():
    return InMemoryCoinCatalog(
        [
            Coin(id="coin-btc", symbol="BTC", current_price=50000.0),
            Coin(id="coin-usdt", symbol="USDT", current_price=1.0),
        ]
    )


@pytest.fixture
def credentials(user):
    return InMemoryCredentialStore(
        [
            ExchangeCredential(id="cred-1", user_id=user.id, exchange_slug="binance", api_key="k", secret="s"),
            ExchangeCredential(id="cred-2", user_id=user.id, exchange_slug="coinbase", api_key="k", secret="s"),
        ]
    )


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def service(db, connector, coins, credentials, settings):
    return OrderService(
        db=db,
        registry=FakeRegistry(connector),
        coins=coins,
        credentials=credentials,
        settings=settings,
    )


@pytest.fixture
def make_connector():
    return FakeConnector


@pytest.fixture
def make_market():
    return btc_usdt_market
