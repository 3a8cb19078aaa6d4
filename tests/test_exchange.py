from __future__ import annotations

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from ccxt.base.decimal_to_precision import DECIMAL_PLACES, TICK_SIZE

from catalog import ExchangeCredential, User
from exchange import (
    CcxtConnector,
    CcxtConnectorRegistry,
    candidate_splits,
    default_fee_rates,
    get_supported_order_types,
    is_order_type_supported,
    split_symbol,
)


# ===== Fixture Setup =====


@pytest.fixture
def ccxt_client():
    """Mock ccxt async client in tick-size precision mode."""
    client = MagicMock()
    client.precisionMode = TICK_SIZE
    client.load_markets = AsyncMock(
        return_value={
            "BTC/USDT": {
                "symbol": "BTC/USDT",
                "base": "BTC",
                "quote": "USDT",
                "active": True,
                "maker": 0.001,
                "taker": 0.002,
                "precision": {"amount": 0.0001, "price": 0.01},
                "limits": {
                    "amount": {"min": 0.0001, "max": 9000},
                    "price": {"min": 0.01, "max": 1000000},
                    "cost": {"min": 5},
                },
            },
            "ETH/USDT": {"symbol": "ETH/USDT", "base": "ETH", "quote": "USDT", "active": False},
        }
    )
    client.create_order = AsyncMock(
        return_value={
            "id": 12345,
            "symbol": "BTC/USDT",
            "side": "sell",
            "type": "market",
            "status": "closed",
            "clientOrderId": "abc",
            "amount": 1.0,
            "filled": 1.0,
            "price": None,
            "average": 99.5,
            "cost": 99.5,
            "timestamp": 1735732800000,
            "fee": None,
            "trades": [
                {"fee": {"cost": 0.05, "currency": "USDT"}},
                {"fee": {"cost": 0.0495, "currency": "USDT"}},
            ],
        }
    )
    client.close = AsyncMock()
    return client


@pytest.fixture
def connector(ccxt_client):
    return CcxtConnector("binance", ccxt_client)


# ===== Connector Tests =====


class TestCcxtConnectorMarkets:
    """Test market metadata normalization."""

    @pytest.mark.asyncio
    async def test_parse_markets(self, connector):
        markets = await connector.fetch_markets()
        assert len(markets) == 2

        btc = connector.markets["BTC/USDT"]
        assert btc.active is True
        assert btc.min_amount == pytest.approx(0.0001)
        assert btc.max_amount == pytest.approx(9000.0)
        assert btc.min_cost == pytest.approx(5.0)
        assert btc.amount_step == pytest.approx(0.0001)
        assert btc.price_step == pytest.approx(0.01)
        assert btc.maker == pytest.approx(0.001)
        assert btc.taker == pytest.approx(0.002)

        eth = connector.markets["ETH/USDT"]
        assert eth.active is False
        assert eth.min_amount is None
        assert eth.amount_step is None
        assert eth.taker is None

    @pytest.mark.asyncio
    async def test_decimal_places_precision(self, ccxt_client):
        ccxt_client.precisionMode = DECIMAL_PLACES
        ccxt_client.load_markets = AsyncMock(
            return_value={"BTC/USDT": {"symbol": "BTC/USDT", "precision": {"amount": 3, "price": 2}}}
        )
        connector = CcxtConnector("kraken", ccxt_client)
        (market,) = await connector.fetch_markets()
        assert market.amount_step == pytest.approx(0.001)
        assert market.price_step == pytest.approx(0.01)


class TestCcxtConnectorData:
    """Test ticker, order book, balance and fee normalization."""

    @pytest.mark.asyncio
    async def test_ticker_falls_back_to_close(self, connector, ccxt_client):
        ccxt_client.fetch_ticker = AsyncMock(
            return_value={"symbol": "BTC/USDT", "last": None, "close": 101.5, "bid": 101.0, "ask": 102.0}
        )
        ticker = await connector.fetch_ticker("BTC/USDT")
        assert ticker.last == pytest.approx(101.5)
        assert ticker.bid == pytest.approx(101.0)
        assert ticker.timestamp is None

    @pytest.mark.asyncio
    async def test_order_book_levels(self, connector, ccxt_client):
        ccxt_client.fetch_order_book = AsyncMock(
            return_value={"bids": [[99, 1], [98, 2, 7]], "asks": [["100", "0.5"], [101]]}
        )
        book = await connector.fetch_order_book("BTC/USDT", 5)
        ccxt_client.fetch_order_book.assert_awaited_once_with("BTC/USDT", 5)
        assert book.bids == [(99.0, 1.0), (98.0, 2.0)]
        assert book.asks == [(100.0, 0.5)]

    @pytest.mark.asyncio
    async def test_balance(self, connector, ccxt_client):
        ccxt_client.fetch_balance = AsyncMock(
            return_value={"free": {"USDT": 500, "BTC": None}, "total": {"USDT": 600}}
        )
        balance = await connector.fetch_balance()
        assert balance.available("usdt") == pytest.approx(500.0)
        assert balance.available("BTC") == 0.0
        assert balance.total["USDT"] == pytest.approx(600.0)

    @pytest.mark.asyncio
    async def test_trading_fees_skip_incomplete_entries(self, connector, ccxt_client):
        ccxt_client.fetch_trading_fees = AsyncMock(
            return_value={
                "BTC/USDT": {"maker": 0.0002, "taker": 0.0004},
                "ETH/USDT": {"maker": None, "taker": 0.001},
                "info": "raw",
            }
        )
        fees = await connector.fetch_trading_fees()
        assert list(fees) == ["BTC/USDT"]
        assert fees["BTC/USDT"].taker == pytest.approx(0.0004)


class TestCcxtConnectorOrders:
    """Test order shaping and acknowledgement parsing."""

    @pytest.mark.asyncio
    async def test_stop_loss_shaping_and_ack(self, connector, ccxt_client):
        ack = await connector.submit_order(
            "BTC/USDT", "STOP_LOSS", "SELL", 1.0, None, {"client_order_id": "abc", "stop_price": 90.0}
        )

        ccxt_client.create_order.assert_awaited_once_with(
            "BTC/USDT", "market", "sell", 1.0, None, {"clientOrderId": "abc", "stopLossPrice": 90.0}
        )
        assert ack.id == "12345"
        assert ack.status == "closed"
        assert ack.client_order_id == "abc"
        assert ack.filled == pytest.approx(1.0)
        assert ack.fee == pytest.approx(0.0995)
        assert ack.fee_currency == "USDT"
        assert ack.timestamp == datetime(2025, 1, 1, 12, 0, 0)

    @pytest.mark.asyncio
    async def test_limit_with_time_in_force(self, connector, ccxt_client):
        await connector.submit_order("BTC/USDT", "LIMIT", "BUY", 0.5, 95.0, {"time_in_force": "IOC"})
        ccxt_client.create_order.assert_awaited_once_with(
            "BTC/USDT", "limit", "buy", 0.5, 95.0, {"timeInForce": "IOC"}
        )

    @pytest.mark.asyncio
    async def test_conditional_types(self, connector, ccxt_client):
        await connector.submit_order("BTC/USDT", "STOP_LIMIT", "SELL", 1.0, 89.0, {"stop_price": 90.0})
        await connector.submit_order("BTC/USDT", "TAKE_PROFIT", "SELL", 1.0, 120.0, {"take_profit_price": 120.0})
        await connector.submit_order(
            "BTC/USDT", "TRAILING_STOP", "SELL", 1.0, None, {"trailing_amount": 2.0, "trailing_type": "PERCENTAGE"}
        )
        await connector.submit_order(
            "BTC/USDT", "TRAILING_STOP", "SELL", 1.0, None, {"trailing_amount": 50.0, "trailing_type": "AMOUNT"}
        )

        calls = [c.args for c in ccxt_client.create_order.await_args_list]
        assert calls[0] == ("BTC/USDT", "limit", "sell", 1.0, 89.0, {"triggerPrice": 90.0})
        assert calls[1] == ("BTC/USDT", "limit", "sell", 1.0, 120.0, {"takeProfitPrice": 120.0})
        assert calls[2] == ("BTC/USDT", "market", "sell", 1.0, None, {"trailingPercent": 2.0})
        assert calls[3] == ("BTC/USDT", "market", "sell", 1.0, None, {"trailingAmount": 50.0})

    @pytest.mark.asyncio
    async def test_unsupported_type(self, connector):
        with pytest.raises(ValueError, match="Unsupported order type"):
            await connector.submit_order("BTC/USDT", "ICEBERG", "BUY", 1.0)

    @pytest.mark.asyncio
    async def test_cancel(self, connector, ccxt_client):
        ccxt_client.cancel_order = AsyncMock(return_value={"id": "77", "status": "canceled"})
        ack = await connector.cancel_order("77", "BTC/USDT")
        ccxt_client.cancel_order.assert_awaited_once_with("77", "BTC/USDT")
        assert ack.status == "canceled"
        assert ack.symbol == "BTC/USDT"

        ccxt_client.cancel_order = AsyncMock(return_value=None)
        assert await connector.cancel_order("78", "BTC/USDT") is None


# ===== Registry Tests =====


class TestSymbols:
    """Test pair token handling."""

    def test_split_symbol(self):
        assert split_symbol("BTCUSDT") == ("BTC", "USDT")
        assert split_symbol("ethusd") == ("ETH", "USD")
        assert split_symbol("BTC/USDC") == ("BTC", "USDC")
        assert split_symbol("SOL-EUR") == ("SOL", "EUR")
        assert split_symbol("ETHBTC") == ("ETH", "BTC")

    def test_split_symbol_unknown_quote(self):
        with pytest.raises(ValueError, match="Cannot determine quote asset"):
            split_symbol("FOOBAR")

    def test_candidate_splits_keep_every_reading(self):
        assert candidate_splits("USDTUSD") == [("USD", "TUSD"), ("USDT", "USD")]
        assert candidate_splits("BTC/USDT") == [("BTC", "USDT")]
        assert candidate_splits("FOOBAR") == []

    def test_format_symbol(self):
        registry = CcxtConnectorRegistry()
        assert registry.format_symbol("binance", "BTCUSDT") == "BTC/USDT"
        assert registry.format_symbol("coinbase", "ETH-USD") == "ETH/USD"


class TestConnectorRegistry:
    """Test per-user connector caching."""

    @pytest.mark.asyncio
    async def test_resolve_caches_per_user(self):
        registry = CcxtConnectorRegistry()
        alice = User(id="alice")
        bob = User(id="bob")
        credential = ExchangeCredential(id="c1", user_id="alice", exchange_slug="binance", api_key="k", secret="s")

        first = registry.resolve("binance", alice, credential)
        assert first.slug == "binance"
        assert registry.resolve("binance", alice, credential) is first
        assert registry.resolve("binance", bob) is not first

        await registry.close()

    def test_unknown_venue(self):
        with pytest.raises(ValueError, match="Unsupported exchange: notavenue"):
            CcxtConnectorRegistry().resolve("notavenue", User(id="alice"))


class TestCapabilities:
    """Test static venue tables."""

    def test_order_types(self):
        assert "OCO" in get_supported_order_types("binance")
        assert get_supported_order_types("unknownvenue") == ["MARKET", "LIMIT"]
        assert is_order_type_supported("kraken", "TAKE_PROFIT")
        assert not is_order_type_supported("coinbase", "TRAILING_STOP")

    def test_default_fee_rates(self):
        assert default_fee_rates("coinbase") == (0.004, 0.006)
        assert default_fee_rates("unknownvenue") == (0.001, 0.001)
        assert default_fee_rates("unknownvenue", (0.002, 0.003)) == (0.002, 0.003)
