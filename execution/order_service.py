from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from catalog.models import Coin, User
from catalog.stores import CoinCatalog, CredentialStore
from config.settings import Settings, get_settings
from exchange.capabilities import get_supported_order_types
from exchange.connector import Connector
from exchange.models import VenueOrderAck
from exchange.registry import ConnectorRegistry, candidate_splits
from reconciliation.escalation import ReconciliationEscalator
from storage.database import Database
from storage.models import OrderRecord, utcnow

from .errors import (
    OrderEngineError,
    OrderExecutionError,
    OrderNotFoundError,
    OrderValidationError,
    ReconciliationRequiredError,
)
from .fees import FeeEstimate, FeeEstimator, estimate_slippage
from .models import OrderPreview, OrderRequest, OrderSide, OrderStatus, OrderType, TrailingType
from .queries import OrderQueryService
from .status import can_cancel, map_venue_status
from .validator import OrderValidator, ValidatedOrder

logger = logging.getLogger(__name__)

AUTOMATED_ORDER_TYPES = (OrderType.MARKET, OrderType.LIMIT)
VENUE_FILLED_STATUSES = ("closed", "filled")


@dataclass(frozen=True)
class _Context:
    user: User
    base: Coin
    quote: Coin
    connector: Connector
    symbol: str


@dataclass(frozen=True)
class _Leg:
    """One venue submission: what is sent and what is recorded."""

    record_type: OrderType
    venue_type: OrderType
    side: OrderSide
    quantity: float
    price: Optional[float] = None
    stop_price: Optional[float] = None
    take_profit_price: Optional[float] = None
    stop_loss_price: Optional[float] = None
    trailing_amount: Optional[float] = None
    trailing_type: Optional[TrailingType] = None
    time_in_force: Optional[str] = None
    client_order_id: Optional[str] = None

    def params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "client_order_id": self.client_order_id,
            "stop_price": self.stop_price,
            "take_profit_price": self.take_profit_price,
            "trailing_amount": self.trailing_amount,
            "trailing_type": self.trailing_type.value if self.trailing_type else None,
            "time_in_force": self.time_in_force,
        }
        return {k: v for k, v in params.items() if v is not None}


def _client_order_id() -> str:
    return uuid.uuid4().hex


def _opposite(side: OrderSide) -> OrderSide:
    return OrderSide.SELL if side == OrderSide.BUY else OrderSide.BUY


class OrderService:
    """Validates, submits and persists orders; previews and cancels them."""

    def __init__(
        self,
        db: Database,
        registry: ConnectorRegistry,
        coins: CoinCatalog,
        credentials: CredentialStore,
        settings: Optional[Settings] = None,
        validator: Optional[OrderValidator] = None,
        fee_estimator: Optional[FeeEstimator] = None,
        escalator: Optional[ReconciliationEscalator] = None,
    ):
        self.db = db
        self.registry = registry
        self.coins = coins
        self.credentials = credentials
        self.settings = settings or get_settings()
        self.validator = validator or OrderValidator()
        self.fee_estimator = fee_estimator or FeeEstimator(
            (self.settings.default_maker_fee, self.settings.default_taker_fee)
        )
        self.escalator = escalator or ReconciliationEscalator(db)
        self.queries = OrderQueryService(db)

    # Placement
    async def create_order(self, request: OrderRequest, user: User) -> OrderRecord:
        """Automated MARKET/LIMIT placement."""
        if request.order_type not in AUTOMATED_ORDER_TYPES:
            raise OrderValidationError(f"Order type {request.order_type.value} requires a manual order")
        self._check_required_fields(request)
        ctx = await self._context(request, user)
        return await self._execute_single(ctx, request, is_manual=False)

    async def place_manual_order(self, request: OrderRequest, user: User) -> OrderRecord:
        """Manual placement of any order type; OCO returns the take-profit leg."""
        self._check_required_fields(request)
        self.validator.ensure_order_type_supported(request.exchange_slug, request.order_type)
        ctx = await self._context(request, user)

        if request.order_type == OrderType.OCO:
            return await self._execute_oco(ctx, request)

        order = await self._execute_single(ctx, request, is_manual=True)
        if request.stop_loss_price or request.take_profit_price:
            await self._attach_protective_orders(ctx, request, order)
        return order

    async def _execute_single(self, ctx: _Context, request: OrderRequest, *, is_manual: bool) -> OrderRecord:
        markets = await ctx.connector.fetch_markets()
        validated = await self.validator.validate(request, ctx.symbol, ctx.connector, markets)
        fee, slippage = await self._estimate_execution(ctx, request.order_type, request.side, validated)

        leg = _Leg(
            record_type=request.order_type,
            venue_type=request.order_type,
            side=request.side,
            quantity=validated.quantity,
            price=validated.price,
            stop_price=request.stop_price,
            take_profit_price=request.take_profit_price if request.order_type == OrderType.TAKE_PROFIT else None,
            trailing_amount=request.trailing_amount,
            trailing_type=request.trailing_type,
            time_in_force=request.time_in_force.value if request.time_in_force else None,
            client_order_id=request.client_order_id or _client_order_id(),
        )

        ack: Optional[VenueOrderAck] = None
        try:
            async with self.db.transaction() as session:
                ack = await self._submit(ctx, leg, "place order")
                record = self._build_record(
                    ctx,
                    leg,
                    ack,
                    is_manual=is_manual,
                    is_algorithmic_trade=request.is_algorithmic_trade or not is_manual,
                    fee=fee,
                    slippage=slippage,
                )
                if request.order_type != OrderType.TAKE_PROFIT:
                    record.take_profit_price = request.take_profit_price
                record.stop_loss_price = request.stop_loss_price
                await self.db.add_order(session, record)
        except OrderEngineError:
            raise
        except Exception as e:
            if ack is None:
                raise
            await self.escalator.escalate(
                operation="place order",
                venue_order_ids=[ack.id],
                symbol=ctx.symbol,
                quantity=leg.quantity,
                user_id=ctx.user.id,
                request=request.model_dump(mode="json"),
                error=e,
            )
            raise ReconciliationRequiredError("place order", [ack.id], ctx.symbol, leg.quantity) from e

        logger.info(
            "Placed %s %s %s %s on %s (venue id %s, status %s)",
            record.side,
            record.type,
            record.quantity,
            record.symbol,
            record.exchange_slug,
            record.order_id,
            record.status,
        )
        return record

    async def _execute_oco(self, ctx: _Context, request: OrderRequest) -> OrderRecord:
        markets = await ctx.connector.fetch_markets()
        tp_request = request.model_copy(
            update={"order_type": OrderType.LIMIT, "price": request.take_profit_price, "stop_price": None}
        )
        sl_request = request.model_copy(
            update={"order_type": OrderType.STOP_LOSS, "price": None, "stop_price": request.stop_loss_price}
        )
        tp_valid = await self.validator.validate(tp_request, ctx.symbol, ctx.connector, markets)
        sl_valid = await self.validator.validate(sl_request, ctx.symbol, ctx.connector, markets)
        fee, _ = await self._estimate_execution(ctx, OrderType.LIMIT, request.side, tp_valid)

        base_id = request.client_order_id or _client_order_id()
        tp_leg = _Leg(
            record_type=OrderType.OCO,
            venue_type=OrderType.LIMIT,
            side=request.side,
            quantity=tp_valid.quantity,
            price=tp_valid.price,
            take_profit_price=tp_valid.price,
            time_in_force=request.time_in_force.value if request.time_in_force else None,
            client_order_id=f"{base_id}-tp",
        )
        sl_leg = _Leg(
            record_type=OrderType.OCO,
            venue_type=OrderType.STOP_LOSS,
            side=request.side,
            quantity=sl_valid.quantity,
            stop_price=sl_valid.reference_price,
            stop_loss_price=sl_valid.reference_price,
            client_order_id=f"{base_id}-sl",
        )

        tp_ack = await self._submit(ctx, tp_leg, "place take-profit order")
        try:
            sl_ack = await self._submit(ctx, sl_leg, "place stop-loss order")
        except OrderExecutionError:
            await self._compensate_leg(ctx, tp_ack)
            raise

        try:
            async with self.db.transaction() as session:
                leg_a = self._build_record(ctx, tp_leg, tp_ack, is_manual=True, fee=fee)
                await self.db.add_order(session, leg_a)
                leg_b = self._build_record(ctx, sl_leg, sl_ack, is_manual=True)
                leg_b.oco_linked_order_id = leg_a.id
                await self.db.add_order(session, leg_b)
                leg_a.oco_linked_order_id = leg_b.id
                await session.flush()
        except Exception as e:
            ids = [tp_ack.id, sl_ack.id]
            await self.escalator.escalate(
                operation="place OCO order",
                venue_order_ids=ids,
                symbol=ctx.symbol,
                quantity=tp_leg.quantity,
                user_id=ctx.user.id,
                request=request.model_dump(mode="json"),
                error=e,
            )
            raise ReconciliationRequiredError("place OCO order", ids, ctx.symbol, tp_leg.quantity) from e

        logger.info(
            "Placed OCO %s %s on %s (take-profit %s, stop-loss %s)",
            leg_a.quantity,
            leg_a.symbol,
            leg_a.exchange_slug,
            leg_a.order_id,
            leg_b.order_id,
        )
        return leg_a

    async def _compensate_leg(self, ctx: _Context, ack: VenueOrderAck) -> None:
        # The leg may have filled in the meantime; that race is accepted.
        try:
            await ctx.connector.cancel_order(ack.id, ctx.symbol)
            logger.info("Canceled take-profit leg %s after stop-loss submission failed", ack.id)
        except Exception as e:
            logger.error(
                "Failed to cancel take-profit leg %s on %s after stop-loss submission failed: %s",
                ack.id,
                ctx.connector.slug,
                e,
            )

    async def _attach_protective_orders(self, ctx: _Context, request: OrderRequest, entry: OrderRecord) -> None:
        """Best effort: the entry order already stands whatever happens here."""
        exit_side = _opposite(request.side)
        legs: List[_Leg] = []
        if request.stop_loss_price:
            legs.append(
                _Leg(
                    record_type=OrderType.STOP_LOSS,
                    venue_type=OrderType.STOP_LOSS,
                    side=exit_side,
                    quantity=entry.quantity,
                    stop_price=request.stop_loss_price,
                    stop_loss_price=request.stop_loss_price,
                    client_order_id=_client_order_id(),
                )
            )
        if request.take_profit_price:
            legs.append(
                _Leg(
                    record_type=OrderType.TAKE_PROFIT,
                    venue_type=OrderType.TAKE_PROFIT,
                    side=exit_side,
                    quantity=entry.quantity,
                    price=request.take_profit_price,
                    take_profit_price=request.take_profit_price,
                    client_order_id=_client_order_id(),
                )
            )

        placed: List[OrderRecord] = []
        for leg in legs:
            try:
                ack = await self._submit(ctx, leg, f"place {leg.record_type.value.lower()} order")
                record = self._build_record(ctx, leg, ack, is_manual=True)
                await self._persist_protective(ctx, record, ack, leg)
                placed.append(record)
            except OrderEngineError as e:
                logger.warning(
                    "Failed to attach %s to order %s: %s", leg.record_type.value, entry.id, e
                )

        if len(placed) == 2:
            stop_loss, take_profit = placed
            try:
                async with self.db.transaction() as session:
                    sl = await session.get(OrderRecord, stop_loss.id)
                    tp = await session.get(OrderRecord, take_profit.id)
                    sl.oco_linked_order_id = tp.id
                    tp.oco_linked_order_id = sl.id
            except Exception as e:
                logger.warning("Failed to link protective orders of %s: %s", entry.id, e)

    async def _persist_protective(self, ctx: _Context, record: OrderRecord, ack: VenueOrderAck, leg: _Leg) -> None:
        try:
            async with self.db.transaction() as session:
                await self.db.add_order(session, record)
        except Exception as e:
            await self.escalator.escalate(
                operation=f"place {leg.record_type.value.lower()} order",
                venue_order_ids=[ack.id],
                symbol=ctx.symbol,
                quantity=leg.quantity,
                user_id=ctx.user.id,
                error=e,
            )
            raise ReconciliationRequiredError("place protective order", [ack.id], ctx.symbol, leg.quantity) from e

    # Cancellation
    async def cancel_order(self, order_id: str, user: User) -> OrderRecord:
        order = await self.queries.get_order(user, order_id)
        status = OrderStatus(order.status)
        if status == OrderStatus.FILLED:
            raise OrderValidationError("Cannot cancel a filled order")
        if not can_cancel(status):
            raise OrderValidationError(f"Order is already {status.value.lower()}")

        connector = await self._connector(order.exchange_slug, user)
        try:
            ack = await connector.cancel_order(order.order_id, order.symbol)
        except Exception as e:
            raise OrderExecutionError("cancel order", str(e)) from e
        if ack is not None and ack.status and ack.status.lower() in VENUE_FILLED_STATUSES:
            raise OrderValidationError("Order has already been filled on the exchange")

        canceled = await self.db.update_order_status(order.id, OrderStatus.CANCELED.value)
        logger.info("Canceled order %s (venue id %s)", order.id, order.order_id)

        if order.oco_linked_order_id:
            await self._cancel_linked(order.oco_linked_order_id, user)
        return canceled

    async def handle_oco_fill(self, order_id: str, user: User) -> Optional[OrderRecord]:
        """A leg was reported filled by the sync path: retire its sibling."""
        order = await self.queries.get_order(user, order_id)
        if not order.oco_linked_order_id:
            return None
        return await self._cancel_linked(order.oco_linked_order_id, user)

    async def _cancel_linked(self, linked_id: str, user: User) -> Optional[OrderRecord]:
        try:
            linked = await self.db.get_order(linked_id, user.id)
            if linked is None or not can_cancel(linked.status):
                return None
            return await self.cancel_order(linked.id, user)
        except Exception as e:
            logger.warning("Failed to cancel linked OCO order %s: %s", linked_id, e)
            return None

    # Preview
    async def preview_order(self, request: OrderRequest, user: User) -> OrderPreview:
        return await self._preview(request, user, manual=False)

    async def preview_manual_order(self, request: OrderRequest, user: User) -> OrderPreview:
        self._check_required_fields(request)
        return await self._preview(request, user, manual=True)

    async def _preview(self, request: OrderRequest, user: User, *, manual: bool) -> OrderPreview:
        ctx = await self._context(request, user)
        ticker = await ctx.connector.fetch_ticker(ctx.symbol)
        market_price = ticker.last

        if request.order_type == OrderType.MARKET:
            exec_price = market_price
        elif request.order_type == OrderType.OCO:
            exec_price = request.take_profit_price or market_price
        else:
            exec_price = request.price or request.stop_price or request.take_profit_price or market_price
        order_value = request.quantity * exec_price

        slippage: Optional[float] = None
        if request.order_type == OrderType.MARKET:
            book = await ctx.connector.fetch_order_book(ctx.symbol, self.settings.order_book_depth)
            slippage = estimate_slippage(book, request.side, request.quantity)

        fee_type = OrderType.LIMIT if request.order_type == OrderType.OCO else request.order_type
        fee = await self.fee_estimator.estimate_fee(
            ctx.connector, request.exchange_slug, fee_type, order_value, ctx.quote.symbol, ctx.symbol
        )

        warnings: List[str] = []
        if request.side == OrderSide.BUY:
            balance_currency = ctx.quote.symbol
            required = order_value + fee.amount
        else:
            balance_currency = ctx.base.symbol
            required = request.quantity

        available = 0.0
        try:
            balance = await ctx.connector.fetch_balance()
            available = balance.available(balance_currency)
        except Exception as e:
            logger.warning("Balance lookup failed on %s: %s", request.exchange_slug, e)
            warnings.append(f"Unable to fetch {balance_currency} balance from {request.exchange_slug}")

        sufficient = available >= required
        if not sufficient:
            warnings.append(
                f"Insufficient {balance_currency} balance: required {required:.8f}, available {available:.8f}"
            )

        if manual:
            if request.price and market_price > 0:
                deviation = abs(request.price - market_price) / market_price * 100
                if deviation > self.settings.price_deviation_warning_pct:
                    warnings.append(f"Price deviates {deviation:.2f}% from market price {market_price}")
            if slippage is not None and slippage > self.settings.high_slippage_warning_pct:
                warnings.append(f"High estimated slippage: {slippage:.2f}%")

        return OrderPreview(
            exchange_slug=request.exchange_slug,
            symbol=ctx.symbol,
            side=request.side,
            order_type=request.order_type,
            quantity=request.quantity,
            price=request.price,
            market_price=market_price,
            order_value=order_value,
            fee_rate=fee.rate,
            fee_amount=fee.amount,
            fee_currency=fee.currency,
            total_required=required,
            available_balance=available,
            balance_currency=balance_currency,
            has_sufficient_balance=sufficient,
            estimated_slippage=slippage,
            warnings=warnings,
            supported_order_types=[OrderType(t) for t in get_supported_order_types(request.exchange_slug)],
        )

    # Helpers
    @staticmethod
    def _check_required_fields(request: OrderRequest) -> None:
        t = request.order_type
        if t in (OrderType.LIMIT, OrderType.STOP_LIMIT) and request.price is None:
            raise OrderValidationError(f"{t.value} orders require a price")
        if t in (OrderType.STOP_LOSS, OrderType.STOP_LIMIT) and request.stop_price is None:
            raise OrderValidationError(f"{t.value} orders require a stop price")
        if t == OrderType.TRAILING_STOP and (request.trailing_amount is None or request.trailing_type is None):
            raise OrderValidationError("TRAILING_STOP orders require a trailing amount and trailing type")
        if t == OrderType.TAKE_PROFIT and request.take_profit_price is None:
            raise OrderValidationError("TAKE_PROFIT orders require a take-profit price")
        if t == OrderType.OCO and (request.take_profit_price is None or request.stop_loss_price is None):
            raise OrderValidationError("OCO orders require both a take-profit price and a stop-loss price")

    async def _context(self, request: OrderRequest, user: User) -> _Context:
        base, quote = await self._resolve_pair(request)
        connector = await self._connector(request.exchange_slug, user)
        symbol = self.registry.format_symbol(request.exchange_slug, f"{base.symbol}/{quote.symbol}")
        return _Context(user=user, base=base, quote=quote, connector=connector, symbol=symbol)

    async def _resolve_pair(self, request: OrderRequest) -> Tuple[Coin, Coin]:
        if request.base_coin_id and request.quote_coin_id:
            base = await self.coins.get_coin(request.base_coin_id)
            if base is None:
                raise OrderNotFoundError(f"Coin {request.base_coin_id} not found")
            quote = await self.coins.get_coin(request.quote_coin_id)
            if quote is None:
                raise OrderNotFoundError(f"Coin {request.quote_coin_id} not found")
            return base, quote

        splits = candidate_splits(request.symbol)
        if not splits:
            raise OrderValidationError(f"Cannot determine quote asset of symbol {request.symbol}")
        wanted = {s for pair in splits for s in pair}
        found = {c.symbol.upper(): c for c in await self.coins.get_coins_by_symbols(wanted)}
        # First reading whose two assets both exist in the catalog.
        for base_symbol, quote_symbol in splits:
            if base_symbol in found and quote_symbol in found:
                return found[base_symbol], found[quote_symbol]
        base_symbol, quote_symbol = splits[0]
        missing = base_symbol if base_symbol not in found else quote_symbol
        raise OrderNotFoundError(f"Coin {missing} not found")

    async def _connector(self, exchange_slug: str, user: User) -> Connector:
        credential = await self.credentials.get_active_credential(user, exchange_slug)
        if credential is None:
            raise OrderNotFoundError(f"No active {exchange_slug} connection for user {user.id}")
        return self.registry.resolve(exchange_slug, user, credential)

    async def _submit(self, ctx: _Context, leg: _Leg, operation: str) -> VenueOrderAck:
        try:
            return await ctx.connector.submit_order(
                ctx.symbol,
                leg.venue_type.value,
                leg.side.value,
                leg.quantity,
                leg.price,
                leg.params(),
            )
        except Exception as e:
            raise OrderExecutionError(operation, str(e)) from e

    async def _estimate_execution(
        self,
        ctx: _Context,
        order_type: OrderType,
        side: OrderSide,
        validated: ValidatedOrder,
    ) -> Tuple[Optional[FeeEstimate], Optional[float]]:
        """Fee and slippage attached to the stored order; never blocks placement."""
        try:
            price = validated.reference_price
            slippage = None
            if order_type == OrderType.MARKET:
                book = await ctx.connector.fetch_order_book(ctx.symbol, self.settings.order_book_depth)
                slippage = estimate_slippage(book, side, validated.quantity)
            if price is None:
                price = (await ctx.connector.fetch_ticker(ctx.symbol)).last
            fee = await self.fee_estimator.estimate_fee(
                ctx.connector,
                ctx.connector.slug,
                order_type,
                validated.quantity * price,
                ctx.quote.symbol,
                ctx.symbol,
            )
            return fee, slippage
        except Exception as e:
            logger.warning("Execution estimate failed for %s on %s: %s", ctx.symbol, ctx.connector.slug, e)
            return None, None

    def _build_record(
        self,
        ctx: _Context,
        leg: _Leg,
        ack: VenueOrderAck,
        *,
        is_manual: bool,
        is_algorithmic_trade: bool = False,
        fee: Optional[FeeEstimate] = None,
        slippage: Optional[float] = None,
    ) -> OrderRecord:
        status = map_venue_status(ack.status)
        quantity = ack.amount or leg.quantity
        executed = ack.filled
        if executed is None:
            executed = quantity if status == OrderStatus.FILLED else 0.0
        executed = min(executed, quantity)

        average = ack.average
        if average is None and ack.cost and executed > 0:
            average = ack.cost / executed
        if average is None and executed > 0 and (ack.price or leg.price):
            average = ack.price or leg.price
        cost = ack.cost if ack.cost is not None else (executed * average if average else 0.0)

        return OrderRecord(
            order_id=ack.id,
            client_order_id=ack.client_order_id or leg.client_order_id,
            user_id=ctx.user.id,
            exchange_slug=ctx.connector.slug,
            base_coin_id=ctx.base.id,
            quote_coin_id=ctx.quote.id,
            symbol=ack.symbol or ctx.symbol,
            side=leg.side.value,
            type=leg.record_type.value,
            status=status.value,
            is_manual=is_manual,
            is_algorithmic_trade=is_algorithmic_trade,
            quantity=quantity,
            price=ack.price or leg.price,
            executed_quantity=executed,
            average_price=average,
            cost=cost,
            fee=ack.fee or 0.0,
            fee_currency=ack.fee_currency or (fee.currency if fee else ctx.quote.symbol),
            estimated_fee=fee.amount if fee else None,
            estimated_slippage=slippage,
            stop_price=leg.stop_price,
            trailing_amount=leg.trailing_amount,
            trailing_type=leg.trailing_type.value if leg.trailing_type else None,
            take_profit_price=leg.take_profit_price,
            stop_loss_price=leg.stop_loss_price,
            time_in_force=leg.time_in_force,
            transact_time=ack.timestamp or utcnow(),
        )
