from __future__ import annotations

from enum import Enum
from typing import List, Optional, Set, Type

from catalog.models import User
from storage.database import Database
from storage.models import OrderRecord

from .errors import OrderNotFoundError, OrderValidationError
from .models import FilterValue, OrderFilters, OrderSide, OrderStatus, OrderType

OPEN_STATUSES = (OrderStatus.NEW.value, OrderStatus.PARTIALLY_FILLED.value)


def parse_filter_values(value: FilterValue, enum_cls: Type[Enum], name: str) -> Optional[Set[str]]:
    """Turn ``'NEW'``, ``'new,filled'`` or ``['NEW', 'FILLED']`` into a validated set of enum values."""
    if value is None:
        return None
    raw = value.split(",") if isinstance(value, str) else value
    values = {v.strip().upper() for v in raw if v and v.strip()}
    if not values:
        return None
    allowed = {member.value for member in enum_cls}
    invalid = sorted(values - allowed)
    if invalid:
        raise OrderValidationError(f"Invalid {name} filter: {', '.join(invalid)}")
    return values


class OrderQueryService:
    def __init__(self, db: Database):
        self.db = db

    async def get_orders(self, user: User, filters: Optional[OrderFilters] = None) -> List[OrderRecord]:
        filters = filters or OrderFilters()
        return await self.db.query_orders(
            user.id,
            statuses=parse_filter_values(filters.status, OrderStatus, "status"),
            sides=parse_filter_values(filters.side, OrderSide, "side"),
            types=parse_filter_values(filters.order_type, OrderType, "order type"),
            is_manual=filters.is_manual,
            limit=filters.limit,
        )

    async def get_order(self, user: User, order_id: str) -> OrderRecord:
        order = await self.db.get_order(order_id, user_id=user.id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found")
        return order

    async def get_open_orders(self, user: User) -> List[OrderRecord]:
        return await self.db.query_orders(user.id, statuses=OPEN_STATUSES)
