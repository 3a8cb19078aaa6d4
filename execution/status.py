from __future__ import annotations

from typing import Dict, Optional, Union

from .models import OrderStatus

VENUE_STATUS_MAP: Dict[str, OrderStatus] = {
    "open": OrderStatus.NEW,
    "closed": OrderStatus.FILLED,
    "canceled": OrderStatus.CANCELED,
    "cancelled": OrderStatus.CANCELED,
    "expired": OrderStatus.EXPIRED,
    "rejected": OrderStatus.REJECTED,
    "partial": OrderStatus.PARTIALLY_FILLED,
    "partially_filled": OrderStatus.PARTIALLY_FILLED,
}

TERMINAL_STATUSES = frozenset(
    {OrderStatus.FILLED, OrderStatus.CANCELED, OrderStatus.REJECTED, OrderStatus.EXPIRED}
)
CANCELABLE_STATUSES = frozenset({OrderStatus.NEW, OrderStatus.PARTIALLY_FILLED})


def map_venue_status(venue_status: Optional[str]) -> OrderStatus:
    """Unknown or missing venue statuses are treated as a still-open order."""
    if not venue_status:
        return OrderStatus.NEW
    return VENUE_STATUS_MAP.get(venue_status.strip().lower(), OrderStatus.NEW)


def _coerce(status: Union[str, OrderStatus]) -> OrderStatus:
    return status if isinstance(status, OrderStatus) else OrderStatus(status)


def is_terminal(status: Union[str, OrderStatus]) -> bool:
    return _coerce(status) in TERMINAL_STATUSES


def can_cancel(status: Union[str, OrderStatus]) -> bool:
    return _coerce(status) in CANCELABLE_STATUSES
