from __future__ import annotations

from typing import Optional, Sequence


class OrderEngineError(Exception):
    """Base class for every error the engine raises on purpose."""


class OrderValidationError(OrderEngineError):
    """Request or venue-constraint violation found before any external side effect."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class OrderNotFoundError(OrderEngineError):
    """Order or credential missing, or owned by another user."""


class OrderExecutionError(OrderEngineError):
    """The venue rejected or failed to process a submission or cancellation."""

    def __init__(self, operation: str, venue_message: str):
        super().__init__(f"failed to {operation}: {venue_message}")
        self.operation = operation
        self.venue_message = venue_message


class ReconciliationRequiredError(OrderEngineError):
    """The venue accepted the order(s) but the local record could not be written.

    The caller only sees a generic failure; the identifying detail is carried on
    the instance and escalated to operators separately.
    """

    def __init__(
        self,
        operation: str,
        venue_order_ids: Sequence[str],
        symbol: Optional[str] = None,
        quantity: Optional[float] = None,
    ):
        super().__init__(f"failed to {operation}")
        self.operation = operation
        self.venue_order_ids = list(venue_order_ids)
        self.symbol = symbol
        self.quantity = quantity
