from .errors import (
    OrderEngineError,
    OrderExecutionError,
    OrderNotFoundError,
    OrderValidationError,
    ReconciliationRequiredError,
)
from .fees import FeeEstimate, FeeEstimator, FeeRate, estimate_slippage
from .models import (
    OrderFilters,
    OrderPreview,
    OrderRequest,
    OrderSide,
    OrderStatus,
    OrderType,
    TimeInForce,
    TrailingType,
)
from .order_service import OrderService
from .queries import OrderQueryService
from .status import can_cancel, is_terminal, map_venue_status
from .validator import OrderValidator, ValidatedOrder, floor_to_step

__all__ = [
    "OrderEngineError",
    "OrderExecutionError",
    "OrderNotFoundError",
    "OrderValidationError",
    "ReconciliationRequiredError",
    "FeeEstimate",
    "FeeEstimator",
    "FeeRate",
    "estimate_slippage",
    "OrderFilters",
    "OrderPreview",
    "OrderRequest",
    "OrderSide",
    "OrderStatus",
    "OrderType",
    "TimeInForce",
    "TrailingType",
    "OrderService",
    "OrderQueryService",
    "can_cancel",
    "is_terminal",
    "map_venue_status",
    "OrderValidator",
    "ValidatedOrder",
    "floor_to_step",
]
