from __future__ import annotations

from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, Field, model_validator


class OrderSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class OrderType(str, Enum):
    MARKET = "MARKET"
    LIMIT = "LIMIT"
    STOP_LOSS = "STOP_LOSS"
    STOP_LIMIT = "STOP_LIMIT"
    TRAILING_STOP = "TRAILING_STOP"
    TAKE_PROFIT = "TAKE_PROFIT"
    OCO = "OCO"


class OrderStatus(str, Enum):
    NEW = "NEW"
    PARTIALLY_FILLED = "PARTIALLY_FILLED"
    FILLED = "FILLED"
    CANCELED = "CANCELED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    PENDING_CANCEL = "PENDING_CANCEL"


class TrailingType(str, Enum):
    AMOUNT = "AMOUNT"
    PERCENTAGE = "PERCENTAGE"


class TimeInForce(str, Enum):
    GTC = "GTC"
    IOC = "IOC"
    FOK = "FOK"


class OrderRequest(BaseModel):
    """Normalized order instruction handed over by the transport layer.

    The pair is given either as catalog coin ids or as a ``BASEQUOTE`` symbol.
    """

    exchange_slug: str
    side: OrderSide
    order_type: OrderType = OrderType.MARKET
    quantity: float = Field(gt=0)

    base_coin_id: Optional[str] = None
    quote_coin_id: Optional[str] = None
    symbol: Optional[str] = None

    price: Optional[float] = Field(default=None, gt=0)
    stop_price: Optional[float] = Field(default=None, gt=0)
    trailing_amount: Optional[float] = Field(default=None, gt=0)
    trailing_type: Optional[TrailingType] = None
    take_profit_price: Optional[float] = Field(default=None, gt=0)
    stop_loss_price: Optional[float] = Field(default=None, gt=0)
    time_in_force: Optional[TimeInForce] = None

    client_order_id: Optional[str] = None
    is_algorithmic_trade: bool = False

    @model_validator(mode="after")
    def _check_pair(self) -> "OrderRequest":
        if not self.symbol and not (self.base_coin_id and self.quote_coin_id):
            raise ValueError("either symbol or both base_coin_id and quote_coin_id are required")
        return self

    @property
    def is_maker(self) -> bool:
        return self.order_type == OrderType.LIMIT


class OrderPreview(BaseModel):
    exchange_slug: str
    symbol: str
    side: OrderSide
    order_type: OrderType
    quantity: float
    price: Optional[float] = None
    market_price: float
    order_value: float
    fee_rate: float
    fee_amount: float
    fee_currency: str
    total_required: float
    available_balance: float
    balance_currency: str
    has_sufficient_balance: bool
    estimated_slippage: Optional[float] = None
    warnings: List[str] = Field(default_factory=list)
    supported_order_types: List[OrderType] = Field(default_factory=list)


FilterValue = Union[str, List[str], None]


class OrderFilters(BaseModel):
    status: FilterValue = None
    side: FilterValue = None
    order_type: FilterValue = None
    is_manual: Optional[bool] = None
    limit: Optional[int] = Field(default=None, gt=0)
