from .capabilities import (
    DEFAULT_FEE_SCHEDULE,
    GLOBAL_DEFAULT_FEE,
    default_fee_rates,
    get_supported_order_types,
    is_order_type_supported,
)
from .connector import CcxtConnector, Connector
from .models import (
    Balance,
    OrderBook,
    Ticker,
    TradingFee,
    VenueMarket,
    VenueOrderAck,
)
from .registry import CcxtConnectorRegistry, ConnectorRegistry, RegistryConfig, candidate_splits, split_symbol

__all__ = [
    "DEFAULT_FEE_SCHEDULE",
    "GLOBAL_DEFAULT_FEE",
    "default_fee_rates",
    "get_supported_order_types",
    "is_order_type_supported",
    "CcxtConnector",
    "Connector",
    "Balance",
    "OrderBook",
    "Ticker",
    "TradingFee",
    "VenueMarket",
    "VenueOrderAck",
    "CcxtConnectorRegistry",
    "ConnectorRegistry",
    "RegistryConfig",
    "candidate_splits",
    "split_symbol",
]
