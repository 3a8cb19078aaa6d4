"""Static per-venue capability tables.

These are the last-resort answers used when a venue cannot tell us itself:
which order types it accepts and its published base-tier fee schedule.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Tuple


@dataclass(frozen=True)
class VenueOrderSupport:
    supported_types: Tuple[str, ...]
    supported_time_in_force: Tuple[str, ...]
    has_oco_support: bool = False
    has_trailing_stop_support: bool = False


_FULL = ("MARKET", "LIMIT", "STOP_LOSS", "STOP_LIMIT", "TRAILING_STOP", "TAKE_PROFIT", "OCO")

ORDER_TYPE_SUPPORT: Dict[str, VenueOrderSupport] = {
    "binanceus": VenueOrderSupport(
        supported_types=("MARKET", "LIMIT", "STOP_LOSS", "STOP_LIMIT", "TAKE_PROFIT", "OCO"),
        supported_time_in_force=("GTC", "IOC", "FOK"),
        has_oco_support=True,
    ),
    "binance": VenueOrderSupport(
        supported_types=_FULL,
        supported_time_in_force=("GTC", "IOC", "FOK"),
        has_oco_support=True,
        has_trailing_stop_support=True,
    ),
    "coinbase": VenueOrderSupport(
        supported_types=("MARKET", "LIMIT", "STOP_LOSS"),
        supported_time_in_force=("GTC", "IOC"),
    ),
    "coinbaseexchange": VenueOrderSupport(
        supported_types=("MARKET", "LIMIT", "STOP_LOSS"),
        supported_time_in_force=("GTC", "IOC"),
    ),
    "kraken": VenueOrderSupport(
        supported_types=("MARKET", "LIMIT", "STOP_LOSS", "STOP_LIMIT", "TAKE_PROFIT"),
        supported_time_in_force=("GTC", "IOC"),
    ),
    "kucoin": VenueOrderSupport(
        supported_types=("MARKET", "LIMIT", "STOP_LOSS", "STOP_LIMIT", "TRAILING_STOP"),
        supported_time_in_force=("GTC", "IOC", "FOK"),
        has_trailing_stop_support=True,
    ),
    "okx": VenueOrderSupport(
        supported_types=("MARKET", "LIMIT", "STOP_LOSS", "STOP_LIMIT", "TRAILING_STOP", "TAKE_PROFIT"),
        supported_time_in_force=("GTC", "IOC", "FOK"),
        has_trailing_stop_support=True,
    ),
}

DEFAULT_ORDER_SUPPORT = VenueOrderSupport(
    supported_types=("MARKET", "LIMIT"),
    supported_time_in_force=("GTC",),
)


# (maker, taker) as decimal rates, base retail tier.
DEFAULT_FEE_SCHEDULE: Dict[str, Tuple[float, float]] = {
    "binance": (0.001, 0.001),
    "binanceus": (0.001, 0.001),
    "coinbase": (0.004, 0.006),
    "coinbaseexchange": (0.004, 0.006),
    "kraken": (0.0025, 0.004),
    "kucoin": (0.001, 0.001),
    "okx": (0.0008, 0.001),
    "bybit": (0.001, 0.001),
    "gemini": (0.002, 0.004),
}

GLOBAL_DEFAULT_FEE: Tuple[float, float] = (0.001, 0.001)


def get_order_support(exchange_slug: str) -> VenueOrderSupport:
    return ORDER_TYPE_SUPPORT.get(exchange_slug, DEFAULT_ORDER_SUPPORT)


def get_supported_order_types(exchange_slug: str) -> List[str]:
    return list(get_order_support(exchange_slug).supported_types)


def is_order_type_supported(exchange_slug: str, order_type: str) -> bool:
    return order_type in get_order_support(exchange_slug).supported_types


def default_fee_rates(exchange_slug: str, fallback: Tuple[float, float] = GLOBAL_DEFAULT_FEE) -> Tuple[float, float]:
    return DEFAULT_FEE_SCHEDULE.get(exchange_slug, fallback)
