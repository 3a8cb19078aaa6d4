from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class User:
    id: str
    email: Optional[str] = None


@dataclass(frozen=True)
class Coin:
    id: str
    symbol: str  # upper-case ticker, e.g. 'BTC'
    current_price: float = 0.0


@dataclass(frozen=True)
class ExchangeCredential:
    id: str
    user_id: str
    exchange_slug: str  # 'binance', 'coinbase', ...
    api_key: str = ""
    secret: str = ""
    password: str = ""
    active: bool = True
