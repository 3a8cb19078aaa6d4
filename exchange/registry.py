from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Tuple

import ccxt.async_support as ccxt

from catalog.models import ExchangeCredential, User

from .connector import CcxtConnector, Connector

logger = logging.getLogger(__name__)

# Checked longest-first so 'USDT' wins over 'USD'.
KNOWN_QUOTES: Tuple[str, ...] = ("USDT", "USDC", "BUSD", "FDUSD", "TUSD", "DAI", "USD", "EUR", "GBP", "BTC", "ETH", "BNB")


def candidate_splits(raw_symbol: str) -> List[Tuple[str, str]]:
    """Every plausible (base, quote) reading of a pair token, longest quote first.

    ``USDTUSD`` reads both as USD/TUSD and USDT/USD; callers that know which
    assets exist pick among them.
    """
    token = raw_symbol.upper().replace("-", "/").replace("_", "/")
    if "/" in token:
        base, quote = token.split("/", 1)
        return [(base, quote)]
    return [
        (token[: -len(quote)], quote)
        for quote in sorted(KNOWN_QUOTES, key=len, reverse=True)
        if token.endswith(quote) and len(token) > len(quote)
    ]


def split_symbol(raw_symbol: str) -> Tuple[str, str]:
    """Split an internal ``BASEQUOTE`` token (or an already separated pair) into base and quote."""
    splits = candidate_splits(raw_symbol)
    if not splits:
        raise ValueError(f"Cannot determine quote asset of symbol {raw_symbol}")
    return splits[0]


class ConnectorRegistry(Protocol):
    def resolve(self, venue_slug: str, user: User, credential: Optional[ExchangeCredential] = None) -> Connector: ...

    def format_symbol(self, venue_slug: str, raw_symbol: str) -> str: ...


@dataclass(frozen=True)
class RegistryConfig:
    timeout_ms: int = 30000
    sandbox: bool = False
    enable_rate_limit: bool = True


class CcxtConnectorRegistry:
    """Builds and caches one ccxt connector per (venue, user)."""

    def __init__(self, config: Optional[RegistryConfig] = None):
        self.config = config or RegistryConfig()
        self._cache: Dict[Tuple[str, str], CcxtConnector] = {}

    def resolve(self, venue_slug: str, user: User, credential: Optional[ExchangeCredential] = None) -> CcxtConnector:
        key = (venue_slug, user.id)
        connector = self._cache.get(key)
        if connector is not None:
            return connector

        exchange_class = getattr(ccxt, venue_slug, None)
        if exchange_class is None:
            raise ValueError(f"Unsupported exchange: {venue_slug}")

        options = {
            "timeout": self.config.timeout_ms,
            "enableRateLimit": self.config.enable_rate_limit,
        }
        if credential is not None:
            options["apiKey"] = credential.api_key
            options["secret"] = credential.secret
            if credential.password:
                options["password"] = credential.password

        client = exchange_class(options)
        if self.config.sandbox:
            client.set_sandbox_mode(True)

        connector = CcxtConnector(venue_slug, client)
        self._cache[key] = connector
        logger.info("Created %s connector for user %s", venue_slug, user.id)
        return connector

    def format_symbol(self, venue_slug: str, raw_symbol: str) -> str:
        # ccxt unifies wire symbols as BASE/QUOTE on every venue it supports.
        base, quote = split_symbol(raw_symbol)
        return f"{base}/{quote}"

    async def close(self) -> None:
        for connector in self._cache.values():
            await connector.close()
        self._cache.clear()
