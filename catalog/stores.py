from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from .models import Coin, ExchangeCredential, User


class CoinCatalog(Protocol):
    """Coin metadata lookup owned by the catalog service."""

    async def get_coin(self, coin_id: str) -> Optional[Coin]: ...

    async def get_coin_by_symbol(self, symbol: str) -> Optional[Coin]: ...

    async def get_coins_by_symbols(self, symbols: Iterable[str]) -> List[Coin]: ...


class CredentialStore(Protocol):
    """Per-user venue connection lookup owned by the account service."""

    async def get_active_credential(self, user: User, exchange_slug: str) -> Optional[ExchangeCredential]: ...


class InMemoryCoinCatalog:
    def __init__(self, coins: Iterable[Coin] = ()):
        self._by_id: Dict[str, Coin] = {}
        for coin in coins:
            self.add(coin)

    def add(self, coin: Coin) -> None:
        self._by_id[coin.id] = coin

    async def get_coin(self, coin_id: str) -> Optional[Coin]:
        return self._by_id.get(coin_id)

    async def get_coin_by_symbol(self, symbol: str) -> Optional[Coin]:
        wanted = symbol.upper()
        for coin in self._by_id.values():
            if coin.symbol.upper() == wanted:
                return coin
        return None

    async def get_coins_by_symbols(self, symbols: Iterable[str]) -> List[Coin]:
        wanted = {s.upper() for s in symbols}
        return [c for c in self._by_id.values() if c.symbol.upper() in wanted]


class InMemoryCredentialStore:
    def __init__(self, credentials: Iterable[ExchangeCredential] = ()):
        self._creds: Dict[Tuple[str, str], ExchangeCredential] = {}
        for cred in credentials:
            self.add(cred)

    def add(self, credential: ExchangeCredential) -> None:
        self._creds[(credential.user_id, credential.exchange_slug)] = credential

    async def get_active_credential(self, user: User, exchange_slug: str) -> Optional[ExchangeCredential]:
        cred = self._creds.get((user.id, exchange_slug))
        if cred is None or not cred.active:
            return None
        return cred
