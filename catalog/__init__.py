from .models import Coin, ExchangeCredential, User
from .stores import (
    CoinCatalog,
    CredentialStore,
    InMemoryCoinCatalog,
    InMemoryCredentialStore,
)

__all__ = [
    "Coin",
    "ExchangeCredential",
    "User",
    "CoinCatalog",
    "CredentialStore",
    "InMemoryCoinCatalog",
    "InMemoryCredentialStore",
]
