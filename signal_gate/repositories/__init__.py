"""
Persistence layer: relational repositories and the one-time code store.
"""
from .database import Base, Database
from .account_repository import AccountRepository
from .subscription_repository import SubscriptionRepository
from .signal_repository import SignalRepository
from .code_store import CodeStore, InMemoryCodeStore, RedisCodeStore

__all__ = [
    "Base",
    "Database",
    "AccountRepository",
    "SubscriptionRepository",
    "SignalRepository",
    "CodeStore",
    "InMemoryCodeStore",
    "RedisCodeStore",
]
