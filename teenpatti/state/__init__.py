"""State management module."""
from .redis_client import redis_client, RedisClient
from .game_store import game_store, GameStore
from .balance_store import balance_store, BalanceStore

__all__ = [
    "redis_client",
    "RedisClient",
    "game_store",
    "GameStore",
    "balance_store",
    "BalanceStore",
]
