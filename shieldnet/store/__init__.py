"""
ShieldNet Store Package

Collection-oriented document store interface and its backends.
"""

from .base import AlertStore, Filter, OrderBy, ALERTS, PATTERNS, SAFE_LOCATIONS
from .memory import InMemoryAlertStore
from .redis_store import RedisAlertStore, RedisConnectionManager

__all__ = [
    "AlertStore",
    "Filter",
    "OrderBy",
    "ALERTS",
    "PATTERNS",
    "SAFE_LOCATIONS",
    "InMemoryAlertStore",
    "RedisAlertStore",
    "RedisConnectionManager",
]
