"""
Realtime change notification feed
"""
from .feed import (
    INSERT,
    UPDATE,
    ChangeEvent,
    ChangeFeed,
    InMemoryChangeFeed,
    RedisChangeFeed,
    Subscription,
    build_feed,
    publish_change,
)

__all__ = [
    'INSERT',
    'UPDATE',
    'ChangeEvent',
    'ChangeFeed',
    'InMemoryChangeFeed',
    'RedisChangeFeed',
    'Subscription',
    'build_feed',
    'publish_change',
]
