"""
Memory Module

Redis 연결과 JSON 저장소를 제공합니다.
"""

from core.memory.redis_store import (
    RedisStore,
    get_redis_store,
    cleanup_redis,
)

__all__ = [
    "RedisStore",
    "get_redis_store",
    "cleanup_redis",
]
