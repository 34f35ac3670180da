"""
Redis Store Module

redis.asyncio 연결 풀을 관리하고 JSON 값 저장/조회(TTL)를 제공합니다.
여러 인스턴스로 배포할 때 업로드 세션 저장소의 백엔드로 사용됩니다.
"""

import json
import logging
from typing import Any

import redis.asyncio as redis
from redis.asyncio import Redis

from core.config import settings

logger = logging.getLogger(__name__)


class RedisStore:
    """
    Redis 기반 저장소 클래스

    값은 UTF-8 JSON으로 저장하며, 모든 쓰기에 TTL을 적용합니다.
    """

    def __init__(self, redis_url: str | None = None) -> None:
        """
        RedisStore 초기화

        Args:
            redis_url: Redis 연결 URL (None이면 설정에서 로드)
        """
        self.redis_url = redis_url or settings.redis_url
        self._client: Redis | None = None
        self._pool: redis.ConnectionPool | None = None

    async def connect(self) -> None:
        """Redis 연결 생성"""
        if self._client is None:
            self._pool = redis.ConnectionPool.from_url(
                self.redis_url,
                max_connections=settings.redis_max_connections,
                decode_responses=False,
            )
            self._client = redis.Redis(connection_pool=self._pool)
            logger.info("Redis connection established")

    async def disconnect(self) -> None:
        """Redis 연결 종료"""
        if self._client:
            await self._client.aclose()
            self._client = None
        if self._pool:
            await self._pool.disconnect()
            self._pool = None
            logger.info("Redis connection closed")

    @property
    def client(self) -> Redis:
        """Redis 클라이언트 반환"""
        if self._client is None:
            raise RuntimeError("Redis client not connected. Call connect() first.")
        return self._client

    async def delete(self, key: str) -> None:
        """키 삭제"""
        await self.client.delete(key)

    async def get_json(self, key: str) -> dict[str, Any] | None:
        """
        JSON 형태로 값 조회

        Args:
            key: Redis 키

        Returns:
            딕셔너리 또는 None (키 없음/디코딩 실패)
        """
        value = await self.client.get(key)
        if value is None:
            return None
        try:
            return json.loads(value.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error(f"Failed to decode JSON for key {key}: {e}")
            return None

    async def set_json(self, key: str, value: dict[str, Any], ttl: int) -> None:
        """
        JSON 형태로 값 저장 (SETEX)

        Args:
            key: Redis 키
            value: 저장할 딕셔너리
            ttl: TTL (초)
        """
        json_str = json.dumps(value, ensure_ascii=False)
        await self.client.setex(key, ttl, json_str.encode("utf-8"))


# 전역 Redis Store 인스턴스
_redis_store: RedisStore | None = None


async def get_redis_store() -> RedisStore:
    """
    전역 RedisStore 인스턴스 반환 (최초 호출 시 연결)

    Returns:
        연결된 RedisStore 인스턴스
    """
    global _redis_store
    if _redis_store is None:
        _redis_store = RedisStore()
        await _redis_store.connect()
    return _redis_store


async def cleanup_redis() -> None:
    """Redis 연결 정리 (애플리케이션 종료 시 호출)"""
    global _redis_store
    if _redis_store:
        await _redis_store.disconnect()
        _redis_store = None
