"""
File Session Store

업로드된 파일 목록을 세션 ID별로 보관하는 저장소 (TTL 지원).

- InMemoryFileSessionStore: 프로세스 메모리 + 백그라운드 만료 정리 태스크
- RedisFileSessionStore: Redis SETEX (다중 인스턴스 배포용)

요청 핸들러에는 FastAPI 의존성(api.dependencies)으로 주입됩니다.
"""

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass
from typing import Callable, Protocol

from core.config import settings
from core.memory.redis_store import RedisStore, cleanup_redis, get_redis_store
from core.sessions.file_types import StoredFile

logger = logging.getLogger(__name__)


class FileSessionStore(Protocol):
    """파일 세션 저장소 계약"""

    async def get(self, session_id: str) -> list[StoredFile] | None: ...

    async def set(self, session_id: str, files: list[StoredFile]) -> None: ...

    async def delete(self, session_id: str) -> None: ...

    async def start(self) -> None: ...

    async def stop(self) -> None: ...


@dataclass
class _SessionEntry:
    files: list[StoredFile]
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class InMemoryFileSessionStore:
    """
    메모리 기반 파일 세션 저장소 (TTL 지원)

    TTL 동작:
    - set 시점부터 ttl_seconds 후 만료
    - 조회 시 만료된 세션은 제거하고 None 반환
    - start() 이후 sweep_interval마다 만료 세션을 일괄 정리
    """

    def __init__(
        self,
        ttl_seconds: float | None = None,
        sweep_interval: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds or settings.session_ttl_seconds
        self.sweep_interval = sweep_interval or settings.session_sweep_interval_seconds
        self._clock = clock
        self._sessions: dict[str, _SessionEntry] = {}
        self._sweep_task: asyncio.Task | None = None

    async def get(self, session_id: str) -> list[StoredFile] | None:
        """
        세션의 파일 목록 조회 (TTL 확인)

        Returns:
            파일 목록 또는 None (없음/만료)
        """
        entry = self._sessions.get(session_id)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._sessions[session_id]
            logger.info(f"[FileSessionStore] Session expired: {session_id}")
            return None
        return list(entry.files)

    async def set(self, session_id: str, files: list[StoredFile]) -> None:
        """세션 파일 목록을 교체 저장하고 TTL을 갱신"""
        self._sessions[session_id] = _SessionEntry(
            files=list(files),
            expires_at=self._clock() + self.ttl_seconds,
        )
        logger.debug(f"[FileSessionStore] Saved {len(files)} file(s) for {session_id}")

    async def delete(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def sweep(self) -> int:
        """
        만료된 세션을 모두 제거합니다.

        Returns:
            제거된 세션 수
        """
        now = self._clock()
        expired = [sid for sid, entry in self._sessions.items() if entry.is_expired(now)]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.info(f"[FileSessionStore] Swept {len(expired)} expired session(s)")
        return len(expired)

    def stats(self) -> dict[str, int]:
        """저장소 통계 (디버깅용)"""
        return {
            "sessions": len(self._sessions),
            "files": sum(len(entry.files) for entry in self._sessions.values()),
        }

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            self.sweep()

    async def start(self) -> None:
        """백그라운드 만료 정리 태스크 시작"""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop())
            logger.info(f"[FileSessionStore] Sweep task started (interval={self.sweep_interval}s)")

    async def stop(self) -> None:
        """백그라운드 정리 태스크 중지"""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweep_task
            self._sweep_task = None
            logger.info("[FileSessionStore] Sweep task stopped")


class RedisFileSessionStore:
    """Redis 기반 파일 세션 저장소 (만료는 Redis TTL에 위임)"""

    def __init__(
        self,
        redis_store: RedisStore | None = None,
        ttl_seconds: int | None = None,
        key_prefix: str | None = None,
    ) -> None:
        self._redis = redis_store
        self.ttl_seconds = ttl_seconds or settings.session_ttl_seconds
        self.key_prefix = key_prefix or settings.redis_key_prefix

    def _make_key(self, session_id: str) -> str:
        return f"{self.key_prefix}{session_id}"

    async def _store(self) -> RedisStore:
        if self._redis is None:
            self._redis = await get_redis_store()
        return self._redis

    async def get(self, session_id: str) -> list[StoredFile] | None:
        store = await self._store()
        data = await store.get_json(self._make_key(session_id))
        if data is None:
            return None
        return [StoredFile.model_validate(item) for item in data.get("files", [])]

    async def set(self, session_id: str, files: list[StoredFile]) -> None:
        store = await self._store()
        await store.set_json(
            self._make_key(session_id),
            {"files": [file.model_dump(mode="json") for file in files]},
            ttl=self.ttl_seconds,
        )

    async def delete(self, session_id: str) -> None:
        store = await self._store()
        await store.delete(self._make_key(session_id))

    async def start(self) -> None:
        await self._store()

    async def stop(self) -> None:
        await cleanup_redis()
        self._redis = None


# 전역 저장소 인스턴스
_file_session_store: FileSessionStore | None = None


def get_file_session_store() -> FileSessionStore:
    """
    설정(session_store_backend)에 맞는 전역 저장소 반환

    Returns:
        FileSessionStore 인스턴스
    """
    global _file_session_store
    if _file_session_store is None:
        if settings.session_store_backend == "redis":
            _file_session_store = RedisFileSessionStore()
        else:
            _file_session_store = InMemoryFileSessionStore()
        logger.info(f"File session store backend: {settings.session_store_backend}")
    return _file_session_store


async def shutdown_file_session_store() -> None:
    """저장소 정리 (애플리케이션 종료 시 호출)"""
    global _file_session_store
    if _file_session_store is not None:
        await _file_session_store.stop()
        _file_session_store = None
