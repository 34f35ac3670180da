"""
Sessions Module

업로드 파일 세션 저장소(메모리/Redis)와 파일 유형 규칙을 제공합니다.
"""

from core.sessions.file_store import (
    FileSessionStore,
    InMemoryFileSessionStore,
    RedisFileSessionStore,
    get_file_session_store,
    shutdown_file_session_store,
)
from core.sessions.file_types import StoredFile

__all__ = [
    "FileSessionStore",
    "InMemoryFileSessionStore",
    "RedisFileSessionStore",
    "StoredFile",
    "get_file_session_store",
    "shutdown_file_session_store",
]
