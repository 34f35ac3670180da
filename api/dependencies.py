"""
API Dependencies Module

FastAPI 의존성 주입을 위한 함수들을 정의합니다.
"""

from typing import Annotated

from fastapi import Depends, Header

from core.sessions.file_store import FileSessionStore, get_file_session_store


def get_session_store() -> FileSessionStore:
    """
    파일 세션 저장소 반환

    테스트에서는 app.dependency_overrides로 교체합니다.
    """
    return get_file_session_store()


async def get_session_id_header(
    x_session_id: Annotated[str | None, Header(alias="X-Session-ID")] = None,
) -> str | None:
    """X-Session-ID 헤더 (없으면 None, 공백만 있으면 None)"""
    if x_session_id and x_session_id.strip():
        return x_session_id.strip()
    return None


# 타입 별칭 (라우트 시그니처 간소화)
SessionStore = Annotated[FileSessionStore, Depends(get_session_store)]
SessionIdHeader = Annotated[str | None, Depends(get_session_id_header)]
