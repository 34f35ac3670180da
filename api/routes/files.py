"""
File Session Routes Module

코드베이스 분석용 파일 업로드 세션 엔드포인트.

- POST   /api/upload-files            : 파일 업로드 (X-Session-ID로 기존 세션에 병합)
- GET    /api/sessions/{id}/files     : 세션 파일 메타데이터 조회
- DELETE /api/sessions/{id}           : 세션 삭제
"""

import logging
import uuid

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from api.dependencies import SessionIdHeader, SessionStore
from api.schemas.requests import UploadFilesRequest
from core.config import settings
from core.sessions.uploads import UploadValidationError, merge_upload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["files"])


def _error_response(status_code: int, error: str, message: str, **details: object) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": message, **details},
    )


@router.post("/upload-files", response_model=None)
async def upload_files(
    body: UploadFilesRequest,
    request: Request,
    store: SessionStore,
    session_id: SessionIdHeader,
) -> dict | JSONResponse:
    """
    파일 업로드

    X-Session-ID 헤더가 있으면 해당 세션에 파일을 추가하고, 없으면 새 세션을 만듭니다.
    이미 세션에 있는 경로는 건너뜁니다.
    """
    max_request_bytes = settings.max_request_size_mb * 1024 * 1024
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > max_request_bytes:
        logger.warning(f"Upload rejected: request body {content_length} bytes")
        return _error_response(
            status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            "Request too large",
            f"Request body exceeds {settings.max_request_size_mb}MB. Upload files in smaller batches.",
        )

    session_id = session_id or str(uuid.uuid4())
    existing = await store.get(session_id)

    try:
        result = merge_upload(body.files, existing)
    except UploadValidationError as e:
        logger.warning(f"Upload rejected for session {session_id}: {e.error}")
        return _error_response(status.HTTP_400_BAD_REQUEST, e.error, e.message, **e.details)

    await store.set(session_id, result.merged_files)
    logger.info(
        f"Session {session_id}: {len(result.new_files)} new file(s), "
        f"{len(result.merged_files)} total, {result.duplicate_count} duplicate(s) skipped"
    )

    return {
        "success": True,
        "sessionId": session_id,
        "files": [f.metadata() for f in result.new_files],
        "totalSize": result.new_total_size,
        "count": len(result.new_files),
        "allFilesCount": len(result.merged_files),
        "duplicateCount": result.duplicate_count,
        "unsupportedFiles": result.skipped_unsupported,
    }


@router.get("/sessions/{session_id}/files", response_model=None)
async def list_session_files(session_id: str, store: SessionStore) -> dict | JSONResponse:
    """세션 파일 메타데이터 조회 (content 제외)"""
    files = await store.get(session_id)
    if files is None:
        return _error_response(
            status.HTTP_404_NOT_FOUND,
            "Session not found",
            "The session does not exist or has expired.",
        )
    return {
        "sessionId": session_id,
        "files": [f.metadata() for f in files],
        "totalFiles": len(files),
        "totalSize": sum(f.size for f in files),
    }


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str, store: SessionStore) -> dict:
    """세션 삭제 (없는 세션도 성공 처리)"""
    await store.delete(session_id)
    logger.info(f"Session deleted: {session_id}")
    return {"success": True, "sessionId": session_id}
