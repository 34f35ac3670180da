"""
Upload Processing

업로드 요청의 파일들을 검증하고 기존 세션 파일과 병합합니다.

- 지원하지 않는 파일 유형은 건너뜀
- 같은 요청 안, 그리고 세션에 이미 있는 경로와 중복되면 건너뜀
- 파일당/세션 전체 크기, 파일 수 상한 적용
"""

import logging
from dataclasses import dataclass, field

from pydantic import BaseModel, Field

from core.config import settings
from core.sessions.file_types import (
    StoredFile,
    detect_language,
    file_extension,
    format_file_size,
    is_supported_file,
)

logger = logging.getLogger(__name__)


class UploadValidationError(Exception):
    """업로드 제한 위반 (400 응답으로 변환)"""

    def __init__(self, error: str, message: str, **details: object) -> None:
        super().__init__(message)
        self.error = error
        self.message = message
        self.details = details


class IncomingFile(BaseModel):
    """클라이언트가 보낸 파일 (텍스트 내용 포함)"""
    name: str = Field(..., min_length=1)
    path: str | None = None
    content: str = ""
    size: int = Field(..., ge=0)


@dataclass
class UploadResult:
    """병합 결과"""
    new_files: list[StoredFile]
    merged_files: list[StoredFile]
    duplicate_count: int = 0
    skipped_unsupported: list[str] = field(default_factory=list)

    @property
    def new_total_size(self) -> int:
        return sum(f.size for f in self.new_files)


def _accept_files(incoming: list[IncomingFile]) -> tuple[list[StoredFile], int, list[str]]:
    accepted: list[StoredFile] = []
    seen_paths: set[str] = set()
    duplicates = 0
    unsupported: list[str] = []
    running_total = 0

    for item in incoming:
        path = item.path or item.name
        if path in seen_paths:
            logger.warning(f"Skipping duplicate file in request: {path}")
            duplicates += 1
            continue
        if not is_supported_file(item.name):
            logger.warning(f"Skipping unsupported file type: {item.name}")
            unsupported.append(path)
            continue
        if item.size > settings.max_file_size_bytes:
            raise UploadValidationError(
                "File too large",
                f"{path} is {format_file_size(item.size)}. "
                f"Maximum is {format_file_size(settings.max_file_size_bytes)}.",
            )
        running_total += item.size
        if running_total > settings.max_total_size_bytes:
            raise UploadValidationError(
                "Total size limit exceeded",
                f"Maximum total size is {format_file_size(settings.max_total_size_bytes)}.",
            )
        if len(accepted) >= settings.max_file_count:
            raise UploadValidationError(
                "Too many files",
                f"At most {settings.max_file_count} files can be uploaded.",
            )

        seen_paths.add(path)
        accepted.append(
            StoredFile(
                name=item.name,
                path=path,
                type=file_extension(item.name),
                size=item.size,
                content=item.content,
                language=detect_language(item.name),
            )
        )

    return accepted, duplicates, unsupported


def merge_upload(incoming: list[IncomingFile], existing: list[StoredFile] | None) -> UploadResult:
    """
    요청 파일을 검증하고 세션의 기존 파일과 병합합니다.

    Args:
        incoming: 요청 파일 목록
        existing: 세션에 이미 저장된 파일 (없으면 None)

    Returns:
        UploadResult

    Raises:
        UploadValidationError: 유효 파일 없음, 크기/개수 상한 초과
    """
    accepted, duplicates, unsupported = _accept_files(incoming)
    if not accepted:
        raise UploadValidationError(
            "No valid files uploaded",
            "Please upload supported file types.",
        )

    existing = existing or []
    existing_paths = {f.path for f in existing}
    new_files = [f for f in accepted if f.path not in existing_paths]
    session_duplicates = len(accepted) - len(new_files)
    if session_duplicates:
        logger.info(f"Filtered {session_duplicates} file(s) already present in session")

    merged = [*existing, *new_files]
    if len(merged) > settings.max_file_count:
        raise UploadValidationError(
            "Maximum file count exceeded",
            f"Session has {len(existing)} file(s) and {len(new_files)} new file(s) were sent. "
            f"Maximum is {settings.max_file_count}.",
            currentCount=len(existing),
            newCount=len(new_files),
            totalCount=len(merged),
            limit=settings.max_file_count,
        )
    total_size = sum(f.size for f in merged)
    if total_size > settings.max_total_size_bytes:
        raise UploadValidationError(
            "Maximum total size exceeded",
            f"Total size would be {format_file_size(total_size)}. "
            f"Maximum is {format_file_size(settings.max_total_size_bytes)}.",
            currentSize=total_size,
            limit=settings.max_total_size_bytes,
        )

    return UploadResult(
        new_files=new_files,
        merged_files=merged,
        duplicate_count=duplicates + session_duplicates,
        skipped_unsupported=unsupported,
    )
