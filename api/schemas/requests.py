"""
Request Schemas

HTTP 요청 본문 모델. 필드 이름은 프론트엔드 계약(camelCase)을 그대로 따릅니다.
"""

from typing import Literal

from pydantic import BaseModel, Field, field_validator

from core.planning.prompt_builder import AnalysisType
from core.sessions.uploads import IncomingFile
from domains.planning.agents.pipelines import PipelineMode


class InlineData(BaseModel):
    """base64 인코딩된 첨부 (이미지 등)"""
    mimeType: str
    data: str


class ContentPart(BaseModel):
    text: str | None = None
    inlineData: InlineData | None = None


class HistoryTurn(BaseModel):
    """이전 대화 한 턴"""
    role: Literal["user", "model"]
    parts: list[ContentPart] = Field(default_factory=list)


class OrchestrateRequest(BaseModel):
    """POST /api/orchestrate"""
    task: str = Field(..., description="사용자 과제")
    history: list[HistoryTurn] = Field(default_factory=list)
    mode: PipelineMode = Field(default=PipelineMode.ARCHITECT, description="파이프라인 모드")

    @field_validator("task")
    @classmethod
    def _task_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("task must not be empty")
        return value


class AnalyzeRequest(BaseModel):
    """POST /api/analyze (업로드 세션 기반 코드베이스 분석)"""
    sessionId: str = Field(..., min_length=1)
    analysisType: AnalysisType = AnalysisType.FULL
    task: str | None = None
    history: list[HistoryTurn] = Field(default_factory=list)
    mode: PipelineMode = PipelineMode.ARCHITECT


class UploadFilesRequest(BaseModel):
    """POST /api/upload-files"""
    files: list[IncomingFile] = Field(default_factory=list)
