"""
Orchestrate Routes Module

멀티 에이전트 플래닝 실행 엔드포인트 (SSE 스트리밍).

- POST /api/orchestrate : 과제 + 히스토리로 파이프라인 실행
- POST /api/analyze     : 업로드 세션 파일로 코드베이스 분석 프롬프트를 만들어 실행

스트림 형식:
    data: {"type": "stream_start"}
    data: {StreamEvent JSON}
    ...
    data: {"type": "stream_end"}

클라이언트 연결이 끊기면 취소 토큰을 발동해 진행 중인 재시도 대기와 모델 호출을 멈춥니다.
"""

import logging
from contextlib import aclosing
from typing import Any, AsyncIterator, Sequence

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse, StreamingResponse

from api.dependencies import SessionStore
from api.schemas.events import EventFactory, EventSource
from api.schemas.requests import AnalyzeRequest, OrchestrateRequest
from api.sse_utils import (
    SSE_HEADERS,
    SSE_MEDIA_TYPE,
    format_event_frame,
    stream_end_frame,
    stream_start_frame,
)
from core.cancellation import CancellationToken
from core.llm.client import get_llm_client
from core.planning.prompt_builder import build_codebase_prompt
from domains.planning.agents.pipelines import PipelineMode, build_orchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["orchestrate"])


async def event_generator(
    request: Request,
    task: str,
    history: Sequence[Any],
    mode: PipelineMode,
) -> AsyncIterator[str]:
    """
    SSE 이벤트 생성기

    오케스트레이터 이벤트를 data 프레임으로 감싸고, 앞뒤에 stream_start/stream_end를 붙입니다.
    예외가 나면 orchestrator error 프레임을 보낸 뒤 stream_end로 닫습니다.
    """
    token = CancellationToken()
    yield stream_start_frame()
    try:
        orchestrator = build_orchestrator(mode, llm_client=get_llm_client())
        async with aclosing(orchestrator.run(task, history, token)) as events:
            async for event in events:
                if await request.is_disconnected():
                    logger.info("Client disconnected, cancelling orchestration")
                    token.cancel("client disconnected")
                    break
                yield format_event_frame(event)
    except Exception as e:
        logger.error(f"Orchestrate stream failed: {e}", exc_info=True)
        error_event = EventFactory(EventSource.ORCHESTRATOR).error(
            str(e) or type(e).__name__,
            message="Orchestration failed",
        )
        yield format_event_frame(error_event)
    finally:
        # 응답 태스크가 취소된 경우에도 진행 중인 작업을 멈춥니다
        if not token.cancelled:
            token.cancel("stream closed")
    yield stream_end_frame()


def _stream_response(request: Request, task: str, history: Sequence[Any], mode: PipelineMode) -> StreamingResponse:
    return StreamingResponse(
        event_generator(request, task, history, mode),
        media_type=SSE_MEDIA_TYPE,
        headers=SSE_HEADERS,
    )


@router.post("/orchestrate")
async def orchestrate(body: OrchestrateRequest, request: Request) -> StreamingResponse:
    """
    플래닝 파이프라인 실행 (스트리밍)

    Example:
        ```javascript
        const response = await fetch('/api/orchestrate', {
            method: 'POST',
            headers: {'Content-Type': 'application/json'},
            body: JSON.stringify({task: 'Build a blog', history: []}),
        });
        const reader = response.body.getReader();
        ```
    """
    logger.info(f"Orchestrate request: mode={body.mode.value}, history={len(body.history)} turn(s)")
    return _stream_response(request, body.task, body.history, body.mode)


@router.post("/analyze", response_model=None)
async def analyze(body: AnalyzeRequest, request: Request, store: SessionStore) -> StreamingResponse | JSONResponse:
    """
    업로드 세션 기반 코드베이스 분석 (스트리밍)

    세션이 없거나 만료되었으면 400 JSON 에러를 반환합니다.
    """
    files = await store.get(body.sessionId)
    if not files:
        logger.warning(f"Analyze request for unknown or empty session: {body.sessionId}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": "Session not found",
                "message": "No uploaded files for this session. The session may have expired.",
            },
        )

    task = build_codebase_prompt(files, body.task, body.analysisType)
    logger.info(
        f"Analyze request: session={body.sessionId}, type={body.analysisType.value}, files={len(files)}"
    )
    return _stream_response(request, task, body.history, body.mode)
