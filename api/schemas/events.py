"""
Stream Event Schemas

오케스트레이션 스트림에서 사용하는 이벤트 스키마를 정의합니다.
StreamEvent는 source/type/payload/timestamp 네 필드로 구성되며,
payload 형태는 type별 페이로드 모델로 고정되며 EventFactory가 직렬화합니다.
"""

import time
from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field


class EventSource(str, Enum):
    """이벤트를 발행한 구성 요소"""
    ARBITER = "arbiter"
    REFINER = "refiner"
    CHIEF_ARCHITECT = "chief_architect"
    ORCHESTRATOR = "orchestrator"


class EventType(str, Enum):
    """스트림 이벤트 타입"""
    THOUGHT = "thought"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    FINAL_CHUNK = "final_chunk"
    FINAL_PLAN = "final_plan"
    CONTENT = "content"
    ERROR = "error"
    STATUS = "status"


class AgentStatus(str, Enum):
    """status 이벤트의 상태 값"""
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"


class ThoughtPhase(str, Enum):
    """thought 이벤트 단계"""
    ANALYZING = "analyzing"
    RETRYING = "retrying"
    FALLBACK = "fallback"
    TOOL_FOLLOW_UP = "tool_follow_up"
    RECOVERY = "recovery"


# ==================== Payload Models ====================


class _PayloadBase(BaseModel):
    model_config = ConfigDict(extra="allow")


class StatusPayload(_PayloadBase):
    """status 이벤트 페이로드"""
    status: AgentStatus
    message: str | None = None
    duration: int | None = Field(default=None, description="에이전트 실행 시간 (ms)")
    totalDuration: int | None = Field(default=None, description="오케스트레이션 전체 시간 (ms)")
    fullAnalysis: str | None = Field(default=None, description="다음 단계로 넘길 전체 결과 텍스트")


class ThoughtPayload(_PayloadBase):
    """thought 이벤트 페이로드"""
    message: str
    phase: ThoughtPhase | None = None


class ToolCallPayload(_PayloadBase):
    """tool_call 이벤트 페이로드"""
    toolCallId: str = Field(..., description="tool_result와 연결되는 상관 ID")
    functionName: str
    args: dict[str, Any] = Field(default_factory=dict)
    message: str | None = None


class ToolResultPayload(_PayloadBase):
    """tool_result 이벤트 페이로드 (result는 미리보기 길이로 잘림)"""
    toolCallId: str
    functionName: str
    result: str
    truncated: bool = False


class FinalChunkPayload(_PayloadBase):
    """final_chunk / content 이벤트 페이로드"""
    chunk: str
    isComplete: bool = False
    progress: int | None = None


class FinalPlanPayload(_PayloadBase):
    """final_plan 이벤트 페이로드"""
    plan: dict[str, Any]


class ErrorPayload(_PayloadBase):
    """error 이벤트 페이로드"""
    error: str
    message: str | None = None
    validationErrors: list[dict[str, Any]] | None = None


class StreamEvent(BaseModel):
    """스트림으로 전달되는 진행 이벤트 단위"""
    source: EventSource = Field(..., description="발행 구성 요소")
    type: EventType = Field(..., description="이벤트 타입")
    payload: dict[str, Any] = Field(default_factory=dict, description="타입별 페이로드")
    timestamp: int = Field(..., description="발행 시각 (epoch ms)")

    def is_completion_of(self, source: EventSource) -> bool:
        """주어진 source의 status: COMPLETED 이벤트인지 확인"""
        return (
            self.type == EventType.STATUS
            and self.source == source
            and self.payload.get("status") == AgentStatus.COMPLETED.value
        )


class EventClock:
    """역행하지 않는 epoch ms 시계 (벽시계가 뒤로 가도 직전 값 유지)"""

    def __init__(self, now: Callable[[], float] = time.time) -> None:
        self._now = now
        self._last = 0

    def __call__(self) -> int:
        self._last = max(int(self._now() * 1000), self._last)
        return self._last


# 모든 팩토리가 공유: 엔진과 오케스트레이터 이벤트가 섞인 스트림 전체에서 timestamp 비감소
event_clock = EventClock()


class EventFactory:
    """
    특정 source의 StreamEvent를 만드는 팩토리

    타임스탬프는 발행 시점에 공유 시계(event_clock)로 부여됩니다.
    """

    def __init__(self, source: EventSource, clock: EventClock | None = None) -> None:
        self.source = source
        self._clock = clock or event_clock

    def _timestamp(self) -> int:
        return self._clock()

    def make(self, event_type: EventType, payload: BaseModel) -> StreamEvent:
        return StreamEvent(
            source=self.source,
            type=event_type,
            payload=payload.model_dump(mode="json", exclude_none=True),
            timestamp=self._timestamp(),
        )

    def status(self, status: AgentStatus, message: str | None = None, **extra: Any) -> StreamEvent:
        return self.make(EventType.STATUS, StatusPayload(status=status, message=message, **extra))

    def thought(self, message: str, phase: ThoughtPhase | None = None) -> StreamEvent:
        return self.make(EventType.THOUGHT, ThoughtPayload(message=message, phase=phase))

    def tool_call(self, tool_call_id: str, function_name: str, args: dict[str, Any]) -> StreamEvent:
        return self.make(
            EventType.TOOL_CALL,
            ToolCallPayload(
                toolCallId=tool_call_id,
                functionName=function_name,
                args=args,
                message=f"Calling {function_name}",
            ),
        )

    def tool_result(
        self, tool_call_id: str, function_name: str, result: str, truncated: bool
    ) -> StreamEvent:
        return self.make(
            EventType.TOOL_RESULT,
            ToolResultPayload(
                toolCallId=tool_call_id,
                functionName=function_name,
                result=result,
                truncated=truncated,
            ),
        )

    def final_chunk(self, chunk: str, is_complete: bool = True, progress: int | None = 100) -> StreamEvent:
        return self.make(
            EventType.FINAL_CHUNK,
            FinalChunkPayload(chunk=chunk, isComplete=is_complete, progress=progress),
        )

    def final_plan(self, plan: dict[str, Any]) -> StreamEvent:
        return self.make(EventType.FINAL_PLAN, FinalPlanPayload(plan=plan))

    def error(
        self,
        error: str,
        message: str | None = None,
        validation_errors: list[dict[str, Any]] | None = None,
    ) -> StreamEvent:
        return self.make(
            EventType.ERROR,
            ErrorPayload(error=error, message=message, validationErrors=validation_errors),
        )
