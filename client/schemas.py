"""
Client UI Step Schemas

스트림 이벤트를 화면 표시 단위(UIStep)로 축약한 상태 모델.
UIStep은 type 필드로 구분되는 태그 유니온입니다.
"""

import time
import uuid
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

from api.schemas.events import StreamEvent
from core.planning.schemas import Plan


class StepStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class StepType(str, Enum):
    THOUGHT = "THOUGHT"
    TOOL_CALL = "TOOL_CALL"
    TOOL_RESULT = "TOOL_RESULT"
    FINAL_ANSWER = "FINAL_ANSWER"
    FINAL_PLAN = "FINAL_PLAN"


FINAL_STEP_TYPES = frozenset({StepType.FINAL_ANSWER, StepType.FINAL_PLAN})


def _now_ms() -> int:
    return int(time.time() * 1000)


# ==================== Step Payloads ====================


class ThoughtStepPayload(BaseModel):
    source: str = "unknown"
    message: str
    phase: str | None = None


class ToolCallStepPayload(BaseModel):
    toolCallId: str
    functionName: str = "unknown"
    args: dict[str, Any] = Field(default_factory=dict)
    message: str | None = None


class ToolResultStepPayload(BaseModel):
    toolCallId: str = "unknown"
    functionName: str = "unknown"
    result: str = ""
    truncated: bool = False


class FinalAnswerStepPayload(BaseModel):
    content: str = ""
    isComplete: bool = False


class FinalPlanStepPayload(BaseModel):
    plan: Plan


# ==================== Steps ====================


class _StepBase(BaseModel):
    """모든 UIStep 공통 필드 (id는 생성 시 한 번 발급되고 재사용되지 않음)"""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    status: StepStatus = StepStatus.RUNNING
    timestamp: int = Field(default_factory=_now_ms)

    @property
    def is_final(self) -> bool:
        return self.type in FINAL_STEP_TYPES


class ThoughtStep(_StepBase):
    type: Literal["THOUGHT"] = "THOUGHT"
    payload: ThoughtStepPayload


class ToolCallStep(_StepBase):
    type: Literal["TOOL_CALL"] = "TOOL_CALL"
    payload: ToolCallStepPayload


class ToolResultStep(_StepBase):
    type: Literal["TOOL_RESULT"] = "TOOL_RESULT"
    payload: ToolResultStepPayload


class FinalAnswerStep(_StepBase):
    type: Literal["FINAL_ANSWER"] = "FINAL_ANSWER"
    payload: FinalAnswerStepPayload


class FinalPlanStep(_StepBase):
    type: Literal["FINAL_PLAN"] = "FINAL_PLAN"
    payload: FinalPlanStepPayload


UIStep = Annotated[
    Union[ThoughtStep, ToolCallStep, ToolResultStep, FinalAnswerStep, FinalPlanStep],
    Field(discriminator="type"),
]


class OrchestrationState(BaseModel):
    """
    한 턴의 클라이언트 상태

    steps는 reducer만 수정합니다. is_aborted는 사용자가 턴을 중단했을 때 설정되며,
    이때 running 상태였던 step은 그대로 남습니다.
    """
    steps: list[UIStep] = Field(default_factory=list)
    is_running: bool = False
    is_complete: bool = False
    is_aborted: bool = False
    error: str | None = None
    total_duration: int = 0


class IncomingEvent(BaseModel):
    """
    클라이언트가 받은 스트림 이벤트

    서버의 StreamEvent와 같은 모양이지만 type/source를 문자열로 받아
    새 이벤트 타입이 추가되어도 검증에서 떨어지지 않습니다.
    """
    source: str = "unknown"
    type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: int = Field(default_factory=_now_ms)

    @classmethod
    def from_stream_event(cls, event: StreamEvent) -> "IncomingEvent":
        return cls.model_validate(event.model_dump(mode="json"))
