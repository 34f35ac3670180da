"""
Event Reducer

스트림 이벤트를 UIStep 목록으로 접어 넣는 reducer.

이벤트 타입별 핸들러를 EVENT_HANDLERS 테이블로 조회하며, 등록되지 않은 타입은 무시합니다.
각 이벤트를 처리한 뒤 step 수가 MAX_STEPS를 넘으면 최종 step(FINAL_ANSWER / FINAL_PLAN)은
모두 남기고 가장 오래된 나머지 step부터 잘라냅니다.
"""

import logging
from typing import Callable, Iterable

from pydantic import ValidationError

from api.schemas.events import AgentStatus, EventSource, EventType, StreamEvent
from client.schemas import (
    FinalAnswerStep,
    FinalAnswerStepPayload,
    FinalPlanStep,
    FinalPlanStepPayload,
    IncomingEvent,
    OrchestrationState,
    StepStatus,
    ThoughtStep,
    ThoughtStepPayload,
    ToolCallStep,
    ToolCallStepPayload,
    ToolResultStep,
    ToolResultStepPayload,
    UIStep,
)

logger = logging.getLogger(__name__)

MAX_STEPS = 50

EventHandler = Callable[[OrchestrationState, IncomingEvent], None]


def _close_running(steps: list[UIStep]) -> None:
    for step in steps:
        if step.status == StepStatus.RUNNING:
            step.status = StepStatus.COMPLETED


def _handle_thought(state: OrchestrationState, event: IncomingEvent) -> None:
    payload = event.payload
    _close_running(state.steps)
    state.steps.append(
        ThoughtStep(
            payload=ThoughtStepPayload(
                source=event.source,
                message=payload.get("message") or payload.get("content") or "Thinking...",
                phase=payload.get("phase"),
            )
        )
    )


def _handle_tool_call(state: OrchestrationState, event: IncomingEvent) -> None:
    payload = ToolCallStepPayload.model_validate(event.payload)
    _close_running(state.steps)
    state.steps.append(ToolCallStep(payload=payload))


def _handle_tool_result(state: OrchestrationState, event: IncomingEvent) -> None:
    payload = ToolResultStepPayload.model_validate(event.payload)
    # 호출이 순서대로 끝나지 않을 수 있으므로 마지막 step만 보지 않고 전체를 찾습니다
    for step in state.steps:
        if isinstance(step, ToolCallStep) and step.payload.toolCallId == payload.toolCallId:
            step.status = StepStatus.COMPLETED
    state.steps.append(ToolResultStep(status=StepStatus.COMPLETED, payload=payload))


def _handle_final_chunk(state: OrchestrationState, event: IncomingEvent) -> None:
    payload = event.payload
    chunk = payload.get("chunk") or payload.get("content") or payload.get("delta") or ""
    is_complete = bool(payload.get("isComplete", False))

    last = state.steps[-1] if state.steps else None
    if isinstance(last, FinalAnswerStep):
        last.payload.content += chunk
        last.payload.isComplete = last.payload.isComplete or is_complete
        last.status = StepStatus.COMPLETED if last.payload.isComplete else StepStatus.RUNNING
        return

    _close_running(state.steps)
    state.steps.append(
        FinalAnswerStep(
            status=StepStatus.COMPLETED if is_complete else StepStatus.RUNNING,
            payload=FinalAnswerStepPayload(content=chunk, isComplete=is_complete),
        )
    )


def _handle_final_plan(state: OrchestrationState, event: IncomingEvent) -> None:
    payload = FinalPlanStepPayload.model_validate(event.payload)
    _close_running(state.steps)
    state.steps.append(FinalPlanStep(status=StepStatus.COMPLETED, payload=payload))


def _handle_status(state: OrchestrationState, event: IncomingEvent) -> None:
    # step 목록은 건드리지 않음
    if event.source != EventSource.ORCHESTRATOR.value:
        return
    if event.payload.get("status") == AgentStatus.COMPLETED.value:
        state.is_complete = True
        state.is_running = False
        state.total_duration = int(event.payload.get("totalDuration") or 0)


def _handle_error(state: OrchestrationState, event: IncomingEvent) -> None:
    for step in reversed(state.steps):
        if step.status == StepStatus.RUNNING:
            step.status = StepStatus.ERROR
            break
    state.error = str(event.payload.get("error") or event.payload.get("message") or "Unknown error")
    state.is_running = False


EVENT_HANDLERS: dict[str, EventHandler] = {
    EventType.THOUGHT.value: _handle_thought,
    EventType.TOOL_CALL.value: _handle_tool_call,
    EventType.TOOL_RESULT.value: _handle_tool_result,
    EventType.FINAL_CHUNK.value: _handle_final_chunk,
    EventType.CONTENT.value: _handle_final_chunk,
    EventType.FINAL_PLAN.value: _handle_final_plan,
    EventType.STATUS.value: _handle_status,
    EventType.ERROR.value: _handle_error,
}


def trim_steps(steps: list[UIStep], limit: int = MAX_STEPS) -> list[UIStep]:
    """
    step 수를 limit 이하로 줄입니다.

    최종 step은 항상 남기고, 나머지 중 가장 오래된 것부터 제거합니다. 순서는 유지됩니다.
    """
    excess = len(steps) - limit
    if excess <= 0:
        return steps
    kept: list[UIStep] = []
    for step in steps:
        if excess > 0 and not step.is_final:
            excess -= 1
            continue
        kept.append(step)
    return kept


def reduce_event(state: OrchestrationState, event: IncomingEvent | StreamEvent) -> OrchestrationState:
    """
    이벤트 하나를 상태에 반영합니다 (state를 제자리에서 수정하고 그대로 반환).

    Args:
        state: 현재 턴 상태
        event: 수신 이벤트

    Returns:
        같은 state 객체
    """
    if isinstance(event, StreamEvent):
        event = IncomingEvent.from_stream_event(event)
    handler = EVENT_HANDLERS.get(event.type)
    if handler is None:
        logger.debug(f"Ignoring unknown event type: {event.type}")
        return state
    try:
        handler(state, event)
    except ValidationError as e:
        logger.warning(f"Ignoring {event.type} event with malformed payload: {e.error_count()} error(s)")
        return state
    state.steps = trim_steps(state.steps)
    return state


def finish_stream(state: OrchestrationState, error: str | None = None) -> OrchestrationState:
    """
    스트림 종료를 상태에 반영합니다.

    정상 종료면 남은 running step을 모두 completed로 닫고,
    스트림 자체가 실패했으면 가장 최근 running step을 error로 표시합니다.
    """
    if error is None:
        _close_running(state.steps)
    else:
        _handle_error(state, IncomingEvent(type=EventType.ERROR.value, payload={"error": error}))
    state.is_running = False
    return state


def apply_events(
    state: OrchestrationState, events: Iterable[IncomingEvent | StreamEvent]
) -> OrchestrationState:
    """이벤트들을 도착 순서대로 반영"""
    for event in events:
        reduce_event(state, event)
    return state
