"""
Agent Protocol Engine 단위 테스트

모델 폴백/재시도, 도구 호출, 구조화 제출 검증, 자유 텍스트 복구, 취소 동작 검증
"""

import pytest
from langchain_core.messages import AIMessage, HumanMessage, ToolMessage
from langchain_core.tools import tool

from api.schemas.events import AgentStatus, EventSource, EventType, ThoughtPhase
from core.cancellation import CancellationToken
from core.llm.client import FinishReason, FunctionCall, ModelResponse
from core.llm.prompts import get_recovery_reprompt
from core.planning.engine import (
    RECOVERY_FAILED_MESSAGE,
    AgentInput,
    AgentProfile,
    AgentProtocolEngine,
    OutputContract,
)
from core.planning.markdown_parser import parse_plan_from_markdown
from tools.plan_submission_tool import submit_final_plan

TRANSIENT = RuntimeError("503 Service Unavailable: the model is overloaded")
PERMANENT = ValueError("invalid request: unknown parameter")

LONG_RESULT = "x" * 500


@tool("performSearch")
async def fake_search(query: str) -> str:
    """Search the web."""
    return "no results"


@tool("searchCodeExamples")
async def long_search(query: str) -> str:
    """Return a long code example."""
    return LONG_RESULT


@tool("brokenTool")
async def broken_tool(query: str) -> str:
    """Always fails."""
    raise RuntimeError("search backend down")


def _structured_profile(*tools) -> AgentProfile:
    return AgentProfile(
        source=EventSource.CHIEF_ARCHITECT,
        display_name="Chief Architect",
        system_instruction="You are an architect.",
        tools=(*tools, submit_final_plan),
        output_contract=OutputContract.STRUCTURED_PLAN,
    )


def _free_text_profile() -> AgentProfile:
    return AgentProfile(
        source=EventSource.ARBITER,
        display_name="Arbiter",
        system_instruction="You are an arbiter.",
    )


def _engine(profile, provider, sleep, **options) -> AgentProtocolEngine:
    return AgentProtocolEngine(
        profile,
        provider,
        models=["primary", "fallback"],
        max_retries=2,
        backoff_base_seconds=1.0,
        sleep=sleep,
        **options,
    )


def _submit(args) -> ModelResponse:
    return ModelResponse(function_calls=[FunctionCall(name="submitFinalPlan", args=args)])


def _call(name: str, **args) -> ModelResponse:
    return ModelResponse(function_calls=[FunctionCall(name=name, args=args)])


async def _run(engine: AgentProtocolEngine, task: str = "Build a blog", token=None) -> list:
    return [event async for event in engine.execute(AgentInput(task=task), token)]


def _types(events) -> list[EventType]:
    return [event.type for event in events]


def _thoughts(events, phase: ThoughtPhase) -> list:
    return [e for e in events if e.type == EventType.THOUGHT and e.payload.get("phase") == phase.value]


# ==================== 정상 경로 ====================


@pytest.mark.asyncio
async def test_direct_submission_emits_plan_and_completion(fake_provider, plan_args, no_sleep):
    """구조화 제출 즉시 성공: RUNNING → thought → final_plan → COMPLETED"""
    provider = fake_provider({"primary": [_submit(plan_args)]})
    events = await _run(_engine(_structured_profile(), provider, no_sleep))

    assert _types(events) == [EventType.STATUS, EventType.THOUGHT, EventType.FINAL_PLAN, EventType.STATUS]
    assert events[0].payload["status"] == AgentStatus.RUNNING.value
    assert events[2].payload["plan"] == plan_args
    completed = events[3]
    assert completed.payload["status"] == AgentStatus.COMPLETED.value
    assert completed.payload["duration"] >= 0
    # fullAnalysis는 다시 파싱 가능한 마크다운
    recovered = parse_plan_from_markdown(completed.payload["fullAnalysis"])
    assert recovered is not None
    assert recovered.model_dump(mode="json") == plan_args
    assert all(e.source == EventSource.CHIEF_ARCHITECT for e in events)


@pytest.mark.asyncio
async def test_timestamps_are_non_decreasing(fake_provider, plan_args, no_sleep):
    provider = fake_provider({"primary": [_submit(plan_args)]})
    events = await _run(_engine(_structured_profile(), provider, no_sleep))

    timestamps = [e.timestamp for e in events]
    assert timestamps == sorted(timestamps)


@pytest.mark.asyncio
async def test_free_text_profile_emits_final_chunk(fake_provider, no_sleep):
    """자유 텍스트 계약: final_chunk(isComplete) → COMPLETED(fullAnalysis)"""
    provider = fake_provider({"primary": [ModelResponse(text="A thorough analysis.")]})
    events = await _run(_engine(_free_text_profile(), provider, no_sleep))

    assert _types(events) == [EventType.STATUS, EventType.THOUGHT, EventType.FINAL_CHUNK, EventType.STATUS]
    assert events[2].payload == {"chunk": "A thorough analysis.", "isComplete": True, "progress": 100}
    assert events[3].payload["fullAnalysis"] == "A thorough analysis."


@pytest.mark.asyncio
async def test_task_reminder_is_appended(fake_provider, plan_args, no_sleep):
    profile = AgentProfile(
        source=EventSource.CHIEF_ARCHITECT,
        display_name="Chief Architect",
        system_instruction="sys",
        tools=(submit_final_plan,),
        output_contract=OutputContract.STRUCTURED_PLAN,
        task_reminder="Submit with submitFinalPlan.",
    )
    provider = fake_provider({"primary": [_submit(plan_args)]})
    await _run(_engine(profile, provider, no_sleep))

    first_prompt = provider.calls[0][1][-1]
    assert isinstance(first_prompt, HumanMessage)
    assert first_prompt.content == "Build a blog\n\nSubmit with submitFinalPlan."


# ==================== 재시도 / 폴백 ====================


@pytest.mark.asyncio
async def test_transient_failure_retries_once_without_fallback(fake_provider, plan_args, no_sleep):
    """1차 시도 과부하, 2차 성공: 백오프 thought 정확히 1회, 폴백 미사용"""
    provider = fake_provider({"primary": [TRANSIENT, _submit(plan_args)]})
    events = await _run(_engine(_structured_profile(), provider, no_sleep))

    retry_thoughts = _thoughts(events, ThoughtPhase.RETRYING)
    assert len(retry_thoughts) == 1
    assert "retrying in 2s" in retry_thoughts[0].payload["message"]
    assert _thoughts(events, ThoughtPhase.FALLBACK) == []
    assert provider.calls_for("primary") == 2
    assert provider.calls_for("fallback") == 0
    no_sleep.assert_awaited_once_with(2.0)
    assert events[-1].payload["status"] == AgentStatus.COMPLETED.value


@pytest.mark.asyncio
async def test_transient_failures_exhaust_model_then_fallback(fake_provider, plan_args, no_sleep):
    provider = fake_provider({"primary": [TRANSIENT, TRANSIENT], "fallback": [_submit(plan_args)]})
    events = await _run(_engine(_structured_profile(), provider, no_sleep))

    assert provider.calls_for("primary") == 2
    assert provider.calls_for("fallback") == 1
    # 마지막 시도 뒤에는 대기하지 않음
    assert no_sleep.await_count == 1
    assert len(_thoughts(events, ThoughtPhase.FALLBACK)) == 1
    assert events[-1].payload["status"] == AgentStatus.COMPLETED.value


@pytest.mark.asyncio
async def test_permanent_failure_moves_to_fallback(fake_provider, plan_args, no_sleep):
    """비일시 장애: 재시도 없이 다음 모델로"""
    provider = fake_provider({"primary": [PERMANENT], "fallback": [_submit(plan_args)]})
    events = await _run(_engine(_structured_profile(), provider, no_sleep))

    assert provider.calls_for("primary") == 1
    assert provider.calls_for("fallback") == 1
    no_sleep.assert_not_awaited()
    assert EventType.FINAL_PLAN in _types(events)
    assert events[-1].payload["status"] == AgentStatus.COMPLETED.value


@pytest.mark.asyncio
async def test_all_models_exhausted_is_fatal(fake_provider, no_sleep):
    provider = fake_provider({"primary": [PERMANENT], "fallback": [PERMANENT]})
    events = await _run(_engine(_structured_profile(), provider, no_sleep))

    assert events[-1].type == EventType.ERROR
    assert events[-1].payload["error"] == "All models exhausted"
    assert [e for e in events if e.type == EventType.ERROR] == [events[-1]]


@pytest.mark.asyncio
async def test_empty_response_triggers_fallback(fake_provider, plan_args, no_sleep):
    provider = fake_provider({"primary": [ModelResponse(text="   ")], "fallback": [_submit(plan_args)]})
    events = await _run(_engine(_structured_profile(), provider, no_sleep))

    assert provider.calls_for("primary") == 1
    assert events[-1].payload["status"] == AgentStatus.COMPLETED.value


@pytest.mark.asyncio
async def test_unexpected_finish_reason_triggers_fallback(fake_provider, plan_args, no_sleep):
    provider = fake_provider({
        "primary": [ModelResponse(text="partial", finish_reason=FinishReason.OTHER)],
        "fallback": [_submit(plan_args)],
    })
    events = await _run(_engine(_structured_profile(), provider, no_sleep))

    assert provider.calls_for("fallback") == 1
    assert events[-1].payload["status"] == AgentStatus.COMPLETED.value


@pytest.mark.asyncio
async def test_content_block_is_fatal_without_fallback(fake_provider, no_sleep):
    blocked = ModelResponse(finish_reason=FinishReason.SAFETY, block_reason="content_filter")
    provider = fake_provider({"primary": [blocked], "fallback": []})
    events = await _run(_engine(_structured_profile(), provider, no_sleep))

    assert events[-1].type == EventType.ERROR
    assert events[-1].payload["error"] == "Content blocked"
    assert provider.calls_for("fallback") == 0


# ==================== 도구 호출 ====================


@pytest.mark.asyncio
async def test_tool_call_then_parsed_plan(fake_provider, plan_markdown, no_sleep):
    """performSearch → tool_result → 후속 호출의 자유 텍스트를 파싱해 final_plan"""
    provider = fake_provider({
        "primary": [_call("performSearch", query="Next.js auth"), ModelResponse(text=plan_markdown)],
    })
    events = await _run(_engine(_structured_profile(fake_search), provider, no_sleep))

    types = _types(events)
    assert types.count(EventType.TOOL_CALL) == 1
    assert types.count(EventType.TOOL_RESULT) == 1
    assert types.index(EventType.TOOL_CALL) < types.index(EventType.TOOL_RESULT) < types.index(EventType.FINAL_PLAN)
    call_event = events[types.index(EventType.TOOL_CALL)]
    result_event = events[types.index(EventType.TOOL_RESULT)]
    assert call_event.payload["functionName"] == "performSearch"
    assert call_event.payload["args"] == {"query": "Next.js auth"}
    assert result_event.payload["toolCallId"] == call_event.payload["toolCallId"]
    assert result_event.payload["result"] == "no results"
    assert events[-1].payload["status"] == AgentStatus.COMPLETED.value
    # 후속 호출은 같은 모델로만
    assert provider.calls_for("primary") == 2
    assert provider.calls_for("fallback") == 0
    # 재요청 없이 파싱으로 복구
    assert _thoughts(events, ThoughtPhase.RECOVERY) == []


@pytest.mark.asyncio
async def test_follow_up_history_contains_tool_exchange(fake_provider, plan_markdown, no_sleep):
    provider = fake_provider({
        "primary": [_call("performSearch", query="q"), ModelResponse(text=plan_markdown)],
    })
    await _run(_engine(_structured_profile(fake_search), provider, no_sleep))

    follow_up = provider.calls[1][1]
    assert isinstance(follow_up[-2], AIMessage)
    assert follow_up[-2].tool_calls[0]["name"] == "performSearch"
    assert isinstance(follow_up[-1], ToolMessage)
    assert follow_up[-1].content == "no results"


@pytest.mark.asyncio
async def test_tool_result_preview_is_truncated_but_model_gets_full_text(fake_provider, plan_markdown, no_sleep):
    provider = fake_provider({
        "primary": [_call("searchCodeExamples", query="react hook"), ModelResponse(text=plan_markdown)],
    })
    events = await _run(_engine(_structured_profile(long_search), provider, no_sleep, preview_chars=200))

    result_event = next(e for e in events if e.type == EventType.TOOL_RESULT)
    assert result_event.payload["result"] == "x" * 200 + "..."
    assert result_event.payload["truncated"] is True
    assert provider.calls[1][1][-1].content == LONG_RESULT


@pytest.mark.asyncio
async def test_tool_failure_becomes_result_text(fake_provider, plan_markdown, no_sleep):
    provider = fake_provider({
        "primary": [_call("brokenTool", query="q"), ModelResponse(text=plan_markdown)],
    })
    events = await _run(_engine(_structured_profile(broken_tool), provider, no_sleep))

    result_event = next(e for e in events if e.type == EventType.TOOL_RESULT)
    assert result_event.payload["result"].startswith("Error executing brokenTool:")
    assert "search backend down" in result_event.payload["result"]
    assert events[-1].payload["status"] == AgentStatus.COMPLETED.value


@pytest.mark.asyncio
async def test_unknown_function_result(fake_provider, plan_markdown, no_sleep):
    provider = fake_provider({
        "primary": [_call("deleteEverything"), ModelResponse(text=plan_markdown)],
    })
    events = await _run(_engine(_structured_profile(), provider, no_sleep))

    result_event = next(e for e in events if e.type == EventType.TOOL_RESULT)
    assert result_event.payload["result"] == "Unknown function: deleteEverything"


@pytest.mark.asyncio
async def test_follow_up_exhaustion_is_fatal(fake_provider, no_sleep):
    """후속 호출은 폴백 없이 재시도만, 소진 시 error"""
    provider = fake_provider({
        "primary": [_call("performSearch", query="q"), TRANSIENT, TRANSIENT],
        "fallback": [],
    })
    events = await _run(_engine(_structured_profile(fake_search), provider, no_sleep))

    assert events[-1].type == EventType.ERROR
    assert provider.calls_for("fallback") == 0
    assert provider.calls_for("primary") == 3


@pytest.mark.asyncio
async def test_tool_round_limit(fake_provider, no_sleep):
    provider = fake_provider({
        "primary": [_call("performSearch", query="a"), _call("performSearch", query="b")],
    })
    events = await _run(_engine(_structured_profile(fake_search), provider, no_sleep, max_tool_rounds=1))

    assert events[-1].type == EventType.ERROR
    assert "Tool call limit" in events[-1].payload["error"]


@pytest.mark.asyncio
async def test_submission_after_tool_round(fake_provider, plan_args, no_sleep):
    provider = fake_provider({
        "primary": [_call("performSearch", query="a"), _submit(plan_args)],
    })
    events = await _run(_engine(_structured_profile(fake_search), provider, no_sleep))

    assert _types(events)[-2:] == [EventType.FINAL_PLAN, EventType.STATUS]
    # submitFinalPlan은 tool_call 이벤트로 노출되지 않음
    assert _types(events).count(EventType.TOOL_CALL) == 1


# ==================== 구조화 출력 검증 / 복구 ====================


@pytest.mark.asyncio
async def test_invalid_submission_is_fatal_without_recovery(fake_provider, plan_args, no_sleep):
    plan_args["finalDecision"] = ""
    provider = fake_provider({"primary": [_submit(plan_args)]})
    events = await _run(_engine(_structured_profile(), provider, no_sleep))

    assert events[-1].type == EventType.ERROR
    assert events[-1].payload["error"] == "Plan validation failed"
    assert events[-1].payload["validationErrors"]
    assert EventType.FINAL_PLAN not in _types(events)
    assert provider.calls_for("primary") == 1


@pytest.mark.asyncio
async def test_unparseable_text_reprompts_once(fake_provider, plan_args, no_sleep):
    provider = fake_provider({"primary": [ModelResponse(text="Use Next.js, it is great."), _submit(plan_args)]})
    events = await _run(_engine(_structured_profile(), provider, no_sleep))

    assert len(_thoughts(events, ThoughtPhase.RECOVERY)) == 1
    assert events[-2].type == EventType.FINAL_PLAN
    assert events[-1].payload["status"] == AgentStatus.COMPLETED.value

    retry_messages = provider.calls[1][1]
    assert isinstance(retry_messages[-2], AIMessage)
    assert retry_messages[-2].content == "Use Next.js, it is great."
    assert isinstance(retry_messages[-1], HumanMessage)
    assert retry_messages[-1].content == get_recovery_reprompt()


@pytest.mark.asyncio
async def test_reprompt_text_can_be_parsed(fake_provider, plan_markdown, no_sleep):
    provider = fake_provider({"primary": [ModelResponse(text="prose"), ModelResponse(text=plan_markdown)]})
    events = await _run(_engine(_structured_profile(), provider, no_sleep))

    plan_event = next(e for e in events if e.type == EventType.FINAL_PLAN)
    assert len(plan_event.payload["plan"]["implementationPlan"]) == 2


@pytest.mark.asyncio
async def test_recovery_failure_is_fatal(fake_provider, no_sleep):
    provider = fake_provider({"primary": [ModelResponse(text="prose"), ModelResponse(text="still prose")]})
    events = await _run(_engine(_structured_profile(), provider, no_sleep))

    assert events[-1].type == EventType.ERROR
    assert events[-1].payload["error"] == "Structured output recovery failed"
    assert events[-1].payload["message"] == RECOVERY_FAILED_MESSAGE
    assert provider.calls_for("primary") == 2


# ==================== 취소 ====================


@pytest.mark.asyncio
async def test_cancelled_before_model_call_stops_silently(fake_provider, plan_args, no_sleep):
    token = CancellationToken()
    token.cancel("user aborted")
    provider = fake_provider({"primary": [_submit(plan_args)]})
    events = await _run(_engine(_structured_profile(), provider, no_sleep), token=token)

    assert _types(events) == [EventType.STATUS, EventType.THOUGHT]
    assert provider.calls == []


@pytest.mark.asyncio
async def test_cancel_during_backoff_stops_run(fake_provider, plan_args):
    token = CancellationToken()

    async def cancelling_sleep(delay: float) -> None:
        token.cancel("user aborted")

    provider = fake_provider({"primary": [TRANSIENT, _submit(plan_args)], "fallback": [_submit(plan_args)]})
    events = await _run(_engine(_structured_profile(), provider, cancelling_sleep), token=token)

    assert EventType.ERROR not in _types(events)
    assert EventType.FINAL_PLAN not in _types(events)
    assert provider.calls_for("primary") == 1
    assert provider.calls_for("fallback") == 0
