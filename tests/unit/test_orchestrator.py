"""
Orchestrator 단위 테스트

단계 순차 실행, 핸드오프, error 즉시 중단, 최종 COMPLETED 검증
"""

import pytest

from api.schemas.events import AgentStatus, EventClock, EventFactory, EventSource, EventType
from core.cancellation import CancellationToken
from core.llm.client import FunctionCall, ModelResponse
from core.planning.engine import AgentProtocolEngine
from core.planning.orchestrator import Orchestrator
from domains.planning.agents.pipelines import PipelineMode, build_orchestrator
from domains.planning.agents.profiles import arbiter_profile, refiner_profile

ENGINE_OPTIONS = {"models": ["primary", "fallback"], "max_retries": 2}


async def _collect(orchestrator: Orchestrator, task: str = "Build a blog", history=(), token=None) -> list:
    return [event async for event in orchestrator.run(task, history, token)]


def _committee(provider, no_sleep) -> Orchestrator:
    return Orchestrator([
        AgentProtocolEngine(arbiter_profile(), provider, sleep=no_sleep, **ENGINE_OPTIONS),
        AgentProtocolEngine(refiner_profile(), provider, sleep=no_sleep, **ENGINE_OPTIONS),
    ])


def test_orchestrator_requires_stage():
    with pytest.raises(ValueError):
        Orchestrator([])


@pytest.mark.asyncio
async def test_architect_pipeline_completes_with_orchestrator_status(fake_provider, plan_args, no_sleep):
    provider = fake_provider({
        "primary": [ModelResponse(function_calls=[FunctionCall(name="submitFinalPlan", args=plan_args)])],
    })
    orchestrator = build_orchestrator(PipelineMode.ARCHITECT, llm_client=provider, sleep=no_sleep, **ENGINE_OPTIONS)
    events = await _collect(orchestrator)

    assert [e.type for e in events] == [
        EventType.STATUS, EventType.THOUGHT, EventType.FINAL_PLAN, EventType.STATUS, EventType.STATUS,
    ]
    final = events[-1]
    assert final.source == EventSource.ORCHESTRATOR
    assert final.payload["status"] == AgentStatus.COMPLETED.value
    assert final.payload["totalDuration"] >= 0


@pytest.mark.asyncio
async def test_committee_hands_off_full_analysis(fake_provider, no_sleep):
    """arbiter의 fullAnalysis가 refiner의 과제가 됨"""
    provider = fake_provider({
        "primary": [ModelResponse(text="Arbiter analysis"), ModelResponse(text="Refined answer")],
    })
    events = await _collect(_committee(provider, no_sleep))

    sources = [e.source for e in events]
    # arbiter 이벤트가 모두 끝난 뒤 refiner 시작
    last_arbiter = max(i for i, s in enumerate(sources) if s == EventSource.ARBITER)
    first_refiner = sources.index(EventSource.REFINER)
    assert last_arbiter < first_refiner

    refiner_messages = provider.calls[1][1]
    assert len(refiner_messages) == 1
    assert refiner_messages[0].content == "Arbiter analysis"
    assert events[-1].source == EventSource.ORCHESTRATOR


@pytest.mark.asyncio
async def test_error_halts_pipeline(fake_provider, no_sleep):
    provider = fake_provider({"primary": [ValueError("bad request")], "fallback": [ValueError("bad request")]})
    events = await _collect(_committee(provider, no_sleep))

    assert events[-1].type == EventType.ERROR
    assert events[-1].source == EventSource.ARBITER
    assert all(e.source != EventSource.REFINER for e in events)
    assert all(e.source != EventSource.ORCHESTRATOR for e in events)


@pytest.mark.asyncio
async def test_history_is_trimmed_to_window(fake_provider, no_sleep):
    provider = fake_provider({"primary": [ModelResponse(text="ok")]})
    orchestrator = Orchestrator(
        [AgentProtocolEngine(arbiter_profile(), provider, sleep=no_sleep, **ENGINE_OPTIONS)],
        history_window=2,
    )
    history = [
        {"role": "user" if i % 2 == 0 else "model", "parts": [{"text": f"turn {i}"}]}
        for i in range(6)
    ]
    await _collect(orchestrator, history=history)

    messages = provider.calls[0][1]
    # 최근 2턴 + 현재 과제
    assert [m.content for m in messages[:2]] == ["turn 4", "turn 5"]
    assert len(messages) == 3


@pytest.mark.asyncio
async def test_empty_handoff_is_orchestration_error(fake_provider, no_sleep):
    """완료했지만 넘길 결과가 없으면 orchestrator error"""

    class SilentEngine:
        source = EventSource.ARBITER

        async def execute(self, agent_input, token):
            yield _factory_completed()

    provider = fake_provider({"primary": []})
    orchestrator = Orchestrator([
        SilentEngine(),
        AgentProtocolEngine(refiner_profile(), provider, sleep=no_sleep, **ENGINE_OPTIONS),
    ])
    events = await _collect(orchestrator)

    assert events[-1].type == EventType.ERROR
    assert events[-1].source == EventSource.ORCHESTRATOR
    assert "did not complete or returned empty output" in events[-1].payload["error"]
    assert provider.calls == []


def _factory_completed():
    return EventFactory(EventSource.ARBITER).status(AgentStatus.COMPLETED, "done", fullAnalysis="  ")


@pytest.mark.asyncio
async def test_cancelled_run_emits_nothing_more(fake_provider, no_sleep):
    token = CancellationToken()
    token.cancel()
    provider = fake_provider({"primary": [ModelResponse(text="unused")]})
    events = await _collect(_committee(provider, no_sleep), token=token)

    assert events == []
    assert provider.calls == []


def test_shared_clock_keeps_stream_timestamps_non_decreasing():
    """벽시계가 뒤로 가도 서로 다른 source의 이벤트 timestamp는 역행하지 않음"""
    readings = iter([10.0, 9.0, 8.5])
    clock = EventClock(now=lambda: next(readings))
    architect = EventFactory(EventSource.CHIEF_ARCHITECT, clock=clock)
    orchestrator = EventFactory(EventSource.ORCHESTRATOR, clock=clock)

    events = [
        architect.thought("a"),
        architect.status(AgentStatus.COMPLETED, "done"),
        orchestrator.status(AgentStatus.COMPLETED, "done", totalDuration=1),
    ]

    assert [e.timestamp for e in events] == [10000, 10000, 10000]


@pytest.mark.asyncio
async def test_pipeline_timestamps_non_decreasing_across_sources(fake_provider, plan_args, no_sleep):
    provider = fake_provider({"primary": [ModelResponse(function_calls=[FunctionCall(name="submitFinalPlan", args=plan_args)])]})
    events = await _collect(build_orchestrator(PipelineMode.ARCHITECT, provider, sleep=no_sleep, **ENGINE_OPTIONS))

    timestamps = [e.timestamp for e in events]
    assert timestamps == sorted(timestamps)
    assert {e.source for e in events} == {EventSource.CHIEF_ARCHITECT, EventSource.ORCHESTRATOR}
