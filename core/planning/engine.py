"""
Agent Protocol Engine

하나의 에이전트 실행을 모델 폴백/재시도, 도구 호출, 구조화 제출, 복구 단계로 구동하고
모든 중간 상태를 StreamEvent로 발행합니다.

에이전트별 차이(시스템 지시, 도구 목록, 출력 계약)는 AgentProfile로 주입하며,
상태 머신 자체는 하나입니다.

흐름:
    RUNNING → thought → 모델 호출(폴백 목록 × 모델당 재시도)
    → [tool_call → tool_result → 후속 호출]*
    → submitFinalPlan 검증 | 자유 텍스트 복구 → 재요청 1회
    → final_plan / final_chunk → COMPLETED
    error는 어느 단계에서든 발생할 수 있으며 실행을 끝냅니다.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, ToolMessage
from langchain_core.tools import BaseTool
from pydantic import ValidationError

from api.schemas.events import AgentStatus, EventFactory, EventSource, StreamEvent, ThoughtPhase
from core.cancellation import CancellationToken, OperationCancelled
from core.config import settings
from core.llm.client import (
    ACCEPTED_FINISH_REASONS,
    ChatProvider,
    FunctionCall,
    ModelInvocationError,
    ModelResponse,
    get_llm_client,
    is_transient_error,
)
from core.llm.prompts import get_recovery_reprompt
from core.planning.markdown_parser import parse_plan_from_markdown
from core.planning.schemas import Plan, plan_to_markdown, validate_plan
from tools.tool_names import TOOL_SUBMIT_FINAL_PLAN

logger = logging.getLogger(__name__)

RECOVERY_FAILED_MESSAGE = "model failed to produce a usable structured result after recovery attempts"


class OutputContract(str, Enum):
    """에이전트 출력 계약"""
    STRUCTURED_PLAN = "structured_plan"
    FREE_TEXT = "free_text"


class ContentBlockedError(Exception):
    """프로바이더 안전 필터에 의해 응답이 차단됨 (재시도 불가)"""


class UnusableResponseError(Exception):
    """후보 없음, 비정상 종료 사유, 빈 응답 (해당 모델 시도 실패)"""


class ToolRoundLimitError(Exception):
    """도구 호출 라운드 상한 초과"""


@dataclass(frozen=True)
class AgentProfile:
    """
    에이전트 설정

    Attributes:
        source: 이벤트 source 값
        display_name: 로그와 메시지에 쓰는 이름
        system_instruction: 고정 시스템 지시
        tools: 모델에 노출할 도구 (submitFinalPlan 포함 가능)
        output_contract: 구조화 Plan 또는 자유 텍스트
        task_reminder: 사용자 과제 뒤에 덧붙이는 지시
    """
    source: EventSource
    display_name: str
    system_instruction: str
    tools: tuple[BaseTool, ...] = ()
    output_contract: OutputContract = OutputContract.FREE_TEXT
    task_reminder: str | None = None


@dataclass
class AgentInput:
    """엔진 실행 입력 (과제 + 이전 대화)"""
    task: str
    history: list[BaseMessage] = field(default_factory=list)


@dataclass
class _RunState:
    messages: list[BaseMessage]
    model_name: str | None = None
    response: ModelResponse | None = None
    submission: FunctionCall | None = None
    last_error: Exception | None = None


class AgentProtocolEngine:
    """
    설정 가능한 단일 에이전트 프로토콜 엔진

    execute()는 StreamEvent를 인과 순서대로 yield하며, error 이벤트 이후에는
    아무것도 yield하지 않습니다. 정상 동작 중에는 예외를 밖으로 던지지 않습니다.
    """

    def __init__(
        self,
        profile: AgentProfile,
        llm_client: ChatProvider | None = None,
        *,
        models: Sequence[str] | None = None,
        max_retries: int | None = None,
        backoff_base_seconds: float | None = None,
        max_tool_rounds: int | None = None,
        preview_chars: int | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """
        Args:
            profile: 에이전트 설정
            llm_client: 프로바이더 (None이면 전역 LLMClient)
            models: 폴백 목록 (None이면 설정의 primary → fallback)
            max_retries: 모델당 최대 시도 횟수
            backoff_base_seconds: 백오프 기준 초 (대기 = base * 2^attempt)
            max_tool_rounds: 도구 호출 후속 라운드 상한
            preview_chars: tool_result 미리보기 길이
            sleep: 백오프 대기 함수 (테스트 주입용, None이면 취소 가능한 대기)
        """
        self.profile = profile
        self.llm = llm_client or get_llm_client()
        self.models = list(models or settings.model_fallback_list)
        self.max_retries = max_retries or settings.agent_max_retries
        self.backoff_base_seconds = (
            backoff_base_seconds if backoff_base_seconds is not None else settings.agent_backoff_base_seconds
        )
        self.max_tool_rounds = max_tool_rounds or settings.agent_max_tool_rounds
        self.preview_chars = preview_chars or settings.tool_result_preview_chars
        self._sleep = sleep
        self._tools_by_name = {
            tool.name: tool for tool in profile.tools if tool.name != TOOL_SUBMIT_FINAL_PLAN
        }

    @property
    def source(self) -> EventSource:
        return self.profile.source

    @property
    def expects_plan(self) -> bool:
        return self.profile.output_contract == OutputContract.STRUCTURED_PLAN

    # ==================== Public ====================

    async def execute(
        self,
        agent_input: AgentInput,
        cancel_token: CancellationToken | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        에이전트 한 번을 실행하며 이벤트를 발행합니다.

        Args:
            agent_input: 과제와 이전 대화
            cancel_token: 취소 토큰 (취소되면 error 없이 조용히 종료)

        Yields:
            StreamEvent
        """
        token = cancel_token or CancellationToken()
        events = EventFactory(self.profile.source)
        started = time.monotonic()
        name = self.profile.display_name
        state = _RunState(
            messages=[*agent_input.history, HumanMessage(content=self._compose_task(agent_input.task))]
        )

        try:
            yield events.status(AgentStatus.RUNNING, f"{name} started")
            yield events.thought(f"{name} is analyzing the task and planning the approach", ThoughtPhase.ANALYZING)

            async for event in self._generate_with_fallback(state, events, token):
                yield event
            if state.response is None:
                logger.error(f"[{name}] All models exhausted: {state.last_error}")
                yield events.error(
                    "All models exhausted",
                    message=f"Every model in the fallback list failed. Last error: {state.last_error}",
                )
                return

            tool_rounds = 0
            while state.response.function_calls:
                if tool_rounds >= self.max_tool_rounds and not self._has_submission(state.response):
                    raise ToolRoundLimitError(f"Tool call limit of {self.max_tool_rounds} round(s) exceeded")
                async for event in self._dispatch_calls(state, events, token):
                    yield event
                if state.submission is not None:
                    break
                tool_rounds += 1
                yield events.thought("Analyzing tool results", ThoughtPhase.TOOL_FOLLOW_UP)
                async for event in self._generate_with_retry(state, events, token):
                    yield event

            if state.submission is not None:
                try:
                    plan = validate_plan(state.submission.args)
                except ValidationError as e:
                    logger.error(f"[{name}] Plan validation failed: {e.error_count()} error(s)")
                    yield events.error(
                        "Plan validation failed",
                        message="The submitted plan does not match the required schema",
                        validation_errors=json.loads(e.json(include_url=False)),
                    )
                    return
                for event in self._complete_with_plan(plan, events, started):
                    yield event
                return

            text = state.response.text
            if not self.expects_plan:
                yield events.final_chunk(text, is_complete=True, progress=100)
                yield self._completed(events, started, full_analysis=text)
                return

            plan = parse_plan_from_markdown(text)
            if plan is not None:
                logger.info(f"[{name}] Plan recovered from free-text answer")
            else:
                yield events.thought(
                    "The answer was not submitted as a structured plan, asking the model to resubmit",
                    ThoughtPhase.RECOVERY,
                )
                try:
                    async for event in self._reprompt_for_submission(state, events, token):
                        yield event
                    plan = self._plan_from_retry(state.response)
                except ModelInvocationError as e:
                    logger.error(f"[{name}] Recovery retry failed: {e}")
                except ValidationError as e:
                    logger.error(f"[{name}] Resubmitted plan failed validation: {e.error_count()} error(s)")
                    yield events.error(
                        "Plan validation failed",
                        message="The submitted plan does not match the required schema",
                        validation_errors=json.loads(e.json(include_url=False)),
                    )
                    return
                if plan is None:
                    yield events.error("Structured output recovery failed", message=RECOVERY_FAILED_MESSAGE)
                    return

            for event in self._complete_with_plan(plan, events, started):
                yield event

        except OperationCancelled:
            logger.info(f"[{name}] Run cancelled")
            return
        except ContentBlockedError as e:
            logger.error(f"[{name}] Content blocked: {e}")
            yield events.error("Content blocked", message=str(e))
        except Exception as e:
            logger.error(f"[{name}] Run failed: {e}", exc_info=True)
            yield events.error(str(e) or type(e).__name__, message=f"{name} failed")

    # ==================== Model Calls ====================

    async def _generate_with_fallback(
        self, state: _RunState, events: EventFactory, token: CancellationToken
    ) -> AsyncIterator[StreamEvent]:
        """폴백 목록 순서대로 시도하여 첫 성공 모델을 state에 기록"""
        for index, model_name in enumerate(self.models):
            if index > 0:
                logger.warning(f"[{self.profile.display_name}] Falling back to {model_name}")
                yield events.thought(f"Switching to fallback model {model_name}", ThoughtPhase.FALLBACK)
            async for event in self._attempt_model(model_name, state, events, token):
                yield event
            if state.response is not None:
                state.model_name = model_name
                return

    async def _generate_with_retry(
        self, state: _RunState, events: EventFactory, token: CancellationToken
    ) -> AsyncIterator[StreamEvent]:
        """
        성공했던 모델로만 재호출 (폴백 없음, 모델당 재시도만 적용)

        Raises:
            ModelInvocationError: 재시도 소진
        """
        async for event in self._attempt_model(state.model_name, state, events, token):
            yield event
        if state.response is None:
            raise ModelInvocationError(f"Follow-up call to {state.model_name} failed: {state.last_error}")

    async def _attempt_model(
        self,
        model_name: str,
        state: _RunState,
        events: EventFactory,
        token: CancellationToken,
    ) -> AsyncIterator[StreamEvent]:
        """
        한 모델에 대해 최대 max_retries번 시도합니다.
        일시 장애일 때만 2^attempt 백오프 후 재시도하며, 그 외 실패는 즉시 포기합니다.
        """
        state.response = None
        for attempt in range(1, self.max_retries + 1):
            try:
                state.response = await self._call_model(model_name, state, token)
                return
            except (ContentBlockedError, OperationCancelled):
                raise
            except Exception as e:
                state.last_error = e
                if is_transient_error(e) and attempt < self.max_retries:
                    delay = self.backoff_base_seconds * 2 ** attempt
                    logger.warning(
                        f"[{self.profile.display_name}] {model_name} overloaded "
                        f"(attempt {attempt}/{self.max_retries}), retrying in {delay:g}s: {e}"
                    )
                    yield events.thought(
                        f"Model {model_name} is overloaded, retrying in {delay:g}s "
                        f"(attempt {attempt + 1}/{self.max_retries})",
                        ThoughtPhase.RETRYING,
                    )
                    await self._wait(delay, token)
                    continue
                logger.error(
                    f"[{self.profile.display_name}] {model_name} failed "
                    f"(attempt {attempt}/{self.max_retries}): {e}"
                )
                return

    async def _call_model(
        self, model_name: str, state: _RunState, token: CancellationToken
    ) -> ModelResponse:
        token.raise_if_cancelled()
        response = await self.llm.generate(
            model_name,
            list(state.messages),
            self.profile.system_instruction,
            self.profile.tools,
        )
        token.raise_if_cancelled()

        if response.block_reason:
            raise ContentBlockedError(f"Response was blocked by the provider: {response.block_reason}")
        if not response.has_candidates:
            raise UnusableResponseError("No candidates in model response")
        if response.finish_reason not in ACCEPTED_FINISH_REASONS:
            raise UnusableResponseError(f"Unexpected finish reason: {response.finish_reason}")
        if not response.function_calls and not response.text.strip():
            raise UnusableResponseError("Empty response from model")
        return response

    async def _wait(self, delay: float, token: CancellationToken) -> None:
        if self._sleep is None:
            await token.sleep(delay)
            return
        await self._sleep(delay)
        token.raise_if_cancelled()

    # ==================== Tools ====================

    def _is_submission(self, call: FunctionCall) -> bool:
        return self.expects_plan and call.name == TOOL_SUBMIT_FINAL_PLAN

    def _has_submission(self, response: ModelResponse) -> bool:
        return any(self._is_submission(call) for call in response.function_calls)

    async def _dispatch_calls(
        self, state: _RunState, events: EventFactory, token: CancellationToken
    ) -> AsyncIterator[StreamEvent]:
        """
        요청된 도구를 호출 순서대로 하나씩 실행합니다.
        submitFinalPlan을 만나면 그 자리에서 멈추고 state.submission에 기록합니다.
        """
        state.messages.append(state.response.to_message())
        for call in state.response.function_calls:
            if self._is_submission(call):
                state.submission = call
                return
            yield events.tool_call(call.id, call.name, call.args)
            result = await self._invoke_tool(call, token)
            preview, truncated = self._preview(result)
            yield events.tool_result(call.id, call.name, preview, truncated)
            state.messages.append(ToolMessage(content=result, tool_call_id=call.id, name=call.name))

    async def _invoke_tool(self, call: FunctionCall, token: CancellationToken) -> str:
        """도구 실패는 결과 텍스트로 바꾸어 실행을 계속합니다."""
        tool = self._tools_by_name.get(call.name)
        if tool is None:
            logger.warning(f"[{self.profile.display_name}] Unknown function requested: {call.name}")
            return f"Unknown function: {call.name}"

        token.raise_if_cancelled()
        logger.info(f"[{self.profile.display_name}] Invoking tool {call.name} args={call.args}")
        try:
            result: Any = await tool.ainvoke(call.args)
        except Exception as e:
            logger.warning(f"[{self.profile.display_name}] Tool {call.name} failed: {e}")
            result = f"Error executing {call.name}: {e}"
        token.raise_if_cancelled()

        if isinstance(result, str):
            return result
        return json.dumps(result, ensure_ascii=False, default=str)

    def _preview(self, result: str) -> tuple[str, bool]:
        if len(result) <= self.preview_chars:
            return result, False
        return result[: self.preview_chars] + "...", True

    # ==================== Recovery ====================

    async def _reprompt_for_submission(
        self, state: _RunState, events: EventFactory, token: CancellationToken
    ) -> AsyncIterator[StreamEvent]:
        """이전 자유 텍스트를 히스토리에 남기고 구조화 제출을 명시적으로 다시 요청"""
        state.messages.append(AIMessage(content=state.response.text))
        state.messages.append(HumanMessage(content=get_recovery_reprompt()))
        async for event in self._generate_with_retry(state, events, token):
            yield event

    def _plan_from_retry(self, response: ModelResponse) -> Plan | None:
        """
        재요청 응답에서 Plan을 얻습니다.

        Raises:
            ValidationError: submitFinalPlan 인자가 스키마 위반
        """
        for call in response.function_calls:
            if self._is_submission(call):
                return validate_plan(call.args)
        return parse_plan_from_markdown(response.text)

    # ==================== Completion ====================

    def _compose_task(self, task: str) -> str:
        if self.profile.task_reminder:
            return f"{task}\n\n{self.profile.task_reminder}"
        return task

    def _completed(self, events: EventFactory, started: float, full_analysis: str) -> StreamEvent:
        duration = int((time.monotonic() - started) * 1000)
        logger.info(f"[{self.profile.display_name}] Completed in {duration}ms")
        return events.status(
            AgentStatus.COMPLETED,
            f"{self.profile.display_name} completed",
            duration=duration,
            fullAnalysis=full_analysis,
        )

    def _complete_with_plan(self, plan: Plan, events: EventFactory, started: float) -> list[StreamEvent]:
        return [
            events.final_plan(plan.model_dump(mode="json")),
            self._completed(events, started, full_analysis=plan_to_markdown(plan)),
        ]
