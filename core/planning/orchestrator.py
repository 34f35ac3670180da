"""
Orchestrator

한 사용자 턴에 대해 하나 이상의 에이전트 실행을 순서대로 구동하고,
모든 이벤트를 그대로 바깥 스트림으로 전달합니다.

- error 이벤트를 보면 전달 후 즉시 중단 (다음 에이전트 실행 안 함)
- 마지막이 아닌 단계는 COMPLETED의 fullAnalysis를 다음 단계 입력으로 넘김
- 모든 단계가 끝나면 orchestrator COMPLETED(totalDuration) 1회 발행
"""

import logging
import time
from typing import Any, AsyncIterator, Sequence

from api.schemas.events import AgentStatus, EventFactory, EventSource, EventType, StreamEvent
from core.cancellation import CancellationToken, OperationCancelled
from core.config import settings
from core.llm.client import history_to_messages
from core.planning.engine import AgentInput, AgentProtocolEngine

logger = logging.getLogger(__name__)


class OrchestrationError(Exception):
    """단계 간 핸드오프 실패 등 오케스트레이션 수준 오류"""


class Orchestrator:
    """에이전트 엔진을 순차 실행하는 오케스트레이터"""

    def __init__(
        self,
        stages: Sequence[AgentProtocolEngine],
        *,
        history_window: int | None = None,
    ) -> None:
        if not stages:
            raise ValueError("Orchestrator requires at least one stage")
        self.stages = list(stages)
        self.history_window = history_window or settings.orchestrator_history_window

    async def run(
        self,
        task: str,
        history: Sequence[Any] = (),
        cancel_token: CancellationToken | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        파이프라인을 실행하며 이벤트를 순서대로 yield합니다.

        Args:
            task: 사용자 과제
            history: 이전 대화 (role + parts). 최근 history_window개만 사용
            cancel_token: 취소 토큰

        Yields:
            StreamEvent
        """
        token = cancel_token or CancellationToken()
        events = EventFactory(EventSource.ORCHESTRATOR)
        started = time.monotonic()

        try:
            recent = list(history)[-self.history_window:] if history else []
            agent_input = AgentInput(task=task, history=history_to_messages(recent))

            for index, engine in enumerate(self.stages):
                token.raise_if_cancelled()
                handoff: str | None = None
                completed = False

                async for event in engine.execute(agent_input, token):
                    if event.type == EventType.ERROR:
                        logger.error(
                            f"Stage {engine.source.value} reported error, halting pipeline: "
                            f"{event.payload.get('error')}"
                        )
                        yield event
                        return
                    if event.is_completion_of(engine.source):
                        completed = True
                        handoff = event.payload.get("fullAnalysis")
                    yield event

                token.raise_if_cancelled()
                is_last = index == len(self.stages) - 1
                if is_last:
                    continue
                if not completed or not handoff or not handoff.strip():
                    raise OrchestrationError(
                        f"{engine.source.value} did not complete or returned empty output"
                    )
                logger.info(f"Handing off {len(handoff)} chars from {engine.source.value} to next stage")
                agent_input = AgentInput(task=handoff)

            total = int((time.monotonic() - started) * 1000)
            logger.info(f"Orchestration completed in {total}ms ({len(self.stages)} stage(s))")
            yield events.status(AgentStatus.COMPLETED, "Orchestration completed", totalDuration=total)

        except OperationCancelled:
            logger.info("Orchestration cancelled")
            return
        except Exception as e:
            logger.error(f"Orchestration failed: {e}", exc_info=True)
            yield events.error(str(e) or type(e).__name__, message="Orchestration failed")
