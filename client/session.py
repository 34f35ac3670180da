"""
Orchestration Client Session

스트림을 소비해 한 턴의 OrchestrationState를 유지하는 비동기 클라이언트.

- 이벤트는 EventBatcher에 모았다가 배치 윈도우(300ms)마다 한 번에 reducer로 반영
- 세션당 진행 중인 턴은 최대 하나: 새 제출은 이전 턴을 완전히 취소한 뒤 시작
- 취소 시 요청 태스크 취소, 스트림 응답 닫기, 대기 중 배치 flush, 타이머 해제
- 스트림이 끝나면 남은 running step을 닫고, 전송 실패면 마지막 running step을 error로 표시

중단된 턴의 상태: 대기 중이던 이벤트까지 반영한 뒤 is_aborted=True로 표시하며,
running 상태의 step은 그대로 남습니다.
"""

import asyncio
import logging
from typing import Any, Callable, Sequence

import httpx
from pydantic import BaseModel

from client.reducer import apply_events, finish_stream
from client.schemas import IncomingEvent, OrchestrationState
from client.transport import StreamTransportError, iter_stream_events

logger = logging.getLogger(__name__)

BATCH_INTERVAL_SECONDS = 0.3
DEFAULT_ENDPOINT = "/api/orchestrate"


class EventBatcher:
    """
    이벤트 배치 버퍼

    첫 이벤트가 들어오면 interval 뒤에 flush 타이머를 한 번 예약합니다.
    flush()는 대기 중인 이벤트를 도착 순서 그대로 on_flush에 넘기고 타이머를 해제합니다.
    """

    def __init__(
        self,
        on_flush: Callable[[list[IncomingEvent]], None],
        interval: float = BATCH_INTERVAL_SECONDS,
    ) -> None:
        self._on_flush = on_flush
        self.interval = interval
        self._pending: list[IncomingEvent] = []
        self._timer: asyncio.TimerHandle | None = None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def has_timer(self) -> bool:
        return self._timer is not None

    def add(self, event: IncomingEvent) -> None:
        self._pending.append(event)
        if self._timer is None:
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(self.interval, self.flush)

    def flush(self) -> int:
        """
        대기 중인 이벤트를 즉시 반영합니다.

        Returns:
            반영한 이벤트 수
        """
        self.cancel()
        if not self._pending:
            return 0
        batch, self._pending = self._pending, []
        self._on_flush(batch)
        return len(batch)

    def cancel(self) -> None:
        """예약된 타이머만 해제 (대기 중인 이벤트는 유지)"""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class OrchestrationClient:
    """
    /api/orchestrate 스트림 클라이언트

    Example:
        ```python
        async with httpx.AsyncClient(base_url="http://localhost:9000") as http:
            client = OrchestrationClient(http_client=http)
            state = await client.submit("Build a blog")
            print(state.steps[-1])
        ```
    """

    def __init__(
        self,
        base_url: str = "http://localhost:9000",
        *,
        http_client: httpx.AsyncClient | None = None,
        endpoint: str = DEFAULT_ENDPOINT,
        batch_interval: float = BATCH_INTERVAL_SECONDS,
        on_update: Callable[[OrchestrationState], Any] | None = None,
    ) -> None:
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(None, connect=10.0),
        )
        self.endpoint = endpoint
        self.on_update = on_update
        self.state = OrchestrationState()
        self._batcher = EventBatcher(self._apply_batch, batch_interval)
        self._task: asyncio.Task | None = None
        self._response: httpx.Response | None = None

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def pending_count(self) -> int:
        """아직 reducer에 반영되지 않은 이벤트 수"""
        return self._batcher.pending_count

    # ==================== Public ====================

    async def start(
        self,
        task: str,
        history: Sequence[Any] = (),
        **extra: Any,
    ) -> asyncio.Task:
        """
        새 턴을 시작하고 스트림 소비 태스크를 반환합니다.

        진행 중인 턴이 있으면 먼저 완전히 취소합니다.

        Args:
            task: 사용자 과제
            history: 이전 대화 (HistoryTurn 모델 또는 dict)
            **extra: 요청 본문에 추가할 필드 (mode 등)
        """
        await self._cancel_active()
        self.reset()
        self.state.is_running = True
        body = {
            "task": task,
            "history": [
                turn.model_dump(exclude_none=True) if isinstance(turn, BaseModel) else turn
                for turn in history
            ],
            **extra,
        }
        self._task = asyncio.create_task(self._consume(body))
        return self._task

    async def submit(self, task: str, history: Sequence[Any] = (), **extra: Any) -> OrchestrationState:
        """턴을 시작하고 스트림이 끝날 때까지 기다린 뒤 최종 상태를 반환"""
        running = await self.start(task, history, **extra)
        await asyncio.wait([running])
        return self.state

    async def abort(self) -> None:
        """진행 중인 턴 중단 (대기 중 이벤트는 반영 후 is_aborted 표시)"""
        was_active = self.is_active
        await self._cancel_active()
        if was_active:
            self.state.is_aborted = True
            self.state.is_running = False
            logger.info("Orchestration turn aborted")
            self._notify()

    def reset(self) -> None:
        """상태 초기화 (새 턴 시작 시)"""
        self._batcher.cancel()
        self.state = OrchestrationState()

    async def aclose(self) -> None:
        """진행 중인 턴을 정리하고 소유한 HTTP 클라이언트를 닫습니다."""
        await self._cancel_active()
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "OrchestrationClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ==================== Internal ====================

    async def _cancel_active(self) -> None:
        running, self._task = self._task, None
        if running is not None and not running.done():
            running.cancel()
            # 취소 완료까지 대기 (예외는 태스크 안에 남김)
            await asyncio.wait([running])
        if self._response is not None:
            await self._response.aclose()
            self._response = None
        self._batcher.flush()

    async def _consume(self, body: dict[str, Any]) -> None:
        failure: str | None = None
        try:
            async with self._http.stream("POST", self.endpoint, json=body) as response:
                self._response = response
                async for event in iter_stream_events(response):
                    self._batcher.add(event)
        except (StreamTransportError, httpx.HTTPError) as e:
            logger.error(f"Orchestration stream failed: {e}")
            failure = str(e)
        finally:
            self._response = None

        self._batcher.flush()
        finish_stream(self.state, failure)
        self._notify()

    def _apply_batch(self, events: list[IncomingEvent]) -> None:
        apply_events(self.state, events)
        self._notify()

    def _notify(self) -> None:
        if self.on_update is not None:
            self.on_update(self.state)
