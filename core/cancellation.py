"""
Cancellation Token

한 번의 오케스트레이션 실행에 대한 협력적 취소 신호.
엔진은 모델 호출, 도구 호출, 백오프 대기 전후마다 토큰을 확인합니다.
"""

import asyncio
import logging

logger = logging.getLogger(__name__)


class OperationCancelled(Exception):
    """취소된 실행에서 다음 단계로 진행하려 할 때 발생"""


class CancellationToken:
    """
    협력적 취소 토큰

    cancel()은 여러 번 호출해도 안전합니다. sleep()은 취소 시 즉시 깨어납니다.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()
            logger.debug(f"Cancellation requested: {reason}")

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled(self.reason or "cancelled")

    async def sleep(self, delay: float) -> None:
        """
        delay초 대기하되, 취소되면 즉시 OperationCancelled를 발생시킵니다.

        Args:
            delay: 대기 시간 (초)
        """
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        raise OperationCancelled(self.reason or "cancelled")
