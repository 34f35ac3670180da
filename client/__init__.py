"""
Orchestration Client

/api/orchestrate 스트림을 소비해 UIStep 목록으로 축약하는 비동기 클라이언트.
"""

from client.reducer import MAX_STEPS, apply_events, finish_stream, reduce_event
from client.schemas import IncomingEvent, OrchestrationState, StepStatus, StepType
from client.session import EventBatcher, OrchestrationClient
from client.transport import SSEFrameDecoder, StreamTransportError, iter_stream_events

__all__ = [
    "MAX_STEPS",
    "EventBatcher",
    "IncomingEvent",
    "OrchestrationClient",
    "OrchestrationState",
    "SSEFrameDecoder",
    "StepStatus",
    "StepType",
    "StreamTransportError",
    "apply_events",
    "finish_stream",
    "iter_stream_events",
    "reduce_event",
]
