"""
SSE(Server-Sent Events) 공통 유틸

스트림 프레임 포맷 헬퍼.
각 프레임은 `data: <json>\\n\\n` 형태이며, stream_start / stream_end 제어 프레임이
이벤트 시퀀스 앞뒤를 감쌉니다.
"""

import json
from typing import Any

from api.schemas.events import StreamEvent

# 스트리밍 응답에 공통으로 사용하는 헤더 (nginx 버퍼링 비활성화)
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

SSE_MEDIA_TYPE = "text/event-stream"

DATA_PREFIX = "data: "
FRAME_DELIMITER = "\n\n"

STREAM_START = "stream_start"
STREAM_END = "stream_end"
CONTROL_FRAME_TYPES = frozenset({STREAM_START, STREAM_END})


def format_data_frame(payload: dict[str, Any]) -> str:
    """JSON 페이로드 하나를 data 프레임으로 직렬화 (ensure_ascii=False)"""
    return f"{DATA_PREFIX}{json.dumps(payload, ensure_ascii=False)}{FRAME_DELIMITER}"


def format_event_frame(event: StreamEvent) -> str:
    """StreamEvent를 data 프레임으로 직렬화"""
    return format_data_frame(event.model_dump(mode="json"))


def stream_start_frame() -> str:
    return format_data_frame({"type": STREAM_START})


def stream_end_frame() -> str:
    return format_data_frame({"type": STREAM_END})
