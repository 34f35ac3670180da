"""
Stream Transport (client side)

`data: <json>` 프레임으로 이루어진 스트림 응답을 IncomingEvent로 디코딩합니다.

- 네트워크 읽기 경계에서 잘린 프레임은 버퍼에 남겨 두었다가 다음 조각과 합쳐 다시 분리
- stream_start / stream_end 제어 프레임은 이벤트로 내보내지 않고 플래그만 기록
- 깨진 프레임은 경고 로그를 남기고 건너뜀 (스트림 전체를 중단하지 않음)
"""

import json
import logging
from typing import AsyncIterator

import httpx
from pydantic import ValidationError

from api.sse_utils import CONTROL_FRAME_TYPES, DATA_PREFIX, STREAM_END, STREAM_START
from client.schemas import IncomingEvent

logger = logging.getLogger(__name__)


class StreamTransportError(Exception):
    """스트림 응답을 받을 수 없는 경우 (HTTP 오류 상태, 연결 실패)"""


class SSEFrameDecoder:
    """증분 SSE 프레임 디코더"""

    def __init__(self) -> None:
        self._buffer = ""
        self.started = False
        self.ended = False
        self.malformed_count = 0

    def feed(self, chunk: str) -> list[IncomingEvent]:
        """
        수신한 텍스트 조각을 넣고 완성된 이벤트들을 반환합니다.

        마지막 줄바꿈 뒤의 미완성 줄은 다음 feed()까지 버퍼에 남습니다.
        """
        self._buffer += chunk
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        events: list[IncomingEvent] = []
        for line in lines:
            event = self._decode_line(line)
            if event is not None:
                events.append(event)
        return events

    def close(self) -> list[IncomingEvent]:
        """스트림 종료 시 버퍼에 남은 마지막 줄을 처리"""
        remaining, self._buffer = self._buffer, ""
        event = self._decode_line(remaining)
        return [event] if event is not None else []

    def _decode_line(self, line: str) -> IncomingEvent | None:
        line = line.rstrip("\r")
        if not line.startswith(DATA_PREFIX):
            return None
        raw = line[len(DATA_PREFIX):]
        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("frame is not a JSON object")
            if data.get("type") in CONTROL_FRAME_TYPES and "payload" not in data:
                self._handle_control(data["type"])
                return None
            return IncomingEvent.model_validate(data)
        except (ValueError, ValidationError) as e:
            # json.JSONDecodeError는 ValueError의 하위 클래스
            self.malformed_count += 1
            logger.warning(f"Skipping malformed stream frame: {e} (line: {line[:120]!r})")
            return None

    def _handle_control(self, frame_type: str) -> None:
        if frame_type == STREAM_START:
            self.started = True
            logger.debug("Stream started")
        elif frame_type == STREAM_END:
            self.ended = True
            logger.debug("Stream ended")


async def iter_stream_events(response: httpx.Response) -> AsyncIterator[IncomingEvent]:
    """
    httpx 스트리밍 응답에서 이벤트를 순서대로 yield합니다.

    Args:
        response: client.stream(...)으로 연 응답

    Raises:
        StreamTransportError: HTTP 오류 상태 또는 읽기 중 연결 오류
    """
    if response.status_code >= 400:
        await response.aread()
        raise StreamTransportError(f"HTTP error! status: {response.status_code}")

    decoder = SSEFrameDecoder()
    try:
        async for text in response.aiter_text():
            for event in decoder.feed(text):
                yield event
    except httpx.HTTPError as e:
        raise StreamTransportError(f"Stream read failed: {e}") from e

    for event in decoder.close():
        yield event
    if not decoder.ended:
        logger.warning("Stream closed without stream_end frame")
