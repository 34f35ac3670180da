"""
API Middleware Module

FastAPI 미들웨어를 구현합니다.
- 로깅 + 요청 ID (raw ASGI: SSE 스트림 본문을 버퍼링하지 않음)
- 예외 처리 (응답 시작 전 예외만 JSON 에러로 변환)

두 미들웨어 모두 raw ASGI로 작성되어 StreamingResponse가 그대로 흘러갑니다.
"""

import json
import logging
import time
import uuid

from fastapi import status
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = b"x-request-id"


class RawRequestLoggingMiddleware:
    """
    로깅만 수행하는 raw ASGI 미들웨어.
    응답 본문을 읽거나 버퍼링하지 않아 SSE 스트림이 그대로 클라이언트로 전달됩니다.
    요청 ID는 scope["state"]에 기록되어 request.state.request_id로 읽을 수 있습니다.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return
        request_id = str(uuid.uuid4())
        scope["request_id"] = request_id
        scope.setdefault("state", {})["request_id"] = request_id
        start_time = time.time()
        method = scope.get("method", "")
        path = scope.get("path", "")
        client = scope.get("client")
        client_host = client[0] if client else "unknown"
        logger.info(f"[{request_id}] {method} {path} - Client: {client_host}")
        status_code: int | None = None

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status", 0)
                headers = list(message.get("headers", []))
                headers.append((REQUEST_ID_HEADER, request_id.encode("latin-1")))
                message = {**message, "headers": headers}
            await send(message)
            if message["type"] == "http.response.body" and not message.get("more_body", False):
                duration = time.time() - start_time
                logger.info(
                    f"[{request_id}] {method} {path} - Status: {status_code} - Duration: {duration:.3f}s"
                )

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception as e:
            duration = time.time() - start_time
            logger.error(
                f"[{request_id}] Request failed after {duration:.3f}s: {e}",
                exc_info=True,
            )
            raise


class ErrorHandlingMiddleware:
    """
    에러 처리 미들웨어

    응답이 시작되기 전에 발생한 예외를 일관된 JSON 에러 응답으로 바꿉니다.
    스트림이 이미 시작된 뒤의 예외는 라우트가 error 프레임으로 처리하므로 다시 던집니다.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return
        response_started = False

        async def send_wrapper(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except ValueError as e:
            if response_started:
                raise
            logger.warning(f"Validation error: {e}")
            await self._send_json(send, status.HTTP_400_BAD_REQUEST, {
                "error": "Bad request",
                "message": str(e),
            })
        except Exception as e:
            if response_started:
                raise
            logger.error(f"Unhandled exception: {e}", exc_info=True)
            await self._send_json(send, status.HTTP_500_INTERNAL_SERVER_ERROR, {
                "error": "Internal server error",
                "message": "An unexpected error occurred",
            })

    @staticmethod
    async def _send_json(send: Send, status_code: int, content: dict) -> None:
        body = json.dumps(content, ensure_ascii=False).encode("utf-8")
        await send({
            "type": "http.response.start",
            "status": status_code,
            "headers": [
                (b"content-type", b"application/json"),
                (b"content-length", str(len(body)).encode("latin-1")),
            ],
        })
        await send({"type": "http.response.body", "body": body})


def setup_middlewares(app) -> None:
    """
    FastAPI 앱에 미들웨어 추가.
    나중에 추가한 미들웨어가 바깥쪽에서 실행되므로 로깅이 가장 바깥에 위치합니다.
    """
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(RawRequestLoggingMiddleware)
    logger.info("Middlewares configured")
