"""
LLM Client Module

OpenAI 채팅 모델을 LangChain으로 감싸 에이전트 프로토콜 엔진에 제공하는 프로바이더 계층.

엔진은 이 모듈의 계약만 사용합니다:
- generate(model_name, messages, system_instruction, tools) -> ModelResponse
- is_transient_error(exc): 재시도 가능한 과부하/일시 장애 판별
"""

import logging
import uuid
from enum import Enum
from functools import lru_cache
from typing import Any, Protocol, Sequence

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_core.tools import BaseTool
from langchain_openai import ChatOpenAI
from pydantic import BaseModel, Field

from core.config import settings

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = frozenset({503, 529})
TRANSIENT_MESSAGE_MARKERS = ("503", "overloaded", "unavailable")


class LLMConfigurationError(Exception):
    """LLM 설정 누락 (API 키 등)"""


class ModelInvocationError(Exception):
    """모델 호출 실패 (재시도 후에도 복구되지 않은 경우)"""


class FinishReason(str, Enum):
    """프로바이더 종료 사유 (정규화)"""
    STOP = "STOP"
    MAX_TOKENS = "MAX_TOKENS"
    TOOL_CALLS = "TOOL_CALLS"
    SAFETY = "SAFETY"
    OTHER = "OTHER"


ACCEPTED_FINISH_REASONS = frozenset({FinishReason.STOP, FinishReason.MAX_TOKENS, FinishReason.TOOL_CALLS})

_OPENAI_FINISH_REASONS = {
    "stop": FinishReason.STOP,
    "length": FinishReason.MAX_TOKENS,
    "tool_calls": FinishReason.TOOL_CALLS,
    "function_call": FinishReason.TOOL_CALLS,
    "content_filter": FinishReason.SAFETY,
}


class FunctionCall(BaseModel):
    """모델이 요청한 도구 호출"""
    id: str = Field(default_factory=lambda: f"call_{uuid.uuid4().hex[:12]}")
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class ModelResponse(BaseModel):
    """프로바이더 응답 (정규화)"""
    text: str = ""
    function_calls: list[FunctionCall] = Field(default_factory=list)
    finish_reason: FinishReason | None = FinishReason.STOP
    block_reason: str | None = None
    has_candidates: bool = True

    def to_message(self) -> AIMessage:
        """후속 호출 히스토리에 넣을 AIMessage로 변환"""
        return AIMessage(
            content=self.text,
            tool_calls=[
                {"id": call.id, "name": call.name, "args": call.args}
                for call in self.function_calls
            ],
        )


class ChatProvider(Protocol):
    """엔진이 의존하는 프로바이더 계약"""

    async def generate(
        self,
        model_name: str,
        messages: Sequence[BaseMessage],
        system_instruction: str,
        tools: Sequence[BaseTool] = (),
    ) -> ModelResponse: ...


def is_transient_error(exc: BaseException) -> bool:
    """
    과부하/일시 장애 여부 판별

    HTTP 상태 코드 503/529, 또는 메시지에 "503", "overloaded", "unavailable"이
    포함된 경우 재시도 대상으로 봅니다.
    """
    status_code = getattr(exc, "status_code", None)
    if status_code in TRANSIENT_STATUS_CODES:
        return True
    message = str(exc).lower()
    return any(marker in message for marker in TRANSIENT_MESSAGE_MARKERS)


def _message_text(message: AIMessage) -> str:
    content = message.content
    if isinstance(content, str):
        return content
    parts: list[str] = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


def to_model_response(message: AIMessage) -> ModelResponse:
    """
    LangChain AIMessage를 ModelResponse로 변환합니다.

    Args:
        message: ChatOpenAI 응답 메시지

    Returns:
        정규화된 ModelResponse
    """
    raw_reason = (message.response_metadata or {}).get("finish_reason")
    finish_reason = (
        _OPENAI_FINISH_REASONS.get(raw_reason, FinishReason.OTHER)
        if raw_reason else FinishReason.STOP
    )
    calls = [
        FunctionCall(name=call["name"], args=call.get("args") or {}, **({"id": call["id"]} if call.get("id") else {}))
        for call in message.tool_calls
    ]
    return ModelResponse(
        text=_message_text(message),
        function_calls=calls,
        finish_reason=finish_reason,
        block_reason="content_filter" if finish_reason == FinishReason.SAFETY else None,
    )


def history_to_messages(turns: Sequence[Any]) -> list[BaseMessage]:
    """
    요청 히스토리(role + parts)를 LangChain 메시지로 변환

    role "model"은 AIMessage, 그 외는 HumanMessage가 됩니다.
    inlineData 파트는 data URL 이미지 블록으로 전달됩니다.

    Args:
        turns: HistoryTurn 모델 또는 같은 형태의 dict 목록

    Returns:
        LangChain 메시지 리스트
    """
    converted: list[BaseMessage] = []
    for turn in turns:
        data = turn.model_dump(exclude_none=True) if isinstance(turn, BaseModel) else dict(turn)
        role = data.get("role", "user")
        parts = data.get("parts") or []

        texts = [part["text"] for part in parts if part.get("text")]
        images = [part["inlineData"] for part in parts if part.get("inlineData")]

        if role == "model":
            converted.append(AIMessage(content="\n".join(texts)))
        elif images:
            blocks: list[str | dict[str, Any]] = [{"type": "text", "text": text} for text in texts]
            blocks.extend(
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:{image['mimeType']};base64,{image['data']}"},
                }
                for image in images
            )
            converted.append(HumanMessage(content=blocks))
        else:
            converted.append(HumanMessage(content="\n".join(texts)))
    return converted


class LLMClient:
    """
    LLM 클라이언트 래퍼 클래스

    모델 이름별 ChatOpenAI 인스턴스를 lazy하게 생성해 재사용합니다.
    재시도는 엔진이 담당하므로 SDK 내부 재시도는 끕니다.
    """

    def __init__(
        self,
        api_key: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> None:
        """
        LLMClient 초기화

        Args:
            api_key: OpenAI API 키 (None이면 설정에서 로드)
            temperature: 온도 파라미터 (None이면 설정에서 로드)
            max_tokens: 최대 토큰 수 (None이면 설정에서 로드)
            **kwargs: ChatOpenAI에 전달할 추가 파라미터
        """
        self.api_key = api_key or settings.openai_api_key
        self.temperature = temperature if temperature is not None else settings.openai_temperature
        self.max_tokens = max_tokens or settings.openai_max_tokens
        self.extra_kwargs = kwargs
        if settings.openai_base_url and "base_url" not in kwargs:
            self.extra_kwargs["base_url"] = settings.openai_base_url

        self._clients: dict[str, BaseChatModel] = {}

    def chat_model(self, model_name: str) -> BaseChatModel:
        """
        모델 이름에 해당하는 ChatOpenAI 인스턴스 반환

        Raises:
            LLMConfigurationError: API 키가 설정되지 않은 경우
        """
        if not self.api_key:
            raise LLMConfigurationError("OPENAI_API_KEY is not configured")
        if model_name not in self._clients:
            self._clients[model_name] = ChatOpenAI(
                api_key=self.api_key,
                model=model_name,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                max_retries=0,
                **self.extra_kwargs,
            )
        return self._clients[model_name]

    async def generate(
        self,
        model_name: str,
        messages: Sequence[BaseMessage],
        system_instruction: str,
        tools: Sequence[BaseTool] = (),
    ) -> ModelResponse:
        """
        시스템 지시와 대화 메시지로 한 번 생성합니다.

        Args:
            model_name: 호출할 모델 이름
            messages: 대화 메시지 (시스템 메시지 제외)
            system_instruction: 고정 시스템 지시
            tools: 모델이 호출할 수 있는 도구 목록

        Returns:
            정규화된 ModelResponse
        """
        chat = self.chat_model(model_name)
        runnable = chat.bind_tools(list(tools)) if tools else chat
        result = await runnable.ainvoke([SystemMessage(content=system_instruction), *messages])
        response = to_model_response(result)
        logger.debug(
            f"Model {model_name} responded: finish={response.finish_reason}, "
            f"calls={[call.name for call in response.function_calls]}, chars={len(response.text)}"
        )
        return response


@lru_cache()
def get_llm_client() -> LLMClient:
    """
    전역 LLMClient 인스턴스를 반환합니다.

    이 함수는 캐시되어 애플리케이션 전체에서 단일 인스턴스를 공유합니다.

    Returns:
        LLMClient 인스턴스
    """
    return LLMClient()
