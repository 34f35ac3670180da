"""
LLM (Large Language Model) Module

OpenAI 채팅 모델 프로바이더 계층과 계획 에이전트 프롬프트를 관리합니다.
"""

from core.llm.client import (
    FinishReason,
    FunctionCall,
    LLMClient,
    ModelResponse,
    get_llm_client,
    is_transient_error,
)

__all__ = [
    "FinishReason",
    "FunctionCall",
    "LLMClient",
    "ModelResponse",
    "get_llm_client",
    "is_transient_error",
]
