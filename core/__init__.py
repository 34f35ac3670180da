"""
Arbiter-Platform Core Module

공통 핵심 로직을 제공하는 모듈:
- LLM 프로바이더와 에이전트 프롬프트
- 계획 엔진과 오케스트레이터
- 파일 세션 저장소
- 전역 설정
"""

from core.config import settings

__all__ = ["settings"]
