"""
Planning Module

계획 에이전트 실행 계층:
- Plan 스키마와 마크다운 복구 파서
- 에이전트 프로토콜 엔진
- 다단계 오케스트레이터
- 코드베이스 분석 프롬프트 빌더
"""
