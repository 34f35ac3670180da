"""
Tools Module

계획 에이전트가 호출할 수 있는 도구들을 포함합니다.
- performSearch: Google Programmable Search 웹 검색
- searchCodeExamples: 큐레이션된 코드 예시 조회
- submitFinalPlan: 최종 Plan 구조화 제출
"""

from tools.external_search_tool import perform_search, search_code_examples
from tools.plan_submission_tool import submit_final_plan

RESEARCH_TOOLS = [perform_search, search_code_examples]

__all__ = [
    "perform_search",
    "search_code_examples",
    "submit_final_plan",
    "RESEARCH_TOOLS",
]
