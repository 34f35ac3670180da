"""
Plan Submission Tool (submitFinalPlan)

에이전트가 최종 Plan을 구조화된 인자로 제출하는 도구.
엔진은 이 도구 호출을 가로채 Plan 스키마로 검증하며, 함수 본문은 실행하지 않습니다.
"""

from typing import Any

from langchain_core.tools import tool

from core.planning.schemas import Plan
from tools.tool_names import TOOL_SUBMIT_FINAL_PLAN


@tool(TOOL_SUBMIT_FINAL_PLAN, args_schema=Plan)
async def submit_final_plan(
    finalDecision: str,
    justification: str,
    implementationPlan: list[Any],
) -> str:
    """
    Submit the final architectural plan. Call this exactly once when the analysis is complete,
    with the final decision, its justification and the ordered implementation steps.
    """
    return f"Plan received with {len(implementationPlan)} step(s)."
