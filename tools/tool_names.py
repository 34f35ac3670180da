"""
Canonical Tool Names

모델에 노출되는 도구 이름은 반드시 아래 상수를 사용합니다.
프롬프트(planning_agents.yaml)와 이벤트의 functionName이 이 이름과 일치해야 합니다.
"""

TOOL_PERFORM_SEARCH = "performSearch"
TOOL_SEARCH_CODE_EXAMPLES = "searchCodeExamples"
TOOL_SUBMIT_FINAL_PLAN = "submitFinalPlan"

# 외부 정보를 조회하는 도구 (엔진이 직접 실행)
CAPABILITY_TOOL_NAMES = [
    TOOL_PERFORM_SEARCH,
    TOOL_SEARCH_CODE_EXAMPLES,
]

__all__ = [
    "TOOL_PERFORM_SEARCH",
    "TOOL_SEARCH_CODE_EXAMPLES",
    "TOOL_SUBMIT_FINAL_PLAN",
    "CAPABILITY_TOOL_NAMES",
]
