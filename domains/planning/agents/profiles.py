"""
Planning Agent Profiles

하나의 AgentProtocolEngine을 설정만 바꿔 세 에이전트로 사용합니다.

- chief_architect: 구조화 Plan 계약, 검색 도구 + submitFinalPlan
- arbiter: 자유 텍스트(마크다운) 계약, 검색 도구
- refiner: 자유 텍스트 계약, 도구 없음 (이전 단계 결과를 다듬음)
"""

from api.schemas.events import EventSource
from core.llm.prompts import get_agent_system_prompt, get_task_reminder
from core.planning.engine import AgentProfile, OutputContract
from tools import RESEARCH_TOOLS, submit_final_plan


def chief_architect_profile() -> AgentProfile:
    """구조화 Plan을 submitFinalPlan으로 제출하는 수석 아키텍트"""
    return AgentProfile(
        source=EventSource.CHIEF_ARCHITECT,
        display_name="ChiefArchitectAI",
        system_instruction=get_agent_system_prompt("chief_architect"),
        tools=(*RESEARCH_TOOLS, submit_final_plan),
        output_contract=OutputContract.STRUCTURED_PLAN,
        task_reminder=get_task_reminder("chief_architect"),
    )


def arbiter_profile() -> AgentProfile:
    """여러 관점을 종합해 마크다운 전략을 쓰는 중재자"""
    return AgentProfile(
        source=EventSource.ARBITER,
        display_name="ArbiterAI",
        system_instruction=get_agent_system_prompt("arbiter"),
        tools=tuple(RESEARCH_TOOLS),
        output_contract=OutputContract.FREE_TEXT,
    )


def refiner_profile() -> AgentProfile:
    return AgentProfile(
        source=EventSource.REFINER,
        display_name="RefinerAI",
        system_instruction=get_agent_system_prompt("refiner"),
        output_contract=OutputContract.FREE_TEXT,
    )
