"""
Plan Schemas

최종 구조화 출력(Plan)의 스키마와 변환 헬퍼.
submitFinalPlan 도구 인자, 마크다운 복구 결과, final_plan 이벤트가 모두 이 스키마로 검증됩니다.
"""

from typing import Any

from pydantic import BaseModel, Field, field_validator


class PlanStep(BaseModel):
    """구현 계획의 한 단계"""
    step: int = Field(..., ge=1, description="1부터 시작하는 단계 번호")
    title: str = Field(..., description="단계 제목")
    details: str = Field(..., description="단계 상세 설명")

    @field_validator("title", "details")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v


class Plan(BaseModel):
    """최종 결정, 근거, 단계별 구현 계획으로 구성된 구조화 출력"""
    finalDecision: str = Field(..., description="The final architectural decision")
    justification: str = Field(..., description="Why this decision was made")
    implementationPlan: list[PlanStep] = Field(
        ...,
        min_length=1,
        description="Ordered implementation steps",
    )

    @field_validator("finalDecision", "justification")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v


def validate_plan(args: Any) -> Plan:
    """
    구조화 제출 인자를 Plan으로 검증합니다.

    Args:
        args: 모델이 submitFinalPlan에 넘긴 인자

    Returns:
        검증된 Plan

    Raises:
        pydantic.ValidationError: 타입 또는 필수 필드 위반
    """
    return Plan.model_validate(args)


def plan_to_submission_args(plan: Plan) -> dict[str, Any]:
    """Plan을 submitFinalPlan 인자 형태(dict)로 직렬화"""
    return plan.model_dump(mode="json")


def plan_to_markdown(plan: Plan) -> str:
    """
    Plan을 마크다운 텍스트로 렌더링합니다.

    결과는 markdown_parser.parse_plan_from_markdown으로 다시 읽을 수 있으며,
    다음 단계 에이전트에 넘기는 fullAnalysis로 사용됩니다.
    """
    lines = [
        "### Final Decision",
        plan.finalDecision.strip(),
        "",
        "### Justification",
        plan.justification.strip(),
        "",
        "### Implementation Plan",
    ]
    for item in plan.implementationPlan:
        lines.append(f"**Step {item.step}: {item.title.strip()}**")
        lines.append(item.details.strip())
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"
