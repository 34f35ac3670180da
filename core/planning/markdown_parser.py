"""
Markdown Plan Parser

모델이 submitFinalPlan 대신 자유 텍스트로 답했을 때 Plan을 복구하는 파서.

세 개의 섹션 헤더(Final Decision / Justification / Implementation Plan)를
대소문자 구분 없이 찾고, 구현 계획 섹션 안의 "Step N" 마커로 단계를 나눕니다.
어떤 실패든 예외 대신 None을 반환합니다.
"""

import logging
import re

from pydantic import ValidationError

from core.planning.schemas import Plan, PlanStep

logger = logging.getLogger(__name__)

SECTION_DECISION = "decision"
SECTION_JUSTIFICATION = "justification"
SECTION_PLAN = "plan"

_HEADER_RE = re.compile(
    r"^[ \t]*(?P<hashes>#{1,6}[ \t]*)?(?P<bold>\*\*|__)?[ \t]*"
    r"(?P<name>final[ \t]+decision|justification|implementation[ \t]+plan)"
    r"[ \t]*(?:\*\*|__)?[ \t]*(?P<colon>:)?[ \t]*(?:\*\*|__)?",
    re.IGNORECASE | re.MULTILINE,
)

_STEP_RE = re.compile(
    r"^[ \t]*(?:[-*+][ \t]+)?(?:\d+[.)][ \t]+)?(?:#{1,6}[ \t]*)?(?:\*\*|__)?[ \t]*"
    r"step[ \t]+(?P<num>\d+)\b[ \t]*(?:\*\*|__)?[ \t]*[:.)\-]?(?P<title>[^\n]*)$",
    re.IGNORECASE | re.MULTILINE,
)


def _section_key(name: str) -> str:
    lowered = name.lower()
    if lowered.startswith("final"):
        return SECTION_DECISION
    if lowered.startswith("implementation"):
        return SECTION_PLAN
    return SECTION_JUSTIFICATION


def _is_heading(match: re.Match[str], text: str) -> bool:
    """본문 문장 첫 단어가 아닌 실제 헤더인지 판정"""
    if match.group("hashes") or match.group("bold") or match.group("colon"):
        return True
    line_end = text.find("\n", match.end())
    rest = text[match.end(): line_end if line_end != -1 else len(text)]
    return not rest.strip()


def _find_sections(text: str) -> dict[str, str] | None:
    """각 섹션의 첫 헤더를 찾아 다음 헤더 직전까지를 본문으로 잘라냅니다."""
    headers: dict[str, re.Match[str]] = {}
    for match in _HEADER_RE.finditer(text):
        key = _section_key(match.group("name"))
        if key not in headers and _is_heading(match, text):
            headers[key] = match

    if len(headers) != 3:
        return None

    ordered = sorted(headers.items(), key=lambda item: item[1].start())
    sections: dict[str, str] = {}
    for index, (key, match) in enumerate(ordered):
        end = ordered[index + 1][1].start() if index + 1 < len(ordered) else len(text)
        sections[key] = text[match.end():end].strip()
    return sections


def _clean_title(raw: str) -> str:
    return raw.strip().strip("*_:").strip().strip("*_").strip()


def _parse_steps(section: str) -> list[PlanStep]:
    matches = list(_STEP_RE.finditer(section))
    steps: list[PlanStep] = []
    for index, match in enumerate(matches):
        end = matches[index + 1].start() if index + 1 < len(matches) else len(section)
        steps.append(
            PlanStep(
                step=int(match.group("num")),
                title=_clean_title(match.group("title")),
                details=section[match.end():end].strip(),
            )
        )
    return steps


def parse_plan_from_markdown(text: str | None) -> Plan | None:
    """
    자유 텍스트에서 Plan을 추출합니다.

    Args:
        text: 모델의 자유 텍스트 응답

    Returns:
        스키마 검증까지 통과한 Plan, 실패 시 None
    """
    if not text or not text.strip():
        return None

    try:
        sections = _find_sections(text)
        if sections is None:
            logger.debug("Plan recovery failed: required section headers missing")
            return None

        steps = _parse_steps(sections[SECTION_PLAN])
        if not steps:
            logger.debug("Plan recovery failed: no step markers in implementation plan")
            return None

        return Plan(
            finalDecision=sections[SECTION_DECISION],
            justification=sections[SECTION_JUSTIFICATION],
            implementationPlan=steps,
        )
    except ValidationError as e:
        logger.debug(f"Plan recovery failed validation: {e.error_count()} error(s)")
        return None
    except Exception as e:
        logger.warning(f"Plan recovery parser error: {e}")
        return None
