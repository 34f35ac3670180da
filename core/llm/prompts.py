"""
System Prompts Module

계획 에이전트(chief_architect, arbiter, refiner)의 시스템 프롬프트를 정의합니다.

YAML 기반 외부 프롬프트 파일(prompts/planning_agents.yaml)을 우선 로드하고,
파일이 없거나 항목이 비어 있으면 아래 인라인 프롬프트로 폴백합니다.
"""
import logging
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

PLANNING_PROMPTS_FILE = "planning_agents.yaml"

# ==================== YAML Prompt Loader ====================
_PROMPTS_DIR = Path(__file__).parent / "prompts"
_yaml_prompt_cache: dict[str, dict[str, Any]] = {}


def _load_yaml_prompt(filename: str) -> dict[str, Any] | None:
    """
    YAML 프롬프트 파일을 로드합니다. 캐싱 적용.

    Args:
        filename: 프롬프트 파일명 (예: "planning_agents.yaml")

    Returns:
        파싱된 YAML dict 또는 None (파일 없음/파싱 실패)
    """
    if filename in _yaml_prompt_cache:
        return _yaml_prompt_cache[filename]

    filepath = _PROMPTS_DIR / filename
    if not filepath.exists():
        logger.debug(f"YAML prompt file not found: {filepath}")
        return None

    try:
        with open(filepath, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Failed to load YAML prompt {filename}: {e}")
        return None

    if not isinstance(data, dict):
        logger.warning(f"YAML prompt {filename} is not a mapping, ignoring")
        return None

    _yaml_prompt_cache[filename] = data
    logger.info(f"Loaded YAML prompt: {filename} (version: {data.get('version', 'unknown')})")
    return data


def reload_yaml_prompts() -> None:
    """YAML 프롬프트 캐시를 클리어하여 다음 호출 시 재로드합니다."""
    _yaml_prompt_cache.clear()
    logger.info("YAML prompt cache cleared")


# ==================== Inline Fallback Prompts ====================
CHIEF_ARCHITECT_SYSTEM_PROMPT = """
You are ChiefArchitectAI, an elite systems architect. Analyse the task, critique your
own first draft (hidden assumptions, weakest link, what could be simpler, better
alternatives), then produce a robust, implementable technical plan.

Use performSearch or searchCodeExamples when you need facts, then submit the result by
calling the submitFinalPlan tool with finalDecision, justification and an
implementationPlan list of {step, title, details}. Never answer in plain text.
"""

ARBITER_SYSTEM_PROMPT = """
You are ArbiterAI, an experienced AI project lead. Weigh a visionary, a pragmatic MVP and
a critical analysis of the idea, letting fatal risks veto everything else, and answer in
Markdown with exactly these headings:

### Final Decision
### Justification
### Implementation Plan
(with **Step N: title** lines followed by details)
"""

REFINER_SYSTEM_PROMPT = """
You are RefinerAI, a veteran CTO. Critically review the plan you are given, find fragile
steps, questionable technology choices and missing considerations, and answer in Markdown
with the headings: ### Critical Analysis, ### Improved Plan, ### Execution Strategy.
"""

CHIEF_ARCHITECT_TASK_REMINDER = (
    "REMINDER: submit your final answer by calling the submitFinalPlan tool, not as text."
)

RECOVERY_REPROMPT = (
    "Your previous answer was plain text. Resubmit the same analysis by calling the "
    "submitFinalPlan tool now. Do not answer in text."
)

_FALLBACK_SYSTEM_PROMPTS = {
    "chief_architect": CHIEF_ARCHITECT_SYSTEM_PROMPT,
    "arbiter": ARBITER_SYSTEM_PROMPT,
    "refiner": REFINER_SYSTEM_PROMPT,
}

_SYSTEM_SECTIONS = ("system_role", "process", "output_contract")


def _agent_section(agent: str) -> dict[str, Any]:
    yaml_data = _load_yaml_prompt(PLANNING_PROMPTS_FILE) or {}
    agents = yaml_data.get("agents") or {}
    return agents.get(agent) or {}


def get_agent_system_prompt(agent: str) -> str:
    """
    에이전트 시스템 프롬프트를 반환합니다.

    Args:
        agent: 에이전트 이름 (chief_architect, arbiter, refiner)

    Returns:
        조합된 시스템 프롬프트 문자열

    Raises:
        KeyError: 알 수 없는 에이전트 이름
    """
    if agent not in _FALLBACK_SYSTEM_PROMPTS:
        raise KeyError(f"Unknown agent prompt: {agent}")

    section = _agent_section(agent)
    parts = [str(section.get(key, "")).strip() for key in _SYSTEM_SECTIONS]
    if not any(parts):
        logger.warning(f"No YAML prompt for '{agent}', falling back to inline prompt")
        return _FALLBACK_SYSTEM_PROMPTS[agent].strip()
    return "\n\n".join(part for part in parts if part)


def get_task_reminder(agent: str) -> str | None:
    """사용자 과제 뒤에 덧붙이는 리마인더 (chief_architect만 사용)"""
    reminder = str(_agent_section(agent).get("task_reminder", "")).strip()
    if reminder:
        return reminder
    return CHIEF_ARCHITECT_TASK_REMINDER if agent == "chief_architect" else None


def get_recovery_reprompt() -> str:
    """자유 텍스트 응답 후 구조화 제출을 다시 요구하는 프롬프트"""
    yaml_data = _load_yaml_prompt(PLANNING_PROMPTS_FILE) or {}
    reprompt = str((yaml_data.get("recovery") or {}).get("reprompt", "")).strip()
    return reprompt or RECOVERY_REPROMPT
