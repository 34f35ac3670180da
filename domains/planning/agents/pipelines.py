"""
Planning Pipelines

요청 모드별로 오케스트레이터를 조립합니다.

- architect: chief_architect 단독 (구조화 Plan)
- committee: arbiter → refiner (arbiter의 fullAnalysis를 refiner가 다듬음)
"""

import logging
from enum import Enum
from typing import Any

from core.llm.client import ChatProvider
from core.planning.engine import AgentProtocolEngine
from core.planning.orchestrator import Orchestrator
from domains.planning.agents.profiles import (
    arbiter_profile,
    chief_architect_profile,
    refiner_profile,
)

logger = logging.getLogger(__name__)


class PipelineMode(str, Enum):
    """오케스트레이션 모드"""
    ARCHITECT = "architect"
    COMMITTEE = "committee"


def build_orchestrator(
    mode: PipelineMode = PipelineMode.ARCHITECT,
    llm_client: ChatProvider | None = None,
    **engine_options: Any,
) -> Orchestrator:
    """
    모드에 맞는 오케스트레이터 생성

    Args:
        mode: 파이프라인 모드
        llm_client: 프로바이더 (None이면 전역 LLMClient)
        **engine_options: AgentProtocolEngine 추가 인자 (models, sleep 등)

    Returns:
        Orchestrator 인스턴스
    """
    if mode == PipelineMode.COMMITTEE:
        profiles = [arbiter_profile(), refiner_profile()]
    else:
        profiles = [chief_architect_profile()]

    logger.debug(f"Building {mode.value} pipeline: {[p.display_name for p in profiles]}")
    return Orchestrator(
        [AgentProtocolEngine(profile, llm_client, **engine_options) for profile in profiles]
    )
