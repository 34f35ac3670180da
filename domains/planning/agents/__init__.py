"""
Planning Agents Module

계획 에이전트 설정과 파이프라인 조립을 제공합니다.
"""

from domains.planning.agents.pipelines import PipelineMode, build_orchestrator

__all__ = ["PipelineMode", "build_orchestrator"]
