"""
Codebase Prompt Builder

업로드된 파일 세션으로 코드베이스 분석 과제 프롬프트를 만듭니다.

컨텍스트 예산을 지키기 위해:
- 작은 파일부터 크기 오름차순으로 포함
- 파일당 최대 문자 수로 자르고, 너무 큰 파일은 목록에만 표시
- 전체 문자 수 / 포함 파일 수 상한 적용
"""

import logging
from dataclasses import dataclass
from enum import Enum

from core.config import settings
from core.sessions.file_types import StoredFile, format_file_size

logger = logging.getLogger(__name__)

CLIPPED_MARKER = "\n\n... [content truncated]"
# 코드 펜스와 경로 헤더에 드는 대략적인 여유분
_FENCE_OVERHEAD = 64


class AnalysisType(str, Enum):
    """코드베이스 분석 유형"""
    FULL = "full"
    SECURITY = "security"
    PERFORMANCE = "performance"
    STRUCTURE = "structure"
    CUSTOM = "custom"


ANALYSIS_INSTRUCTIONS = {
    AnalysisType.FULL: """Review this codebase thoroughly and assess:
- **Code quality**: clean code principles, readability, maintainability
- **Architecture and structure**: folder organisation, modularity, separation of concerns
- **Security**: potential vulnerabilities, best practices
- **Performance**: optimisation opportunities, likely bottlenecks
- **Gaps**: missing features, test coverage, documentation
- **Recommendations**: prioritised, actionable improvements""",
    AnalysisType.SECURITY: """Identify security vulnerabilities and risks in this codebase:
- Common vulnerabilities such as SQL injection, XSS and CSRF
- Handling of sensitive data (passwords, API keys, tokens)
- Authentication and authorisation issues
- Missing input validation and sanitisation
- Dependency risks
- Prioritise the most critical issues""",
    AnalysisType.PERFORMANCE: """Analyse the performance of this codebase:
- Potential performance problems and bottlenecks
- Algorithmic complexity (Big O)
- Memory leak risks
- Database query optimisation
- Network request optimisation
- Caching strategies
- Prioritised optimisation recommendations""",
    AnalysisType.STRUCTURE: """Analyse the architecture and structure of this codebase:
- Project organisation and folder layout
- Use of design patterns
- Modularity and coupling
- Reuse and DRY
- Separation of concerns
- Scalability
- Refactoring recommendations""",
}


@dataclass(frozen=True)
class PromptBudget:
    """프롬프트 크기 상한"""
    max_total_chars: int
    max_files: int
    per_file_max_chars: int
    max_file_size: int

    @classmethod
    def from_settings(cls) -> "PromptBudget":
        return cls(
            max_total_chars=settings.prompt_max_total_chars,
            max_files=settings.prompt_max_files,
            per_file_max_chars=settings.prompt_per_file_max_chars,
            max_file_size=settings.prompt_max_file_size,
        )


def build_codebase_prompt(
    files: list[StoredFile],
    task: str | None = None,
    analysis_type: AnalysisType = AnalysisType.FULL,
    budget: PromptBudget | None = None,
) -> str:
    """
    코드베이스 분석 프롬프트 생성

    Args:
        files: 세션 파일 목록
        task: 추가 과제 (custom 유형에서는 분석 지시 자체)
        analysis_type: 분석 유형
        budget: 크기 상한 (None이면 설정값)

    Returns:
        프롬프트 텍스트
    """
    budget = budget or PromptBudget.from_settings()

    file_list = "\n".join(f"- **{f.path}** ({f.type or 'no extension'}, {format_file_size(f.size)})" for f in files)

    excluded: list[str] = [f.path for f in files if f.size > budget.max_file_size]
    candidates = sorted((f for f in files if f.size <= budget.max_file_size), key=lambda f: f.size)

    included: list[str] = []
    total_chars = 0
    for f in candidates:
        if len(included) >= budget.max_files:
            excluded.append(f.path)
            continue
        raw = f.content or ""
        clipped = raw[: budget.per_file_max_chars] + CLIPPED_MARKER if len(raw) > budget.per_file_max_chars else raw
        projected = total_chars + len(clipped) + len(f.path) + _FENCE_OVERHEAD
        if projected > budget.max_total_chars:
            excluded.append(f.path)
            continue
        included.append(f"```{f.language or 'text'}:{f.path}\n{clipped}\n```")
        total_chars = projected

    logger.info(
        f"Codebase prompt: {len(included)} file(s) included, {len(excluded)} excluded, {total_chars} chars"
    )

    if analysis_type == AnalysisType.CUSTOM:
        instructions = task or "Perform a general code analysis."
    else:
        instructions = ANALYSIS_INSTRUCTIONS[analysis_type]

    sections = [
        "# Codebase Analysis Request",
        f"## Uploaded Files ({len(files)} files)\n\n{file_list}",
        "## File Contents\n\n" + "\n\n".join(included),
    ]
    if excluded:
        names = ", ".join(path.rsplit("/", 1)[-1] for path in excluded[:10])
        more = f" and {len(excluded) - 10} more" if len(excluded) > 10 else ""
        sections.append(
            f"> **Note**: {len(excluded)} file(s) were not included as content because of size limits "
            f"(they appear only in the file list): {names}{more}. Focus on the most important files."
        )
    sections.append(f"## Analysis Request\n\n{instructions}")
    if task and analysis_type != AnalysisType.CUSTOM:
        sections.append(f"### Additional Task\n{task}")
    sections.append(
        "## Expected Output\n\n"
        "Review the codebase above and provide:\n"
        "1. **Final assessment**: a summary of the overall state\n"
        "2. **Detailed analysis**: findings for each category\n"
        "3. **Priority actions**: what to do first\n"
        "4. **Implementation plan**: a step-by-step improvement plan\n\n"
        "**NOTE**: do not reproduce the code, analyse it and make recommendations."
    )
    return "\n\n".join(sections)
