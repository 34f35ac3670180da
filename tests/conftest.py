"""
공용 테스트 픽스처

- FakeChatProvider: 모델 이름별로 스크립트된 응답(또는 예외)을 순서대로 돌려주는 프로바이더
- 유효한 Plan 인자 / 파싱 가능한 마크다운 답변
"""

from typing import Any, Sequence

import pytest
from unittest.mock import AsyncMock

from core.llm.client import ModelResponse


class FakeChatProvider:
    """ChatProvider 계약을 따르는 테스트용 프로바이더"""

    def __init__(self, script: dict[str, list[Any]]) -> None:
        self.script = {name: list(items) for name, items in script.items()}
        self.calls: list[tuple[str, list[Any]]] = []

    def calls_for(self, model_name: str) -> int:
        return sum(1 for name, _ in self.calls if name == model_name)

    async def generate(
        self,
        model_name: str,
        messages: Sequence[Any],
        system_instruction: str,
        tools: Sequence[Any] = (),
    ) -> ModelResponse:
        self.calls.append((model_name, list(messages)))
        queue = self.script.get(model_name) or []
        if not queue:
            raise AssertionError(f"No scripted response left for {model_name}")
        item = queue.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


VALID_PLAN_ARGS = {
    "finalDecision": "Build the blog with Next.js and a headless CMS",
    "justification": "Static generation keeps pages fast and the CMS lets editors publish without deploys.",
    "implementationPlan": [
        {"step": 1, "title": "Scaffold the project", "details": "Run create-next-app and add Tailwind."},
        {"step": 2, "title": "Connect the CMS", "details": "Fetch posts in getStaticProps and render them."},
    ],
}

PLAN_MARKDOWN = """Here is my recommendation.

### Final Decision
Use NextAuth for authentication in the Next.js app.

### Justification
It supports OAuth providers out of the box and stores sessions securely.

### Implementation Plan
**Step 1: Install NextAuth**
Add next-auth to the project dependencies.

**Step 2: Configure providers**
Create the auth route and register the GitHub provider.
"""


@pytest.fixture
def fake_provider():
    """FakeChatProvider 생성 팩토리"""
    return FakeChatProvider


@pytest.fixture
def plan_args() -> dict[str, Any]:
    return {
        **VALID_PLAN_ARGS,
        "implementationPlan": [dict(step) for step in VALID_PLAN_ARGS["implementationPlan"]],
    }


@pytest.fixture
def plan_markdown() -> str:
    return PLAN_MARKDOWN


@pytest.fixture
def no_sleep() -> AsyncMock:
    """백오프 대기를 기록만 하는 sleep"""
    return AsyncMock(return_value=None)
