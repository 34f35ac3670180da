#!/usr/bin/env python3
"""
오케스트레이션 스트림 직접 검증 스크립트

실행 중인 서버에 과제를 보내고, 원시 프레임과 축약된 UIStep 목록을 출력합니다.

사용법:
    python scripts/orchestrate_stream_smoke.py "Build a blog" [architect|committee]
"""

import asyncio
import sys
from datetime import datetime

import httpx

from client import OrchestrationClient, OrchestrationState

BASE_URL = "http://localhost:9000"


def _ts() -> str:
    return datetime.now().strftime("%H:%M:%S.%f")[:-3]


def print_update(state: OrchestrationState) -> None:
    last = state.steps[-1] if state.steps else None
    if last is not None:
        print(f"[{_ts()}] 📦 {len(state.steps)} step(s) - last: {last.type} ({last.status.value})")


async def main(task: str, mode: str) -> int:
    print(f"[{_ts()}] 📤 POST {BASE_URL}/api/orchestrate (mode={mode})")
    print("=" * 80)

    async with httpx.AsyncClient(base_url=BASE_URL, timeout=httpx.Timeout(None, connect=10.0)) as http:
        client = OrchestrationClient(http_client=http, on_update=print_update)
        state = await client.submit(task, mode=mode)

    print("-" * 80)
    for step in state.steps:
        print(f"  {step.type:<13} {step.status.value:<10} {step.payload.model_dump_json()[:100]}")
    print("=" * 80)

    if state.error:
        print(f"❌ 실패: {state.error}")
        return 1
    print(f"✅ 완료: {len(state.steps)} step(s), totalDuration={state.total_duration}ms")
    return 0


if __name__ == "__main__":
    task_arg = sys.argv[1] if len(sys.argv) > 1 else "Build a blog"
    mode_arg = sys.argv[2] if len(sys.argv) > 2 else "architect"
    sys.exit(asyncio.run(main(task_arg, mode_arg)))
