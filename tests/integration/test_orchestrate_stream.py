"""
Orchestrate Stream 통합 테스트

FastAPI 앱 전체(미들웨어 → 라우트 → 오케스트레이터 → 엔진 → 도구)를 통과하는 SSE 스트림 검증.
모델 호출만 FakeChatProvider로 대체합니다.
"""

import json
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from core.config import settings
from core.llm.client import FunctionCall, ModelResponse
from main import app

PRIMARY, FALLBACK = settings.model_fallback_list


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


def _frames(body: str) -> list[dict]:
    return [
        json.loads(block[len("data: "):])
        for block in body.split("\n\n")
        if block.startswith("data: ")
    ]


def _post_orchestrate(client: TestClient, provider, payload: dict) -> list[dict]:
    with patch("api.routes.orchestrate.get_llm_client", return_value=provider):
        response = client.post("/api/orchestrate", json=payload)
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    return _frames(response.text)


def _submit(args) -> ModelResponse:
    return ModelResponse(function_calls=[FunctionCall(name="submitFinalPlan", args=args)])


# ==================== /api/orchestrate ====================


def test_direct_submission_stream(client, fake_provider, plan_args):
    provider = fake_provider({PRIMARY: [_submit(plan_args)]})
    frames = _post_orchestrate(client, provider, {"task": "Build a blog", "history": []})

    assert frames[0] == {"type": "stream_start"}
    assert frames[-1] == {"type": "stream_end"}
    events = frames[1:-1]
    assert [e["type"] for e in events] == ["status", "thought", "final_plan", "status", "status"]
    assert events[0]["payload"]["status"] == "RUNNING"
    assert events[2]["payload"]["plan"] == plan_args
    assert events[3]["source"] == "chief_architect"
    assert events[3]["payload"]["status"] == "COMPLETED"
    assert events[4]["source"] == "orchestrator"
    assert events[4]["payload"]["status"] == "COMPLETED"
    assert not [e for e in events if e["type"] in ("tool_call", "tool_result")]


def test_search_then_parsed_plan_stream(client, fake_provider, plan_markdown):
    provider = fake_provider({
        PRIMARY: [
            ModelResponse(function_calls=[FunctionCall(name="performSearch", args={"query": "Next.js auth"})]),
            ModelResponse(text=plan_markdown),
        ],
    })
    with patch("tools.external_search_tool._google_search", AsyncMock(return_value=[])):
        frames = _post_orchestrate(client, provider, {"task": "Add auth to my Next.js app"})

    types = [f["type"] for f in frames]
    assert types.index("tool_call") < types.index("tool_result") < types.index("final_plan")
    call = frames[types.index("tool_call")]["payload"]
    result = frames[types.index("tool_result")]["payload"]
    assert call["functionName"] == "performSearch"
    assert result["toolCallId"] == call["toolCallId"]
    assert result["result"] == 'No meaningful results found for "Next.js auth".'
    plan = frames[types.index("final_plan")]["payload"]["plan"]
    assert plan["finalDecision"] == "Use NextAuth for authentication in the Next.js app."
    assert [s["title"] for s in plan["implementationPlan"]] == ["Install NextAuth", "Configure providers"]


def test_primary_failure_falls_back(client, fake_provider, plan_args):
    provider = fake_provider({
        PRIMARY: [ValueError("invalid request: unknown parameter")],
        FALLBACK: [_submit(plan_args)],
    })
    frames = _post_orchestrate(client, provider, {"task": "Build a blog"})

    assert provider.calls_for(PRIMARY) == 1
    assert provider.calls_for(FALLBACK) == 1
    assert "final_plan" in [f["type"] for f in frames]
    assert not [f for f in frames if f["type"] == "error"]


def test_all_models_failing_streams_error(client, fake_provider):
    provider = fake_provider({
        PRIMARY: [ValueError("invalid request")],
        FALLBACK: [ValueError("invalid request")],
    })
    frames = _post_orchestrate(client, provider, {"task": "Build a blog"})

    errors = [f for f in frames if f["type"] == "error"]
    assert len(errors) == 1
    assert errors[0]["payload"]["error"] == "All models exhausted"
    assert frames[-1] == {"type": "stream_end"}


def test_blank_task_rejected(client):
    response = client.post("/api/orchestrate", json={"task": "   "})
    assert response.status_code == 422


# ==================== 파일 세션 / analyze ====================


def test_upload_list_analyze_delete(client, fake_provider, plan_args):
    upload = client.post(
        "/api/upload-files",
        json={"files": [
            {"name": "app.py", "path": "src/app.py", "content": "print('hi')\n", "size": 12},
            {"name": "logo.png", "content": "", "size": 10},
        ]},
    )
    assert upload.status_code == 200
    body = upload.json()
    session_id = body["sessionId"]
    assert body["count"] == 1
    assert body["unsupportedFiles"] == ["logo.png"]
    assert "content" not in body["files"][0]

    listed = client.get(f"/api/sessions/{session_id}/files").json()
    assert listed["totalFiles"] == 1
    assert listed["files"][0]["path"] == "src/app.py"

    provider = fake_provider({PRIMARY: [_submit(plan_args)]})
    with patch("api.routes.orchestrate.get_llm_client", return_value=provider):
        analyzed = client.post("/api/analyze", json={"sessionId": session_id, "analysisType": "security"})
    assert analyzed.status_code == 200
    assert "final_plan" in [f["type"] for f in _frames(analyzed.text)]
    prompt = provider.calls[0][1][-1].content
    assert "```python:src/app.py" in prompt
    assert "Identify security vulnerabilities" in prompt

    assert client.delete(f"/api/sessions/{session_id}").json() == {"success": True, "sessionId": session_id}
    assert client.get(f"/api/sessions/{session_id}/files").status_code == 404


def test_upload_merges_into_existing_session(client):
    first = client.post("/api/upload-files", json={"files": [{"name": "a.py", "content": "x", "size": 1}]})
    session_id = first.json()["sessionId"]

    second = client.post(
        "/api/upload-files",
        headers={"X-Session-ID": session_id},
        json={"files": [{"name": "a.py", "content": "x", "size": 1}, {"name": "b.py", "content": "y", "size": 1}]},
    )

    body = second.json()
    assert body["sessionId"] == session_id
    assert body["count"] == 1
    assert body["allFilesCount"] == 2
    assert body["duplicateCount"] == 1


def test_analyze_unknown_session(client):
    response = client.post("/api/analyze", json={"sessionId": "missing"})

    assert response.status_code == 400
    assert response.json()["error"] == "Session not found"


# ==================== 기본 엔드포인트 ====================


def test_root_and_health(client):
    root = client.get("/")
    assert root.status_code == 200
    assert root.json()["status"] == "operational"
    assert "x-request-id" in root.headers

    health = client.get("/health")
    assert health.json()["status"] == "healthy"
