"""
External Search Tools (performSearch, searchCodeExamples)

에이전트가 추론 중 호출하는 외부 조회 도구.
performSearch는 Google Programmable Search JSON API를 호출하고,
searchCodeExamples는 자주 묻는 주제의 큐레이션된 코드 예시를 반환합니다.
"""

import logging
from typing import Any

import httpx
from langchain_core.tools import tool
from pydantic import BaseModel, Field

from core.config import get_settings
from core.http_client import get_json
from tools.tool_names import TOOL_PERFORM_SEARCH, TOOL_SEARCH_CODE_EXAMPLES

logger = logging.getLogger(__name__)


class SearchCredentialsError(Exception):
    """검색 API 키 또는 엔진 ID 미설정"""


class SearchQueryInput(BaseModel):
    query: str = Field(..., description="검색 쿼리 (예: Next.js authentication best practices)")


class CodeExampleQueryInput(BaseModel):
    query: str = Field(..., description="코드 예시 주제 (예: react hook, nextjs api)")


def _format_search_results(items: list[dict[str, Any]]) -> str:
    """
    검색 결과를 모델이 읽기 쉬운 텍스트로 포맷.
    결과 사이에는 --- 구분자를 둡니다.
    """
    blocks = [
        f"Result {i}:\nTitle: {item.get('title', '')}\nSnippet: {item.get('snippet', '')}\nLink: {item.get('link', '')}"
        for i, item in enumerate(items, 1)
    ]
    return "\n\n---\n\n".join(blocks)


async def _google_search(query: str) -> list[dict[str, Any]]:
    """
    Google Custom Search API 호출.

    Raises:
        SearchCredentialsError: 자격 증명 미설정
        httpx.HTTPError: 요청 실패
    """
    settings = get_settings()
    if not settings.search_configured:
        logger.error("Search credentials missing: CUSTOM_SEARCH_API_KEY / SEARCH_ENGINE_ID")
        raise SearchCredentialsError("Google Search API key or Search Engine ID is not configured.")

    data = await get_json(
        settings.search_api_url,
        params={
            "key": settings.custom_search_api_key,
            "cx": settings.search_engine_id,
            "q": query,
            "num": settings.search_result_count,
        },
        timeout=settings.search_timeout,
    )
    return data.get("items") or []


@tool(TOOL_PERFORM_SEARCH, args_schema=SearchQueryInput)
async def perform_search(query: str) -> str:
    """
    Search the web for up-to-date information on a technology, library or architecture topic.
    Returns the top results with title, snippet and link.
    """
    logger.info(f"performSearch: {query!r}")
    try:
        items = await _google_search(query)
    except httpx.HTTPError as e:
        logger.warning(f"Google Custom Search failed: {e}")
        return f"An error occurred during search: {e}"

    if not items:
        return f'No meaningful results found for "{query}".'
    return _format_search_results(items)


CODE_EXAMPLES: dict[str, str] = {
    "react hook": """// Custom hook: useLocalStorage
import { useState, useEffect } from 'react';

export function useLocalStorage(key: string, initialValue: any) {
    const [value, setValue] = useState(() => {
        if (typeof window === 'undefined') return initialValue;
        const item = window.localStorage.getItem(key);
        return item ? JSON.parse(item) : initialValue;
    });

    useEffect(() => {
        if (typeof window === 'undefined') return;
        window.localStorage.setItem(key, JSON.stringify(value));
    }, [key, value]);

    return [value, setValue];
}""",
    "nextjs api": """// Next.js API route: pages/api/users/[id].ts
import type { NextApiRequest, NextApiResponse } from 'next';

export default async function handler(req: NextApiRequest, res: NextApiResponse) {
    const { id } = req.query;

    if (req.method === 'GET') {
        const user = await getUserById(id as string);
        return res.status(200).json(user);
    }

    if (req.method === 'PUT') {
        const updatedUser = await updateUser(id as string, req.body);
        return res.status(200).json(updatedUser);
    }

    res.setHeader('Allow', ['GET', 'PUT']);
    res.status(405).end(`Method ${req.method} Not Allowed`);
}""",
    "tailwind responsive": """<!-- Tailwind CSS responsive button -->
<button class="w-full px-4 py-2 sm:px-6 sm:py-3 md:px-8 md:py-4
               text-sm sm:text-base md:text-lg
               bg-blue-500 hover:bg-blue-600 transition-colors duration-200">
    Responsive Button
</button>""",
    "fastapi route": """# FastAPI streaming route
from fastapi import APIRouter
from fastapi.responses import StreamingResponse

router = APIRouter(prefix="/api")


@router.get("/items/{item_id}/stream")
async def stream_item(item_id: int) -> StreamingResponse:
    async def event_generator():
        yield f"data: {{\\"id\\": {item_id}}}\\n\\n"

    return StreamingResponse(event_generator(), media_type="text/event-stream")""",
}


@tool(TOOL_SEARCH_CODE_EXAMPLES, args_schema=CodeExampleQueryInput)
async def search_code_examples(query: str) -> str:
    """
    Look up a short reference code example for a common implementation pattern
    (for example: react hook, nextjs api, tailwind responsive, fastapi route).
    """
    logger.info(f"searchCodeExamples: {query!r}")
    normalized = query.lower()
    for key, example in CODE_EXAMPLES.items():
        if key in normalized:
            return example
    return f'No code example found for "{query}".'
