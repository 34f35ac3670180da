"""
공통 HTTP 클라이언트

외부 API(검색 등) 호출 시 중복을 줄이기 위한 비동기 GET 헬퍼.
(재시도·백오프는 호출처에서 처리)
"""

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


async def get_json(
    url: str,
    *,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    timeout: float = 10.0,
) -> dict[str, Any]:
    """
    JSON GET 요청 수행.

    Returns:
        응답 JSON (dict)

    Raises:
        httpx.HTTPStatusError: 4xx/5xx 응답
        httpx.HTTPError: 네트워크 오류
    """
    async with httpx.AsyncClient(timeout=timeout) as client:
        resp = await client.get(url, params=params or {}, headers=headers or {})
        if resp.status_code >= 400:
            logger.warning("HTTP GET %s returned %s: %s", url[:80], resp.status_code, resp.text[:200])
        resp.raise_for_status()
        data = resp.json()
    return data if isinstance(data, dict) else {"items": data}
