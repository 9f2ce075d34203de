"""
Web search (Tavily) behind the ``tavily-search`` circuit breaker.

Web search is a fallback source: callers either tolerate failures per query
(``search``) or take an empty result (``search_with_fallback``).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import structlog

from api.schemas.agent_state import WebSearchResult
from api.services.llm_service import with_single_retry
from libs.common.errors import ExternalServiceError
from libs.common.settings import get_settings
from libs.resilience.circuit_breaker import (
    CircuitBreakerConfig,
    get_circuit_breaker,
)

logger = structlog.get_logger(__name__)

TAVILY_SEARCH_URL = "https://api.tavily.com/search"

TAVILY_CIRCUIT_CONFIG = CircuitBreakerConfig(
    name="tavily-search",
    failure_threshold=3,
    reset_timeout=30.0,
    request_timeout=10.0,
    success_threshold=2,
)

tavily_breaker = get_circuit_breaker(TAVILY_CIRCUIT_CONFIG)


def normalize_results(raw_results: List[Dict[str, Any]]) -> List[WebSearchResult]:
    """Structured results; entries without a URL or content are dropped."""
    results = []
    for item in raw_results:
        if not isinstance(item, dict):
            continue
        url = item.get("url")
        content = item.get("content")
        if not url or not content:
            continue
        try:
            score = float(item.get("score") or 0.0)
        except (TypeError, ValueError):
            score = 0.0
        results.append(
            WebSearchResult(url=url, title=item.get("title") or url, content=content, score=score)
        )
    return results


class WebSearchClient:
    """Thin async client for the Tavily search API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        max_results: Optional[int] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: str = TAVILY_SEARCH_URL,
    ):
        settings = get_settings()
        self.api_key = api_key or settings.tavily_api_key
        self.max_results = max_results or settings.max_search_results
        self.base_url = base_url
        self._http_client = http_client

    async def _post(self, query: str) -> Dict[str, Any]:
        payload = {"query": query, "max_results": self.max_results, "search_depth": "basic"}
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

        if self._http_client is not None:
            response = await self._http_client.post(self.base_url, json=payload, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=TAVILY_CIRCUIT_CONFIG.request_timeout) as client:
                response = await client.post(self.base_url, json=payload, headers=headers)

        if response.is_error:
            raise ExternalServiceError(
                TAVILY_CIRCUIT_CONFIG.name,
                f"search request failed with HTTP {response.status_code}",
                upstream_status=response.status_code,
            )
        return response.json()

    async def search_raw(self, query: str) -> List[Dict[str, Any]]:
        data = await tavily_breaker.execute(
            lambda: with_single_retry(lambda: self._post(query), "tavily.search")
        )
        return list(data.get("results") or [])

    async def search(self, query: str) -> List[WebSearchResult]:
        """Normalized results for ``query``; failures propagate."""
        return normalize_results(await self.search_raw(query))

    async def search_with_fallback(self, query: str) -> List[WebSearchResult]:
        """Normalized results for ``query``, or ``[]`` when search is unavailable."""
        raw = await tavily_breaker.execute_with_fallback(
            lambda: with_single_retry(lambda: self._post(query), "tavily.search"),
            fallback=dict,
        )
        return normalize_results(list(raw.get("results") or []))
