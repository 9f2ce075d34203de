"""Researcher step: web search fallback when retrieval confidence is low."""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional, Protocol
from urllib.parse import urlsplit, urlunsplit

import structlog
from langchain_core.language_models import BaseChatModel
from langchain_core.runnables import RunnableConfig

from api.composer.prompts import RESEARCH_QUERY_TEMPLATE, format_conversation_context
from api.nodes.json_output import parse_model_json
from api.schemas.agent_state import AgentState, WebSearchResult, last_user_message
from api.services.llm_service import extract_text_from_response, invoke_llm
from libs.common.settings import get_settings

logger = structlog.get_logger(__name__)

DOMAIN_SEARCH_LABELS: Dict[str, str] = {
    "team_selection": "USOPC team selection procedures",
    "dispute_resolution": "USOPC athlete dispute resolution arbitration",
    "safesport": "SafeSport policy reporting",
    "anti_doping": "USADA anti-doping testing",
    "eligibility": "athlete eligibility requirements",
    "governance": "USOPC NGB governance",
    "athlete_rights": "athlete rights representation USOPC",
}


class WebSearchLike(Protocol):
    async def search(self, query: str) -> List[WebSearchResult]: ...


def build_search_query(state: AgentState, user_message: str) -> str:
    """Deterministic query: domain keywords followed by the user's message."""
    label = DOMAIN_SEARCH_LABELS.get(state.topic_domain or "")
    return f"{label} {user_message}" if label else user_message


def normalize_url(url: str) -> str:
    """Dedup key: lowercased scheme and host, no fragment or trailing slash."""
    parts = urlsplit(url.strip())
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, parts.query, ""))


def merge_results(result_sets: List[List[WebSearchResult]], limit: int) -> List[WebSearchResult]:
    """Dedupe by normalized URL (first seen wins), rank by score descending."""
    seen: Dict[str, WebSearchResult] = {}
    for results in result_sets:
        for result in results:
            key = normalize_url(result.url)
            if key not in seen:
                seen[key] = result
    ranked = sorted(seen.values(), key=lambda r: r.score, reverse=True)
    return ranked[:limit]


def format_result(result: WebSearchResult) -> str:
    return f"[{result.title}]({result.url})\n{result.content}"


async def generate_search_queries(
    state: AgentState,
    user_message: str,
    model: BaseChatModel,
    config: Optional[RunnableConfig] = None,
) -> List[str]:
    """One to three queries; the deterministic query when there is no history or generation fails."""
    fallback = [build_search_query(state, user_message)]
    conversation_context = format_conversation_context(state.messages)
    if not conversation_context:
        return fallback

    max_queries = get_settings().max_research_queries
    try:
        prompt = RESEARCH_QUERY_TEMPLATE.format_messages(
            max_queries=max_queries,
            topic_domain=state.topic_domain or "general",
            sport=state.user_sport or "unknown",
            conversation_context=conversation_context,
            user_message=user_message,
        )
        response = await invoke_llm(model, prompt, config=config)
        parsed = parse_model_json(extract_text_from_response(response))
    except Exception as e:
        logger.warning("Search query generation failed, using keyword query", error=str(e))
        return fallback

    if not isinstance(parsed, list):
        logger.warning("Search query generation returned non-list output")
        return fallback
    queries = [q.strip() for q in parsed if isinstance(q, str) and q.strip()][:max_queries]
    return queries or fallback


def create_researcher_node(web_search: WebSearchLike, model: BaseChatModel) -> Callable[..., Any]:
    """Build the researcher step bound to a search client and a query-writing model."""

    async def researcher_node(state: AgentState, config: Optional[RunnableConfig] = None) -> Dict[str, Any]:
        start_time = time.time()
        empty = {"web_search_results": [], "web_search_result_urls": []}

        user_message = last_user_message(state)
        if not user_message.strip():
            return empty

        try:
            queries = await generate_search_queries(state, user_message, model, config)
            logger.info("researcher start", queries=len(queries), conversation_id=state.conversation_id)

            outcomes = await asyncio.gather(
                *(web_search.search(query) for query in queries),
                return_exceptions=True,
            )

            result_sets: List[List[WebSearchResult]] = []
            for query, outcome in zip(queries, outcomes):
                if isinstance(outcome, BaseException):
                    logger.warning("Search query failed", query=query, error=str(outcome))
                    continue
                result_sets.append(outcome)

            if not result_sets:
                logger.warning("All search queries failed", conversation_id=state.conversation_id)
                return empty

            results = merge_results(result_sets, get_settings().max_search_results)
        except Exception as e:
            logger.error("researcher failed", error=str(e), conversation_id=state.conversation_id)
            return empty

        logger.info(
            "researcher completed",
            results=len(results),
            duration_ms=round((time.time() - start_time) * 1000, 2),
            conversation_id=state.conversation_id,
        )
        return {
            "web_search_results": [format_result(r) for r in results],
            "web_search_result_urls": results,
        }

    return researcher_node
