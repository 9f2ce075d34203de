"""Finalize steps: citations and disclaimer for the outgoing answer."""

from typing import Any, Dict, List, Set

import structlog

from api.composer.disclaimers import DISCLAIMER_SEPARATOR, get_disclaimer
from api.nodes.researcher import normalize_url
from api.schemas.agent_state import AgentState, Citation

logger = structlog.get_logger(__name__)

SNIPPET_CHARS = 200


def make_snippet(content: str) -> str:
    if len(content) > SNIPPET_CHARS:
        return content[:SNIPPET_CHARS] + "..."
    return content


async def citation_builder_node(state: AgentState) -> Dict[str, Any]:
    citations: List[Citation] = []
    seen: Set[str] = set()

    for doc in state.retrieved_documents:
        meta = doc.metadata
        key = f"{meta.source_url or ''}|{meta.section_title or ''}|{meta.document_title or ''}"
        if key in seen:
            continue
        seen.add(key)
        citations.append(
            Citation(
                title=meta.document_title or "Unknown Document",
                url=meta.source_url,
                document_type=meta.document_type or "document",
                section=meta.section_title,
                effective_date=meta.effective_date,
                snippet=make_snippet(doc.content),
                authority_level=meta.authority_level,
            )
        )

    seen_urls: Set[str] = {normalize_url(c.url) for c in citations if c.url}
    for result in state.web_search_result_urls:
        key = normalize_url(result.url)
        if key in seen_urls:
            continue
        seen_urls.add(key)
        citations.append(
            Citation(title=result.title, url=result.url, document_type="web", snippet=make_snippet(result.content))
        )

    logger.info("citation_builder completed", citations=len(citations), conversation_id=state.conversation_id)
    return {"citations": citations}


async def disclaimer_guard_node(state: AgentState) -> Dict[str, Any]:
    if not state.answer or not state.disclaimer_required:
        return {}

    disclaimer = get_disclaimer(state.topic_domain)
    if disclaimer in state.answer:
        return {"disclaimer": disclaimer}

    logger.info("disclaimer_guard appended disclaimer", topic_domain=state.topic_domain, conversation_id=state.conversation_id)
    return {
        "answer": state.answer + DISCLAIMER_SEPARATOR + disclaimer,
        "disclaimer": disclaimer,
    }
