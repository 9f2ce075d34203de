"""Retriever step: semantic search over the governance knowledge base.

A filtered search by detected organizations and topic domain runs first. When
it returns fewer than ``MIN_NARROW_RESULTS`` documents the search is broadened
to the organizations' documents plus universal ones, ignoring the topic domain.
Merged results are ranked by distance with a credit for authority level.
"""

from __future__ import annotations

import re
import time
from typing import Any, Callable, Dict, List, Optional

import structlog

from api.composer.prompts import format_conversation_context
from api.schemas.agent_state import AgentState, RetrievedDocument, last_user_message
from api.services.vector_store_service import KnowledgeIndex
from libs.common.settings import get_settings

logger = structlog.get_logger(__name__)

BEST_SCORE_WEIGHT = 0.6
AVERAGE_SCORE_WEIGHT = 0.4
MAX_CONTEXT_TERMS_CHARS = 200
MIN_NARROW_RESULTS = 2
MAX_AUTHORITY_BOOST = 0.3

# Highest authority first
AUTHORITY_LEVELS = (
    "law",
    "international_rule",
    "usopc_governance",
    "usopc_policy_procedure",
    "independent_office",
    "anti_doping_national",
    "ngb_policy_procedure",
    "games_event_specific",
    "educational_guidance",
)

_ROLE_PREFIX = re.compile(r"^(User|Assistant):\s*", re.IGNORECASE | re.MULTILINE)


def build_filter(state: AgentState) -> Optional[Dict[str, Any]]:
    """Metadata filter from detected organizations and topic domain."""
    conditions: Dict[str, Any] = {}
    if state.detected_org_ids:
        if len(state.detected_org_ids) == 1:
            conditions["ngb_id"] = state.detected_org_ids[0]
        else:
            conditions["ngb_id"] = {"$in": list(state.detected_org_ids)}
    if state.topic_domain:
        conditions["topic_domain"] = state.topic_domain
    return conditions or None


def build_broad_filter(state: AgentState) -> Optional[Dict[str, Any]]:
    """Detected organizations' documents or universal ones (no ``ngb_id``).

    The topic domain is dropped. Without detected organizations the broad
    search is unfiltered.
    """
    if not state.detected_org_ids:
        return None
    if len(state.detected_org_ids) == 1:
        org_condition: Dict[str, Any] = {"ngb_id": state.detected_org_ids[0]}
    else:
        org_condition = {"ngb_id": {"$in": list(state.detected_org_ids)}}
    return {"$or": [org_condition, {"ngb_id": None}]}


def build_search_query(state: AgentState) -> str:
    """Latest user message, enriched with a short slice of recent context."""
    current = last_user_message(state)
    if not current:
        return ""
    context = format_conversation_context(state.messages, max_turns=2)[:MAX_CONTEXT_TERMS_CHARS]
    terms = re.sub(r"\s+", " ", _ROLE_PREFIX.sub(" ", context)).strip()
    if not terms:
        return current
    return f"{current.lower()} {terms.lower()}"


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def compute_confidence(documents: List[RetrievedDocument]) -> float:
    """Confidence in [0, 1] from vector distances (lower distance is better)."""
    if not documents:
        return 0.0
    scores = [doc.score for doc in documents]
    best = min(scores)
    average = sum(scores) / len(scores)
    return _clamp(1 - best) * BEST_SCORE_WEIGHT + _clamp(1 - average) * AVERAGE_SCORE_WEIGHT


def authority_boost(authority_level: Optional[str]) -> float:
    """Distance credit for a document's authority, ``MAX_AUTHORITY_BOOST`` for law down to 0."""
    if authority_level not in AUTHORITY_LEVELS:
        return 0.0
    position = AUTHORITY_LEVELS.index(authority_level)
    return MAX_AUTHORITY_BOOST * (1 - position / (len(AUTHORITY_LEVELS) - 1))


def merge_results(primary: List[RetrievedDocument], extra: List[RetrievedDocument]) -> List[RetrievedDocument]:
    """``primary`` followed by the documents of ``extra`` with unseen content."""
    merged = list(primary)
    seen = {doc.content for doc in primary}
    for doc in extra:
        if doc.content not in seen:
            seen.add(doc.content)
            merged.append(doc)
    return merged


def rank_documents(documents: List[RetrievedDocument], top_k: int) -> List[RetrievedDocument]:
    """Best ``top_k`` by distance less the authority boost."""
    ranked = sorted(documents, key=lambda doc: doc.score - authority_boost(doc.metadata.authority_level))
    return ranked[:top_k]


async def search_with_broadening(
    index: KnowledgeIndex,
    query: str,
    state: AgentState,
    top_k: int,
    broaden_top_k: int,
) -> List[RetrievedDocument]:
    """Filtered search first; broadened search when it finds too little."""
    documents: List[RetrievedDocument] = []
    search_filter = build_filter(state)
    if search_filter:
        documents = await index.search(query, k=top_k, filter=search_filter)

    if len(documents) < MIN_NARROW_RESULTS:
        broad_filter = build_broad_filter(state)
        logger.info(
            "Broadening retrieval",
            narrow_count=len(documents),
            filter=broad_filter,
            conversation_id=state.conversation_id,
        )
        broad = await index.search(query, k=broaden_top_k, filter=broad_filter)
        documents = merge_results(documents, broad)

    return rank_documents(documents, top_k)


def create_retriever_node(index: KnowledgeIndex) -> Callable[..., Any]:
    """Build the retriever step bound to ``index``."""

    async def retriever_node(state: AgentState) -> Dict[str, Any]:
        start_time = time.time()
        query = build_search_query(state)
        if not query:
            return {"retrieved_documents": [], "retrieval_confidence": 0.0, "retrieval_status": "success"}

        settings = get_settings()
        logger.info(
            "retriever start",
            filter=build_filter(state),
            conversation_id=state.conversation_id,
        )

        try:
            documents = await search_with_broadening(
                index, query, state, settings.retrieval_top_k, settings.retrieval_broaden_top_k
            )
        except Exception as e:
            logger.error(
                "retriever failed, continuing without documents",
                error=str(e),
                error_type=type(e).__name__,
                conversation_id=state.conversation_id,
            )
            return {"retrieved_documents": [], "retrieval_confidence": 0.0, "retrieval_status": "error"}

        confidence = compute_confidence(documents)
        logger.info(
            "retriever completed",
            documents=len(documents),
            confidence=round(confidence, 3),
            duration_ms=round((time.time() - start_time) * 1000, 2),
            conversation_id=state.conversation_id,
        )
        return {
            "retrieved_documents": documents,
            "retrieval_confidence": confidence,
            "retrieval_status": "success",
        }

    return retriever_node
