"""Processing steps and the dispatch table the orchestrator is built from.

Every step satisfies the same contract: ``(state) -> partial state update``.
Steps that call a language model also accept the LangGraph ``config`` so
token streaming reaches the orchestrator's event feed.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict

from langchain_core.language_models import BaseChatModel

from api.nodes.clarify import clarify_node
from api.nodes.classifier import create_classifier_node
from api.nodes.emotional_support import emotional_support_node
from api.nodes.escalate import escalate_node
from api.nodes.finalize import citation_builder_node, disclaimer_guard_node
from api.nodes.quality_checker import create_quality_checker_node
from api.nodes.researcher import WebSearchLike, create_researcher_node
from api.nodes.retriever import create_retriever_node
from api.nodes.synthesizer import create_synthesizer_node
from api.services.vector_store_service import KnowledgeIndex

Step = Callable[..., Awaitable[Dict[str, Any]]]

CLASSIFIER = "classifier"
CLARIFY = "clarify"
RETRIEVER = "retriever"
RESEARCHER = "researcher"
SYNTHESIZER = "synthesizer"
QUALITY_CHECKER = "quality_checker"
ESCALATE = "escalate"
EMOTIONAL_SUPPORT = "emotional_support"
CITATION_BUILDER = "citation_builder"
DISCLAIMER_GUARD = "disclaimer_guard"


@dataclass
class StepDependencies:
    """External collaborators the steps are bound to."""

    classifier_model: BaseChatModel
    synthesis_model: BaseChatModel
    knowledge_index: KnowledgeIndex
    web_search: WebSearchLike


def build_step_table(deps: StepDependencies) -> Dict[str, Step]:
    return {
        CLASSIFIER: create_classifier_node(deps.classifier_model),
        CLARIFY: clarify_node,
        RETRIEVER: create_retriever_node(deps.knowledge_index),
        RESEARCHER: create_researcher_node(deps.web_search, deps.classifier_model),
        SYNTHESIZER: create_synthesizer_node(deps.synthesis_model),
        QUALITY_CHECKER: create_quality_checker_node(deps.classifier_model),
        ESCALATE: escalate_node,
        EMOTIONAL_SUPPORT: emotional_support_node,
        CITATION_BUILDER: citation_builder_node,
        DISCLAIMER_GUARD: disclaimer_guard_node,
    }


__all__ = [
    "CLASSIFIER",
    "CLARIFY",
    "RETRIEVER",
    "RESEARCHER",
    "SYNTHESIZER",
    "QUALITY_CHECKER",
    "ESCALATE",
    "EMOTIONAL_SUPPORT",
    "CITATION_BUILDER",
    "DISCLAIMER_GUARD",
    "Step",
    "StepDependencies",
    "build_step_table",
]
