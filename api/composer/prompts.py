"""
Prompt templates for the athlete support pipeline.

Templates use LangChain ``ChatPromptTemplate`` so every step formats prompts
the same way. Literal JSON braces are doubled for the f-string formatter.
"""

from typing import List, Optional, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from langchain_core.prompts import ChatPromptTemplate

from libs.common.settings import get_settings


# ==============================================================================
# CORE PERSONA
# ==============================================================================

ATHLETE_SUPPORT_SYSTEM_PROMPT = """You are the Athlete Support Assistant, helping athletes in the U.S. Olympic and Paralympic movement understand governance rules that affect them: team selection, dispute resolution, SafeSport, anti-doping, eligibility, NGB governance and athlete rights.

Ground every statement in the provided context. When the context does not cover something, say so and point the athlete to the Athlete Ombuds rather than guessing. You provide information, not legal advice."""


# ==============================================================================
# CLASSIFICATION
# ==============================================================================

CLASSIFIER_SYSTEM_PROMPT = """Classify the athlete's latest message. Respond with ONLY a JSON object, no prose:

{{
  "topicDomain": one of "team_selection", "dispute_resolution", "safesport", "anti_doping", "eligibility", "governance", "athlete_rights", "athlete_safety", "financial_assistance",
  "detectedOrgIds": list of governing-body identifiers mentioned (e.g. "usa-swimming"), empty list if none,
  "queryIntent": one of "factual", "procedural", "deadline", "escalation", "general",
  "hasTimeConstraint": true if the athlete faces a deadline or time pressure,
  "shouldEscalate": true if the situation needs a human contact (abuse, imminent danger, active violation),
  "escalationReason": short reason when shouldEscalate is true,
  "needsClarification": true only if the question cannot be answered without more detail,
  "clarificationQuestion": the question to ask when needsClarification is true,
  "emotionalState": one of "neutral", "distressed", "panicked", "fearful"
}}"""

CLASSIFIER_TEMPLATE = ChatPromptTemplate.from_messages([
    ("system", CLASSIFIER_SYSTEM_PROMPT),
    ("human", "Earlier conversation:\n{conversation_context}\n\nLatest message:\n{user_message}"),
])


# ==============================================================================
# RESEARCH
# ==============================================================================

RESEARCH_QUERY_SYSTEM_PROMPT = """Write web search queries that would find authoritative sources for the athlete's latest question, using the earlier conversation to resolve references like "that rule" or "my appeal".

Return ONLY a JSON array of 1 to {max_queries} short query strings."""

RESEARCH_QUERY_TEMPLATE = ChatPromptTemplate.from_messages([
    ("system", RESEARCH_QUERY_SYSTEM_PROMPT),
    ("human", "Topic: {topic_domain}\nSport: {sport}\n\nEarlier conversation:\n{conversation_context}\n\nLatest question:\n{user_message}"),
])


# ==============================================================================
# SYNTHESIS
# ==============================================================================

SYNTHESIS_TEMPLATE = ChatPromptTemplate.from_messages([
    ("system", ATHLETE_SUPPORT_SYSTEM_PROMPT + "{tone_guidance}"),
    ("human", """## Governance documents
{context}

## Web sources
{web_context}

## Conversation so far
{summary}{conversation_context}

## Athlete
Sport: {sport}

## Question
{question}
{revision_guidance}
Answer the question directly. Name the documents, sections, deadlines and contacts that apply."""),
])

REVISION_GUIDANCE = """
## Reviewer feedback on your previous draft
{critique}
Address this feedback in the new answer.
"""


# ==============================================================================
# QUALITY CHECK
# ==============================================================================

QUALITY_CHECK_SYSTEM_PROMPT = """You evaluate answers written for athletes. Score from 0.0 to 1.0 for specificity, grounding in the provided context, and completeness.

Issue types: "generic_response", "hallucination_signal", "incomplete", "missing_specificity". Severity: "critical", "major" or "minor".

Respond with ONLY a JSON object:
{{"passed": true or false, "score": 0.0-1.0, "issues": [{{"type": "...", "description": "...", "severity": "..."}}], "critique": "what to improve, empty when passed"}}"""

QUALITY_CHECK_TEMPLATE = ChatPromptTemplate.from_messages([
    ("system", QUALITY_CHECK_SYSTEM_PROMPT),
    ("human", "Question:\n{question}\n\nQuery intent: {query_intent}\n\nContext:\n{context}\n\nAnswer to evaluate:\n{answer}"),
])


# ==============================================================================
# CONVERSATION MEMORY
# ==============================================================================

SUMMARY_SYSTEM_PROMPT = """Summarize this conversation between an athlete and a support assistant in at most 300 words. Keep: organizations and people mentioned, topics discussed, the athlete's emotional state, unresolved questions, and facts about the athlete's situation (sport, role, deadlines). Merge the previous summary with the new turns; drop nothing still relevant."""

SUMMARY_TEMPLATE = ChatPromptTemplate.from_messages([
    ("system", SUMMARY_SYSTEM_PROMPT),
    ("human", "Previous summary:\n{existing_summary}\n\nNew conversation turns:\n{conversation}"),
])


def format_conversation_context(
    messages: Sequence[BaseMessage],
    max_turns: Optional[int] = None,
    max_chars: Optional[int] = None,
    exclude_latest: bool = True,
) -> str:
    """Recent turns as "User:/Assistant:" lines, each truncated.

    The latest message is excluded by default since prompts show it separately.
    """
    settings = get_settings()
    max_turns = max_turns if max_turns is not None else settings.conversation_max_turns
    max_chars = max_chars if max_chars is not None else settings.conversation_max_message_chars

    history: List[BaseMessage] = list(messages[:-1] if exclude_latest else messages)
    # A turn is a user message plus its reply
    history = history[-max_turns * 2:] if max_turns > 0 else []

    lines = []
    for message in history:
        if isinstance(message, HumanMessage):
            role = "User"
        elif isinstance(message, AIMessage):
            role = "Assistant"
        else:
            continue
        content = message.content if isinstance(message.content, str) else str(message.content)
        if len(content) > max_chars:
            content = content[:max_chars] + "..."
        lines.append(f"{role}: {content}")
    return "\n".join(lines)
