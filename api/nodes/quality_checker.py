"""Quality checker step: score the draft answer before it is finalized.

The check fails open. Anything that prevents a verdict (no answer, a
dependency failure, unparseable output) produces a passing result so a
broken checker never blocks an answer.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, List, Optional

import structlog
from langchain_core.language_models import BaseChatModel
from langchain_core.runnables import RunnableConfig

from api.composer.prompts import QUALITY_CHECK_TEMPLATE
from api.nodes.json_output import parse_model_json
from api.nodes.synthesizer import build_context
from api.schemas.agent_state import AgentState, QualityCheckResult, QualityIssue, last_user_message
from api.services.llm_service import extract_text_from_response, invoke_llm
from libs.common.errors import CircuitBreakerError
from libs.common.settings import get_settings

logger = structlog.get_logger(__name__)


def passing_result() -> QualityCheckResult:
    return QualityCheckResult(passed=True, score=1.0)


def _parse_issues(raw_issues: Any) -> List[QualityIssue]:
    issues = []
    for item in raw_issues if isinstance(raw_issues, list) else []:
        if not isinstance(item, dict):
            continue
        severity = item.get("severity")
        issues.append(
            QualityIssue(
                type=str(item.get("type") or "unspecified"),
                description=str(item.get("description") or ""),
                severity=severity if severity in ("critical", "major", "minor") else "minor",
            )
        )
    return issues


def evaluate(score: float, issues: List[QualityIssue], pass_threshold: float) -> bool:
    """Passing needs the threshold score and no critical issue."""
    if score < pass_threshold:
        return False
    return not any(issue.severity == "critical" for issue in issues)


def parse_quality_response(raw_text: str, pass_threshold: float) -> QualityCheckResult:
    """Build a result from checker output; ``passed`` is recomputed, not trusted.

    Raises:
        ValueError: output is not a JSON object with a numeric score
    """
    data = parse_model_json(raw_text)
    if not isinstance(data, dict):
        raise ValueError("Quality checker output is not a JSON object")
    score = max(0.0, min(1.0, float(data["score"])))
    issues = _parse_issues(data.get("issues"))
    critique = data.get("critique") if isinstance(data.get("critique"), str) else ""
    return QualityCheckResult(
        passed=evaluate(score, issues, pass_threshold),
        score=score,
        issues=issues,
        critique=critique,
    )


def create_quality_checker_node(model: BaseChatModel) -> Callable[..., Any]:
    """Build the quality checker step bound to ``model``."""

    async def quality_checker_node(state: AgentState, config: Optional[RunnableConfig] = None) -> Dict[str, Any]:
        start_time = time.time()
        question = last_user_message(state)

        if not state.answer or not question:
            return {"quality_check_result": passing_result()}

        logger.info(
            "quality_checker start",
            answer_length=len(state.answer),
            retry_count=state.quality_retry_count,
            conversation_id=state.conversation_id,
        )
        try:
            prompt = QUALITY_CHECK_TEMPLATE.format_messages(
                question=question,
                query_intent=state.query_intent or "general",
                context=build_context(state),
                answer=state.answer,
            )
            response = await invoke_llm(model, prompt, config=config)
            result = parse_quality_response(
                extract_text_from_response(response), get_settings().quality_pass_threshold
            )
        except CircuitBreakerError:
            logger.warning("Quality checker circuit open, passing answer through", conversation_id=state.conversation_id)
            return {"quality_check_result": passing_result()}
        except Exception as e:
            logger.warning(
                "Quality check failed, passing answer through",
                error=str(e),
                error_type=type(e).__name__,
                conversation_id=state.conversation_id,
            )
            return {"quality_check_result": passing_result()}

        logger.info(
            "quality_checker completed",
            passed=result.passed,
            score=result.score,
            issues=len(result.issues),
            duration_ms=round((time.time() - start_time) * 1000, 2),
            conversation_id=state.conversation_id,
        )
        return {"quality_check_result": result}

    return quality_checker_node
