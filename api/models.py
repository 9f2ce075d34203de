"""Pydantic models for the chat API.

This module defines the request and response models used by the HTTP
endpoints. Agent-level types (state, stream events, output) live in
``api.schemas.agent_state``.
"""

from __future__ import annotations

import time
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from api.schemas.agent_state import AgentInput, ConversationTurn


class ChatRequest(BaseModel):
    """Request model for one chat turn.

    Attributes:
        turns: Conversation so far, oldest first; the last turn is the question
        conversation_id: Stable id used to load and store the running summary
        user_sport: Sport the athlete competes in, if known
        prior_summary: Summary supplied by the caller instead of the stored one
    """

    turns: List[ConversationTurn] = Field(
        ...,
        min_length=1,
        description="Conversation turns, oldest first",
        examples=[[{"role": "user", "content": "How do I appeal a team selection decision?"}]],
    )
    conversation_id: Optional[str] = Field(
        default=None,
        max_length=128,
        description="Conversation identifier",
        examples=["conv_123"],
    )
    user_sport: Optional[str] = Field(
        default=None,
        max_length=100,
        description="Athlete's sport",
        examples=["swimming"],
    )
    prior_summary: Optional[str] = Field(
        default=None,
        max_length=4000,
        description="Summary of earlier turns",
    )

    @field_validator("turns")
    @classmethod
    def last_turn_must_be_user(cls, v: List[ConversationTurn]) -> List[ConversationTurn]:
        """The question being asked is the final user turn."""
        if v[-1].role != "user":
            raise ValueError("The last turn must come from the user")
        if not v[-1].content.strip():
            raise ValueError("The question must not be empty")
        return v

    def to_agent_input(self) -> AgentInput:
        return AgentInput(
            turns=self.turns,
            conversation_id=self.conversation_id,
            user_sport=self.user_sport,
            prior_summary=self.prior_summary,
        )


class ErrorResponse(BaseModel):
    """Error body returned for application errors."""

    error_code: str = Field(description="Machine-readable error code", examples=["CIRCUIT_BREAKER_OPEN"])
    message: str = Field(description="Human-readable message")
    context: Optional[Dict[str, Any]] = None


class HealthResponse(BaseModel):
    """Response model for health check endpoints.

    Attributes:
        status: Health status
        service: Service name
        version: Service version
        timestamp: Unix timestamp
        circuit_breakers: Metrics per registered circuit breaker
    """

    status: Literal["healthy", "degraded"] = Field(description="Health status", examples=["healthy"])
    service: str = Field(description="Service name", examples=["api"])
    version: str = Field(description="Service version", examples=["0.1.0"])
    timestamp: float = Field(default_factory=time.time, description="Unix timestamp")
    circuit_breakers: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict,
        description="Circuit breaker metrics keyed by breaker name",
    )
