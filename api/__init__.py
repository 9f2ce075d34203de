"""Athlete support agent API service.

Main components:
- main.py: FastAPI application and health endpoint
- routers/chat.py: chat endpoints (JSON and Server-Sent Events)
- orchestrators/: LangGraph pipeline, stream adapter and request runner
- nodes/: processing steps
- services/: circuit-breaker protected dependency wrappers
- composer/: prompts, disclaimers, empathy and escalation content
"""

# Avoid importing heavy modules (e.g., FastAPI app) at package import time.
__all__ = []
