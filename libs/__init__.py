"""Shared libraries for the athlete support agent.

This package contains reusable components:
- common: configuration and the error taxonomy
- resilience: circuit breakers for external dependencies
- caching: Redis client management
- memory: conversation summary memory
"""
