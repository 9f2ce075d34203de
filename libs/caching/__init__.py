"""
Redis connection management.

Backs the shared conversation summary store; degrades to ``None`` when Redis
is not configured or unreachable.
"""

from libs.caching.redis_client import close_redis_client, get_redis_client, health_check, reset_redis_client

__all__ = ["get_redis_client", "close_redis_client", "reset_redis_client", "health_check"]
