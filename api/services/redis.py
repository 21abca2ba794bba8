# SPDX-License-Identifier: Apache-2.0

"""
Redis service for the token blocklist and calendar settings cache.

Uses the Upstash HTTP client. Every operation degrades to a cache miss (or
"not blocked") when Redis is unconfigured or failing, so request handling
never depends on it.
"""

import os
import json
import time
from typing import Optional, Dict, Any
from upstash_redis import Redis
from opentelemetry import trace
import logging

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

CALENDAR_SETTINGS_TTL = 3600
BLOCKLIST_PREFIX = "jwt:blocked:"
CALENDAR_SETTINGS_PREFIX = "calendar:settings:"


class RedisConnectionError(Exception):
    """Raised when Redis connection fails."""
    pass


class RedisService:
    """Upstash-backed cache; a missing client means every lookup misses."""

    def __init__(self, redis_url: Optional[str] = None, redis_token: Optional[str] = None):
        """
        Initialize the Redis service.

        Args:
            redis_url: Upstash Redis HTTP URL
            redis_token: Upstash Redis authentication token
        """
        self.redis_url = redis_url or os.getenv("REDIS_URL")
        self.redis_token = redis_token or os.getenv("REDIS_TOKEN")
        self.client: Optional[Redis] = None

        if not self.redis_url:
            logger.warning("No REDIS_URL configured, blocklist and settings cache disabled")
            return

        try:
            if self.redis_token:
                self.client = Redis(url=self.redis_url, token=self.redis_token)
            else:
                self.client = Redis.from_env()
            if self.client.ping() != "PONG":
                raise RedisConnectionError("Redis ping failed")
            logger.info("Redis service initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize Redis service: {str(e)}")
            self.client = None

    def is_available(self) -> bool:
        """Check if Redis service is available."""
        return self.client is not None

    def is_token_blocked(self, token_id: str) -> bool:
        """
        Check if a JWT token is in the blocklist.

        Raises:
            Exception: Redis errors propagate so the caller can fail closed
        """
        if not self.is_available():
            return False

        with tracer.start_as_current_span("redis.is_token_blocked") as span:
            span.set_attribute("auth.token_id", token_id)

            blocked = self.client.exists(f"{BLOCKLIST_PREFIX}{token_id}") > 0

            span.set_attribute("auth.token_blocked", blocked)
            return blocked

    def get_cached_calendar_settings(self, politician_id: str) -> Optional[Dict[str, Any]]:
        """Get a tenant's cached calendar settings, or None on miss or error."""
        if not self.is_available():
            return None

        key = f"{CALENDAR_SETTINGS_PREFIX}{politician_id}"
        with tracer.start_as_current_span("redis.get_calendar_settings") as span:
            span.set_attribute("politician.id", politician_id)
            try:
                value = self.client.get(key)
                span.set_attribute("redis.result", "hit" if value else "miss")
                return json.loads(value) if value else None
            except json.JSONDecodeError as e:
                logger.error(f"Discarding unreadable cache entry {key}: {str(e)}")
                return None
            except Exception as e:
                span.set_attribute("redis.result", "error")
                logger.error(f"Redis GET {key} failed: {str(e)}")
                return None

    def cache_calendar_settings(self, politician_id: str, settings: Dict[str, Any],
                                ttl_seconds: int = CALENDAR_SETTINGS_TTL) -> bool:
        """Cache a tenant's calendar settings; False when the write did not happen."""
        if not self.is_available():
            return False

        key = f"{CALENDAR_SETTINGS_PREFIX}{politician_id}"
        try:
            result = self.client.setex(key, ttl_seconds, json.dumps(settings))
            return result == "OK" or result is True
        except Exception as e:
            logger.error(f"Redis SETEX {key} failed: {str(e)}")
            return False

    def health_check(self) -> Dict[str, Any]:
        """Ping Redis and report latency."""
        if not self.is_available():
            return {"status": "unavailable", "message": "Redis client not initialized"}

        try:
            start_time = time.time()
            result = self.client.ping()
            return {
                "status": "healthy" if result == "PONG" else "degraded",
                "response_time_ms": round((time.time() - start_time) * 1000, 2)
            }
        except Exception as e:
            return {"status": "unhealthy", "message": str(e)}
