# SPDX-License-Identifier: Apache-2.0

"""
Redis cache service.

Caches derived, read-only views such as the council status report. Every
operation degrades to a cache miss when Redis is unreachable; the cache is
never the source of truth.
"""

import json
from typing import Optional, Dict, Any
import redis
from opentelemetry import trace
import logging

from models.responses import StatusReport

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

STATUS_REPORT_KEY = "codema:status_report"


class RedisService:
    """Redis cache with explicit TTLs on every entry."""

    def __init__(self, redis_url: str, default_ttl: int = 300):
        """
        Initialize the Redis service.

        Args:
            redis_url: Redis connection URL (redis://host:port)
            default_ttl: TTL in seconds used when a call gives none
        """
        self.redis_url = redis_url
        self.default_ttl = default_ttl

        try:
            self.client = redis.from_url(self.redis_url, decode_responses=True)
            logger.info(f"Redis service initialized at {self.redis_url}")
        except Exception as e:
            logger.error(f"Failed to initialize Redis service: {str(e)}")
            self.client = None

    def is_available(self) -> bool:
        """Check if Redis service is available."""
        return self.client is not None

    def set_with_ttl(self, key: str, value: Dict[str, Any], ttl: Optional[int] = None) -> bool:
        """
        Store a JSON value that expires.

        Returns:
            True if stored, False otherwise
        """
        if not self.client:
            return False

        ttl = ttl or self.default_ttl
        with tracer.start_as_current_span("redis.set") as span:
            span.set_attributes({"redis.key": key, "redis.ttl": ttl})
            try:
                result = self.client.setex(key, ttl, json.dumps(value))
                span.set_attribute("redis.result", "success")
                return bool(result)
            except Exception as e:
                span.set_attribute("redis.result", "error")
                logger.warning(f"Redis set failed for key {key}: {str(e)}")
                return False

    def get_json(self, key: str) -> Optional[Dict[str, Any]]:
        """Read a JSON value; missing, unreadable or unreachable all mean None."""
        if not self.client:
            return None

        with tracer.start_as_current_span("redis.get") as span:
            span.set_attribute("redis.key", key)
            try:
                value = self.client.get(key)
            except Exception as e:
                span.set_attribute("redis.result", "error")
                logger.warning(f"Redis get failed for key {key}: {str(e)}")
                return None

            if value is None:
                span.set_attribute("redis.result", "not_found")
                return None

            try:
                return json.loads(value)
            except (json.JSONDecodeError, TypeError):
                span.set_attribute("redis.result", "corrupt")
                logger.warning(f"Discarding unreadable cache entry {key}")
                return None

    def delete(self, key: str) -> bool:
        if not self.client:
            return False

        with tracer.start_as_current_span("redis.delete") as span:
            span.set_attribute("redis.key", key)
            try:
                return bool(self.client.delete(key))
            except Exception as e:
                span.set_attribute("redis.result", "error")
                logger.warning(f"Redis delete failed for key {key}: {str(e)}")
                return False

    # Status report caching

    def cache_status_report(self, report: StatusReport, ttl: Optional[int] = None) -> bool:
        return self.set_with_ttl(STATUS_REPORT_KEY, report.model_dump(mode="json"), ttl)

    def get_cached_status_report(self) -> Optional[StatusReport]:
        data = self.get_json(STATUS_REPORT_KEY)
        if data is None:
            return None
        try:
            return StatusReport.model_validate(data)
        except ValueError as e:
            logger.warning(f"Discarding stale status report cache entry: {e}")
            return None

    def invalidate_status_report(self) -> bool:
        return self.delete(STATUS_REPORT_KEY)

    def health_check(self) -> Dict[str, Any]:
        """Check Redis connection health."""
        if not self.client:
            return {"status": "unavailable"}
        try:
            self.client.ping()
            return {"status": "healthy"}
        except Exception as e:
            return {"status": "unhealthy", "error": str(e)}
