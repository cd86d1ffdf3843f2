# SPDX-License-Identifier: Apache-2.0

"""
Health Check Service

Reports the status of the engine's dependencies (MongoDB, Redis, AMQP), the
notification backlog and process metrics.
"""

import os
import time
import psutil
from typing import Dict, Any, List
from opentelemetry import trace

from domain.errors import StoreError
from models.enums import NotificationStatus
from observability.config import SERVICE_NAME

tracer = trace.get_tracer(__name__)


class HealthCheckService:
    """Dependency and backlog health for the governance engine."""

    def __init__(self, mongodb_service, redis_service, channel_sender, store, clock,
                 environment: str = 'development', service_version: str = '1.0.0'):
        self.mongodb_service = mongodb_service
        self.redis_service = redis_service
        self.channel_sender = channel_sender
        self.store = store
        self.clock = clock
        self.environment = environment
        self.service_version = service_version

    def get_comprehensive_health(self) -> Dict[str, Any]:
        """Get health status including all dependencies, backlog and metrics."""
        with tracer.start_as_current_span("health.comprehensive_check") as span:
            start_time = time.time()

            mongodb_health = self._timed(self.mongodb_service.health_check)
            redis_health = self._timed(self.redis_service.health_check)
            amqp_health = self._check_amqp_health()

            overall_status = self._determine_overall_status([
                mongodb_health["status"],
                redis_health["status"],
                amqp_health["status"]
            ])

            response_time_ms = round((time.time() - start_time) * 1000, 2)

            health_data = {
                "status": overall_status,
                "service": SERVICE_NAME,
                "version": self.service_version,
                "environment": self.environment,
                "timestamp": self.clock.now().isoformat(),
                "response_time_ms": response_time_ms,
                "dependencies": {
                    "mongodb": mongodb_health,
                    "redis": redis_health,
                    "amqp": amqp_health
                },
                "notification_backlog": self._get_backlog(),
                "system_metrics": self._get_system_metrics()
            }

            span.set_attributes({
                "health.overall_status": overall_status,
                "health.response_time_ms": response_time_ms,
                "health.mongodb_status": mongodb_health["status"],
                "health.redis_status": redis_health["status"],
                "health.amqp_status": amqp_health["status"]
            })

            return health_data

    def _timed(self, check) -> Dict[str, Any]:
        start_time = time.time()
        result = dict(check())
        result["response_time_ms"] = round((time.time() - start_time) * 1000, 2)
        result["last_check"] = self.clock.now().isoformat()
        return result

    def _check_amqp_health(self) -> Dict[str, Any]:
        with tracer.start_as_current_span("health.amqp_check") as span:
            start_time = time.time()
            is_healthy = self.channel_sender.health_check()
            span.set_attribute("amqp.status", "healthy" if is_healthy else "unhealthy")
            return {
                "status": "healthy" if is_healthy else "unhealthy",
                "response_time_ms": round((time.time() - start_time) * 1000, 2),
                "last_check": self.clock.now().isoformat()
            }

    def _get_backlog(self) -> Dict[str, Any]:
        """Pending and failed notification counts."""
        try:
            return {
                "pending": self.store.count_notification_events(NotificationStatus.PENDING.value),
                "failed": self.store.count_notification_events(NotificationStatus.FAILED.value)
            }
        except StoreError as e:
            return {"error": e.message}

    def _get_system_metrics(self) -> Dict[str, Any]:
        """Get basic process and host metrics."""
        try:
            process = psutil.Process()
            memory = psutil.virtual_memory()

            return {
                "cpu_percent": psutil.cpu_percent(interval=0.1),
                "memory": {
                    "used_mb": round(memory.used / 1024 / 1024, 2),
                    "total_mb": round(memory.total / 1024 / 1024, 2),
                    "percent": memory.percent
                },
                "process": {
                    "rss_mb": round(process.memory_info().rss / 1024 / 1024, 2),
                    "threads": process.num_threads()
                },
                "load_average": list(os.getloadavg()) if hasattr(os, 'getloadavg') else None
            }
        except Exception as e:
            return {
                "error": f"Failed to collect system metrics: {str(e)}"
            }

    def _determine_overall_status(self, dependency_statuses: List[str]) -> str:
        """Determine overall system status based on dependency health."""
        if all(status == "healthy" for status in dependency_statuses):
            return "healthy"
        elif any(status == "healthy" for status in dependency_statuses):
            return "degraded"
        else:
            return "unhealthy"
