# SPDX-License-Identifier: Apache-2.0

"""
Health Check Service

Reports the health of the service dependencies (MongoDB, Redis, AMQP) and
basic process metrics.
"""

import os
import time
import psutil
from datetime import datetime
from typing import Any, Dict, List, Optional
from opentelemetry import trace

from services.dispatch import DispatchService
from services.mongodb import MongoDBService
from services.redis import RedisService

tracer = trace.get_tracer(__name__)

SERVICE_NAME = "gabinete-core-api"
SERVICE_VERSION = "1.0.0"


class HealthCheckService:
    """Service for dependency health monitoring."""

    def __init__(
        self,
        mongodb_service: MongoDBService,
        redis_service: Optional[RedisService] = None,
        dispatch_service: Optional[DispatchService] = None
    ):
        self.mongodb_service = mongodb_service
        self.redis_service = redis_service
        self.dispatch_service = dispatch_service

    def get_health(self) -> Dict[str, Any]:
        """Get health status of all dependencies."""
        with tracer.start_as_current_span("health.check") as span:
            start_time = time.time()

            dependencies = {"mongodb": self.mongodb_service.health_check()}
            if self.redis_service is not None:
                dependencies["redis"] = self.redis_service.health_check()
            if self.dispatch_service is not None:
                dependencies["amqp"] = self._check_amqp_health()

            # MongoDB is the only hard dependency
            overall_status = determine_overall_status(
                dependencies["mongodb"]["status"],
                [health["status"] for name, health in dependencies.items() if name != "mongodb"]
            )

            response_time_ms = round((time.time() - start_time) * 1000, 2)
            span.set_attributes({
                "health.overall_status": overall_status,
                "health.response_time_ms": response_time_ms
            })

            return {
                "status": overall_status,
                "service": SERVICE_NAME,
                "version": SERVICE_VERSION,
                "environment": os.getenv('ENVIRONMENT', 'development'),
                "timestamp": datetime.utcnow().isoformat() + "Z",
                "response_time_ms": response_time_ms,
                "dependencies": dependencies,
                "process": self._get_process_metrics()
            }

    def _check_amqp_health(self) -> Dict[str, Any]:
        start_time = time.time()
        healthy = self.dispatch_service.health_check()
        return {
            "status": "healthy" if healthy else "unhealthy",
            "response_time_ms": round((time.time() - start_time) * 1000, 2)
        }

    def _get_process_metrics(self) -> Dict[str, Any]:
        """Get basic metrics of the serving process."""
        try:
            process = psutil.Process(os.getpid())
            return {
                "memory_rss_mb": round(process.memory_info().rss / 1024 / 1024, 2),
                "uptime_seconds": round(time.time() - process.create_time(), 2)
            }
        except psutil.Error as e:
            return {"error": f"Failed to collect process metrics: {str(e)}"}


def determine_overall_status(primary_status: str, secondary_statuses: List[str]) -> str:
    """
    Determine overall status from dependency health.

    An unhealthy primary store makes the service unhealthy; any other
    unhealthy dependency only degrades it.
    """
    if primary_status != "healthy":
        return "unhealthy"
    if all(status == "healthy" for status in secondary_statuses):
        return "healthy"
    return "degraded"
