# SPDX-License-Identifier: Apache-2.0

"""
Tests for dependency health reporting.
"""

import pytest
from unittest.mock import Mock

from services.dispatch import DispatchService
from services.health import HealthCheckService, determine_overall_status
from services.redis import RedisService


class TestDetermineOverallStatus:
    """Test the overall status rule."""

    @pytest.mark.parametrize("primary,secondary,expected", [
        ("healthy", [], "healthy"),
        ("healthy", ["healthy", "healthy"], "healthy"),
        ("healthy", ["unhealthy", "healthy"], "degraded"),
        ("unhealthy", ["healthy"], "unhealthy"),
        ("unhealthy", [], "unhealthy"),
    ])
    def test_status(self, primary, secondary, expected):
        assert determine_overall_status(primary, secondary) == expected


class TestHealthCheckService:
    """Test dependency aggregation."""

    def test_only_configured_dependencies_reported(self, mongo):
        health = HealthCheckService(mongo).get_health()

        assert set(health['dependencies']) == {"mongodb"}
        assert health['status'] == "healthy"
        assert 'memory_rss_mb' in health['process']

    def test_redis_failure_degrades(self, mongo):
        redis_service = Mock(spec=RedisService)
        redis_service.health_check.return_value = {"status": "unhealthy", "error": "timeout"}

        health = HealthCheckService(mongo, redis_service=redis_service).get_health()

        assert health['status'] == "degraded"
        assert health['dependencies']['redis']['error'] == "timeout"

    def test_broker_status(self, mongo):
        dispatch_service = Mock(spec=DispatchService)
        dispatch_service.health_check.return_value = False

        health = HealthCheckService(mongo, dispatch_service=dispatch_service).get_health()

        assert health['dependencies']['amqp']['status'] == "unhealthy"
        assert health['status'] == "degraded"
