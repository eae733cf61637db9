# shared/health.py
"""
Health check utilities for the payment reconciler
"""

import time
import asyncio
from typing import Any, Awaitable, Callable, Dict
from datetime import datetime, timezone

from .logging_config import get_logger
from .models import HealthResponse

logger = get_logger(__name__)


class HealthChecker:
    """
    Basic health checker for the service
    Runs registered async checks and reports uptime
    """

    def __init__(self, service_name: str, version: str = "1.0.0"):
        self.service_name = service_name
        self.version = version
        self.startup_time = time.time()
        self.health_checks: Dict[str, Callable[[], Awaitable[Any]]] = {}

    def add_check(self, name: str, check_function: Callable[[], Awaitable[Any]]):
        """Add health check function"""
        self.health_checks[name] = check_function
        logger.info(f"Added health check: {name}")

    async def check_health(self) -> HealthResponse:
        """
        Run health checks

        Returns:
            Health response with per-check details
        """
        start_time = time.time()

        checks = {
            'uptime_seconds': round(time.time() - self.startup_time, 3),
            'status': 'healthy'
        }

        for name, check_func in self.health_checks.items():
            try:
                checks[name] = await asyncio.wait_for(check_func(), timeout=10)
            except Exception as e:
                logger.warning(f"Health check {name} failed: {e}")
                checks[name] = {'status': 'failed', 'error': str(e)}
                checks['status'] = 'degraded'

        return HealthResponse(
            status=checks['status'],
            service=self.service_name,
            version=self.version,
            timestamp=datetime.now(timezone.utc).isoformat(),
            response_time_ms=int((time.time() - start_time) * 1000),
            checks=checks
        )
