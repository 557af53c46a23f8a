"""
Health and metrics endpoints.

- ``/health``        liveness summary, no dependencies touched
- ``/health/live``   bare liveness probe
- ``/health/ready``  readiness: database, redis (when configured), disk, memory
- ``/metrics``       process figures
"""

import logging
import os
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

import psutil
import redis
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from ..infrastructure.db import Database

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    WARN = "warn"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ServiceHealth:
    """Readiness checks for one service instance."""

    def __init__(self, service_name: str, version: str, database: Database,
                 redis_url: Optional[str] = None):
        self.service_name = service_name
        self.version = version
        self.database = database
        self.redis_url = redis_url
        self.start_time = time.time()
        self.checks_performed = 0

    def create_health_router(self) -> APIRouter:
        router = APIRouter(tags=["health"])

        @router.get("/health", status_code=status.HTTP_200_OK)
        async def health_check() -> Dict[str, Any]:
            return {
                "status": "healthy",
                "service": self.service_name,
                "version": self.version,
                "releaseId": os.getenv("RELEASE_ID", "unknown"),
                "timestamp": _now(),
            }

        @router.get("/health/live", status_code=status.HTTP_200_OK)
        async def liveness() -> Dict[str, Any]:
            return {"status": "alive"}

        @router.get("/health/ready")
        async def readiness() -> JSONResponse:
            checks = await self.perform_readiness_checks()
            overall = self.overall_status(checks)
            code = status.HTTP_503_SERVICE_UNAVAILABLE if overall == HealthStatus.FAIL else status.HTTP_200_OK
            return JSONResponse(status_code=code, content={
                "status": overall.value,
                "version": self.version,
                "serviceId": self.service_name,
                "checks": checks,
                "timestamp": _now(),
            })

        @router.get("/metrics")
        async def metrics() -> Dict[str, Any]:
            process = psutil.Process()
            memory = process.memory_info()
            return {
                "service": self.service_name,
                "version": self.version,
                "uptime_seconds": time.time() - self.start_time,
                "checks_performed": self.checks_performed,
                "timestamp": _now(),
                "system": {
                    "memory_rss_bytes": memory.rss,
                    "memory_vms_bytes": memory.vms,
                    "cpu_percent": process.cpu_percent(),
                    "num_threads": process.num_threads(),
                },
            }

        return router

    async def perform_readiness_checks(self) -> Dict[str, Dict[str, Any]]:
        self.checks_performed += 1
        checks = {"database:connectivity": await self._check_database()}
        if self.redis_url:
            checks["cache:connectivity"] = self._check_redis()
        checks["storage:disk_space"] = self._check_disk_space()
        checks["system:memory"] = self._check_memory()
        return checks

    async def _check_database(self) -> Dict[str, Any]:
        start_time = time.time()
        try:
            await self.database.ping()
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return {"status": HealthStatus.FAIL.value, "componentType": "datastore",
                    "output": str(e), "time": _now()}
        return {
            "status": HealthStatus.PASS.value,
            "componentType": "datastore",
            "observedValue": f"{(time.time() - start_time) * 1000:.2f}",
            "observedUnit": "ms",
            "time": _now(),
        }

    def _check_redis(self) -> Dict[str, Any]:
        try:
            redis.from_url(self.redis_url, socket_connect_timeout=1).ping()
        except Exception as e:
            # token revocation falls back to the local cache, so only warn
            return {"status": HealthStatus.WARN.value, "componentType": "cache",
                    "output": str(e), "time": _now()}
        return {"status": HealthStatus.PASS.value, "componentType": "cache", "time": _now()}

    def _check_disk_space(self) -> Dict[str, Any]:
        free_gb = psutil.disk_usage('/').free / (1024 ** 3)
        if free_gb < 1:
            status_val = HealthStatus.FAIL
        elif free_gb < 5:
            status_val = HealthStatus.WARN
        else:
            status_val = HealthStatus.PASS
        return {"status": status_val.value, "componentType": "system",
                "observedValue": f"{free_gb:.2f}", "observedUnit": "GB", "time": _now()}

    def _check_memory(self) -> Dict[str, Any]:
        available_mb = psutil.virtual_memory().available / (1024 ** 2)
        if available_mb < 100:
            status_val = HealthStatus.FAIL
        elif available_mb < 500:
            status_val = HealthStatus.WARN
        else:
            status_val = HealthStatus.PASS
        return {"status": status_val.value, "componentType": "system",
                "observedValue": f"{available_mb:.2f}", "observedUnit": "MB", "time": _now()}

    @staticmethod
    def overall_status(checks: Dict[str, Dict[str, Any]]) -> HealthStatus:
        statuses = {check.get("status") for check in checks.values()}
        if HealthStatus.FAIL.value in statuses:
            return HealthStatus.FAIL
        if HealthStatus.WARN.value in statuses:
            return HealthStatus.WARN
        return HealthStatus.PASS
