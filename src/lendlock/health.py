"""
Health and readiness check utilities.
"""

from enum import Enum
from typing import Awaitable, Dict, List, Optional, Callable, Any
from datetime import datetime, timezone
from fastapi import FastAPI, Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from pydantic import BaseModel, Field
from lendlock.logging import get_logger

logger = get_logger(__name__)


class HealthStatus(str, Enum):
    """Health check status."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ComponentHealth(BaseModel):
    """Health status of a single component."""
    name: str
    status: HealthStatus
    message: Optional[str] = None
    last_check: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ServiceHealth(BaseModel):
    """Overall service health status."""
    service: str
    status: HealthStatus
    timestamp: datetime
    components: List[ComponentHealth]
    version: str = "1.0.0"


HealthCheck = Callable[[], Awaitable[ComponentHealth]]


class HealthChecker:
    """Manages health checks for a service."""

    def __init__(self, service_name: str):
        self.service_name = service_name
        self.checks: Dict[str, HealthCheck] = {}

    def register_check(self, name: str, check_func: HealthCheck):
        """Register an async health check function."""
        self.checks[name] = check_func
        logger.info(f"Registered health check: {name}")

    async def check_health(self) -> ServiceHealth:
        """Run all health checks and return overall status."""
        components = []
        overall_status = HealthStatus.HEALTHY

        for name, check_func in self.checks.items():
            try:
                result = await check_func()
            except Exception as e:
                logger.error(f"Health check failed for {name}: {e}")
                result = ComponentHealth(
                    name=name,
                    status=HealthStatus.UNHEALTHY,
                    message=f"Check failed: {str(e)}",
                )

            result.last_check = datetime.now(timezone.utc)
            components.append(result)

            # Downgrade overall status if needed
            if result.status == HealthStatus.UNHEALTHY:
                overall_status = HealthStatus.UNHEALTHY
            elif result.status == HealthStatus.DEGRADED and overall_status == HealthStatus.HEALTHY:
                overall_status = HealthStatus.DEGRADED

        return ServiceHealth(
            service=self.service_name,
            status=overall_status,
            timestamp=datetime.now(timezone.utc),
            components=components
        )

    async def is_ready(self) -> bool:
        """Check if service is ready to handle requests."""
        health = await self.check_health()
        return health.status != HealthStatus.UNHEALTHY


def create_health_endpoints(app: FastAPI, health_checker: HealthChecker):
    """Add health, readiness and metrics endpoints to FastAPI app."""

    @app.get("/healthcheck")
    async def liveness():
        """Liveness check."""
        return {"message": "Healthy"}

    @app.get("/healthz")
    async def health_check() -> ServiceHealth:
        """Health check endpoint."""
        return await health_checker.check_health()

    @app.get("/ready")
    async def readiness_check(response: Response):
        """Readiness check endpoint."""
        if await health_checker.is_ready():
            return {"status": "ready"}
        response.status_code = 503
        return {"status": "not ready"}

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def store_health_check(ping: Callable[[], Awaitable[bool]], name: str = "loan_store") -> HealthCheck:
    """Build a health check from a store ping coroutine."""

    async def check() -> ComponentHealth:
        if await ping():
            return ComponentHealth(name=name, status=HealthStatus.HEALTHY, message="Store reachable")
        return ComponentHealth(name=name, status=HealthStatus.UNHEALTHY, message="Store unreachable")

    return check
