"""
Health checks for readiness/liveness probes.

Checks:
- Database connectivity
- Redis connectivity (when the redis event sink is configured)
"""
from typing import Any, Dict, Optional

import redis.asyncio as aioredis
import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = structlog.get_logger(__name__)


class HealthCheckError(Exception):
    """Raised when health check fails."""

    pass


class HealthCheck:
    """
    Health check service for monitoring system dependencies.

    Provides:
    - Database connectivity check
    - Redis connectivity check
    - Overall system health status
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        redis_client: Optional[aioredis.Redis] = None,
    ) -> None:
        """
        Initialize health check service.

        Args:
            session_factory: Database session factory
            redis_client: Optional Redis client used by the event sink
        """
        self.session_factory = session_factory
        self.redis_client = redis_client

    async def check_database(self) -> Dict[str, Any]:
        """
        Check database connectivity.

        Returns:
            Dict[str, Any]: Database health status

        Raises:
            HealthCheckError: If database check fails
        """
        try:
            async with self.session_factory() as db:
                result = await db.execute(text("SELECT 1"))
                result.scalar()

                return {
                    "status": "healthy",
                    "service": "database",
                    "message": "Database connection successful",
                }

        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            raise HealthCheckError(f"Database health check failed: {str(e)}")

    async def check_redis(self) -> Dict[str, Any]:
        """
        Check Redis connectivity.

        Returns:
            Dict[str, Any]: Redis health status

        Raises:
            HealthCheckError: If Redis check fails
        """
        try:
            await self.redis_client.ping()

            return {
                "status": "healthy",
                "service": "redis",
                "message": "Redis connection successful",
            }

        except Exception as e:
            logger.error("redis_health_check_failed", error=str(e))
            raise HealthCheckError(f"Redis health check failed: {str(e)}")

    async def check_all(self) -> Dict[str, Any]:
        """
        Run all health checks.

        Returns:
            Dict[str, Any]: Overall health status
        """
        checks = {}
        all_healthy = True

        try:
            checks["database"] = await self.check_database()
        except HealthCheckError as e:
            checks["database"] = {
                "status": "unhealthy",
                "service": "database",
                "error": str(e),
            }
            all_healthy = False

        if self.redis_client is not None:
            try:
                checks["redis"] = await self.check_redis()
            except HealthCheckError as e:
                checks["redis"] = {
                    "status": "unhealthy",
                    "service": "redis",
                    "error": str(e),
                }
                all_healthy = False

        return {
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
        }

    async def liveness(self) -> Dict[str, Any]:
        """
        Liveness probe.

        Does not check external dependencies.
        """
        return {
            "status": "alive",
            "checks": {},
        }

    async def readiness(self) -> Dict[str, Any]:
        """Readiness probe: all dependencies must be reachable."""
        return await self.check_all()
