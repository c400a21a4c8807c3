"""
Health check service for the session store.

Reports storage engine connectivity and the reaper's state. Reaping stops
silently when the eligible process dies, so the reaper report exposes
whether the timer is armed here and when the last sweep ran.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Any

from kvsession.session.reaper import Reaper
from kvsession.session.store import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class DependencyHealth:
    """
    Health status of a single dependency.

    Attributes:
        name: The name of the dependency (e.g., "session_store")
        healthy: Whether the dependency is healthy and responding
        response_time_ms: The time taken to check the dependency in milliseconds
        error: Optional error message if the dependency check failed
    """
    name: str
    healthy: bool
    response_time_ms: float
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = {
            "name": self.name,
            "healthy": self.healthy,
            "response_time_ms": round(self.response_time_ms, 2),
        }
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass
class HealthStatus:
    """
    Overall health status of the service.

    Attributes:
        status: "healthy" or "unhealthy"
        timestamp: When the health check was performed
        dependencies: Individual dependency health statuses
    """
    status: str
    timestamp: datetime
    dependencies: list[DependencyHealth] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "status": self.status,
            "timestamp": _isoformat(self.timestamp),
            "dependencies": [dep.to_dict() for dep in self.dependencies],
        }


def _isoformat(moment: Optional[datetime]) -> Optional[str]:
    if moment is None:
        return None
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class HealthCheckService:
    """
    Service for checking the health of the session store and its reaper.

    Attributes:
        session_store: The session store to probe
        reaper: Optional reaper to report on
        check_timeout: Timeout in seconds for dependency checks (default: 5.0)
    """

    def __init__(
        self,
        session_store: SessionStore,
        reaper: Optional[Reaper] = None,
        check_timeout: float = 5.0
    ):
        self.session_store = session_store
        self.reaper = reaper
        self.check_timeout = check_timeout

    async def check_readiness(self) -> HealthStatus:
        """Check the session store and return the aggregate status."""
        store_health = await self._check_session_store()
        status = "healthy" if store_health.healthy else "unhealthy"

        return HealthStatus(
            status=status,
            timestamp=datetime.now(timezone.utc),
            dependencies=[store_health]
        )

    async def check_health(self) -> dict[str, Any]:
        """Basic health check - service is accepting requests."""
        return {
            "status": "ok",
            "timestamp": _isoformat(datetime.now(timezone.utc))
        }

    def reaper_status(self) -> dict[str, Any]:
        """
        Report the reaper's state in this process.

        ``armed`` is False in every process that lost or never won the
        election; operators should alert when no process reports armed or
        when last_sweep_at stops advancing.
        """
        if self.reaper is None:
            return {"configured": False}

        last_result = self.reaper.last_result
        return {
            "configured": True,
            "armed": self.reaper.armed,
            "eligible": self.reaper.guard.is_eligible(),
            "state": self.reaper.state.value,
            "interval_ms": self.reaper.interval_ms,
            "last_sweep_at": _isoformat(self.reaper.last_sweep_at),
            "last_result": last_result.to_dict() if last_result else None,
        }

    async def _check_session_store(self) -> DependencyHealth:
        """Check session store connectivity with timeout."""
        start_time = time.perf_counter()

        try:
            result = await asyncio.wait_for(
                self.session_store.health_check(),
                timeout=self.check_timeout
            )

            elapsed_ms = (time.perf_counter() - start_time) * 1000

            if result:
                logger.debug(f"Session store health check passed in {elapsed_ms:.2f}ms")
                return DependencyHealth(
                    name="session_store",
                    healthy=True,
                    response_time_ms=elapsed_ms
                )
            logger.warning(f"Session store health check returned False after {elapsed_ms:.2f}ms")
            return DependencyHealth(
                name="session_store",
                healthy=False,
                response_time_ms=elapsed_ms,
                error="Session store health check returned False"
            )

        except asyncio.TimeoutError:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            error_msg = f"Session store health check timed out after {self.check_timeout} seconds"
            logger.warning(error_msg)
            return DependencyHealth(
                name="session_store",
                healthy=False,
                response_time_ms=elapsed_ms,
                error=error_msg
            )

        except Exception as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            error_msg = f"Session store health check failed: {str(e)}"
            logger.error(error_msg)
            return DependencyHealth(
                name="session_store",
                healthy=False,
                response_time_ms=elapsed_ms,
                error=error_msg
            )
