"""
Health check module for kvsession.

Reports session store connectivity and the reaper's state so operators
can detect a store outage or a reaper that stopped sweeping.
"""

from kvsession.health.service import (
    HealthCheckService,
    HealthStatus,
    DependencyHealth,
)

__all__ = [
    "HealthCheckService",
    "HealthStatus",
    "DependencyHealth",
]
