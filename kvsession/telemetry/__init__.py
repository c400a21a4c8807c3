"""
Telemetry module for structured logging and observability.

This module provides:
- JSONFormatter for structured JSON log output
- TelemetryService for centralized logging, metrics and tracing
- Sweep correlation IDs for reaper log entries
"""

from kvsession.telemetry.service import (
    JSONFormatter,
    TelemetryService,
    get_sweep_id,
    get_telemetry_service,
    initialize_telemetry,
    set_sweep_id,
)

__all__ = [
    "JSONFormatter",
    "TelemetryService",
    "get_sweep_id",
    "get_telemetry_service",
    "initialize_telemetry",
    "set_sweep_id",
]
