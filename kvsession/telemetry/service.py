"""
Telemetry service for structured logging and observability.

This module provides structured JSON logging with sweep correlation,
optional OpenTelemetry tracing, and lightweight metric recording used by
the reaper.
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Any, Optional, Dict
from contextvars import ContextVar

# Correlation ID of the reaper sweep currently executing in this context
sweep_id_var: ContextVar[str] = ContextVar("sweep_id", default="")


class JSONFormatter(logging.Formatter):
    """
    Log formatter that outputs one JSON document per record.

    Each log entry contains:
    - timestamp: ISO 8601 formatted UTC timestamp
    - level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - message: The log message
    - logger: Name of the logger that produced the entry
    - sweep_id: Correlation ID of the current reaper sweep, if any

    Additional fields are taken from the 'extra_data' attribute on the
    log record.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        sweep_id = sweep_id_var.get("")
        if sweep_id:
            log_data["sweep_id"] = sweep_id

        if record.module:
            log_data["module"] = record.module
        if record.funcName and record.funcName != "<module>":
            log_data["function"] = record.funcName
        if record.lineno:
            log_data["line"] = record.lineno

        if hasattr(record, "extra_data") and record.extra_data:
            log_data.update(record.extra_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            log_data["stack_trace"] = record.stack_info

        return json.dumps(log_data, default=str)


class TelemetryService:
    """
    Centralized telemetry service for logging, metrics, and tracing.

    This service provides:
    - Structured JSON logging on stdout
    - OpenTelemetry integration for distributed tracing
    - Metric recording for reaper sweeps
    """

    def __init__(self, settings: Optional[Any] = None):
        """
        Initialize the telemetry service.

        Args:
            settings: Settings providing log_level, otel_endpoint and
                otel_service_name
        """
        self.settings = settings
        self.tracer = None
        self._logger = None
        self._setup_logging()
        self._setup_tracing()

    def _setup_logging(self) -> None:
        """Configure the root logger with the JSON formatter."""
        log_level_str = "INFO"
        if self.settings and hasattr(self.settings, "log_level"):
            log_level_str = self.settings.log_level

        log_level = getattr(logging, log_level_str.upper(), logging.INFO)

        json_formatter = JSONFormatter()

        root_logger = logging.getLogger()
        root_logger.setLevel(log_level)

        # Remove existing handlers to avoid duplicate logs
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        stdout_handler = logging.StreamHandler(sys.stdout)
        stdout_handler.setLevel(log_level)
        stdout_handler.setFormatter(json_formatter)
        root_logger.addHandler(stdout_handler)

        self._logger = logging.getLogger("kvsession.telemetry")
        self._logger.info("Telemetry service initialized", extra={
            "extra_data": {"log_level": log_level_str}
        })

    def _setup_tracing(self) -> None:
        """Configure OpenTelemetry tracing when an endpoint is configured."""
        if not self.settings:
            return

        otel_endpoint = getattr(self.settings, "otel_endpoint", None)
        if not otel_endpoint:
            self._logger.debug("OpenTelemetry endpoint not configured, tracing disabled")
            return

        try:
            from opentelemetry import trace
            from opentelemetry.sdk.trace import TracerProvider
            from opentelemetry.sdk.trace.export import BatchSpanProcessor
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
            from opentelemetry.sdk.resources import Resource, SERVICE_NAME

            service_name = getattr(self.settings, "otel_service_name", "kvsession")

            resource = Resource(attributes={
                SERVICE_NAME: service_name
            })
            provider = TracerProvider(resource=resource)
            exporter = OTLPSpanExporter(endpoint=otel_endpoint)
            provider.add_span_processor(BatchSpanProcessor(exporter))
            trace.set_tracer_provider(provider)

            self.tracer = trace.get_tracer(service_name)

            self._logger.info("OpenTelemetry tracing configured", extra={
                "extra_data": {
                    "otel_endpoint": otel_endpoint,
                    "service_name": service_name
                }
            })
        except ImportError as e:
            self._logger.warning(
                "OpenTelemetry packages not installed, tracing disabled",
                extra={"extra_data": {"error": str(e)}}
            )
        except Exception as e:
            self._logger.error(
                "Failed to configure OpenTelemetry tracing",
                extra={"extra_data": {"error": str(e)}}
            )

    def record_metric(
        self,
        name: str,
        value: float,
        tags: Optional[Dict[str, str]] = None
    ) -> None:
        """
        Record a custom metric as a structured debug log entry.

        Args:
            name: Name of the metric
            value: Metric value
            tags: Optional tags for metric dimensions
        """
        metric_data = {
            "metric_name": name,
            "metric_value": value,
        }

        if tags:
            metric_data["tags"] = tags

        self._logger.debug(
            f"Metric: {name}={value}",
            extra={"extra_data": metric_data}
        )

    def create_span(self, name: str, attributes: Optional[Dict[str, Any]] = None):
        """
        Create an OpenTelemetry span, or a no-op context manager when tracing
        is not configured.
        """
        if self.tracer:
            span = self.tracer.start_as_current_span(name)
            if attributes and hasattr(span, "__enter__"):
                return _SpanContextManager(span, attributes)
            return span
        return _NoOpSpanContextManager()


class _SpanContextManager:
    """Context manager wrapper that adds attributes to a span after entering."""

    def __init__(self, span_context, attributes: Dict[str, Any]):
        self._span_context = span_context
        self._attributes = attributes
        self._span = None

    def __enter__(self):
        self._span = self._span_context.__enter__()
        if self._span and hasattr(self._span, "set_attribute"):
            for key, value in self._attributes.items():
                self._span.set_attribute(key, value)
        return self._span

    def __exit__(self, exc_type, exc_val, exc_tb):
        return self._span_context.__exit__(exc_type, exc_val, exc_tb)


class _NoOpSpanContextManager:
    """No-op span used when tracing is not configured."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False

    def set_attribute(self, key: str, value: Any) -> None:
        pass

    def add_event(self, name: str, attributes: Optional[Dict[str, Any]] = None) -> None:
        pass

    def record_exception(self, exception: Exception) -> None:
        pass


# Global telemetry service instance
_telemetry_service: Optional[TelemetryService] = None


def get_telemetry_service() -> Optional[TelemetryService]:
    """
    Get the global telemetry service instance.

    Returns:
        The telemetry service instance, or None if not initialized
    """
    return _telemetry_service


def initialize_telemetry(settings: Optional[Any] = None) -> TelemetryService:
    """
    Initialize the global telemetry service.

    Args:
        settings: Settings for configuration

    Returns:
        The initialized telemetry service
    """
    global _telemetry_service
    _telemetry_service = TelemetryService(settings)
    return _telemetry_service


def set_sweep_id(sweep_id: str):
    """Set the sweep correlation ID for the current context, returning the reset token."""
    return sweep_id_var.set(sweep_id)


def get_sweep_id() -> str:
    """Get the current sweep correlation ID, or an empty string."""
    return sweep_id_var.get("")
