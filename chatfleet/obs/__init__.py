"""
Observability module - Tracing, metrics, and logging.

Provides:
- OpenTelemetry tracing and trace-context propagation
- Prometheus metrics for stream events, turns and job polls
- Structured logging with trace correlation
- Tracing decorator for client calls
"""

from .logging_setup import setup_logging, get_logger
from .otel import setup_tracing, get_tracer, propagation_headers
from .prometheus_metrics import prometheus_metrics
from .decorators import traced

__all__ = [
    "setup_logging",
    "get_logger",
    "setup_tracing",
    "get_tracer",
    "propagation_headers",
    "prometheus_metrics",
    "traced",
]
