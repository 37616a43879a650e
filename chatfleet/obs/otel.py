from __future__ import annotations
import os
from typing import Dict
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased, ALWAYS_ON
from opentelemetry.propagate import set_global_textmap, inject
from opentelemetry.propagators.b3 import B3MultiFormat
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from chatfleet import __version__
from chatfleet.config import OTEL_EXPORTER_OTLP_ENDPOINT, OTEL_SERVICE_NAME
from chatfleet.obs.logging_setup import get_logger

logger = get_logger(__name__)


def setup_tracing() -> None:
    """Initialize OpenTelemetry tracing for the client."""

    set_global_textmap(B3MultiFormat())

    resource = Resource.create({
        "service.name": OTEL_SERVICE_NAME,
        "service.version": __version__,
        "deployment.environment": os.getenv("ENVIRONMENT", "development")
    })

    sample_rate = float(os.getenv("OTEL_SAMPLE_RATE", "1.0"))
    sampler = ALWAYS_ON if sample_rate >= 1.0 else TraceIdRatioBased(sample_rate)

    tracer_provider = TracerProvider(resource=resource, sampler=sampler)

    if OTEL_EXPORTER_OTLP_ENDPOINT:
        otlp_exporter = OTLPSpanExporter(
            endpoint=f"{OTEL_EXPORTER_OTLP_ENDPOINT}/v1/traces",
            timeout=10
        )
        tracer_provider.add_span_processor(BatchSpanProcessor(
            otlp_exporter,
            max_queue_size=512,
            max_export_batch_size=256,
            export_timeout_millis=30000
        ))
        logger.info("OTLP exporter configured", endpoint=OTEL_EXPORTER_OTLP_ENDPOINT)
    else:
        tracer_provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        logger.warning("No OTLP endpoint configured, using console exporter")

    trace.set_tracer_provider(tracer_provider)
    LoggingInstrumentor().instrument(set_logging_format=False)

    logger.info("OpenTelemetry configured", service=OTEL_SERVICE_NAME)


def get_tracer(name: str = "chatfleet-client") -> trace.Tracer:
    """Get OpenTelemetry tracer instance."""
    return trace.get_tracer(name)


def propagation_headers() -> Dict[str, str]:
    """Trace context headers for an outgoing request."""
    headers: Dict[str, str] = {}
    inject(headers)
    return headers
