from __future__ import annotations
from prometheus_client import Counter, Histogram, Gauge, Info, generate_latest, CONTENT_TYPE_LATEST
from chatfleet import __version__
from chatfleet.obs.logging_setup import get_logger

logger = get_logger(__name__)

# Chat stream metrics
STREAM_EVENTS_TOTAL = Counter(
    'chat_stream_events_total',
    'Typed chat stream events received',
    ['event']
)

STREAM_EVENTS_DROPPED = Counter(
    'chat_stream_events_dropped_total',
    'Chat stream blocks discarded during parsing',
    ['event', 'reason']
)

CHAT_TURNS_TOTAL = Counter(
    'chat_turns_total',
    'Chat turns by outcome',
    ['outcome']
)

# Job polling metrics
JOB_POLLS_TOTAL = Counter(
    'job_polls_total',
    'Job status polls by outcome',
    ['outcome']
)

JOBS_TERMINAL_TOTAL = Counter(
    'jobs_terminal_total',
    'Jobs observed reaching a terminal state',
    ['state']
)

ACTIVE_POLLERS = Gauge(
    'job_pollers_active',
    'Number of job polling loops currently running'
)

FUNCTION_DURATION = Histogram(
    'function_duration_seconds',
    'Duration of traced client functions in seconds',
    ['function']
)

CLIENT_INFO = Info(
    'chatfleet_client',
    'Client information'
)


class PrometheusMetrics:
    """Prometheus metrics collector with convenience methods."""

    def __init__(self):
        CLIENT_INFO.info({'version': __version__, 'service': 'chatfleet-client'})
        logger.debug("Prometheus metrics initialized")

    def record_stream_event(self, event: str):
        STREAM_EVENTS_TOTAL.labels(event=event).inc()

    def record_dropped_event(self, event: str, reason: str):
        STREAM_EVENTS_DROPPED.labels(event=event, reason=reason).inc()

    def record_turn(self, outcome: str):
        CHAT_TURNS_TOTAL.labels(outcome=outcome).inc()

    def record_poll(self, outcome: str):
        JOB_POLLS_TOTAL.labels(outcome=outcome).inc()

    def record_job_terminal(self, state: str):
        JOBS_TERMINAL_TOTAL.labels(state=state).inc()

    def poller_started(self):
        ACTIVE_POLLERS.inc()

    def poller_stopped(self):
        ACTIVE_POLLERS.dec()

    def record_duration(self, function: str, duration_seconds: float):
        FUNCTION_DURATION.labels(function=function).observe(duration_seconds)

    def get_prometheus_metrics(self) -> bytes:
        """Get metrics in Prometheus format."""
        return generate_latest()

    def get_content_type(self) -> str:
        return CONTENT_TYPE_LATEST


# Global Prometheus metrics instance
prometheus_metrics = PrometheusMetrics()
