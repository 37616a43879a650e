from __future__ import annotations
import time
import functools
import inspect
from typing import Callable, Optional
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from chatfleet.obs.prometheus_metrics import prometheus_metrics
from chatfleet.obs.logging_setup import get_logger

logger = get_logger(__name__)


def traced(operation_name: Optional[str] = None, include_args: bool = False):
    """Decorator to add OpenTelemetry tracing to functions."""

    def decorator(func: Callable) -> Callable:
        tracer = trace.get_tracer(__name__)
        span_name = operation_name or f"{func.__module__}.{func.__name__}"

        def _start(span, args, kwargs):
            span.set_attribute("function.name", func.__name__)
            span.set_attribute("function.module", func.__module__)
            if include_args:
                span.set_attribute("function.args", str(args[1:] if args else args))
                span.set_attribute("function.kwargs", str(kwargs))

        def _fail(span, exc: Exception):
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            logger.debug(
                f"Function {func.__name__} failed",
                error=str(exc),
                function=func.__name__
            )

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            with tracer.start_as_current_span(span_name) as span:
                _start(span, args, kwargs)
                start_time = time.perf_counter()
                try:
                    result = await func(*args, **kwargs)
                    span.set_status(Status(StatusCode.OK))
                    return result
                except Exception as e:
                    _fail(span, e)
                    raise
                finally:
                    prometheus_metrics.record_duration(
                        func.__name__, time.perf_counter() - start_time
                    )

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            with tracer.start_as_current_span(span_name) as span:
                _start(span, args, kwargs)
                start_time = time.perf_counter()
                try:
                    result = func(*args, **kwargs)
                    span.set_status(Status(StatusCode.OK))
                    return result
                except Exception as e:
                    _fail(span, e)
                    raise
                finally:
                    prometheus_metrics.record_duration(
                        func.__name__, time.perf_counter() - start_time
                    )

        if inspect.iscoroutinefunction(func):
            return async_wrapper
        else:
            return sync_wrapper

    return decorator
