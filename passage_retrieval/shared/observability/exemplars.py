# OpenTelemetry spans linked to Prometheus metrics via exemplars

import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, Optional

from opentelemetry import trace
from opentelemetry.trace import SpanKind

from .logging import get_logger
from .metrics import (
    qdrant_operation_latency_ms,
    qdrant_search_total,
    retrieval_duration_seconds,
    retrieval_requests_total,
)

logger = get_logger(__name__)

SLOW_RETRIEVAL_MS = 1000


def get_trace_context() -> Dict[str, str]:
    """
    Get current trace context for exemplar linking.

    Returns:
        Dictionary with trace_id and span_id
    """
    span = trace.get_current_span()
    if span and span.is_recording():
        ctx = span.get_span_context()
        return {
            "trace_id": format(ctx.trace_id, "032x"),
            "span_id": format(ctx.span_id, "016x"),
        }
    return {}


@contextmanager
def elapsed_ms() -> Iterator[Callable[[], float]]:
    """Yield a callable returning milliseconds elapsed since entry."""
    start = time.perf_counter()
    yield lambda: (time.perf_counter() - start) * 1000.0


@contextmanager
def trace_retrieval(collection: str, mode: str, filter_summary: Optional[str] = None):
    """
    Trace one retrieve() call: span, request counter and latency histogram.

    Yields:
        Span object
    """
    tracer = trace.get_tracer(__name__)

    with tracer.start_as_current_span(
        "retrieval.retrieve",
        kind=SpanKind.INTERNAL,
        attributes={
            "retrieval.collection": collection,
            "retrieval.mode": mode,
            "retrieval.filters": filter_summary or "",
        },
    ) as span:
        trace_ctx = get_trace_context()

        with elapsed_ms() as elapsed:
            try:
                yield span
                retrieval_requests_total.labels(
                    collection=collection, mode=mode, status="success"
                ).inc(exemplar=trace_ctx or None)
                span.set_attribute("retrieval.status", "success")
            except Exception as e:
                retrieval_requests_total.labels(
                    collection=collection, mode=mode, status="error"
                ).inc(exemplar=trace_ctx or None)
                span.set_attribute("retrieval.status", "error")
                span.set_attribute("retrieval.error", str(e))
                span.record_exception(e)
                raise
            finally:
                duration_ms = elapsed()
                retrieval_duration_seconds.labels(
                    collection=collection, mode=mode
                ).observe(duration_ms / 1000.0)
                if duration_ms > SLOW_RETRIEVAL_MS:
                    logger.warning(
                        "Slow retrieval detected",
                        duration_ms=round(duration_ms, 2),
                        collection=collection,
                        mode=mode,
                        trace_id=trace_ctx.get("trace_id"),
                    )


@contextmanager
def trace_vector_search(collection: str, operation: str, limit: int):
    """
    Trace a single Qdrant call (hybrid query or scroll).

    Yields:
        Span object
    """
    tracer = trace.get_tracer(__name__)

    with tracer.start_as_current_span(
        f"qdrant.{operation}",
        kind=SpanKind.CLIENT,
        attributes={
            "vector.store": "qdrant",
            "vector.collection": collection,
            "vector.limit": limit,
        },
    ) as span:
        trace_ctx = get_trace_context()

        with elapsed_ms() as elapsed:
            try:
                yield span
                qdrant_search_total.labels(
                    collection_name=collection, operation=operation, status="success"
                ).inc(exemplar=trace_ctx or None)
                span.set_attribute("vector.status", "success")
            except Exception as e:
                qdrant_search_total.labels(
                    collection_name=collection, operation=operation, status="error"
                ).inc(exemplar=trace_ctx or None)
                span.set_attribute("vector.status", "error")
                span.set_attribute("vector.error", str(e))
                span.record_exception(e)
                raise
            finally:
                qdrant_operation_latency_ms.labels(
                    collection_name=collection, operation=operation
                ).observe(elapsed())
